"""
Quiz scheduling rules and student-facing availability.

Quizzes are either "legacy" (start time given at creation), "deferred"
(created without a time) or "scheduled" (a deferred quiz that has since been
given a time). A quiz runs from its start time for ``duration`` minutes.
"""

import logging
import math
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from quizhub.core.timezone import utcnow, parse_datetime, isoformat_utc
from quizhub.models.enums import QuizStatus, SchedulingStatus
from quizhub.models.quiz import Quiz

logger = logging.getLogger(__name__)

MIN_START_BUFFER_MINUTES = 5
MAX_SCHEDULE_AHEAD = timedelta(days=365)


@dataclass
class Decision:
    allowed: bool
    reason: Optional[str] = None


@dataclass
class Availability:
    available: bool
    status: str  # not_scheduled | upcoming | active | ended | reassigned
    message: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["start_time"] = isoformat_utc(self.start_time)
        data["end_time"] = isoformat_utc(self.end_time)
        return data


def get_effective_start_time(quiz: Quiz) -> Optional[datetime]:
    if quiz.start_time:
        return quiz.start_time
    configured = (quiz.time_configuration or {}).get("startTime")
    if configured:
        try:
            return parse_datetime(configured)
        except ValueError:
            logger.warning(f"[Scheduling] quiz {quiz.id} has an unparseable startTime: {configured!r}")
    return None


def get_end_time(quiz: Quiz) -> Optional[datetime]:
    start = get_effective_start_time(quiz)
    if start is None:
        return None
    return start + timedelta(minutes=quiz.duration or 0)


def can_publish(quiz: Quiz, now: Optional[datetime] = None) -> Decision:
    now = now or utcnow()
    if quiz.status == QuizStatus.PUBLISHED:
        return Decision(False, "Quiz is already published")
    if quiz.status in QuizStatus.CLOSED:
        return Decision(False, f"Cannot publish a {quiz.status} quiz")

    start = get_effective_start_time(quiz)
    if quiz.scheduling_status == SchedulingStatus.DEFERRED and start is None:
        return Decision(False, "Quiz must be scheduled before publishing")

    if start is not None and start < now + timedelta(minutes=MIN_START_BUFFER_MINUTES):
        return Decision(False, "Quiz start time must be at least 5 minutes in the future")

    return Decision(True)


def can_reschedule(quiz: Quiz, now: Optional[datetime] = None) -> Decision:
    now = now or utcnow()
    if quiz.scheduling_status == SchedulingStatus.LEGACY:
        return Decision(False, "Legacy quizzes cannot be rescheduled")
    if quiz.status in QuizStatus.CLOSED:
        return Decision(False, f"Cannot reschedule a {quiz.status} quiz")
    start = get_effective_start_time(quiz)
    if start is not None and start < now:
        return Decision(False, "Cannot reschedule a quiz that has already started")
    return Decision(True)


def validate_start_time(
    start_time,
    min_buffer_minutes: int = MIN_START_BUFFER_MINUTES,
    now: Optional[datetime] = None,
) -> Decision:
    now = now or utcnow()
    try:
        start = parse_datetime(start_time)
    except (TypeError, ValueError):
        start = None
    if start is None:
        return Decision(False, "Invalid start time provided")
    if start < now + timedelta(minutes=min_buffer_minutes):
        return Decision(False, f"Start time must be at least {min_buffer_minutes} minutes in the future")
    if start > now + MAX_SCHEDULE_AHEAD:
        return Decision(False, "Start time cannot be more than 1 year in the future")
    return Decision(True)


def can_enroll(quiz: Quiz, now: Optional[datetime] = None) -> Decision:
    now = now or utcnow()
    if quiz.status != QuizStatus.PUBLISHED:
        return Decision(False, "Quiz is not yet published")
    # deferred quizzes get their time before they start
    if quiz.scheduling_status == SchedulingStatus.DEFERRED:
        return Decision(True)
    end = get_end_time(quiz)
    if end is not None and now > end:
        return Decision(False, "Quiz has already ended")
    return Decision(True)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def format_time_until(delta: timedelta) -> str:
    minutes = math.ceil(delta.total_seconds() / 60)
    if minutes <= 0:
        return "Starting now"
    if minutes < 60:
        return f"Starts in {_plural(minutes, 'minute')}"
    hours, rest = divmod(minutes, 60)
    if rest == 0:
        return f"Starts in {_plural(hours, 'hour')}"
    return f"Starts in {_plural(hours, 'hour')} {_plural(rest, 'minute')}"


def calculate_availability(
    quiz: Quiz,
    is_reassignment: bool = False,
    attempted: bool = False,
    now: Optional[datetime] = None,
) -> Availability:
    now = now or utcnow()
    start = get_effective_start_time(quiz)
    end = get_end_time(quiz)

    if is_reassignment and not attempted:
        return Availability(True, "reassigned", "Reassigned - Available", start, end)

    if start is None:
        return Availability(False, "not_scheduled", "Quiz time not scheduled")

    if now > end:
        return Availability(False, "ended", "Quiz has ended", start, end)

    if now < start:
        return Availability(False, "upcoming", format_time_until(start - now), start, end)

    minutes_left = math.ceil((end - now).total_seconds() / 60)
    return Availability(
        True, "active", f"Quiz is active ({_plural(minutes_left, 'minute')} remaining)", start, end
    )


def format_scheduling(quiz: Quiz, now: Optional[datetime] = None) -> Dict[str, Any]:
    start = get_effective_start_time(quiz)
    publishable = can_publish(quiz, now)
    reschedulable = can_reschedule(quiz, now)
    return {
        "mode": quiz.scheduling_status,
        "start_time": isoformat_utc(start),
        "end_time": isoformat_utc(get_end_time(quiz)),
        "timezone": quiz.timezone,
        "duration": quiz.duration,
        "is_scheduled": start is not None,
        "can_publish": publishable.allowed,
        "can_publish_reason": publishable.reason,
        "can_reschedule": reschedulable.allowed,
        "can_reschedule_reason": reschedulable.reason,
        "scheduled_by": quiz.scheduled_by,
        "scheduled_at": isoformat_utc(quiz.scheduled_at),
        "configuration": quiz.time_configuration,
    }


def migrate_legacy_time(quiz: Quiz) -> bool:
    """Backfill time_configuration on legacy quizzes. Returns True when changed."""
    if quiz.scheduling_status not in (None, SchedulingStatus.LEGACY) or quiz.time_configuration:
        return False
    quiz.scheduling_status = SchedulingStatus.LEGACY
    quiz.time_configuration = {
        "startTime": isoformat_utc(quiz.start_time),
        "timezone": quiz.timezone or "UTC",
        "duration": quiz.duration,
        "configuredAt": isoformat_utc(quiz.created_at),
        "configuredBy": quiz.educator_id,
        "isLegacy": True,
    }
    return True


def apply_schedule(quiz: Quiz, start_time: datetime, timezone: str, scheduled_by: int,
                   now: Optional[datetime] = None) -> None:
    """Set or move the start time, remembering the previous one."""
    now = now or utcnow()
    previous = dict(quiz.time_configuration or {})
    config = {
        "startTime": isoformat_utc(start_time),
        "timezone": timezone,
        "duration": quiz.duration,
        "configuredAt": isoformat_utc(now),
        "configuredBy": scheduled_by,
        "isLegacy": False,
    }
    if quiz.start_time is not None or previous.get("startTime"):
        config["previousStartTime"] = previous.get("startTime") or isoformat_utc(quiz.start_time)
        config["previousTimezone"] = previous.get("timezone") or quiz.timezone
        config["rescheduledAt"] = isoformat_utc(now)

    quiz.start_time = start_time
    quiz.timezone = timezone
    quiz.time_configuration = config
    quiz.scheduling_status = SchedulingStatus.SCHEDULED
    quiz.scheduled_by = scheduled_by
    quiz.scheduled_at = now
