"""
Session lifecycle: idle/absolute timeouts, warnings, extensions and the
quiz-active override.

State is derived from the UserSession row on every request, never stored. The
first matching rule wins:

    revoked                                   -> expired
    quiz running, within active timeout+grace -> quiz_active
    past absolute timeout (+ extensions)      -> expired
    idle longer than idle timeout             -> expired
    idle inside the warning window            -> warning
    idle for at least one activity interval   -> idle
    extended at least once                    -> extended
    otherwise                                 -> active
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from threading import Lock
from typing import Optional, Dict, Any

from sqlalchemy import select, delete, or_
from sqlalchemy.orm import Session

from quizhub.core.timezone import utcnow
from quizhub.models.admin import AdminSetting
from quizhub.models.enums import UserRole
from quizhub.models.session import UserSession
from quizhub.models.user import User
from quizhub.services.errors import ConflictError

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    ACTIVE = "active"
    IDLE = "idle"
    WARNING = "warning"
    EXPIRED = "expired"
    QUIZ_ACTIVE = "quiz_active"
    EXTENDED = "extended"


@dataclass(frozen=True)
class SessionPolicy:
    idle_timeout: timedelta
    absolute_timeout: timedelta
    warning_before: timedelta


STUDENT_POLICY = SessionPolicy(
    idle_timeout=timedelta(minutes=30),
    absolute_timeout=timedelta(hours=4),
    warning_before=timedelta(minutes=5),
)
STAFF_POLICY = SessionPolicy(
    idle_timeout=timedelta(minutes=15),
    absolute_timeout=timedelta(hours=2),
    warning_before=timedelta(minutes=3),
)

QUIZ_ACTIVE_TIMEOUT = timedelta(hours=3)
QUIZ_GRACE_PERIOD = timedelta(minutes=10)
AUTOSAVE_INTERVAL = timedelta(seconds=30)

ACTIVITY_CHECK_INTERVAL = timedelta(minutes=1)
HEARTBEAT_INTERVAL = timedelta(minutes=5)

EXTENSION_THRESHOLD = timedelta(minutes=10)
MAX_EXTENSIONS = 3
EXTENSION_DURATION = timedelta(minutes=30)


def policy_for_role(role: Optional[str]) -> SessionPolicy:
    if role in (UserRole.ADMIN, UserRole.EDUCATOR, UserRole.PENDING_EDUCATOR):
        return STAFF_POLICY
    return STUDENT_POLICY


@dataclass
class SessionStatus:
    state: SessionState
    idle: timedelta
    remaining: timedelta
    absolute_remaining: timedelta
    extensions: int
    quiz_active: bool
    can_extend: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "remaining_seconds": int(self.remaining.total_seconds()),
            "idle_seconds": int(self.idle.total_seconds()),
            "extensions": self.extensions,
            "max_extensions": MAX_EXTENSIONS,
            "can_extend": self.can_extend,
            "quiz_active": self.quiz_active,
        }


def _absolute_limit(session: UserSession, policy: SessionPolicy) -> timedelta:
    return policy.absolute_timeout + EXTENSION_DURATION * (session.extensions or 0)


def _quiz_running(session: UserSession, now: datetime) -> bool:
    if session.quiz_id is None or session.quiz_started_at is None:
        return False
    return now - session.quiz_started_at <= QUIZ_ACTIVE_TIMEOUT + QUIZ_GRACE_PERIOD


def evaluate_session(
    session: UserSession,
    policy: Optional[SessionPolicy] = None,
    now: Optional[datetime] = None,
) -> SessionStatus:
    policy = policy or policy_for_role(session.role)
    now = now or utcnow()

    idle = max(now - session.last_activity, timedelta(0))
    absolute_remaining = max(_absolute_limit(session, policy) - (now - session.started_at), timedelta(0))
    idle_remaining = max(policy.idle_timeout - idle, timedelta(0))
    remaining = min(idle_remaining, absolute_remaining)
    quiz_running = _quiz_running(session, now)

    if session.is_revoked:
        state = SessionState.EXPIRED
    elif quiz_running:
        state = SessionState.QUIZ_ACTIVE
    elif now - session.started_at > _absolute_limit(session, policy):
        state = SessionState.EXPIRED
    elif idle > policy.idle_timeout:
        state = SessionState.EXPIRED
    elif idle_remaining <= policy.warning_before:
        state = SessionState.WARNING
    elif idle >= ACTIVITY_CHECK_INTERVAL:
        state = SessionState.IDLE
    elif (session.extensions or 0) > 0:
        state = SessionState.EXTENDED
    else:
        state = SessionState.ACTIVE

    if state == SessionState.EXPIRED:
        remaining = timedelta(0)

    can_extend = (
        state != SessionState.EXPIRED
        and (session.extensions or 0) < MAX_EXTENSIONS
        and (state == SessionState.WARNING or absolute_remaining <= EXTENSION_THRESHOLD)
    )

    return SessionStatus(
        state=state,
        idle=idle,
        remaining=remaining,
        absolute_remaining=absolute_remaining,
        extensions=session.extensions or 0,
        quiz_active=quiz_running,
        can_extend=can_extend,
    )


def create_session(
    db: Session,
    user: User,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> UserSession:
    now = utcnow()
    session = UserSession(
        user_id=user.id,
        role=user.role,
        started_at=now,
        last_activity=now,
        extensions=0,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(session)
    db.flush()
    logger.info(f"[Session] created session {session.id} for user {user.id} ({user.role})")
    return session


def touch(session: UserSession, now: Optional[datetime] = None) -> None:
    session.last_activity = now or utcnow()


def extend_session(
    db: Session,
    session: UserSession,
    now: Optional[datetime] = None,
    status: Optional[SessionStatus] = None,
) -> SessionStatus:
    """
    Grant one more extension. ``status`` is the state the caller saw before
    recording the current request as activity; without it the session is
    evaluated now.
    """
    now = now or utcnow()
    status = status or evaluate_session(session, now=now)
    if not status.can_extend:
        if (session.extensions or 0) >= MAX_EXTENSIONS:
            reason = "Maximum session extensions reached"
        elif status.state == SessionState.EXPIRED:
            reason = "Session has expired"
        else:
            reason = "Session is not close enough to expiry to extend"
        raise ConflictError(reason, {"state": status.state.value, "extensions": status.extensions})

    session.extensions = (session.extensions or 0) + 1
    touch(session, now)
    db.flush()
    logger.info(f"[Session] extended session {session.id} ({session.extensions}/{MAX_EXTENSIONS})")
    return evaluate_session(session, now=now)


def revoke_session(db: Session, session: UserSession) -> None:
    if session.revoked_at is None:
        session.revoked_at = utcnow()
        db.flush()
        logger.info(f"[Session] revoked session {session.id}")


def start_quiz_session(db: Session, session: UserSession, quiz_id: int) -> None:
    now = utcnow()
    session.quiz_id = quiz_id
    session.quiz_started_at = now
    touch(session, now)
    db.flush()


def end_quiz_session(db: Session, session: UserSession) -> None:
    session.quiz_id = None
    session.quiz_started_at = None
    touch(session)
    db.flush()


def purge_sessions(db: Session, now: Optional[datetime] = None) -> int:
    """Delete revoked sessions and ones past every possible absolute limit."""
    now = now or utcnow()
    longest = max(STUDENT_POLICY.absolute_timeout, STAFF_POLICY.absolute_timeout)
    cutoff = now - (longest + EXTENSION_DURATION * MAX_EXTENSIONS + QUIZ_ACTIVE_TIMEOUT)
    result = db.execute(
        delete(UserSession).where(
            or_(UserSession.revoked_at.is_not(None), UserSession.started_at < cutoff)
        )
    )
    logger.info(f"[Session] purged {result.rowcount} sessions")
    return result.rowcount or 0


def get_session(db: Session, session_id: int) -> Optional[UserSession]:
    return db.execute(select(UserSession).where(UserSession.id == session_id)).scalar_one_or_none()


# Admin-configurable timeouts ("security_settings"), in minutes

SECURITY_SETTINGS_KEY = "security_settings"
CONFIG_CACHE_SECONDS = 5 * 60

DEFAULT_SESSION_TIMEOUT = timedelta(minutes=30)
DEFAULT_ADMIN_SESSION_TIMEOUT = timedelta(minutes=30)
DEFAULT_REMEMBER_ME_TIMEOUT = timedelta(days=7)


@dataclass
class SessionConfig:
    session_timeout: timedelta
    admin_session_timeout: timedelta
    remember_me_timeout: timedelta


_config_cache: Optional[SessionConfig] = None
_config_checked_at: float = 0.0
_config_lock = Lock()


def _minutes(value, default: timedelta) -> timedelta:
    try:
        minutes = float(value)
    except (TypeError, ValueError):
        return default
    return timedelta(minutes=minutes) if minutes > 0 else default


def get_session_config(db: Session) -> SessionConfig:
    global _config_cache, _config_checked_at
    with _config_lock:
        if _config_cache is not None and time.monotonic() - _config_checked_at < CONFIG_CACHE_SECONDS:
            return _config_cache

    config = SessionConfig(
        session_timeout=DEFAULT_SESSION_TIMEOUT,
        admin_session_timeout=DEFAULT_ADMIN_SESSION_TIMEOUT,
        remember_me_timeout=DEFAULT_REMEMBER_ME_TIMEOUT,
    )
    row = db.execute(
        select(AdminSetting).where(AdminSetting.setting_key == SECURITY_SETTINGS_KEY)
    ).scalar_one_or_none()
    if row is not None and isinstance(row.setting_value, dict):
        values = row.setting_value
        config = SessionConfig(
            session_timeout=_minutes(values.get("sessionTimeout"), DEFAULT_SESSION_TIMEOUT),
            admin_session_timeout=_minutes(values.get("adminSessionTimeout"), DEFAULT_ADMIN_SESSION_TIMEOUT),
            remember_me_timeout=_minutes(values.get("rememberMeTimeout"), DEFAULT_REMEMBER_ME_TIMEOUT),
        )

    with _config_lock:
        _config_cache = config
        _config_checked_at = time.monotonic()
    return config


def clear_session_config_cache() -> None:
    global _config_cache, _config_checked_at
    with _config_lock:
        _config_cache = None
        _config_checked_at = 0.0


def is_session_expired(started_at: datetime, timeout: timedelta, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    return now - started_at > timeout


def get_remaining_session_time(started_at: datetime, timeout: timedelta, now: Optional[datetime] = None) -> timedelta:
    now = now or utcnow()
    return max(timeout - (now - started_at), timedelta(0))


def get_session_warning_time(timeout: timedelta) -> timedelta:
    """When to warn: five minutes before expiry, or at 80%, whichever is later."""
    return max(timeout - timedelta(minutes=5), timeout * 0.8)
