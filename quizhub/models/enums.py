"""
Status and role values stored in string columns.
"""


class UserRole:
    ADMIN = "admin"
    EDUCATOR = "educator"
    PENDING_EDUCATOR = "pending_educator"
    STUDENT = "student"

    ALL = (ADMIN, EDUCATOR, PENDING_EDUCATOR, STUDENT)
    EDUCATOR_ROLES = (EDUCATOR, PENDING_EDUCATOR)


class ApprovalStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUSPENDED = "suspended"

    ALL = (PENDING, APPROVED, REJECTED, SUSPENDED)


class DocumentStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class QuizStatus:
    DRAFT = "draft"
    PUBLISHED = "published"
    COMPLETED = "completed"
    ARCHIVED = "archived"

    ALL = (DRAFT, PUBLISHED, COMPLETED, ARCHIVED)
    CLOSED = (COMPLETED, ARCHIVED)


class SchedulingStatus:
    LEGACY = "legacy"
    DEFERRED = "deferred"
    SCHEDULED = "scheduled"


class Difficulty:
    EASY = "easy"
    INTERMEDIATE = "intermediate"
    HARD = "hard"

    ALL = (EASY, INTERMEDIATE, HARD)


class BloomsLevel:
    KNOWLEDGE = "knowledge"
    COMPREHENSION = "comprehension"
    APPLICATION = "application"
    ANALYSIS = "analysis"
    SYNTHESIS = "synthesis"
    EVALUATION = "evaluation"

    ALL = (KNOWLEDGE, COMPREHENSION, APPLICATION, ANALYSIS, SYNTHESIS, EVALUATION)


class EnrollmentStatus:
    ENROLLED = "enrolled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    ALL = (ENROLLED, IN_PROGRESS, COMPLETED, ABANDONED)


class AttemptStatus:
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    TIMEOUT = "timeout"

    ALL = (IN_PROGRESS, COMPLETED, ABANDONED, TIMEOUT)


class LinkStatus:
    ACTIVE = "active"
    INACTIVE = "inactive"
