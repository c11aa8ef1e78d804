"""
Enumerations and constants for the Lyceum platform.
"""

from enum import Enum


class EntityStatus(Enum):
    """Status of an entity in the system."""
    ACTIVE = "active"
    INACTIVE = "inactive"


class Role(Enum):
    """Fixed set of roles a user may hold."""
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


class Action(Enum):
    """Actions the authorization gate decides on."""
    VIEW_CATALOG = "view_catalog"
    LOGIN = "login"
    LOGOUT = "logout"
    MANAGE_COURSE_CONTENT = "manage_course_content"
    MANAGE_ENROLLMENT = "manage_enrollment"
    VIEW_STUDENT_WORK = "view_student_work"
    SUBMIT_WORK = "submit_work"
    GRADE_SUBMISSION = "grade_submission"
    VIEW_COURSE_REPORTS = "view_course_reports"
    VIEW_OWN_RECORD = "view_own_record"
    ENROLL = "enroll"
    MANAGE_QUESTION_BANK = "manage_question_bank"
    MANAGE_USERS = "manage_users"


class DenyReason(Enum):
    """Why the gate denied an action."""
    UNAUTHENTICATED = "unauthenticated"
    NOT_OWNER = "not_owner"
    NOT_ENROLLED = "not_enrolled"
    NOT_SELF = "not_self"
    COURSE_INACTIVE = "course_inactive"
    LESSON_LOCKED = "lesson_locked"
    UNAUTHORIZED = "unauthorized"


class ItemKind(Enum):
    """Kinds of gradable items."""
    EXERCISE = "exercise"
    ASSIGNMENT = "assignment"
    EXAM = "exam"


class SubmissionState(Enum):
    """Lifecycle of a submission for one (student, item) pair."""
    NOT_STARTED = "not_started"
    SUBMITTED = "submitted"
    GRADED = "graded"


class ExamStatus(Enum):
    """Authoring status of an exam."""
    DRAFT = "draft"
    FINALIZED = "finalized"


class ContentType(Enum):
    """Types of lesson content."""
    TEXT = "text"
    VIDEO = "video"
    PDF = "pdf"


class ActivityType(Enum):
    """Types of user activity recorded in the activity log."""
    CONTENT_VIEW = "content_view"
    EXERCISE_SUBMIT = "exercise_submit"
    EXAM_SUBMIT = "exam_submit"
    ASSIGNMENT_SUBMIT = "assignment_submit"
    SUBMISSION_GRADED = "submission_graded"
    COURSE_ENROLL = "course_enroll"
    PROGRESS_UPDATE = "progress_update"
    LOGIN = "login"
    LOGOUT = "logout"


class EventType(Enum):
    """Types of domain events published on the event bus."""
    CONTENT_VIEWED = "content_viewed"
    WORK_SUBMITTED = "work_submitted"
    SUBMISSION_GRADED = "submission_graded"
    COURSE_ENROLLED = "course_enrolled"
    LESSON_ADDED = "lesson_added"
    LESSON_REMOVED = "lesson_removed"
    LESSON_CHANGED = "lesson_changed"
    PROGRESS_UPDATED = "progress_updated"


SUBMISSION_ACTIVITY = {
    ItemKind.EXERCISE: ActivityType.EXERCISE_SUBMIT,
    ItemKind.ASSIGNMENT: ActivityType.ASSIGNMENT_SUBMIT,
    ItemKind.EXAM: ActivityType.EXAM_SUBMIT,
}
