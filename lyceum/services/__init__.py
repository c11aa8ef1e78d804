"""
Services module: access control, the course graph, grading, progress, and the
event and locking infrastructure they share.
"""

from .access_service import AccessService, require_entity
from .activity_service import ActivityService
from .assessment_service import AssessmentService
from .concurrency_manager import ConcurrencyManager, LockInfo
from .course_service import CourseService
from .enrollment_service import EnrollmentService
from .event_service import EventBus
from .grading_service import GradingService, validate_score
from .progress_service import ProgressService
from .user_service import UserService

__all__ = [
    "AccessService",
    "ActivityService",
    "AssessmentService",
    "ConcurrencyManager",
    "CourseService",
    "EnrollmentService",
    "EventBus",
    "GradingService",
    "LockInfo",
    "ProgressService",
    "UserService",
    "require_entity",
    "validate_score",
]
