"""
Core module containing the domain model and the authorization gate.
"""

from .entities import *
from .interfaces import *
from .exceptions import *
from .enums import *
from .authorization import Identity, CourseFacts, Target, Decision, decide

__all__ = [
    # Entities
    "AbstractEntity",
    "User",
    "Course",
    "Lesson",
    "Content",
    "GradableItem",
    "Exercise",
    "Assignment",
    "Exam",
    "Question",
    "Enrollment",
    "Submission",
    "Progress",
    "ActivityLog",
    "Event",

    # Interfaces
    "Repository",
    "EventHandler",
    "IdentityProvider",

    # Authorization
    "Identity",
    "CourseFacts",
    "Target",
    "Decision",
    "decide",

    # Enums
    "EntityStatus",
    "Role",
    "Action",
    "DenyReason",
    "ItemKind",
    "SubmissionState",
    "ExamStatus",
    "ContentType",
    "ActivityType",
    "EventType",

    # Exceptions
    "LyceumException",
    "AuthorizationDenied",
    "NotFound",
    "ValidationError",
    "ConflictStaleWrite",
    "InvariantViolation",
    "PersistenceError",
    "ConfigurationError",
]
