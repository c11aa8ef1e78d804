"""
Persistence module: database access and entity repositories.
"""

from .database import DatabaseManager, SQLiteDatabase, DatabaseFactory, MEMORY_DATABASE
from .repositories import (
    BaseRepository, UserRepository, CourseRepository, LessonRepository,
    ContentRepository, ExerciseRepository, ExamRepository, AssignmentRepository,
    QuestionRepository, EnrollmentRepository, SubmissionRepository,
    ProgressRepository, ActivityLogRepository, RepositoryRegistry
)

__all__ = [
    "DatabaseManager",
    "SQLiteDatabase",
    "DatabaseFactory",
    "MEMORY_DATABASE",
    "BaseRepository",
    "UserRepository",
    "CourseRepository",
    "LessonRepository",
    "ContentRepository",
    "ExerciseRepository",
    "ExamRepository",
    "AssignmentRepository",
    "QuestionRepository",
    "EnrollmentRepository",
    "SubmissionRepository",
    "ProgressRepository",
    "ActivityLogRepository",
    "RepositoryRegistry",
]
