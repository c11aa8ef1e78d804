"""
Repository pattern implementations for data access.

Every entity is stored as a JSON document in the shared ``entities`` table.
Lookups return ``None`` or an empty list when nothing matches; they never
raise for a missing entity.
"""

import json
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar, Generic

from ..core.entities import (
    AbstractEntity, User, Course, Lesson, Content, Exercise, Exam, Question,
    Assignment, Enrollment, Submission, Progress, ActivityLog
)
from ..core.enums import ItemKind
from ..core.interfaces import Repository
from ..core.exceptions import ConflictStaleWrite, InvariantViolation, PersistenceError
from .database import DatabaseManager

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=AbstractEntity)


def by_order_index(entity) -> tuple:
    return (entity.order_index, entity.created_at)


class BaseRepository(Repository[T], Generic[T]):
    """Base repository implementation with common functionality."""

    entity_type: str = ""
    entity_class: Type[T]

    def __init__(self, database: DatabaseManager):
        self._database = database
        self._lock = threading.RLock()

    def save(self, entity: T, expected_version: Optional[int] = None) -> T:
        """
        Save an entity.

        With ``expected_version`` the write only lands if the stored row still
        carries that version; otherwise ``ConflictStaleWrite`` is raised and
        nothing is written.
        """
        with self._lock:
            data = json.dumps(entity.to_dict())
            status = entity.status.value
            if expected_version is not None:
                query = """
                    UPDATE entities
                    SET data = ?, updated_at = ?, version = ?, status = ?
                    WHERE id = ? AND type = ? AND version = ?
                """
                params = (data, entity.updated_at.isoformat(), entity.version, status,
                          entity.id, self.entity_type, expected_version)
                if self._database.execute_update(query, params) == 0:
                    stored = self._stored_version(entity.id)
                    logger.warning("Stale write on %s %s: expected version %s, stored %s",
                                   self.entity_type, entity.id, expected_version, stored)
                    raise ConflictStaleWrite((self.entity_type, entity.id), expected_version, stored)
                return entity

            query = """
                INSERT INTO entities (id, type, data, created_at, updated_at, version, status)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (type, id) DO UPDATE SET
                    data = excluded.data, updated_at = excluded.updated_at,
                    version = excluded.version, status = excluded.status
            """
            params = (entity.id, self.entity_type, data, entity.created_at.isoformat(),
                      entity.updated_at.isoformat(), entity.version, status)
            self._database.execute_update(query, params)
            return entity

    def _stored_version(self, entity_id: str) -> Optional[int]:
        rows = self._database.execute_query(
            "SELECT version FROM entities WHERE id = ? AND type = ?", (entity_id, self.entity_type))
        return rows[0]["version"] if rows else None

    def exists(self, entity_id: str) -> bool:
        return self._stored_version(entity_id) is not None

    def find_by_id(self, entity_id: str) -> Optional[T]:
        """Find entity by ID."""
        with self._lock:
            query = "SELECT data FROM entities WHERE id = ? AND type = ?"
            results = self._database.execute_query(query, (entity_id, self.entity_type))
            if results:
                return self._entity_from_dict(json.loads(results[0]["data"]))
            return None

    def find_all(self) -> List[T]:
        """Find all entities of this kind, oldest first."""
        with self._lock:
            query = "SELECT data FROM entities WHERE type = ? ORDER BY created_at ASC"
            results = self._database.execute_query(query, (self.entity_type,))
            return [self._entity_from_dict(json.loads(row["data"])) for row in results]

    def find_where(self, predicate: Callable[[T], bool]) -> List[T]:
        """Find all entities matching a predicate."""
        return [entity for entity in self.find_all() if predicate(entity)]

    def find_one_where(self, predicate: Callable[[T], bool]) -> Optional[T]:
        matches = self.find_where(predicate)
        return matches[0] if matches else None

    def delete(self, entity_id: str) -> bool:
        """Delete an entity by ID."""
        with self._lock:
            query = "DELETE FROM entities WHERE id = ? AND type = ?"
            return self._database.execute_update(query, (entity_id, self.entity_type)) > 0

    def count(self) -> int:
        """Count entities of this kind."""
        with self._lock:
            query = "SELECT COUNT(*) as count FROM entities WHERE type = ?"
            results = self._database.execute_query(query, (self.entity_type,))
            return results[0]["count"] if results else 0

    def _entity_from_dict(self, data: Dict[str, Any]) -> T:
        """Convert dictionary to entity instance."""
        try:
            return self.entity_class.from_dict(data)
        except (KeyError, ValueError) as e:
            raise PersistenceError(f"Corrupt {self.entity_type} document {data.get('id')}: {e}")


class UserRepository(BaseRepository[User]):
    """Repository for User entities."""

    entity_type = "user"
    entity_class = User

    def find_by_username(self, username: str) -> Optional[User]:
        return self.find_one_where(lambda u: u.username == username)


class CourseRepository(BaseRepository[Course]):
    """Repository for Course entities."""

    entity_type = "course"
    entity_class = Course

    def find_active(self) -> List[Course]:
        return self.find_where(lambda c: c.active)

    def find_by_teacher(self, teacher_id: str) -> List[Course]:
        return self.find_where(lambda c: c.teacher_id == teacher_id)


class LessonRepository(BaseRepository[Lesson]):
    """Repository for Lesson entities."""

    entity_type = "lesson"
    entity_class = Lesson

    def find_by_course(self, course_id: str) -> List[Lesson]:
        """Lessons of a course sorted by order_index. Gaps are legal."""
        return sorted(self.find_where(lambda l: l.course_id == course_id), key=by_order_index)


class ContentRepository(BaseRepository[Content]):
    """Repository for Content entities."""

    entity_type = "content"
    entity_class = Content

    def find_by_lesson(self, lesson_id: str) -> List[Content]:
        return sorted(self.find_where(lambda c: c.lesson_id == lesson_id), key=by_order_index)


class ExerciseRepository(BaseRepository[Exercise]):
    """Repository for Exercise entities."""

    entity_type = "exercise"
    entity_class = Exercise

    def find_by_lesson(self, lesson_id: str) -> Optional[Exercise]:
        return self.find_one_where(lambda e: e.lesson_id == lesson_id)


class ExamRepository(BaseRepository[Exam]):
    """Repository for Exam entities."""

    entity_type = "exam"
    entity_class = Exam

    def find_by_lesson(self, lesson_id: str) -> Optional[Exam]:
        return self.find_one_where(lambda e: e.lesson_id == lesson_id)


class AssignmentRepository(BaseRepository[Assignment]):
    """Repository for Assignment entities."""

    entity_type = "assignment"
    entity_class = Assignment

    def find_by_lesson(self, lesson_id: str) -> List[Assignment]:
        return self.find_where(lambda a: a.lesson_id == lesson_id)


class QuestionRepository(BaseRepository[Question]):
    """Repository for Question entities."""

    entity_type = "question"
    entity_class = Question

    def find_by_exam(self, exam_id: str) -> List[Question]:
        return sorted(self.find_where(lambda q: q.exam_id == exam_id), key=by_order_index)

    def find_bank(self) -> List[Question]:
        return self.find_where(lambda q: q.in_bank)


class EnrollmentRepository(BaseRepository[Enrollment]):
    """Repository for Enrollment records."""

    entity_type = "enrollment"
    entity_class = Enrollment

    def find_enrollment(self, student_id: str, course_id: str) -> Optional[Enrollment]:
        return self.find_one_where(lambda e: e.student_id == student_id and e.course_id == course_id)

    def find_by_course(self, course_id: str) -> List[Enrollment]:
        return self.find_where(lambda e: e.course_id == course_id)

    def find_by_student(self, student_id: str) -> List[Enrollment]:
        return self.find_where(lambda e: e.student_id == student_id)


class SubmissionRepository(BaseRepository[Submission]):
    """Repository for Submission records, one per (student, item)."""

    entity_type = "submission"
    entity_class = Submission

    def find_submission(self, student_id: str, kind: ItemKind, item_id: str) -> Optional[Submission]:
        matches = self.find_where(
            lambda s: s.student_id == student_id and s.kind == kind and s.item_id == item_id)
        if len(matches) > 1:
            raise InvariantViolation(
                f"{len(matches)} submissions stored for one student and item",
                details={"pair": [student_id, kind.value, item_id]})
        return matches[0] if matches else None

    def find_by_item(self, kind: ItemKind, item_id: str) -> List[Submission]:
        return self.find_where(lambda s: s.kind == kind and s.item_id == item_id)

    def find_by_student(self, student_id: str) -> List[Submission]:
        return self.find_where(lambda s: s.student_id == student_id)


class ProgressRepository(BaseRepository[Progress]):
    """Repository for Progress records."""

    entity_type = "progress"
    entity_class = Progress

    def find_by_student_and_course(self, student_id: str, course_id: str) -> Optional[Progress]:
        return self.find_one_where(lambda p: p.student_id == student_id and p.course_id == course_id)

    def find_by_course(self, course_id: str) -> List[Progress]:
        return self.find_where(lambda p: p.course_id == course_id)

    def find_by_student(self, student_id: str) -> List[Progress]:
        return self.find_where(lambda p: p.student_id == student_id)


class ActivityLogRepository(BaseRepository[ActivityLog]):
    """Append-only repository for the activity log."""

    entity_type = "activity_log"
    entity_class = ActivityLog

    def append(self, entry: ActivityLog) -> ActivityLog:
        query = """
            INSERT INTO entities (id, type, data, created_at, updated_at, version, status)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """
        params = (entry.id, self.entity_type, json.dumps(entry.to_dict()), entry.created_at.isoformat(),
                  entry.updated_at.isoformat(), entry.version, entry.status.value)
        with self._lock:
            if self.exists(entry.id):
                raise InvariantViolation(f"Activity log entry {entry.id} already recorded")
            self._database.execute_update(query, params)
        return entry

    def save(self, entity: ActivityLog, expected_version: Optional[int] = None) -> ActivityLog:
        return self.append(entity)

    def delete(self, entity_id: str) -> bool:
        raise InvariantViolation("Activity log entries are never deleted")

    def find_by_user(self, user_id: str) -> List[ActivityLog]:
        return self.find_where(lambda a: a.user_id == user_id)


class RepositoryRegistry:
    """All repositories over one database."""

    def __init__(self, database: DatabaseManager):
        self.database = database
        self.users = UserRepository(database)
        self.courses = CourseRepository(database)
        self.lessons = LessonRepository(database)
        self.contents = ContentRepository(database)
        self.exercises = ExerciseRepository(database)
        self.exams = ExamRepository(database)
        self.assignments = AssignmentRepository(database)
        self.questions = QuestionRepository(database)
        self.enrollments = EnrollmentRepository(database)
        self.submissions = SubmissionRepository(database)
        self.progress = ProgressRepository(database)
        self.activity_logs = ActivityLogRepository(database)

    def items_for(self, kind: ItemKind) -> BaseRepository:
        """Repository holding gradable items of the given kind."""
        return {
            ItemKind.EXERCISE: self.exercises,
            ItemKind.ASSIGNMENT: self.assignments,
            ItemKind.EXAM: self.exams,
        }[kind]
