"""
Core entities for the Lyceum platform.

Entities hold plain identifiers for their relations instead of object
references; related entities are fetched explicitly through repositories.
"""

import uuid
from abc import ABC
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .enums import (
    EntityStatus, Role, ItemKind, SubmissionState, ExamStatus, ContentType,
    ActivityType, EventType
)
from .exceptions import ValidationError


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Read naive datetimes as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AbstractEntity(ABC):
    """Base abstract entity with universal ID, lifecycle, and versioning."""

    def __init__(self, entity_id: Optional[str] = None):
        self._id = entity_id or str(uuid.uuid4())
        self._created_at = utcnow()
        self._updated_at = self._created_at
        self._version = 1
        self._status = EntityStatus.ACTIVE

    @property
    def id(self) -> str:
        """Get the entity ID."""
        return self._id

    @property
    def created_at(self) -> datetime:
        """Get creation timestamp."""
        return self._created_at

    @property
    def updated_at(self) -> datetime:
        """Get last update timestamp."""
        return self._updated_at

    @property
    def version(self) -> int:
        """Get current version."""
        return self._version

    @property
    def status(self) -> EntityStatus:
        """Get entity status."""
        return self._status

    def update(self) -> None:
        """Record a mutation: refresh the timestamp and bump the version."""
        self._updated_at = utcnow()
        self._version += 1

    def activate(self) -> None:
        """Activate the entity."""
        self._status = EntityStatus.ACTIVE
        self.update()

    def deactivate(self) -> None:
        """Deactivate the entity."""
        self._status = EntityStatus.INACTIVE
        self.update()

    def to_dict(self) -> Dict[str, Any]:
        """Convert entity to dictionary."""
        return {
            'id': self._id,
            'created_at': self._created_at.isoformat(),
            'updated_at': self._updated_at.isoformat(),
            'version': self._version,
            'status': self._status.value,
        }

    def _restore_base(self, data: Dict[str, Any]) -> None:
        self._created_at = datetime.fromisoformat(data["created_at"])
        self._updated_at = datetime.fromisoformat(data["updated_at"])
        self._version = data["version"]
        self._status = EntityStatus(data.get("status", EntityStatus.ACTIVE.value))

    def __eq__(self, other: object) -> bool:
        return isinstance(other, AbstractEntity) and type(self) is type(other) and self._id == other._id

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._id))

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self._id})"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self._id}, version={self._version}, status={self._status.value})"


class User(AbstractEntity):
    """A person using the platform, holding a fixed, non-empty role set."""

    def __init__(self, username: str, roles: Iterable[Role], display_name: str = "", **kwargs):
        super().__init__(**kwargs)
        if not username or not username.strip():
            raise ValidationError("username", "must not be empty")
        roles = frozenset(roles)
        if not roles:
            raise ValidationError("roles", "must not be empty")
        self._username = username.strip()
        self._roles = roles
        self._display_name = display_name or self._username

    @property
    def username(self) -> str:
        return self._username

    @property
    def roles(self) -> frozenset:
        return self._roles

    @property
    def display_name(self) -> str:
        return self._display_name

    def has_role(self, role: Role) -> bool:
        """Check if the user holds a specific role."""
        return role in self._roles

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'username': self._username,
            'roles': sorted(role.value for role in self._roles),
            'display_name': self._display_name,
        })
        return base_dict

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        user = cls(data["username"], [Role(r) for r in data["roles"]],
                   display_name=data.get("display_name", ""), entity_id=data["id"])
        user._restore_base(data)
        return user


class Course(AbstractEntity):
    """
    Course taught by a single teacher. Inactive courses reject new submissions.

    A sequential course opens each lesson to a student only once every
    earlier lesson is complete and its graded work passed.
    """

    def __init__(self, title: str, teacher_id: str, description: str = "", sequential: bool = False, **kwargs):
        super().__init__(**kwargs)
        if not title or not title.strip():
            raise ValidationError("title", "must not be empty")
        self._title = title.strip()
        self._teacher_id = teacher_id
        self._description = description
        self._sequential = sequential

    @property
    def title(self) -> str:
        return self._title

    @property
    def teacher_id(self) -> str:
        return self._teacher_id

    @property
    def description(self) -> str:
        return self._description

    @property
    def sequential(self) -> bool:
        return self._sequential

    @property
    def active(self) -> bool:
        return self._status == EntityStatus.ACTIVE

    def set_active(self, active: bool) -> None:
        """Toggle the active flag. Lessons are left untouched."""
        if active:
            self.activate()
        else:
            self.deactivate()

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'title': self._title,
            'teacher_id': self._teacher_id,
            'description': self._description,
            'sequential': self._sequential,
        })
        return base_dict

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Course':
        course = cls(data["title"], data["teacher_id"], data.get("description", ""),
                     data.get("sequential", False), entity_id=data["id"])
        course._restore_base(data)
        return course


class Lesson(AbstractEntity):
    """Lesson within a course, positioned by order_index."""

    def __init__(self, course_id: str, title: str, order_index: int, description: str = "", **kwargs):
        super().__init__(**kwargs)
        self._course_id = course_id
        self._title = title
        self._order_index = order_index
        self._description = description

    @property
    def course_id(self) -> str:
        return self._course_id

    @property
    def title(self) -> str:
        return self._title

    @property
    def order_index(self) -> int:
        return self._order_index

    @property
    def description(self) -> str:
        return self._description

    def set_order_index(self, order_index: int) -> None:
        self._order_index = order_index
        self.update()

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'course_id': self._course_id,
            'title': self._title,
            'order_index': self._order_index,
            'description': self._description,
        })
        return base_dict

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Lesson':
        lesson = cls(data["course_id"], data["title"], data["order_index"],
                     data.get("description", ""), entity_id=data["id"])
        lesson._restore_base(data)
        return lesson


class Content(AbstractEntity):
    """A content item of a lesson."""

    def __init__(self, lesson_id: str, title: str, order_index: int,
                 content_type: ContentType = ContentType.TEXT, body: str = "", **kwargs):
        super().__init__(**kwargs)
        self._lesson_id = lesson_id
        self._title = title
        self._order_index = order_index
        self._content_type = content_type
        self._body = body

    @property
    def lesson_id(self) -> str:
        return self._lesson_id

    @property
    def title(self) -> str:
        return self._title

    @property
    def order_index(self) -> int:
        return self._order_index

    @property
    def content_type(self) -> ContentType:
        return self._content_type

    @property
    def body(self) -> str:
        return self._body

    def set_order_index(self, order_index: int) -> None:
        self._order_index = order_index
        self.update()

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'lesson_id': self._lesson_id,
            'title': self._title,
            'order_index': self._order_index,
            'content_type': self._content_type.value,
            'body': self._body,
        })
        return base_dict

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Content':
        content = cls(data["lesson_id"], data["title"], data["order_index"],
                      ContentType(data["content_type"]), data.get("body", ""), entity_id=data["id"])
        content._restore_base(data)
        return content


class GradableItem(AbstractEntity):
    """Base class for items a student submits work against."""

    kind: ItemKind

    def __init__(self, lesson_id: str, title: str, max_score: int,
                 passing_score: Optional[int] = None, **kwargs):
        super().__init__(**kwargs)
        self._validate_scores(max_score, passing_score)
        self._lesson_id = lesson_id
        self._title = title
        self._max_score = max_score
        self._passing_score = passing_score

    @staticmethod
    def _validate_scores(max_score: int, passing_score: Optional[int]) -> None:
        if isinstance(max_score, bool) or not isinstance(max_score, int) or max_score <= 0:
            raise ValidationError("max_score", "must be a positive integer")
        if passing_score is not None and not 0 <= passing_score <= max_score:
            raise ValidationError("passing_score", f"must lie within [0, {max_score}]")

    @property
    def lesson_id(self) -> str:
        return self._lesson_id

    @property
    def title(self) -> str:
        return self._title

    @property
    def max_score(self) -> int:
        return self._max_score

    @property
    def passing_score(self) -> Optional[int]:
        return self._passing_score

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'lesson_id': self._lesson_id,
            'title': self._title,
            'max_score': self._max_score,
            'passing_score': self._passing_score,
        })
        return base_dict


class Exercise(GradableItem):
    """Practice exercise; at most one per lesson."""

    kind = ItemKind.EXERCISE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Exercise':
        exercise = cls(data["lesson_id"], data["title"], data["max_score"],
                       data.get("passing_score"), entity_id=data["id"])
        exercise._restore_base(data)
        return exercise


class Assignment(GradableItem):
    """Take-home assignment with an optional due date."""

    kind = ItemKind.ASSIGNMENT

    def __init__(self, lesson_id: str, title: str, max_score: int,
                 passing_score: Optional[int] = None, due_date: Optional[datetime] = None, **kwargs):
        super().__init__(lesson_id, title, max_score, passing_score, **kwargs)
        self._due_date = _as_utc(due_date)

    @property
    def due_date(self) -> Optional[datetime]:
        return self._due_date

    def is_late(self, at: datetime) -> bool:
        return self._due_date is not None and at > self._due_date

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict['due_date'] = _iso(self._due_date)
        return base_dict

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Assignment':
        assignment = cls(data["lesson_id"], data["title"], data["max_score"], data.get("passing_score"),
                         _parse_iso(data.get("due_date")), entity_id=data["id"])
        assignment._restore_base(data)
        return assignment


class Exam(GradableItem):
    """Exam with ordered questions; only finalized exams accept submissions."""

    kind = ItemKind.EXAM

    def __init__(self, lesson_id: str, title: str, max_score: int,
                 passing_score: Optional[int] = None, auto_grade: bool = False,
                 available_from: Optional[datetime] = None, available_to: Optional[datetime] = None, **kwargs):
        super().__init__(lesson_id, title, max_score, passing_score, **kwargs)
        available_from, available_to = _as_utc(available_from), _as_utc(available_to)
        if available_from is not None and available_to is not None and available_to <= available_from:
            raise ValidationError("available_to", "must be later than available_from")
        self._auto_grade = auto_grade
        self._available_from = available_from
        self._available_to = available_to
        self._exam_status = ExamStatus.DRAFT
        self._finalized_at: Optional[datetime] = None
        self._finalized_by: Optional[str] = None

    @property
    def auto_grade(self) -> bool:
        return self._auto_grade

    @property
    def available_from(self) -> Optional[datetime]:
        return self._available_from

    @property
    def available_to(self) -> Optional[datetime]:
        return self._available_to

    def is_available(self, at: datetime) -> bool:
        """Whether students may submit at ``at``; an open bound never closes the window."""
        if self._available_from is not None and at < self._available_from:
            return False
        return self._available_to is None or at <= self._available_to

    @property
    def exam_status(self) -> ExamStatus:
        return self._exam_status

    @property
    def finalized_at(self) -> Optional[datetime]:
        return self._finalized_at

    @property
    def finalized_by(self) -> Optional[str]:
        return self._finalized_by

    @property
    def is_finalized(self) -> bool:
        return self._exam_status == ExamStatus.FINALIZED

    def can_be_modified(self) -> bool:
        return self._exam_status == ExamStatus.DRAFT

    def finalize(self, total_points: int, finalized_by: str) -> None:
        """Freeze the question set and fix the point range to the question total."""
        self._validate_scores(total_points, self._passing_score)
        self._max_score = total_points
        self._exam_status = ExamStatus.FINALIZED
        self._finalized_at = utcnow()
        self._finalized_by = finalized_by
        self.update()

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'auto_grade': self._auto_grade,
            'available_from': _iso(self._available_from),
            'available_to': _iso(self._available_to),
            'exam_status': self._exam_status.value,
            'finalized_at': _iso(self._finalized_at),
            'finalized_by': self._finalized_by,
        })
        return base_dict

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Exam':
        exam = cls(data["lesson_id"], data["title"], data["max_score"], data.get("passing_score"),
                   data.get("auto_grade", False), _parse_iso(data.get("available_from")),
                   _parse_iso(data.get("available_to")), entity_id=data["id"])
        exam._exam_status = ExamStatus(data["exam_status"])
        exam._finalized_at = _parse_iso(data.get("finalized_at"))
        exam._finalized_by = data.get("finalized_by")
        exam._restore_base(data)
        return exam


class Question(AbstractEntity):
    """Exam question. Bank questions belong to no exam and are cloned into exams."""

    def __init__(self, text: str, points: int, exam_id: Optional[str] = None,
                 order_index: Optional[int] = None, correct_answer: Optional[str] = None,
                 in_bank: bool = False, **kwargs):
        super().__init__(**kwargs)
        if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
            raise ValidationError("points", "must be a positive integer")
        self._text = text
        self._points = points
        self._exam_id = exam_id
        self._order_index = order_index
        self._correct_answer = correct_answer
        self._in_bank = in_bank

    @property
    def text(self) -> str:
        return self._text

    @property
    def points(self) -> int:
        return self._points

    @property
    def exam_id(self) -> Optional[str]:
        return self._exam_id

    @property
    def order_index(self) -> Optional[int]:
        return self._order_index

    @property
    def correct_answer(self) -> Optional[str]:
        return self._correct_answer

    @property
    def in_bank(self) -> bool:
        return self._in_bank

    def is_correct(self, answer: Any) -> bool:
        if self._correct_answer is None or answer is None:
            return False
        return str(answer).strip().lower() == self._correct_answer.strip().lower()

    def set_order_index(self, order_index: int) -> None:
        self._order_index = order_index
        self.update()

    def clone_into(self, exam_id: str, order_index: int) -> 'Question':
        """Copy this question into an exam as a regular, non-bank question."""
        return Question(self._text, self._points, exam_id=exam_id, order_index=order_index,
                        correct_answer=self._correct_answer, in_bank=False)

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'text': self._text,
            'points': self._points,
            'exam_id': self._exam_id,
            'order_index': self._order_index,
            'correct_answer': self._correct_answer,
            'in_bank': self._in_bank,
        })
        return base_dict

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Question':
        question = cls(data["text"], data["points"], data.get("exam_id"), data.get("order_index"),
                       data.get("correct_answer"), data.get("in_bank", False), entity_id=data["id"])
        question._restore_base(data)
        return question


class Enrollment(AbstractEntity):
    """Membership of a student in a course."""

    def __init__(self, student_id: str, course_id: str, **kwargs):
        super().__init__(**kwargs)
        self._student_id = student_id
        self._course_id = course_id

    @property
    def student_id(self) -> str:
        return self._student_id

    @property
    def course_id(self) -> str:
        return self._course_id

    @property
    def enrolled_at(self) -> datetime:
        return self._created_at

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({'student_id': self._student_id, 'course_id': self._course_id})
        return base_dict

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Enrollment':
        enrollment = cls(data["student_id"], data["course_id"], entity_id=data["id"])
        enrollment._restore_base(data)
        return enrollment


class Submission(AbstractEntity):
    """
    The single submission record of one student for one gradable item.

    Resubmitting overwrites the payload and returns the record to SUBMITTED,
    clearing any earlier grade. Every transition bumps the version, which
    grade actions use to detect stale reads.
    """

    def __init__(self, kind: ItemKind, item_id: str, student_id: str, course_id: str,
                 lesson_id: str, payload: Dict[str, Any], late: bool = False, **kwargs):
        super().__init__(**kwargs)
        self._kind = kind
        self._item_id = item_id
        self._student_id = student_id
        self._course_id = course_id
        self._lesson_id = lesson_id
        self._payload = dict(payload)
        self._late = late
        self._submitted_at = self._created_at
        self._state = SubmissionState.SUBMITTED
        self._score: Optional[float] = None
        self._passed: Optional[bool] = None
        self._feedback: Optional[str] = None
        self._graded_by: Optional[str] = None
        self._graded_at: Optional[datetime] = None

    @property
    def kind(self) -> ItemKind:
        return self._kind

    @property
    def item_id(self) -> str:
        return self._item_id

    @property
    def student_id(self) -> str:
        return self._student_id

    @property
    def course_id(self) -> str:
        return self._course_id

    @property
    def lesson_id(self) -> str:
        return self._lesson_id

    @property
    def payload(self) -> Dict[str, Any]:
        return dict(self._payload)

    @property
    def late(self) -> bool:
        return self._late

    @property
    def submitted_at(self) -> datetime:
        return self._submitted_at

    @property
    def state(self) -> SubmissionState:
        return self._state

    @property
    def score(self) -> Optional[float]:
        return self._score

    @property
    def passed(self) -> Optional[bool]:
        return self._passed

    @property
    def feedback(self) -> Optional[str]:
        return self._feedback

    @property
    def graded_by(self) -> Optional[str]:
        return self._graded_by

    @property
    def graded_at(self) -> Optional[datetime]:
        return self._graded_at

    @property
    def pair(self) -> Tuple[str, str, str]:
        return (self._student_id, self._kind.value, self._item_id)

    def resubmit(self, payload: Dict[str, Any], late: bool = False) -> None:
        """Overwrite the content and reset the grading state."""
        self._payload = dict(payload)
        self._late = late
        self._submitted_at = utcnow()
        self._state = SubmissionState.SUBMITTED
        self._score = None
        self._passed = None
        self._feedback = None
        self._graded_by = None
        self._graded_at = None
        self.update()

    def record_grade(self, score: float, graded_by: Optional[str], passing_score: Optional[int] = None,
                     feedback: Optional[str] = None) -> None:
        self._score = score
        self._passed = score >= passing_score if passing_score is not None else None
        self._feedback = feedback
        self._graded_by = graded_by
        self._graded_at = utcnow()
        self._state = SubmissionState.GRADED
        self.update()

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'kind': self._kind.value,
            'item_id': self._item_id,
            'student_id': self._student_id,
            'course_id': self._course_id,
            'lesson_id': self._lesson_id,
            'payload': self._payload,
            'late': self._late,
            'submitted_at': _iso(self._submitted_at),
            'state': self._state.value,
            'score': self._score,
            'passed': self._passed,
            'feedback': self._feedback,
            'graded_by': self._graded_by,
            'graded_at': _iso(self._graded_at),
        })
        return base_dict

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Submission':
        submission = cls(ItemKind(data["kind"]), data["item_id"], data["student_id"], data["course_id"],
                         data["lesson_id"], data.get("payload", {}), data.get("late", False),
                         entity_id=data["id"])
        submission._restore_base(data)
        submission._submitted_at = _parse_iso(data.get("submitted_at")) or submission._created_at
        submission._state = SubmissionState(data["state"])
        submission._score = data.get("score")
        submission._passed = data.get("passed")
        submission._feedback = data.get("feedback")
        submission._graded_by = data.get("graded_by")
        submission._graded_at = _parse_iso(data.get("graded_at"))
        return submission


class Progress(AbstractEntity):
    """Per-student, per-course completion state. Derived, never authored by clients."""

    def __init__(self, student_id: str, course_id: str, **kwargs):
        super().__init__(**kwargs)
        self._student_id = student_id
        self._course_id = course_id
        self._viewed_content_ids: Set[str] = set()
        self._completed_lesson_ids: List[str] = []
        self._total_lessons = 0
        self._completion_percentage = 0
        self._last_accessed: Optional[datetime] = None

    @property
    def student_id(self) -> str:
        return self._student_id

    @property
    def course_id(self) -> str:
        return self._course_id

    @property
    def viewed_content_ids(self) -> Set[str]:
        return self._viewed_content_ids.copy()

    @property
    def completed_lesson_ids(self) -> List[str]:
        return list(self._completed_lesson_ids)

    @property
    def total_lessons(self) -> int:
        return self._total_lessons

    @property
    def completed_lesson_count(self) -> int:
        return len(self._completed_lesson_ids)

    @property
    def completion_percentage(self) -> int:
        return self._completion_percentage

    @property
    def last_accessed(self) -> Optional[datetime]:
        return self._last_accessed

    def mark_viewed(self, content_id: str) -> None:
        self._viewed_content_ids.add(content_id)
        self._last_accessed = utcnow()
        self.update()

    def apply_completion(self, completed_lesson_ids: List[str], total_lessons: int) -> bool:
        """Store a fresh completion snapshot. Returns True when anything changed."""
        # floor keeps 100 unreachable until the last lesson completes
        percentage = (100 * len(completed_lesson_ids)) // total_lessons if total_lessons else 0
        changed = (completed_lesson_ids != self._completed_lesson_ids
                   or total_lessons != self._total_lessons
                   or percentage != self._completion_percentage)
        if changed:
            self._completed_lesson_ids = list(completed_lesson_ids)
            self._total_lessons = total_lessons
            self._completion_percentage = percentage
            self.update()
        return changed

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'student_id': self._student_id,
            'course_id': self._course_id,
            'viewed_content_ids': sorted(self._viewed_content_ids),
            'completed_lesson_ids': list(self._completed_lesson_ids),
            'total_lessons': self._total_lessons,
            'completed_lesson_count': len(self._completed_lesson_ids),
            'completion_percentage': self._completion_percentage,
            'last_accessed': _iso(self._last_accessed),
        })
        return base_dict

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Progress':
        progress = cls(data["student_id"], data["course_id"], entity_id=data["id"])
        progress._restore_base(data)
        progress._viewed_content_ids = set(data.get("viewed_content_ids", []))
        progress._completed_lesson_ids = list(data.get("completed_lesson_ids", []))
        progress._total_lessons = data.get("total_lessons", 0)
        progress._completion_percentage = data.get("completion_percentage", 0)
        progress._last_accessed = _parse_iso(data.get("last_accessed"))
        return progress


class ActivityLog(AbstractEntity):
    """Immutable audit trail entry."""

    def __init__(self, user_id: str, activity_type: ActivityType, entity_id: Optional[str] = None,
                 metadata: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(**kwargs)
        self._user_id = user_id
        self._activity_type = activity_type
        self._entity_id = entity_id
        self._metadata = dict(metadata or {})
        self._timestamp = self._created_at

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def activity_type(self) -> ActivityType:
        return self._activity_type

    @property
    def entity_id(self) -> Optional[str]:
        return self._entity_id

    @property
    def metadata(self) -> Dict[str, Any]:
        return dict(self._metadata)

    @property
    def timestamp(self) -> datetime:
        return self._timestamp

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'user_id': self._user_id,
            'activity_type': self._activity_type.value,
            'entity_id': self._entity_id,
            'metadata': self._metadata,
            'timestamp': self._timestamp.isoformat(),
        })
        return base_dict

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ActivityLog':
        entry = cls(data["user_id"], ActivityType(data["activity_type"]), data.get("entity_id"),
                    data.get("metadata"), entity_id=data["id"])
        entry._restore_base(data)
        entry._timestamp = datetime.fromisoformat(data["timestamp"])
        return entry


class Event(AbstractEntity):
    """Domain event published on the event bus."""

    def __init__(self, event_type: EventType, stream_id: str,
                 event_data: Dict[str, Any], **kwargs):
        super().__init__(**kwargs)
        self._event_type = event_type
        self._stream_id = stream_id
        self._event_data = dict(event_data)

    @property
    def event_type(self) -> EventType:
        return self._event_type

    @property
    def stream_id(self) -> str:
        return self._stream_id

    @property
    def event_data(self) -> Dict[str, Any]:
        return self._event_data.copy()

    def get(self, key: str, default: Any = None) -> Any:
        return self._event_data.get(key, default)
