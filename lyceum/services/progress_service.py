"""
Progress aggregation.

A lesson is complete for a student once every content item in it has been
viewed and its exercise and exam, where present, are GRADED. The course
percentage is ``floor(100 * complete / total)`` over the course's lessons,
walked in lesson order, so 100 is only reported once the last lesson
completes. Assignments do not count toward completion.
"""

import logging
from typing import Iterable, List, Optional, Set, Tuple

from ..core.authorization import Identity
from ..core.entities import Event, Lesson, Progress
from ..core.enums import Action, EventType, ItemKind, Role, SubmissionState
from ..core.exceptions import ValidationError
from ..core.interfaces import EventHandler
from ..persistence.repositories import RepositoryRegistry
from .access_service import AccessService, require_entity
from .concurrency_manager import ConcurrencyManager, progress_key
from .course_service import CourseService
from .event_service import EventBus


logger = logging.getLogger(__name__)

STUDENT_EVENTS = frozenset({EventType.WORK_SUBMITTED, EventType.SUBMISSION_GRADED, EventType.COURSE_ENROLLED})
LESSON_EVENTS = frozenset({EventType.LESSON_ADDED, EventType.LESSON_REMOVED, EventType.LESSON_CHANGED})


class ProgressService(EventHandler):
    """Derives Progress records from views, grades, and lesson structure changes."""

    def __init__(self, repositories: RepositoryRegistry, access: AccessService,
                 courses: CourseService, concurrency_manager: ConcurrencyManager, event_bus: EventBus):
        self._repos = repositories
        self._access = access
        self._courses = courses
        self._concurrency = concurrency_manager
        self._events = event_bus

    # Completion

    def _is_graded(self, student_id: str, kind: ItemKind, item_id: str) -> bool:
        submission = self._repos.submissions.find_submission(student_id, kind, item_id)
        return submission is not None and submission.state == SubmissionState.GRADED

    def is_lesson_complete(self, student_id: str, lesson: Lesson, viewed: Set[str]) -> bool:
        contents = self._courses.ordered_contents(lesson.id)
        if any(content.id not in viewed for content in contents):
            return False
        exercise = self._repos.exercises.find_by_lesson(lesson.id)
        if exercise is not None and not self._is_graded(student_id, ItemKind.EXERCISE, exercise.id):
            return False
        exam = self._repos.exams.find_by_lesson(lesson.id)
        if exam is not None and not self._is_graded(student_id, ItemKind.EXAM, exam.id):
            return False
        return True

    def compute_completion(self, student_id: str, course_id: str, viewed: Set[str]) -> Tuple[List[str], int]:
        """Completed lesson ids in lesson order, and the total lesson count."""
        lessons = self._courses.ordered_lessons(course_id)
        completed = [lesson.id for lesson in lessons if self.is_lesson_complete(student_id, lesson, viewed)]
        return completed, len(lessons)

    def _load_or_create(self, student_id: str, course_id: str) -> Tuple[Progress, Optional[int]]:
        progress = self._repos.progress.find_by_student_and_course(student_id, course_id)
        if progress is None:
            return Progress(student_id, course_id), None
        return progress, progress.version

    def _store(self, progress: Progress, observed: Optional[int]) -> None:
        self._repos.progress.save(progress, expected_version=observed)

    def recompute(self, student_id: str, course_id: str) -> Progress:
        """Recompute and store the progress of one student in one course."""
        with self._concurrency.lock(progress_key(student_id, course_id)):
            progress, observed = self._load_or_create(student_id, course_id)
            completed, total = self.compute_completion(student_id, course_id, progress.viewed_content_ids)
            changed = progress.apply_completion(completed, total)
            if changed or observed is None:
                self._store(progress, observed)
        if changed:
            self._progress_updated(progress)
        return progress

    def _progress_updated(self, progress: Progress) -> None:
        logger.debug("Progress of %s in %s: %d%%", progress.student_id, progress.course_id,
                     progress.completion_percentage)
        self._events.emit(EventType.PROGRESS_UPDATED, progress.course_id,
                          user_id=progress.student_id, student_id=progress.student_id,
                          course_id=progress.course_id, progress_id=progress.id,
                          completion_percentage=progress.completion_percentage)

    # Operations

    def record_content_viewed(self, actor: Optional[Identity], content_id: str) -> Progress:
        """Mark a content item viewed by the acting student and recompute their progress."""
        content = require_entity(self._repos.contents, content_id, "content")
        lesson = require_entity(self._repos.lessons, content.lesson_id, "lesson")
        course = require_entity(self._repos.courses, lesson.course_id, "course")
        self._access.require(actor, Action.VIEW_STUDENT_WORK, course=course, lesson_id=lesson.id)
        if not actor.has_role(Role.STUDENT):
            raise ValidationError("actor", "only students accrue progress")

        with self._concurrency.lock(progress_key(actor.user_id, course.id)):
            progress, observed = self._load_or_create(actor.user_id, course.id)
            progress.mark_viewed(content_id)
            completed, total = self.compute_completion(actor.user_id, course.id, progress.viewed_content_ids)
            changed = progress.apply_completion(completed, total)
            self._store(progress, observed)

        self._events.emit(EventType.CONTENT_VIEWED, course.id, user_id=actor.user_id,
                          content_id=content_id, lesson_id=lesson.id, course_id=course.id)
        if changed:
            self._progress_updated(progress)
        return progress

    def get_progress(self, actor: Optional[Identity], course_id: str,
                     student_id: Optional[str] = None) -> Progress:
        """
        Progress of a student in a course, for the student or the course teacher.

        A student with no recorded activity gets a freshly computed record
        that is not stored.
        """
        course = require_entity(self._repos.courses, course_id, "course")
        if actor is None:
            self._access.require(actor, Action.VIEW_OWN_RECORD)
        student_id = student_id or actor.user_id
        self._access.require_any(actor, (Action.VIEW_OWN_RECORD, Action.VIEW_COURSE_REPORTS),
                                 course=course, owner_id=student_id)
        return self._current(student_id, course_id)

    def _current(self, student_id: str, course_id: str) -> Progress:
        progress = self._repos.progress.find_by_student_and_course(student_id, course_id)
        if progress is None:
            progress = Progress(student_id, course_id)
            progress.apply_completion(*self.compute_completion(student_id, course_id, set()))
        return progress

    def get_course_progress(self, actor: Optional[Identity], course_id: str) -> List[Progress]:
        """Progress of every enrolled student, for the course teacher."""
        course = require_entity(self._repos.courses, course_id, "course")
        self._access.require(actor, Action.VIEW_COURSE_REPORTS, course=course)
        return [self._current(e.student_id, course_id)
                for e in self._repos.enrollments.find_by_course(course_id)]

    # Event handling

    def can_handle(self, event_type: EventType) -> bool:
        return event_type in STUDENT_EVENTS or event_type in LESSON_EVENTS

    def handle_event(self, event: Event) -> None:
        course_id = event.get("course_id")
        if event.event_type in STUDENT_EVENTS:
            self.recompute(event.get("student_id"), course_id)
        elif event.event_type in LESSON_EVENTS:
            for student_id in self._course_students(course_id):
                self.recompute(student_id, course_id)

    def _course_students(self, course_id: str) -> Iterable[str]:
        students = {e.student_id for e in self._repos.enrollments.find_by_course(course_id)}
        students.update(p.student_id for p in self._repos.progress.find_by_course(course_id))
        return sorted(students)
