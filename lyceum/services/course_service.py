"""
Course graph service: courses, their ordered lessons, and lesson content.

Ordering rules for every parent scope (lessons in a course, content in a
lesson, questions in an exam):

- a new child is appended at ``max(order_index) + 1`` (0 for the first);
- moving a child renumbers its siblings densely from 0;
- deleting a child leaves gaps, and readers sort by ``order_index``;
- two siblings sharing an ``order_index`` is corrupt data: reads raise
  ``InvariantViolation`` and never repair it.
"""

import logging
from typing import List, Optional, Sequence

from ..core.authorization import Identity
from ..core.entities import Content, Course, Lesson
from ..core.enums import Action, ContentType, EventType, Role
from ..core.exceptions import InvariantViolation, NotFound, ValidationError
from ..persistence.repositories import RepositoryRegistry
from .access_service import AccessService, require_entity
from .concurrency_manager import ConcurrencyManager, course_key, lesson_key
from .event_service import EventBus


logger = logging.getLogger(__name__)


def ensure_unique_order(children: Sequence, scope: str) -> None:
    """Raise InvariantViolation if two children of one parent share an order_index."""
    seen = {}
    for child in children:
        if child.order_index in seen:
            logger.error("Duplicate order_index %s in %s: %s and %s",
                         child.order_index, scope, seen[child.order_index], child.id)
            raise InvariantViolation(
                f"Duplicate order_index {child.order_index} in {scope}",
                details={"scope": scope, "ids": [seen[child.order_index], child.id]})
        seen[child.order_index] = child.id


def check_course_order(repositories: RepositoryRegistry, course_id: str) -> List[Lesson]:
    """Verify lesson and content ordering across a course before a write that depends on it."""
    lessons = repositories.lessons.find_by_course(course_id)
    ensure_unique_order(lessons, f"course {course_id}")
    for lesson in lessons:
        ensure_unique_order(repositories.contents.find_by_lesson(lesson.id), f"lesson {lesson.id}")
    return lessons


def next_order_index(children: Sequence) -> int:
    return max((child.order_index for child in children), default=-1) + 1


def pick(children: Sequence, child_id: str, entity_kind: str):
    for child in children:
        if child.id == child_id:
            return child
    raise NotFound(entity_kind, child_id)


def renumber(children: List, repository, child, position: int) -> None:
    """Move ``child`` to ``position`` and save siblings whose index changed."""
    if isinstance(position, bool) or not isinstance(position, int) or not 0 <= position < len(children):
        raise ValidationError("position", f"must lie within [0, {len(children) - 1}]")
    reordered = [c for c in children if c.id != child.id]
    reordered.insert(position, child)
    for index, sibling in enumerate(reordered):
        if sibling.order_index != index:
            sibling.set_order_index(index)
            repository.save(sibling)


class CourseService:
    """Authoring and reading of the course graph."""

    def __init__(self, repositories: RepositoryRegistry, access: AccessService,
                 concurrency_manager: ConcurrencyManager, event_bus: EventBus):
        self._repos = repositories
        self._access = access
        self._concurrency = concurrency_manager
        self._events = event_bus

    # Courses

    def list_catalog(self, actor: Optional[Identity] = None) -> List[Course]:
        """Public catalog of active courses."""
        self._access.require(actor, Action.VIEW_CATALOG)
        return self._repos.courses.find_active()

    def create_course(self, actor: Optional[Identity], title: str, teacher_id: Optional[str] = None,
                      description: str = "", sequential: bool = False) -> Course:
        """
        Create a course taught by ``teacher_id`` (the actor by default).

        Teachers create their own courses; admins may create a course for any
        teacher. The teacher must hold the TEACHER role. A sequential course
        opens each lesson to a student only once the earlier ones are complete.
        """
        if actor is None:
            self._access.require(actor, Action.MANAGE_COURSE_CONTENT)
        teacher_id = teacher_id or actor.user_id
        course = Course(title, teacher_id, description, sequential)
        self._access.require(actor, Action.MANAGE_COURSE_CONTENT, course=course)

        teacher = require_entity(self._repos.users, teacher_id, "user")
        if not teacher.has_role(Role.TEACHER):
            raise ValidationError("teacher_id", "course teacher must hold the TEACHER role")

        self._repos.courses.save(course)
        logger.info("Course %s created for teacher %s", course.id, teacher_id)
        return course

    def load_course(self, course_id: str) -> Course:
        return require_entity(self._repos.courses, course_id, "course")

    def get_course(self, actor: Optional[Identity], course_id: str) -> Course:
        """Active courses are public; inactive ones are visible to their teacher and students."""
        course = self.load_course(course_id)
        if not course.active:
            self._access.require_any(actor, (Action.VIEW_STUDENT_WORK, Action.MANAGE_COURSE_CONTENT),
                                     course=course)
        return course

    def list_teacher_courses(self, actor: Optional[Identity], teacher_id: Optional[str] = None) -> List[Course]:
        if actor is None:
            self._access.require(actor, Action.VIEW_OWN_RECORD)
        teacher_id = teacher_id or actor.user_id
        self._access.require(actor, Action.VIEW_OWN_RECORD, owner_id=teacher_id)
        return self._repos.courses.find_by_teacher(teacher_id)

    def set_course_active(self, actor: Optional[Identity], course_id: str, active: bool) -> Course:
        """Toggle the active flag. Lessons stay; only new submissions are gated."""
        with self._concurrency.lock(course_key(course_id)):
            course = self.load_course(course_id)
            self._access.require(actor, Action.MANAGE_COURSE_CONTENT, course=course)
            if course.active != active:
                course.set_active(active)
                self._repos.courses.save(course)
                logger.info("Course %s is now %s", course.id, "active" if active else "inactive")
        return course

    # Lessons

    def ordered_lessons(self, course_id: str) -> List[Lesson]:
        lessons = self._repos.lessons.find_by_course(course_id)
        ensure_unique_order(lessons, f"course {course_id}")
        return lessons

    def load_lesson(self, lesson_id: str) -> Lesson:
        return require_entity(self._repos.lessons, lesson_id, "lesson")

    def add_lesson(self, actor: Optional[Identity], course_id: str, title: str,
                   description: str = "") -> Lesson:
        """Append a lesson at the end of the course."""
        if not title or not title.strip():
            raise ValidationError("title", "must not be empty")
        with self._concurrency.lock(course_key(course_id)):
            course = self.load_course(course_id)
            self._access.require(actor, Action.MANAGE_COURSE_CONTENT, course=course)
            lessons = self.ordered_lessons(course_id)
            lesson = Lesson(course_id, title.strip(), next_order_index(lessons), description)
            self._repos.lessons.save(lesson)
        logger.info("Lesson %s added to course %s at %s", lesson.id, course_id, lesson.order_index)
        self._events.emit(EventType.LESSON_ADDED, course_id, course_id=course_id, lesson_id=lesson.id)
        return lesson

    def move_lesson(self, actor: Optional[Identity], lesson_id: str, position: int) -> List[Lesson]:
        """Move a lesson to ``position`` and renumber the course densely."""
        lesson = self.load_lesson(lesson_id)
        with self._concurrency.lock(course_key(lesson.course_id)):
            course = self.load_course(lesson.course_id)
            self._access.require(actor, Action.MANAGE_COURSE_CONTENT, course=course)
            lessons = self.ordered_lessons(course.id)
            lesson = pick(lessons, lesson_id, "lesson")
            renumber(lessons, self._repos.lessons, lesson, position)
            lessons = self.ordered_lessons(course.id)
        self._events.emit(EventType.LESSON_CHANGED, course.id, course_id=course.id, lesson_id=lesson_id)
        return lessons

    def remove_lesson(self, actor: Optional[Identity], lesson_id: str) -> None:
        """
        Delete a lesson and everything it owns: content, exercise, exam with
        its questions, and assignments. Submissions are kept.
        """
        lesson = self.load_lesson(lesson_id)
        with self._concurrency.lock(course_key(lesson.course_id)), \
                self._concurrency.lock(lesson_key(lesson_id)):
            lesson = self.load_lesson(lesson_id)
            course = self.load_course(lesson.course_id)
            self._access.require(actor, Action.MANAGE_COURSE_CONTENT, course=course)
            for content in self._repos.contents.find_by_lesson(lesson_id):
                self._repos.contents.delete(content.id)
            exercise = self._repos.exercises.find_by_lesson(lesson_id)
            if exercise is not None:
                self._repos.exercises.delete(exercise.id)
            exam = self._repos.exams.find_by_lesson(lesson_id)
            if exam is not None:
                for question in self._repos.questions.find_by_exam(exam.id):
                    self._repos.questions.delete(question.id)
                self._repos.exams.delete(exam.id)
            for assignment in self._repos.assignments.find_by_lesson(lesson_id):
                self._repos.assignments.delete(assignment.id)
            self._repos.lessons.delete(lesson_id)
        logger.info("Lesson %s removed from course %s", lesson_id, course.id)
        self._events.emit(EventType.LESSON_REMOVED, course.id, course_id=course.id, lesson_id=lesson_id)

    def list_lessons(self, actor: Optional[Identity], course_id: str) -> List[Lesson]:
        """Ordered lessons, for the owner and enrolled students."""
        course = self.load_course(course_id)
        self._access.require_any(actor, (Action.VIEW_STUDENT_WORK, Action.MANAGE_COURSE_CONTENT),
                                 course=course)
        return self.ordered_lessons(course_id)

    # Content

    def ordered_contents(self, lesson_id: str) -> List[Content]:
        contents = self._repos.contents.find_by_lesson(lesson_id)
        ensure_unique_order(contents, f"lesson {lesson_id}")
        return contents

    def add_content(self, actor: Optional[Identity], lesson_id: str, title: str,
                    content_type: ContentType = ContentType.TEXT, body: str = "") -> Content:
        """Append a content item at the end of the lesson."""
        if not title or not title.strip():
            raise ValidationError("title", "must not be empty")
        with self._concurrency.lock(lesson_key(lesson_id)):
            lesson = self.load_lesson(lesson_id)
            course = self.load_course(lesson.course_id)
            self._access.require(actor, Action.MANAGE_COURSE_CONTENT, course=course)
            contents = self.ordered_contents(lesson_id)
            content = Content(lesson_id, title.strip(), next_order_index(contents), content_type, body)
            self._repos.contents.save(content)
        self._events.emit(EventType.LESSON_CHANGED, course.id, course_id=course.id, lesson_id=lesson_id)
        return content

    def move_content(self, actor: Optional[Identity], content_id: str, position: int) -> List[Content]:
        content = require_entity(self._repos.contents, content_id, "content")
        with self._concurrency.lock(lesson_key(content.lesson_id)):
            lesson = self.load_lesson(content.lesson_id)
            course = self.load_course(lesson.course_id)
            self._access.require(actor, Action.MANAGE_COURSE_CONTENT, course=course)
            contents = self.ordered_contents(lesson.id)
            content = pick(contents, content_id, "content")
            renumber(contents, self._repos.contents, content, position)
            return self.ordered_contents(lesson.id)

    def remove_content(self, actor: Optional[Identity], content_id: str) -> None:
        content = require_entity(self._repos.contents, content_id, "content")
        with self._concurrency.lock(lesson_key(content.lesson_id)):
            lesson = self.load_lesson(content.lesson_id)
            course = self.load_course(lesson.course_id)
            self._access.require(actor, Action.MANAGE_COURSE_CONTENT, course=course)
            self._repos.contents.delete(content_id)
        self._events.emit(EventType.LESSON_CHANGED, course.id, course_id=course.id, lesson_id=lesson.id)

    def list_contents(self, actor: Optional[Identity], lesson_id: str) -> List[Content]:
        lesson = self.load_lesson(lesson_id)
        course = self.load_course(lesson.course_id)
        self._access.require_any(actor, (Action.VIEW_STUDENT_WORK, Action.MANAGE_COURSE_CONTENT),
                                 course=course, lesson_id=lesson_id)
        return self.ordered_contents(lesson_id)
