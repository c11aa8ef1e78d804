"""
Assessment authoring: exercises, exams with their questions, the question
bank, and assignments.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from ..core.authorization import Identity
from ..core.entities import Assignment, Course, Exam, Exercise, GradableItem, Lesson, Question
from ..core.enums import Action, EventType, ItemKind
from ..core.exceptions import NotFound, ValidationError
from ..persistence.repositories import RepositoryRegistry
from .access_service import AccessService, require_entity
from .concurrency_manager import ConcurrencyManager, exam_key, lesson_key
from .course_service import ensure_unique_order, next_order_index, pick, renumber
from .event_service import EventBus


logger = logging.getLogger(__name__)


class AssessmentService:
    """Creates gradable items and manages exam questions."""

    def __init__(self, repositories: RepositoryRegistry, access: AccessService,
                 concurrency_manager: ConcurrencyManager, event_bus: EventBus):
        self._repos = repositories
        self._access = access
        self._concurrency = concurrency_manager
        self._events = event_bus

    def load_item(self, kind: ItemKind, item_id: str) -> GradableItem:
        item = self._repos.items_for(kind).find_by_id(item_id)
        if item is None:
            raise NotFound(kind.value, item_id)
        return item

    def item_context(self, item: GradableItem) -> Tuple[Lesson, Course]:
        """The lesson and course containing a gradable item."""
        lesson = require_entity(self._repos.lessons, item.lesson_id, "lesson")
        course = require_entity(self._repos.courses, lesson.course_id, "course")
        return lesson, course

    def _authoring_context(self, actor: Optional[Identity], lesson_id: str) -> Tuple[Lesson, Course]:
        lesson = require_entity(self._repos.lessons, lesson_id, "lesson")
        course = require_entity(self._repos.courses, lesson.course_id, "course")
        self._access.require(actor, Action.MANAGE_COURSE_CONTENT, course=course)
        return lesson, course

    def _lesson_changed(self, lesson: Lesson) -> None:
        self._events.emit(EventType.LESSON_CHANGED, lesson.course_id,
                          course_id=lesson.course_id, lesson_id=lesson.id)

    # Exercises

    def create_exercise(self, actor: Optional[Identity], lesson_id: str, title: str, max_score: int,
                        passing_score: Optional[int] = None) -> Exercise:
        """Attach the lesson's exercise. A lesson has at most one."""
        with self._concurrency.lock(lesson_key(lesson_id)):
            lesson, _ = self._authoring_context(actor, lesson_id)
            if self._repos.exercises.find_by_lesson(lesson_id) is not None:
                raise ValidationError("lesson_id", "lesson already has an exercise")
            exercise = Exercise(lesson_id, title, max_score, passing_score)
            self._repos.exercises.save(exercise)
        logger.info("Exercise %s created in lesson %s", exercise.id, lesson_id)
        self._lesson_changed(lesson)
        return exercise

    # Exams

    def create_exam(self, actor: Optional[Identity], lesson_id: str, title: str, max_score: int = 100,
                    passing_score: Optional[int] = None, auto_grade: bool = False,
                    available_from: Optional[datetime] = None,
                    available_to: Optional[datetime] = None) -> Exam:
        """
        Attach the lesson's exam as a DRAFT. A lesson has at most one.

        Submissions are only accepted between ``available_from`` and
        ``available_to`` when those are set.
        """
        with self._concurrency.lock(lesson_key(lesson_id)):
            lesson, _ = self._authoring_context(actor, lesson_id)
            if self._repos.exams.find_by_lesson(lesson_id) is not None:
                raise ValidationError("lesson_id", "lesson already has an exam")
            exam = Exam(lesson_id, title, max_score, passing_score, auto_grade,
                        available_from, available_to)
            self._repos.exams.save(exam)
        logger.info("Exam %s created in lesson %s", exam.id, lesson_id)
        self._lesson_changed(lesson)
        return exam

    def _draft_exam(self, actor: Optional[Identity], exam_id: str) -> Exam:
        exam = require_entity(self._repos.exams, exam_id, "exam")
        self._authoring_context(actor, exam.lesson_id)
        if not exam.can_be_modified():
            raise ValidationError("exam", "questions can only change while the exam is a draft")
        return exam

    def ordered_questions(self, exam_id: str) -> List[Question]:
        questions = self._repos.questions.find_by_exam(exam_id)
        ensure_unique_order(questions, f"exam {exam_id}")
        return questions

    def add_question(self, actor: Optional[Identity], exam_id: str, text: str, points: int,
                     correct_answer: Optional[str] = None) -> Question:
        """Append a question to a draft exam."""
        with self._concurrency.lock(exam_key(exam_id)):
            self._draft_exam(actor, exam_id)
            questions = self.ordered_questions(exam_id)
            question = Question(text, points, exam_id=exam_id, order_index=next_order_index(questions),
                                correct_answer=correct_answer)
            self._repos.questions.save(question)
        return question

    def move_question(self, actor: Optional[Identity], question_id: str, position: int) -> List[Question]:
        question = require_entity(self._repos.questions, question_id, "question")
        if question.exam_id is None:
            raise ValidationError("question_id", "bank questions have no exam order")
        with self._concurrency.lock(exam_key(question.exam_id)):
            self._draft_exam(actor, question.exam_id)
            questions = self.ordered_questions(question.exam_id)
            renumber(questions, self._repos.questions, pick(questions, question_id, "question"), position)
            return self.ordered_questions(question.exam_id)

    def remove_question(self, actor: Optional[Identity], question_id: str) -> None:
        question = require_entity(self._repos.questions, question_id, "question")
        if question.exam_id is None:
            raise ValidationError("question_id", "bank questions are not part of an exam")
        with self._concurrency.lock(exam_key(question.exam_id)):
            self._draft_exam(actor, question.exam_id)
            self._repos.questions.delete(question_id)

    def list_questions(self, actor: Optional[Identity], exam_id: str) -> List[Question]:
        """Questions in exam order, for the owner and enrolled students."""
        exam = require_entity(self._repos.exams, exam_id, "exam")
        _, course = self.item_context(exam)
        self._access.require_any(actor, (Action.VIEW_STUDENT_WORK, Action.MANAGE_COURSE_CONTENT),
                                 course=course, lesson_id=exam.lesson_id)
        return self.ordered_questions(exam_id)

    def can_author_exam(self, actor: Optional[Identity], exam_id: str) -> bool:
        """Whether the actor may see answer keys and edit this exam."""
        exam = require_entity(self._repos.exams, exam_id, "exam")
        _, course = self.item_context(exam)
        return self._access.check(actor, Action.MANAGE_COURSE_CONTENT, course=course).allowed

    def finalize_exam(self, actor: Optional[Identity], exam_id: str) -> Exam:
        """Freeze the questions and set the point range to their total."""
        with self._concurrency.lock(exam_key(exam_id)):
            exam = self._draft_exam(actor, exam_id)
            questions = self.ordered_questions(exam_id)
            if not questions:
                raise ValidationError("questions", "an exam needs at least one question to be finalized")
            exam.finalize(sum(q.points for q in questions), actor.user_id)
            self._repos.exams.save(exam)
        logger.info("Exam %s finalized with %d questions, max score %d",
                    exam.id, len(questions), exam.max_score)
        return exam

    # Question bank

    def create_bank_question(self, actor: Optional[Identity], text: str, points: int,
                             correct_answer: Optional[str] = None) -> Question:
        self._access.require(actor, Action.MANAGE_QUESTION_BANK)
        question = Question(text, points, correct_answer=correct_answer, in_bank=True)
        self._repos.questions.save(question)
        return question

    def list_bank_questions(self, actor: Optional[Identity]) -> List[Question]:
        self._access.require(actor, Action.MANAGE_QUESTION_BANK)
        return self._repos.questions.find_bank()

    def clone_question_from_bank(self, actor: Optional[Identity], bank_question_id: str,
                                 exam_id: str) -> Question:
        """Copy a bank question to the end of a draft exam; the bank entry is untouched."""
        self._access.require(actor, Action.MANAGE_QUESTION_BANK)
        source = require_entity(self._repos.questions, bank_question_id, "question")
        if not source.in_bank:
            raise ValidationError("bank_question_id", "question is not in the bank")
        with self._concurrency.lock(exam_key(exam_id)):
            self._draft_exam(actor, exam_id)
            questions = self.ordered_questions(exam_id)
            question = source.clone_into(exam_id, next_order_index(questions))
            self._repos.questions.save(question)
        return question

    # Assignments

    def create_assignment(self, actor: Optional[Identity], lesson_id: str, title: str, max_score: int,
                          passing_score: Optional[int] = None,
                          due_date: Optional[datetime] = None) -> Assignment:
        with self._concurrency.lock(lesson_key(lesson_id)):
            lesson, _ = self._authoring_context(actor, lesson_id)
            assignment = Assignment(lesson.id, title, max_score, passing_score, due_date)
            self._repos.assignments.save(assignment)
        logger.info("Assignment %s created in lesson %s", assignment.id, lesson_id)
        return assignment
