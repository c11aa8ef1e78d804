"""
Submission and grading engine.

Each (student, gradable item) pair has at most one submission record, moving
NOT_STARTED -> SUBMITTED -> GRADED. A resubmission overwrites the record in
place and returns it to SUBMITTED with the grade cleared. Every transition
of a pair runs under that pair's lock and writes with an optimistic version
check, so a grade computed against an older version never lands on newer
content.
"""

import logging
import math
import numbers
from typing import Any, Dict, List, Optional

from ..core.authorization import Identity
from ..core.entities import Assignment, Exam, GradableItem, Submission, utcnow
from ..core.enums import Action, EventType, ItemKind, SubmissionState
from ..core.exceptions import ConflictStaleWrite, ValidationError
from ..persistence.repositories import RepositoryRegistry
from .access_service import AccessService, require_entity
from .assessment_service import AssessmentService
from .concurrency_manager import ConcurrencyManager, submission_key
from .course_service import check_course_order
from .event_service import EventBus


logger = logging.getLogger(__name__)


def validate_score(score: Any, max_score: int) -> float:
    """Return ``score`` if it is a real number within [0, max_score]."""
    if isinstance(score, bool) or not isinstance(score, numbers.Real) or math.isnan(score):
        raise ValidationError("score", "must be a number")
    if not 0 <= score <= max_score:
        raise ValidationError("score", f"must lie within [0, {max_score}]")
    return score


class GradingService:
    """Accepts submissions and applies grades."""

    def __init__(self, repositories: RepositoryRegistry, access: AccessService,
                 assessments: AssessmentService, concurrency_manager: ConcurrencyManager,
                 event_bus: EventBus):
        self._repos = repositories
        self._access = access
        self._assessments = assessments
        self._concurrency = concurrency_manager
        self._events = event_bus

    def submit_work(self, actor: Optional[Identity], kind: ItemKind, item_id: str,
                    payload: Dict[str, Any]) -> Submission:
        """
        Submit (or resubmit) the actor's work for a gradable item.

        Requires an enrolled student in an active course. Exams must be
        finalized. An auto-graded exam is scored from its answer key and
        returned already GRADED.
        """
        if not isinstance(payload, dict):
            raise ValidationError("payload", "must be an object")
        item = self._assessments.load_item(kind, item_id)
        lesson, course = self._assessments.item_context(item)
        self._access.require(actor, Action.SUBMIT_WORK, course=course, lesson_id=lesson.id)
        now = utcnow()
        if isinstance(item, Exam):
            if not item.is_finalized:
                raise ValidationError("exam", "only finalized exams accept submissions")
            if not item.is_available(now):
                raise ValidationError("exam", "exam is outside its availability window")

        late = isinstance(item, Assignment) and item.is_late(now)
        auto_graded = isinstance(item, Exam) and item.auto_grade
        auto_score = self._auto_score(item, payload) if auto_graded else None
        with self._concurrency.lock(submission_key(actor.user_id, kind, item_id), actor.user_id):
            check_course_order(self._repos, course.id)
            submission = self._repos.submissions.find_submission(actor.user_id, kind, item_id)
            if submission is None:
                submission = Submission(kind, item_id, actor.user_id, course.id, lesson.id, payload, late)
                self._repos.submissions.save(submission)
            else:
                observed = submission.version
                submission.resubmit(payload, late)
                self._repos.submissions.save(submission, expected_version=observed)

            if auto_graded:
                observed = submission.version
                submission.record_grade(auto_score, None, item.passing_score)
                self._repos.submissions.save(submission, expected_version=observed)

        logger.info("%s %s submitted by %s (version %d%s)", kind.value, item_id, actor.user_id,
                    submission.version, ", late" if late else "")
        self._events.emit(EventType.WORK_SUBMITTED, course.id, **self._event_data(submission))
        if auto_graded:
            self._events.emit(EventType.SUBMISSION_GRADED, course.id, **self._event_data(submission))
        return submission

    def _auto_score(self, exam: Exam, payload: Dict[str, Any]) -> int:
        answers = payload.get("answers", {})
        if not isinstance(answers, dict):
            raise ValidationError("payload.answers", "must map question ids to answers")
        questions = self._repos.questions.find_by_exam(exam.id)
        return sum(q.points for q in questions if q.is_correct(answers.get(q.id)))

    def grade_submission(self, actor: Optional[Identity], submission_id: str, score: Any,
                         expected_version: int, feedback: Optional[str] = None) -> Submission:
        """
        Grade a submission the caller observed at ``expected_version``.

        Raises ConflictStaleWrite if the submission has moved on since,
        ValidationError if it is not awaiting a grade or the score is out of
        range, and InvariantViolation if the course ordering is corrupt.
        Nothing is written in any of these cases.
        """
        submission = require_entity(self._repos.submissions, submission_id, "submission")
        item = self._assessments.load_item(submission.kind, submission.item_id)
        course = require_entity(self._repos.courses, submission.course_id, "course")
        self._access.require(actor, Action.GRADE_SUBMISSION, course=course)

        with self._concurrency.lock(submission_key(*submission.pair), actor.user_id):
            submission = require_entity(self._repos.submissions, submission_id, "submission")
            if submission.version != expected_version:
                logger.warning("Grade on %s rejected: expected version %s, current %s",
                               submission_id, expected_version, submission.version)
                raise ConflictStaleWrite(submission.pair, expected_version, submission.version)
            if submission.state != SubmissionState.SUBMITTED:
                raise ValidationError("state", f"cannot grade a submission in state {submission.state.value}")
            score = validate_score(score, item.max_score)
            check_course_order(self._repos, course.id)

            submission.record_grade(score, actor.user_id, item.passing_score, feedback)
            self._repos.submissions.save(submission, expected_version=expected_version)

        logger.info("Submission %s graded %s/%s by %s", submission_id, score, item.max_score, actor.user_id)
        self._events.emit(EventType.SUBMISSION_GRADED, course.id, **self._event_data(submission))
        return submission

    @staticmethod
    def _event_data(submission: Submission) -> Dict[str, Any]:
        return {
            "submission_id": submission.id,
            "user_id": submission.student_id,
            "student_id": submission.student_id,
            "course_id": submission.course_id,
            "lesson_id": submission.lesson_id,
            "kind": submission.kind.value,
            "item_id": submission.item_id,
            "version": submission.version,
            "late": submission.late,
            "score": submission.score,
            "graded_by": submission.graded_by,
        }

    # Reads

    def get_submission(self, actor: Optional[Identity], submission_id: str) -> Submission:
        """A submission, for its student or the course teacher."""
        submission = require_entity(self._repos.submissions, submission_id, "submission")
        course = require_entity(self._repos.courses, submission.course_id, "course")
        self._access.require_any(actor, (Action.VIEW_OWN_RECORD, Action.VIEW_COURSE_REPORTS),
                                 course=course, owner_id=submission.student_id)
        return submission

    def find_my_submission(self, actor: Optional[Identity], kind: ItemKind, item_id: str) -> Optional[Submission]:
        item = self._assessments.load_item(kind, item_id)
        _, course = self._assessments.item_context(item)
        self._access.require(actor, Action.VIEW_STUDENT_WORK, course=course)
        return self._repos.submissions.find_submission(actor.user_id, kind, item_id)

    def list_item_submissions(self, actor: Optional[Identity], kind: ItemKind, item_id: str) -> List[Submission]:
        """All submissions for an item, for the course teacher."""
        item = self._assessments.load_item(kind, item_id)
        _, course = self._assessments.item_context(item)
        self._access.require(actor, Action.VIEW_COURSE_REPORTS, course=course)
        return self._repos.submissions.find_by_item(kind, item_id)

    def submission_state(self, student_id: str, kind: ItemKind, item_id: str) -> SubmissionState:
        submission = self._repos.submissions.find_submission(student_id, kind, item_id)
        return submission.state if submission is not None else SubmissionState.NOT_STARTED

    def load_item(self, kind: ItemKind, item_id: str) -> GradableItem:
        return self._assessments.load_item(kind, item_id)
