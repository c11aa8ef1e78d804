"""
Access service: loads the facts the authorization gate needs and applies it.
"""

import logging
from typing import FrozenSet, Iterable, Optional

from ..core.authorization import CourseFacts, Decision, Identity, Target, decide
from ..core.entities import Course, User
from ..core.enums import Action, ItemKind
from ..core.exceptions import AuthorizationDenied, NotFound
from ..core.interfaces import IdentityProvider
from ..persistence.repositories import BaseRepository, RepositoryRegistry


logger = logging.getLogger(__name__)


def require_entity(repository: BaseRepository, entity_id: str, entity_kind: str):
    """Fetch an entity or raise NotFound."""
    entity = repository.find_by_id(entity_id)
    if entity is None:
        raise NotFound(entity_kind, entity_id)
    return entity


def identity_of(user: User) -> Identity:
    return Identity.of(user.id, user.roles)


class AccessService(IdentityProvider):
    """Builds gate targets with the minimum reads and enforces decisions."""

    def __init__(self, repositories: RepositoryRegistry):
        self._repos = repositories

    def identify(self, credential: Optional[str]) -> Optional[Identity]:
        """Resolve a user id or username to an identity; unknown credentials are anonymous."""
        if not credential:
            return None
        user = self._repos.users.find_by_id(credential) or self._repos.users.find_by_username(credential)
        return identity_of(user) if user is not None else None

    def course_facts(self, course: Course, actor: Optional[Identity] = None,
                     lesson_id: Optional[str] = None) -> CourseFacts:
        """
        Facts about a course. Enrollment is only looked up for the acting
        user, and lesson unlocks only when a sequential course's lesson is
        targeted by an enrolled student.
        """
        enrolled = frozenset()
        if actor is not None and self._repos.enrollments.find_enrollment(actor.user_id, course.id):
            enrolled = frozenset({actor.user_id})
        unlocked = None
        if course.sequential and lesson_id is not None and enrolled:
            unlocked = self.unlocked_lessons(actor.user_id, course.id)
        return CourseFacts(course.id, course.teacher_id, course.active, enrolled, unlocked)

    def unlocked_lessons(self, student_id: str, course_id: str) -> FrozenSet[str]:
        """
        Lessons a student may open in a sequential course: each lesson in
        order, up to and including the first one not yet completed with its
        exercise and exam passed.
        """
        progress = self._repos.progress.find_by_student_and_course(student_id, course_id)
        completed = set(progress.completed_lesson_ids) if progress is not None else set()
        unlocked = set()
        for lesson in self._repos.lessons.find_by_course(course_id):
            unlocked.add(lesson.id)
            if lesson.id not in completed or self._has_failed_work(student_id, lesson.id):
                break
        return frozenset(unlocked)

    def _has_failed_work(self, student_id: str, lesson_id: str) -> bool:
        items = ((ItemKind.EXERCISE, self._repos.exercises.find_by_lesson(lesson_id)),
                 (ItemKind.EXAM, self._repos.exams.find_by_lesson(lesson_id)))
        for kind, item in items:
            if item is None:
                continue
            submission = self._repos.submissions.find_submission(student_id, kind, item.id)
            if submission is None or submission.passed is False:
                return True
        return False

    def target(self, actor: Optional[Identity], course: Optional[Course] = None,
               owner_id: Optional[str] = None, lesson_id: Optional[str] = None) -> Target:
        facts = self.course_facts(course, actor, lesson_id) if course is not None else None
        return Target(course=facts, owner_id=owner_id, lesson_id=lesson_id)

    def check(self, actor: Optional[Identity], action: Action, course: Optional[Course] = None,
              owner_id: Optional[str] = None, lesson_id: Optional[str] = None) -> Decision:
        return decide(actor, action, self.target(actor, course, owner_id, lesson_id))

    def authorize(self, actor: Optional[Identity], action: Action, course_id: Optional[str] = None,
                  owner_id: Optional[str] = None, lesson_id: Optional[str] = None) -> Decision:
        """Decide an action against a course, record owner or lesson, loading them by id."""
        if lesson_id and not course_id:
            course_id = require_entity(self._repos.lessons, lesson_id, "lesson").course_id
        course = require_entity(self._repos.courses, course_id, "course") if course_id else None
        return self.check(actor, action, course, owner_id, lesson_id)

    def require(self, actor: Optional[Identity], action: Action, course: Optional[Course] = None,
                owner_id: Optional[str] = None, lesson_id: Optional[str] = None) -> None:
        """Raise AuthorizationDenied unless the gate allows the action."""
        decision = self.check(actor, action, course, owner_id, lesson_id)
        if not decision.allowed:
            logger.info("Denied %s for %s: %s", action.value,
                        actor.user_id if actor else "anonymous", decision.reason.value)
            raise AuthorizationDenied(decision.reason, action)

    def require_any(self, actor: Optional[Identity], actions: Iterable[Action],
                    course: Optional[Course] = None, owner_id: Optional[str] = None,
                    lesson_id: Optional[str] = None) -> Action:
        """Allow if any of the actions is allowed; otherwise raise the first denial."""
        first_denial = None
        for action in actions:
            decision = self.check(actor, action, course, owner_id, lesson_id)
            if decision.allowed:
                return action
            if first_denial is None:
                first_denial = (decision, action)
        decision, action = first_denial
        logger.info("Denied %s for %s: %s", action.value,
                    actor.user_id if actor else "anonymous", decision.reason.value)
        raise AuthorizationDenied(decision.reason, action)
