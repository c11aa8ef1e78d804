"""
The authorization gate.

``decide`` is a pure function of the actor identity, the action, and the facts
about the target. It performs no I/O and never raises; callers load the facts
(course owner, active flag, enrollment, record owner) and pass them in.

Rules, first match wins:

1. public actions (catalog, login, logout) are allowed for everyone
2. anonymous actors are denied
3. ADMIN is allowed everything
4. content and roster management require the owning teacher
5. viewing and submitting student work require an enrolled student,
   submitting also requires an active course, and work aimed at a lesson
   the student has not yet unlocked is denied
6. grading and course reports require the owning teacher
7. own progress and activity records require the record owner
8. self-enrollment requires a student and an active course
9. question bank management requires a teacher
10. everything else is denied
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional

from .enums import Action, DenyReason, Role


PUBLIC_ACTIONS = frozenset({Action.VIEW_CATALOG, Action.LOGIN, Action.LOGOUT})
OWNER_CONTENT_ACTIONS = frozenset({Action.MANAGE_COURSE_CONTENT, Action.MANAGE_ENROLLMENT})
STUDENT_WORK_ACTIONS = frozenset({Action.VIEW_STUDENT_WORK, Action.SUBMIT_WORK})
OWNER_GRADING_ACTIONS = frozenset({Action.GRADE_SUBMISSION, Action.VIEW_COURSE_REPORTS})


@dataclass(frozen=True)
class Identity:
    """Session identity: who is acting and with which roles."""
    user_id: str
    roles: FrozenSet[Role]

    @classmethod
    def of(cls, user_id: str, roles: Iterable[Role]) -> 'Identity':
        return cls(user_id, frozenset(roles))

    def has_role(self, role: Role) -> bool:
        return role in self.roles


@dataclass(frozen=True)
class CourseFacts:
    """What the gate needs to know about a course."""
    course_id: str
    teacher_id: str
    active: bool
    enrolled_student_ids: FrozenSet[str] = frozenset()
    # None when the course does not gate lessons by order
    unlocked_lesson_ids: Optional[FrozenSet[str]] = None

    def is_owned_by(self, actor: Identity) -> bool:
        return actor.has_role(Role.TEACHER) and actor.user_id == self.teacher_id

    def has_enrolled(self, actor: Identity) -> bool:
        return actor.has_role(Role.STUDENT) and actor.user_id in self.enrolled_student_ids

    def has_unlocked(self, lesson_id: Optional[str]) -> bool:
        return lesson_id is None or self.unlocked_lesson_ids is None or lesson_id in self.unlocked_lesson_ids


@dataclass(frozen=True)
class Target:
    """The entity an action is aimed at, reduced to authorization facts."""
    course: Optional[CourseFacts] = None
    owner_id: Optional[str] = None
    lesson_id: Optional[str] = None


@dataclass(frozen=True)
class Decision:
    """Outcome of a gate decision."""
    allowed: bool
    reason: Optional[DenyReason] = None

    @classmethod
    def allow(cls) -> 'Decision':
        return cls(True)

    @classmethod
    def deny(cls, reason: DenyReason) -> 'Decision':
        return cls(False, reason)

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision.allow()


def decide(actor: Optional[Identity], action: Action, target: Optional[Target] = None) -> Decision:
    """Decide whether ``actor`` may perform ``action`` on ``target``."""
    if action in PUBLIC_ACTIONS:
        return ALLOW
    if actor is None:
        return Decision.deny(DenyReason.UNAUTHENTICATED)
    if actor.has_role(Role.ADMIN):
        return ALLOW

    target = target or Target()
    course = target.course

    if action in OWNER_CONTENT_ACTIONS:
        if course is not None and course.is_owned_by(actor):
            return ALLOW
        return Decision.deny(DenyReason.NOT_OWNER)

    if action in STUDENT_WORK_ACTIONS:
        if course is None or not course.has_enrolled(actor):
            return Decision.deny(DenyReason.NOT_ENROLLED)
        if action is Action.SUBMIT_WORK and not course.active:
            return Decision.deny(DenyReason.COURSE_INACTIVE)
        if not course.has_unlocked(target.lesson_id):
            return Decision.deny(DenyReason.LESSON_LOCKED)
        return ALLOW

    if action in OWNER_GRADING_ACTIONS:
        if course is not None and course.is_owned_by(actor):
            return ALLOW
        return Decision.deny(DenyReason.NOT_OWNER)

    if action is Action.VIEW_OWN_RECORD:
        if target.owner_id is not None and target.owner_id == actor.user_id:
            return ALLOW
        return Decision.deny(DenyReason.NOT_SELF)

    if action is Action.ENROLL:
        if not actor.has_role(Role.STUDENT) or course is None:
            return Decision.deny(DenyReason.UNAUTHORIZED)
        if not course.active:
            return Decision.deny(DenyReason.COURSE_INACTIVE)
        return ALLOW

    if action is Action.MANAGE_QUESTION_BANK and actor.has_role(Role.TEACHER):
        return ALLOW

    return Decision.deny(DenyReason.UNAUTHORIZED)
