"""
Enrollment ledger: membership of students in courses.
"""

import logging
from typing import List, Optional

from ..core.authorization import Identity
from ..core.entities import Course, Enrollment, User
from ..core.enums import Action, EventType, Role
from ..core.exceptions import NotFound, ValidationError
from ..persistence.repositories import RepositoryRegistry
from .access_service import AccessService, require_entity
from .concurrency_manager import ConcurrencyManager, resource_key
from .event_service import EventBus


logger = logging.getLogger(__name__)


def enrollment_key(student_id: str, course_id: str) -> str:
    return resource_key("enrollment", student_id, course_id)


class EnrollmentService:
    """Service for enrolling students in courses and reading rosters."""

    def __init__(self, repositories: RepositoryRegistry, access: AccessService,
                 concurrency_manager: ConcurrencyManager, event_bus: EventBus):
        self._repos = repositories
        self._access = access
        self._concurrency = concurrency_manager
        self._events = event_bus

    def enroll(self, actor: Optional[Identity], course_id: str, student_id: Optional[str] = None) -> Enrollment:
        """
        Enroll a student in a course.

        Students enroll themselves into active courses. The owning teacher
        and admins may enroll any student. Enrolling twice returns the
        existing record.
        """
        course = require_entity(self._repos.courses, course_id, "course")
        if actor is None:
            self._access.require(actor, Action.ENROLL, course=course)
        student_id = student_id or actor.user_id
        if student_id == actor.user_id:
            self._access.require(actor, Action.ENROLL, course=course)
        else:
            self._access.require(actor, Action.MANAGE_ENROLLMENT, course=course)

        student = require_entity(self._repos.users, student_id, "user")
        if not student.has_role(Role.STUDENT):
            raise ValidationError("student_id", "only users holding the STUDENT role can enroll")

        with self._concurrency.lock(enrollment_key(student_id, course_id)):
            existing = self._repos.enrollments.find_enrollment(student_id, course_id)
            if existing is not None:
                return existing
            enrollment = Enrollment(student_id, course_id)
            self._repos.enrollments.save(enrollment)

        logger.info("Student %s enrolled in course %s", student_id, course_id)
        self._events.emit(EventType.COURSE_ENROLLED, course_id,
                          course_id=course_id, student_id=student_id, user_id=student_id)
        return enrollment

    def drop(self, actor: Optional[Identity], course_id: str, student_id: str) -> None:
        """Remove a student from a course. Submissions and progress are kept."""
        course = require_entity(self._repos.courses, course_id, "course")
        self._access.require(actor, Action.MANAGE_ENROLLMENT, course=course)
        with self._concurrency.lock(enrollment_key(student_id, course_id)):
            enrollment = self._repos.enrollments.find_enrollment(student_id, course_id)
            if enrollment is None:
                raise NotFound("enrollment", f"{student_id}/{course_id}")
            self._repos.enrollments.delete(enrollment.id)
        logger.info("Student %s dropped from course %s", student_id, course_id)

    def is_enrolled(self, student_id: str, course_id: str) -> bool:
        return self._repos.enrollments.find_enrollment(student_id, course_id) is not None

    def list_course_students(self, actor: Optional[Identity], course_id: str) -> List[User]:
        """Roster of a course, for its teacher."""
        course = require_entity(self._repos.courses, course_id, "course")
        self._access.require(actor, Action.VIEW_COURSE_REPORTS, course=course)
        students = []
        for enrollment in self._repos.enrollments.find_by_course(course_id):
            student = self._repos.users.find_by_id(enrollment.student_id)
            if student is not None:
                students.append(student)
        return students

    def list_student_courses(self, actor: Optional[Identity], student_id: Optional[str] = None) -> List[Course]:
        if actor is None:
            self._access.require(actor, Action.VIEW_OWN_RECORD)
        student_id = student_id or actor.user_id
        self._access.require(actor, Action.VIEW_OWN_RECORD, owner_id=student_id)
        courses = []
        for enrollment in self._repos.enrollments.find_by_student(student_id):
            course = self._repos.courses.find_by_id(enrollment.course_id)
            if course is not None:
                courses.append(course)
        return courses
