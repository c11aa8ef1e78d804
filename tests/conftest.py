import pytest

from lyceum.core.enums import ContentType, Role
from lyceum.main import LyceumPlatform
from lyceum.services.access_service import identity_of


@pytest.fixture
def platform():
    platform = LyceumPlatform({"database_config": {"database_path": ":memory:"}})
    yield platform
    platform.stop_platform()


@pytest.fixture
def people(platform):
    """Identities for every role, plus a second teacher and student."""
    users = {
        "admin": platform.users.ensure_user("admin", [Role.ADMIN]),
        "teacher": platform.users.ensure_user("t1", [Role.TEACHER]),
        "other_teacher": platform.users.ensure_user("t2", [Role.TEACHER]),
        "student": platform.users.ensure_user("s1", [Role.STUDENT]),
        "other_student": platform.users.ensure_user("s2", [Role.STUDENT]),
        "teaching_student": platform.users.ensure_user("ts", [Role.STUDENT, Role.TEACHER]),
    }
    return {name: identity_of(user) for name, user in users.items()}


@pytest.fixture
def course(platform, people):
    return platform.courses.create_course(people["teacher"], "Course C")


@pytest.fixture
def scenario(platform, people, course):
    """
    Course C: L1 with two content items and no exercise, L2 with no content
    and one exercise worth 10. The student is enrolled.
    """
    teacher = people["teacher"]
    l1 = platform.courses.add_lesson(teacher, course.id, "L1")
    c1 = platform.courses.add_content(teacher, l1.id, "Reading", ContentType.TEXT)
    c2 = platform.courses.add_content(teacher, l1.id, "Video", ContentType.VIDEO)
    l2 = platform.courses.add_lesson(teacher, course.id, "L2")
    exercise = platform.assessments.create_exercise(teacher, l2.id, "Exercise", max_score=10)
    platform.enrollments.enroll(people["student"], course.id)
    return {"course": course, "l1": l1, "l2": l2, "contents": [c1, c2], "exercise": exercise}
