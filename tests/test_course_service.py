import threading

import pytest

from lyceum.core.entities import Lesson
from lyceum.core.enums import ContentType, DenyReason, ItemKind
from lyceum.core.exceptions import AuthorizationDenied, InvariantViolation, NotFound, ValidationError
from lyceum.services.concurrency_manager import lesson_key


def test_lessons_append_at_max_plus_one(platform, people, course):
    teacher = people["teacher"]
    lessons = [platform.courses.add_lesson(teacher, course.id, f"Lesson {i}") for i in range(3)]
    assert [l.order_index for l in lessons] == [0, 1, 2]


def test_delete_leaves_gap_and_next_insert_uses_max(platform, people, course):
    teacher = people["teacher"]
    first, second, third = [platform.courses.add_lesson(teacher, course.id, t) for t in "ABC"]
    platform.courses.remove_lesson(teacher, second.id)
    assert [l.order_index for l in platform.courses.list_lessons(teacher, course.id)] == [0, 2]

    fourth = platform.courses.add_lesson(teacher, course.id, "D")
    assert fourth.order_index == 3


def test_move_renumbers_densely(platform, people, course):
    teacher = people["teacher"]
    a, b, c = [platform.courses.add_lesson(teacher, course.id, t) for t in "ABC"]
    platform.courses.remove_lesson(teacher, b.id)
    d = platform.courses.add_lesson(teacher, course.id, "D")

    lessons = platform.courses.move_lesson(teacher, d.id, 0)
    assert [l.title for l in lessons] == ["D", "A", "C"]
    assert [l.order_index for l in lessons] == [0, 1, 2]


def test_move_rejects_out_of_range_position(platform, people, course):
    teacher = people["teacher"]
    lesson = platform.courses.add_lesson(teacher, course.id, "A")
    with pytest.raises(ValidationError):
        platform.courses.move_lesson(teacher, lesson.id, 5)


def test_duplicate_order_index_is_an_invariant_violation(platform, people, course):
    teacher = people["teacher"]
    platform.courses.add_lesson(teacher, course.id, "A")
    # a write that bypassed the course graph
    platform.repositories.lessons.save(Lesson(course.id, "Rogue", 0))
    with pytest.raises(InvariantViolation):
        platform.courses.list_lessons(teacher, course.id)
    with pytest.raises(InvariantViolation):
        platform.courses.add_lesson(teacher, course.id, "B")


def test_content_ordering_and_move(platform, people, course):
    teacher = people["teacher"]
    lesson = platform.courses.add_lesson(teacher, course.id, "A")
    x = platform.courses.add_content(teacher, lesson.id, "X")
    y = platform.courses.add_content(teacher, lesson.id, "Y", ContentType.PDF)
    assert (x.order_index, y.order_index) == (0, 1)

    contents = platform.courses.move_content(teacher, y.id, 0)
    assert [c.id for c in contents] == [y.id, x.id]


def test_non_owner_cannot_manage_content(platform, people, course):
    with pytest.raises(AuthorizationDenied) as exc:
        platform.courses.add_lesson(people["other_teacher"], course.id, "Intruder")
    assert exc.value.reason is DenyReason.NOT_OWNER
    assert platform.courses.ordered_lessons(course.id) == []


def test_admin_manages_any_course(platform, people, course):
    lesson = platform.courses.add_lesson(people["admin"], course.id, "By admin")
    assert lesson.order_index == 0


def test_course_teacher_must_hold_teacher_role(platform, people):
    with pytest.raises(ValidationError):
        platform.courses.create_course(people["admin"], "Bad", teacher_id=people["student"].user_id)
    with pytest.raises(AuthorizationDenied):
        platform.courses.create_course(people["student"], "Bad")


def test_admin_creates_course_for_teacher(platform, people):
    course = platform.courses.create_course(people["admin"], "Assigned", teacher_id=people["teacher"].user_id)
    assert course.teacher_id == people["teacher"].user_id
    assert platform.courses.list_teacher_courses(people["teacher"]) == [course]


def test_deactivation_keeps_lessons_and_hides_from_catalog(platform, people, course):
    teacher = people["teacher"]
    platform.courses.add_lesson(teacher, course.id, "A")
    assert [c.id for c in platform.courses.list_catalog()] == [course.id]

    platform.courses.set_course_active(teacher, course.id, False)
    assert platform.courses.list_catalog() == []
    assert len(platform.courses.list_lessons(teacher, course.id)) == 1


def test_remove_lesson_deletes_owned_items_but_keeps_submissions(platform, people, scenario):
    teacher, student = people["teacher"], people["student"]
    exercise = scenario["exercise"]
    submission = platform.grading.submit_work(student, ItemKind.EXERCISE, exercise.id, {"a": 1})
    exam = platform.assessments.create_exam(teacher, scenario["l2"].id, "Exam")
    question = platform.assessments.add_question(teacher, exam.id, "Q", 2)

    platform.courses.remove_lesson(teacher, scenario["l2"].id)

    repos = platform.repositories
    assert repos.exercises.find_by_id(exercise.id) is None
    assert repos.exams.find_by_id(exam.id) is None
    assert repos.questions.find_by_id(question.id) is None
    assert repos.submissions.find_by_id(submission.id) is not None


def test_unknown_lesson_is_not_found(platform, people):
    with pytest.raises(NotFound):
        platform.courses.list_contents(people["teacher"], "missing")


def test_enrolled_student_reads_lessons_outsider_does_not(platform, people, scenario):
    course_id = scenario["course"].id
    assert len(platform.courses.list_lessons(people["student"], course_id)) == 2
    with pytest.raises(AuthorizationDenied) as exc:
        platform.courses.list_lessons(people["other_student"], course_id)
    assert exc.value.reason is DenyReason.NOT_ENROLLED


def test_content_added_while_lesson_is_removed_is_not_orphaned(platform, people, course):
    teacher = people["teacher"]
    lesson = platform.courses.add_lesson(teacher, course.id, "Doomed")
    outcome = []

    def add():
        try:
            outcome.append(platform.courses.add_content(teacher, lesson.id, "Late"))
        except NotFound as e:
            outcome.append(e)

    with platform.concurrency_manager.lock(lesson_key(lesson.id)):
        writer = threading.Thread(target=add)
        writer.start()
        # re-entrant on this thread; the writer waits on the lesson lock
        platform.courses.remove_lesson(teacher, lesson.id)
    writer.join(5)

    assert len(outcome) == 1 and isinstance(outcome[0], NotFound)
    assert platform.repositories.contents.find_by_lesson(lesson.id) == []
