import threading
from datetime import datetime, timedelta, timezone

import pytest

from lyceum.core.entities import Lesson
from lyceum.core.enums import DenyReason, EventType, ItemKind, SubmissionState
from lyceum.core.exceptions import AuthorizationDenied, ConflictStaleWrite, InvariantViolation, ValidationError
from lyceum.core.interfaces import EventHandler


class BrokenHandler(EventHandler):
    def can_handle(self, event_type):
        return True

    def handle_event(self, event):
        raise RuntimeError("subscriber is down")


@pytest.fixture
def exam(platform, people, scenario):
    teacher = people["teacher"]
    exam = platform.assessments.create_exam(teacher, scenario["l1"].id, "Final", passing_score=3)
    platform.assessments.add_question(teacher, exam.id, "2 + 2?", 3, correct_answer="4")
    platform.assessments.add_question(teacher, exam.id, "Capital of France?", 2, correct_answer="Paris")
    return platform.assessments.finalize_exam(teacher, exam.id)


@pytest.fixture
def submitted(platform, people, scenario):
    return platform.grading.submit_work(people["student"], ItemKind.EXERCISE, scenario["exercise"].id,
                                        {"answer": "first"})


def test_double_submit_keeps_one_record_with_second_payload(platform, people, exam):
    student = people["student"]
    first = platform.grading.submit_work(student, ItemKind.EXAM, exam.id, {"answers": {"q": "a"}})
    second = platform.grading.submit_work(student, ItemKind.EXAM, exam.id, {"answers": {"q": "b"}})

    rows = platform.repositories.submissions.find_by_item(ItemKind.EXAM, exam.id)
    assert len(rows) == 1
    assert rows[0].id == first.id == second.id
    assert rows[0].payload == {"answers": {"q": "b"}}
    assert rows[0].version == 2


@pytest.mark.parametrize("score", [-1, 10.5, 11, True, "8", float("nan")])
def test_out_of_range_score_leaves_state_unchanged(platform, people, submitted, score):
    with pytest.raises(ValidationError) as exc:
        platform.grading.grade_submission(people["teacher"], submitted.id, score, submitted.version)
    assert exc.value.field == "score"

    stored = platform.repositories.submissions.find_by_id(submitted.id)
    assert stored.state is SubmissionState.SUBMITTED
    assert stored.score is None
    assert stored.version == submitted.version


@pytest.mark.parametrize("score", [0, 10, 7.5])
def test_boundary_scores_are_accepted(platform, people, submitted, score):
    graded = platform.grading.grade_submission(people["teacher"], submitted.id, score, submitted.version)
    assert graded.state is SubmissionState.GRADED
    assert graded.score == score


def test_non_owner_teacher_cannot_grade(platform, people, submitted):
    with pytest.raises(AuthorizationDenied) as exc:
        platform.grading.grade_submission(people["other_teacher"], submitted.id, 8, submitted.version)
    assert exc.value.reason is DenyReason.NOT_OWNER
    stored = platform.repositories.submissions.find_by_id(submitted.id)
    assert stored.state is SubmissionState.SUBMITTED
    assert stored.score is None


def test_grade_records_grader_and_feedback(platform, people, submitted):
    graded = platform.grading.grade_submission(people["teacher"], submitted.id, 8, submitted.version, "Good")
    assert graded.graded_by == people["teacher"].user_id
    assert graded.feedback == "Good"
    assert graded.passed is None
    assert graded.version == submitted.version + 1


def test_graded_is_terminal(platform, people, submitted):
    graded = platform.grading.grade_submission(people["teacher"], submitted.id, 8, submitted.version)
    with pytest.raises(ValidationError) as exc:
        platform.grading.grade_submission(people["teacher"], submitted.id, 9, graded.version)
    assert exc.value.field == "state"


def test_resubmission_resets_grade(platform, people, scenario, submitted):
    platform.grading.grade_submission(people["teacher"], submitted.id, 8, submitted.version)
    again = platform.grading.submit_work(people["student"], ItemKind.EXERCISE, scenario["exercise"].id,
                                         {"answer": "second"})
    assert again.id == submitted.id
    assert again.state is SubmissionState.SUBMITTED
    assert again.score is None
    assert again.graded_by is None
    assert again.payload == {"answer": "second"}


def test_grade_against_overwritten_content_is_stale(platform, people, scenario, submitted):
    seen_version = submitted.version
    platform.grading.submit_work(people["student"], ItemKind.EXERCISE, scenario["exercise"].id,
                                 {"answer": "newer"})
    with pytest.raises(ConflictStaleWrite) as exc:
        platform.grading.grade_submission(people["teacher"], submitted.id, 8, seen_version)
    assert exc.value.expected_version == seen_version
    assert exc.value.actual_version == seen_version + 1
    assert platform.repositories.submissions.find_by_id(submitted.id).score is None


def test_concurrent_graders_one_wins(platform, people, submitted):
    graders = [people["teacher"], people["admin"]]
    barrier = threading.Barrier(len(graders))
    outcomes = []

    def grade(actor, score):
        barrier.wait()
        try:
            platform.grading.grade_submission(actor, submitted.id, score, submitted.version)
            outcomes.append("ok")
        except ConflictStaleWrite:
            outcomes.append("conflict")

    threads = [threading.Thread(target=grade, args=(actor, score)) for actor, score in zip(graders, (7, 9))]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["conflict", "ok"]
    stored = platform.repositories.submissions.find_by_id(submitted.id)
    assert stored.state is SubmissionState.GRADED
    assert stored.version == submitted.version + 1


def test_submission_requires_enrollment(platform, people, scenario):
    with pytest.raises(AuthorizationDenied) as exc:
        platform.grading.submit_work(people["other_student"], ItemKind.EXERCISE, scenario["exercise"].id, {})
    assert exc.value.reason is DenyReason.NOT_ENROLLED


def test_inactive_course_rejects_submissions(platform, people, scenario):
    platform.courses.set_course_active(people["teacher"], scenario["course"].id, False)
    with pytest.raises(AuthorizationDenied) as exc:
        platform.grading.submit_work(people["student"], ItemKind.EXERCISE, scenario["exercise"].id, {})
    assert exc.value.reason is DenyReason.COURSE_INACTIVE


def test_payload_must_be_an_object(platform, people, scenario):
    with pytest.raises(ValidationError):
        platform.grading.submit_work(people["student"], ItemKind.EXERCISE, scenario["exercise"].id, "text")


def test_draft_exam_rejects_submissions(platform, people, scenario):
    draft = platform.assessments.create_exam(people["teacher"], scenario["l2"].id, "Draft")
    with pytest.raises(ValidationError):
        platform.grading.submit_work(people["student"], ItemKind.EXAM, draft.id, {})


def test_auto_graded_exam(platform, people, scenario):
    teacher = people["teacher"]
    exam = platform.assessments.create_exam(teacher, scenario["l2"].id, "Quiz", passing_score=3, auto_grade=True)
    q1 = platform.assessments.add_question(teacher, exam.id, "2 + 2?", 3, correct_answer="4")
    q2 = platform.assessments.add_question(teacher, exam.id, "Capital of France?", 2, correct_answer="Paris")
    platform.assessments.finalize_exam(teacher, exam.id)

    submission = platform.grading.submit_work(people["student"], ItemKind.EXAM, exam.id,
                                              {"answers": {q1.id: " 4 ", q2.id: "Rome"}})
    assert submission.state is SubmissionState.GRADED
    assert submission.score == 3
    assert submission.passed is True
    assert submission.graded_by is None


def test_late_assignment_is_flagged(platform, people, scenario):
    past = datetime.now(timezone.utc) - timedelta(days=1)
    assignment = platform.assessments.create_assignment(people["teacher"], scenario["l1"].id, "Essay", 20,
                                                        due_date=past)
    submission = platform.grading.submit_work(people["student"], ItemKind.ASSIGNMENT, assignment.id,
                                              {"text": "..."})
    assert submission.late is True


def test_submission_state(platform, people, scenario, submitted):
    other = people["other_student"].user_id
    exercise_id = scenario["exercise"].id
    assert platform.grading.submission_state(other, ItemKind.EXERCISE, exercise_id) is SubmissionState.NOT_STARTED
    assert platform.grading.submission_state(people["student"].user_id, ItemKind.EXERCISE, exercise_id) \
        is SubmissionState.SUBMITTED


def test_submission_visibility(platform, people, submitted):
    assert platform.grading.get_submission(people["student"], submitted.id).id == submitted.id
    assert platform.grading.get_submission(people["teacher"], submitted.id).id == submitted.id
    with pytest.raises(AuthorizationDenied):
        platform.grading.get_submission(people["other_student"], submitted.id)


def test_corrupt_lesson_order_blocks_grade_without_writing(platform, people, scenario, submitted):
    # a write that bypassed the course graph
    platform.repositories.lessons.save(Lesson(scenario["course"].id, "Rogue", 0))
    with pytest.raises(InvariantViolation):
        platform.grading.grade_submission(people["teacher"], submitted.id, 8, submitted.version)

    stored = platform.repositories.submissions.find_by_id(submitted.id)
    assert stored.state is SubmissionState.SUBMITTED
    assert stored.version == submitted.version
    assert platform.event_bus.get_events(EventType.SUBMISSION_GRADED) == []


def test_failing_subscriber_does_not_fail_a_stored_grade(platform, people, submitted):
    platform.event_bus.subscribe("broken", BrokenHandler())
    graded = platform.grading.grade_submission(people["teacher"], submitted.id, 8, submitted.version)

    stored = platform.repositories.submissions.find_by_id(submitted.id)
    assert stored.state is SubmissionState.GRADED
    assert stored.version == graded.version


def test_exam_outside_window_rejects_submissions(platform, people, scenario):
    teacher = people["teacher"]
    now = datetime.now(timezone.utc)
    exam = platform.assessments.create_exam(teacher, scenario["l2"].id, "Timed",
                                            available_from=now + timedelta(days=1),
                                            available_to=now + timedelta(days=2))
    platform.assessments.add_question(teacher, exam.id, "Q", 1)
    platform.assessments.finalize_exam(teacher, exam.id)

    with pytest.raises(ValidationError) as exc:
        platform.grading.submit_work(people["student"], ItemKind.EXAM, exam.id, {})
    assert exc.value.field == "exam"
    assert platform.repositories.submissions.find_by_item(ItemKind.EXAM, exam.id) == []


def test_closed_exam_rejects_submissions(platform, people, scenario):
    teacher = people["teacher"]
    now = datetime.now(timezone.utc)
    exam = platform.assessments.create_exam(teacher, scenario["l2"].id, "Closed",
                                            available_from=now - timedelta(days=2),
                                            available_to=now - timedelta(days=1))
    platform.assessments.add_question(teacher, exam.id, "Q", 1)
    platform.assessments.finalize_exam(teacher, exam.id)
    with pytest.raises(ValidationError):
        platform.grading.submit_work(people["student"], ItemKind.EXAM, exam.id, {})


def test_open_window_accepts_submissions(platform, people, scenario):
    teacher = people["teacher"]
    now = datetime.now(timezone.utc)
    exam = platform.assessments.create_exam(teacher, scenario["l2"].id, "Open",
                                            available_from=now - timedelta(hours=1),
                                            available_to=now + timedelta(hours=1))
    platform.assessments.add_question(teacher, exam.id, "Q", 1)
    platform.assessments.finalize_exam(teacher, exam.id)
    submission = platform.grading.submit_work(people["student"], ItemKind.EXAM, exam.id, {})
    assert submission.state is SubmissionState.SUBMITTED


def test_find_my_submission(platform, people, scenario):
    student = people["student"]
    exercise_id = scenario["exercise"].id
    assert platform.grading.find_my_submission(student, ItemKind.EXERCISE, exercise_id) is None

    submission = platform.grading.submit_work(student, ItemKind.EXERCISE, exercise_id, {"answer": 1})
    assert platform.grading.find_my_submission(student, ItemKind.EXERCISE, exercise_id).id == submission.id
    with pytest.raises(AuthorizationDenied) as exc:
        platform.grading.find_my_submission(people["other_student"], ItemKind.EXERCISE, exercise_id)
    assert exc.value.reason is DenyReason.NOT_ENROLLED
