import pytest

from lyceum.core.enums import ActivityType, ItemKind
from lyceum.core.exceptions import AuthorizationDenied


def test_events_are_logged_for_the_student(platform, people, scenario):
    student = people["student"]
    platform.progress.record_content_viewed(student, scenario["contents"][0].id)
    submission = platform.grading.submit_work(student, ItemKind.EXERCISE, scenario["exercise"].id, {})
    platform.grading.grade_submission(people["teacher"], submission.id, 9, submission.version)

    types = [entry.activity_type for entry in platform.activity.list_activity(student)]
    assert ActivityType.COURSE_ENROLL in types
    assert ActivityType.CONTENT_VIEW in types
    assert ActivityType.EXERCISE_SUBMIT in types
    assert ActivityType.SUBMISSION_GRADED in types

    graded = platform.activity.list_activity(student, activity_type=ActivityType.SUBMISSION_GRADED)
    assert graded[0].entity_id == submission.id
    assert graded[0].metadata["score"] == 9


def test_activity_is_private(platform, people, scenario):
    with pytest.raises(AuthorizationDenied):
        platform.activity.list_activity(people["teacher"], people["student"].user_id)
    assert platform.activity.list_activity(people["admin"], people["student"].user_id)


def test_session_logging(platform, people):
    entry = platform.activity.log_session(people["student"], ActivityType.LOGIN)
    assert entry.user_id == people["student"].user_id
    assert entry.activity_type is ActivityType.LOGIN
    assert platform.activity.list_activity(people["student"], activity_type=ActivityType.LOGIN) == [entry]
