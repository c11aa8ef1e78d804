import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def client(platform, people):
    return TestClient(platform.app)


def as_user(username):
    return {"X-User": username}


def test_health_and_root(client):
    assert client.get("/health").json()["status"] == "healthy"
    assert client.get("/").status_code == 200


def test_anonymous_catalog(client, course):
    response = client.get("/catalog")
    assert response.status_code == 200
    assert [c["title"] for c in response.json()] == ["Course C"]


def test_anonymous_mutation_is_forbidden(client):
    response = client.post("/courses", json={"title": "Nope"})
    assert response.status_code == 403
    assert response.json()["error"] == "authorization_denied"
    assert response.json()["details"]["reason"] == "unauthenticated"


def test_teacher_builds_course(client):
    response = client.post("/courses", json={"title": "Algebra"}, headers=as_user("t1"))
    assert response.status_code == 201
    course_id = response.json()["id"]

    for title in ("One", "Two"):
        assert client.post(f"/courses/{course_id}/lessons", json={"title": title},
                           headers=as_user("t1")).status_code == 201
    lessons = client.get(f"/courses/{course_id}/lessons", headers=as_user("t1")).json()
    assert [(l["title"], l["order_index"]) for l in lessons] == [("One", 0), ("Two", 1)]

    denied = client.post(f"/courses/{course_id}/lessons", json={"title": "Three"}, headers=as_user("t2"))
    assert denied.status_code == 403
    assert denied.json()["details"]["reason"] == "not_owner"


def test_not_found_and_validation(client, scenario):
    assert client.get("/courses/missing", headers=as_user("t1")).status_code == 404
    response = client.post(f"/lessons/{scenario['l2'].id}/exercise",
                           json={"title": "Again", "max_score": 5}, headers=as_user("t1"))
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


def test_submit_and_grade_flow(client, scenario):
    exercise_id = scenario["exercise"].id
    submitted = client.post("/submissions", json={"kind": "exercise", "item_id": exercise_id,
                                                  "payload": {"answer": 42}}, headers=as_user("s1"))
    assert submitted.status_code == 200
    submission = submitted.json()
    assert submission["state"] == "submitted"

    too_high = client.post(f"/submissions/{submission['id']}/grade",
                           json={"score": 11, "expected_version": submission["version"]},
                           headers=as_user("t1"))
    assert too_high.status_code == 400

    graded = client.post(f"/submissions/{submission['id']}/grade",
                         json={"score": 8, "expected_version": submission["version"]},
                         headers=as_user("t1"))
    assert graded.status_code == 200
    assert graded.json()["state"] == "graded"
    assert graded.json()["score"] == 8

    stale = client.post(f"/submissions/{submission['id']}/grade",
                        json={"score": 9, "expected_version": submission["version"]},
                        headers=as_user("t1"))
    assert stale.status_code == 409
    assert stale.json()["error"] == "conflict_stale_write"

    progress = client.get(f"/courses/{scenario['course'].id}/progress", headers=as_user("s1")).json()
    assert progress["completion_percentage"] == 50


def test_other_student_cannot_read_submission(client, scenario):
    submission = client.post("/submissions", json={"kind": "exercise", "item_id": scenario["exercise"].id},
                             headers=as_user("s1")).json()
    assert client.get(f"/submissions/{submission['id']}", headers=as_user("s2")).status_code == 403
    assert client.get(f"/submissions/{submission['id']}", headers=as_user("s1")).status_code == 200


def test_authorize_endpoint(client, scenario):
    course_id = scenario["course"].id
    allowed = client.post("/authorize", json={"action": "submit_work", "course_id": course_id},
                          headers=as_user("s1")).json()
    assert allowed == {"allowed": True, "reason": None}

    denied = client.post("/authorize", json={"action": "submit_work", "course_id": course_id},
                         headers=as_user("s2")).json()
    assert denied == {"allowed": False, "reason": "not_enrolled"}


def test_questions_hide_answers_from_students(client, scenario):
    exam = client.post(f"/lessons/{scenario['l1'].id}/exam", json={"title": "Exam"},
                       headers=as_user("t1")).json()
    client.post(f"/exams/{exam['id']}/questions", json={"text": "2+2", "points": 1, "correct_answer": "4"},
                headers=as_user("t1"))

    assert client.get(f"/exams/{exam['id']}/questions", headers=as_user("t1")).json()[0]["correct_answer"] == "4"
    assert client.get(f"/exams/{exam['id']}/questions", headers=as_user("s1")).json()[0]["correct_answer"] is None


def test_my_submission_endpoint(client, scenario):
    path = f"/items/exercise/{scenario['exercise'].id}/submission/me"
    before = client.get(path, headers=as_user("s1"))
    assert before.status_code == 200
    assert before.json() is None

    submission = client.post("/submissions", json={"kind": "exercise", "item_id": scenario["exercise"].id,
                                                   "payload": {"answer": 1}}, headers=as_user("s1")).json()
    assert client.get(path, headers=as_user("s1")).json()["id"] == submission["id"]
    assert client.get(path, headers=as_user("s2")).status_code == 403
    assert client.get("/items/exercise/missing/submission/me", headers=as_user("s1")).status_code == 404


def test_sequential_course_and_exam_window(client, people):
    course = client.post("/courses", json={"title": "Ordered", "sequential": True}, headers=as_user("t1")).json()
    assert course["sequential"] is True
    first = client.post(f"/courses/{course['id']}/lessons", json={"title": "One"}, headers=as_user("t1")).json()
    second = client.post(f"/courses/{course['id']}/lessons", json={"title": "Two"}, headers=as_user("t1")).json()
    client.post(f"/lessons/{first['id']}/contents", json={"title": "Read"}, headers=as_user("t1"))
    client.post(f"/courses/{course['id']}/enrollments", json={}, headers=as_user("s1"))

    locked = client.get(f"/lessons/{second['id']}/contents", headers=as_user("s1"))
    assert locked.status_code == 403
    assert locked.json()["details"]["reason"] == "lesson_locked"
    decision = client.post("/authorize", json={"action": "view_student_work", "lesson_id": second["id"]},
                           headers=as_user("s1")).json()
    assert decision == {"allowed": False, "reason": "lesson_locked"}

    exam = client.post(f"/lessons/{first['id']}/exam",
                       json={"title": "Timed", "available_from": "2030-01-10T09:00:00Z",
                             "available_to": "2030-01-10T11:00:00Z"},
                       headers=as_user("t1")).json()
    assert exam["available_from"].startswith("2030-01-10T09:00:00")
    backwards = client.post(f"/lessons/{second['id']}/exam",
                            json={"title": "Backwards", "available_from": "2030-01-10T09:00:00Z",
                                  "available_to": "2030-01-10T08:00:00Z"},
                            headers=as_user("t1"))
    assert backwards.status_code == 400
