from __future__ import annotations

from fastapi.testclient import TestClient
import pytest

from quiz_proctor.core.exam_manager import ExamManager
from quiz_proctor.server.api_server import create_api_app


@pytest.fixture
def manager(resolver, engine, aggregator, scheduler) -> ExamManager:
    return ExamManager(resolver, engine, aggregator, scheduler, monitor_clock=scheduler.now)


@pytest.fixture
def client(manager) -> TestClient:
    return TestClient(create_api_app(manager))


def _open_registered(client: TestClient, quiz_id: str = "Q1") -> str:
    response = client.post("/sessions", json={"quiz_id": quiz_id})
    assert response.status_code == 201
    session_id = response.json()["session_id"]
    response = client.post(
        f"/sessions/{session_id}/register",
        json={"student_name": "Ana", "student_id": "S1", "student_email": "a@x.com"},
    )
    assert response.status_code == 200
    return session_id


def test_full_session_over_http(client, quiz_q1):
    session_id = _open_registered(client)

    started = client.post(f"/sessions/{session_id}/start").json()
    assert started["stage"] == "in-progress"
    assert started["time_left"] == 60
    question = started["current_question"]
    assert question["id"] == "q1"
    assert "<p>What is $2 + 2$?</p>" in question["text_html"]
    assert all("isCorrect" not in option for option in question["options"])

    answered = client.put(f"/sessions/{session_id}/answers/q1", json={"value": "A"}).json()
    assert answered["answers"] == {"q1": "A"}

    submitted = client.post(f"/sessions/{session_id}/submit").json()
    assert submitted["stage"] == "submitted"
    assert submitted["result"]["score"] == 10
    assert submitted["result"]["percentage"] == 100
    assert submitted["result"]["completed"] is True

    results = client.get("/quizzes/Q1/results").json()
    assert results["quiz_title"] == "Arithmetic"
    assert [row["student_id"] for row in results["results"]] == ["S1"]


def test_invalid_registration_returns_field_errors(client, quiz_q1):
    session_id = client.post("/sessions", json={"quiz_id": "Q1"}).json()["session_id"]
    client.post(f"/sessions/{session_id}/register", json={"student_name": "Ana"})

    response = client.post(f"/sessions/{session_id}/start")

    assert response.status_code == 422
    assert set(response.json()["detail"]) == {"student_id", "student_email"}


def test_unknown_quiz_reports_error_stage(client, remote, quiz_q1):
    body = client.post("/sessions", json={"quiz_id": "nope"}).json()

    assert body["stage"] == "error"
    assert body["error_code"] == "quiz-not-found"

    remote.add_quiz("nope", "Recovered", time_limit=1, questions=[])
    retried = client.post(f"/sessions/{body['session_id']}/retry").json()
    assert retried["stage"] == "registering"


def test_error_mapping(client, quiz_q1):
    assert client.get("/sessions/missing").status_code == 404

    session_id = _open_registered(client)
    assert client.post(f"/sessions/{session_id}/next").status_code == 409

    client.post(f"/sessions/{session_id}/start")
    assert client.put(f"/sessions/{session_id}/answers/q1", json={"value": "Z"}).status_code == 422
    assert client.post(f"/sessions/{session_id}/focus-events", json={"kind": "sideways"}).status_code == 422

    client.put(f"/sessions/{session_id}/answers/q1", json={"value": "A"})
    client.post(f"/sessions/{session_id}/submit")
    assert client.post(f"/sessions/{session_id}/quit").status_code == 409


def test_focus_events_drive_proctoring(client, scheduler, quiz_q1):
    session_id = _open_registered(client)
    client.post(f"/sessions/{session_id}/start")

    for _ in range(3):
        client.post(f"/sessions/{session_id}/focus-events", json={"kind": "hidden"})
        scheduler.advance(1)
        client.post(f"/sessions/{session_id}/focus-events", json={"kind": "visible"})

    body = client.get(f"/sessions/{session_id}").json()
    assert body["stage"] == "submitted"
    assert body["result"]["securityViolations"] == 3
    assert body["result"]["completed"] is False


def test_results_unavailable_everywhere(client, remote):
    remote.online = False

    assert client.get("/quizzes/Q9/results?order=recent").status_code == 503


def test_quit_and_delete_evict_sessions(client, manager, scheduler, quiz_q1):
    quitting = _open_registered(client)
    deleting = _open_registered(client)
    client.post(f"/sessions/{deleting}/start")
    assert manager.session_count == 2

    assert client.post(f"/sessions/{quitting}/quit").status_code == 200
    assert manager.session_count == 1
    assert client.get(f"/sessions/{quitting}").status_code == 404

    assert client.delete(f"/sessions/{deleting}").status_code == 204
    assert manager.session_count == 0
    assert scheduler.pending == 0
    assert client.get(f"/sessions/{deleting}").status_code == 404
    assert client.delete(f"/sessions/{deleting}").status_code == 404
