"""FastAPI server exposing exam sessions to the student's browser."""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel

from quiz_proctor.constants.about import APP_NAME, APP_VERSION
from quiz_proctor.core.errors import TransientRemoteError, ValidationError
from quiz_proctor.core.exam_manager import ExamManager
from quiz_proctor.core.markdown_math_renderer import renderer
from quiz_proctor.core.models import format_timestamp
from quiz_proctor.core.services.exam_session import SessionSnapshot
from quiz_proctor.core.services.proctoring_monitor import FocusSignal
from quiz_proctor.core.services.results_aggregator import ResultOrder


class CreateSessionPayload(BaseModel):
    """Payload schema for opening a session on a quiz."""

    quiz_id: str


class RegistrationPayload(BaseModel):
    """Payload schema for the student identity form."""

    student_name: str = ""
    student_id: str = ""
    student_email: str = ""


class AnswerPayload(BaseModel):
    """Payload schema for an answer change; ``None`` clears the answer."""

    value: str | None = None


class FocusEventPayload(BaseModel):
    """Payload schema for visibility/focus/fullscreen transitions."""

    kind: FocusSignal


def _get_exam_manager_dependency(exam_manager: ExamManager):
    def dependency() -> ExamManager:
        return exam_manager

    return dependency


def _run(action: Callable[[], SessionSnapshot]) -> dict[str, object]:
    try:
        snapshot = action()
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Unknown session {exc.args[0]}") from exc
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except RuntimeError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return snapshot_payload(snapshot)


def snapshot_payload(snapshot: SessionSnapshot) -> dict[str, object]:
    question = snapshot.current_question
    return {
        "stage": snapshot.stage.value,
        "quiz_id": snapshot.quiz_id,
        "quiz_title": snapshot.quiz_title,
        "time_left": snapshot.time_left,
        "current_question_index": snapshot.current_question_index,
        "current_question": renderer.render_question(question) if question is not None else None,
        "question_count": snapshot.question_count,
        "answers": snapshot.answers,
        "unanswered_count": snapshot.unanswered_count,
        "progress_percent": snapshot.progress_percent,
        "violation_count": snapshot.violation_count,
        "degraded": snapshot.degraded,
        "confirmation_pending": snapshot.confirmation_pending,
        "error": snapshot.error,
        "error_code": snapshot.error_code,
        "termination_reason": snapshot.termination_reason,
        "result": snapshot.result.to_dict() if snapshot.result is not None else None,
        "events": [
            {"kind": event.kind, "message": event.message, "count": event.count}
            for event in snapshot.events
        ],
    }


def create_api_app(exam_manager: ExamManager) -> FastAPI:
    """Create a FastAPI application wired to the provided exam manager."""
    app = FastAPI(title=f"{APP_NAME} API", version=APP_VERSION)
    manager_dep = _get_exam_manager_dependency(exam_manager)

    @app.post("/sessions", status_code=201)
    def create_session(
        payload: CreateSessionPayload,
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        session_id, snapshot = manager.create_session(payload.quiz_id.strip())
        return {"session_id": session_id, **snapshot_payload(snapshot)}

    @app.get("/sessions/{session_id}")
    def get_session(session_id: str, manager: ExamManager = Depends(manager_dep)) -> dict[str, object]:
        return _run(lambda: manager.snapshot(session_id))

    @app.post("/sessions/{session_id}/retry")
    def retry_session(session_id: str, manager: ExamManager = Depends(manager_dep)) -> dict[str, object]:
        return _run(lambda: manager.retry(session_id))

    @app.post("/sessions/{session_id}/register")
    def register_student(
        session_id: str,
        payload: RegistrationPayload,
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        return _run(
            lambda: manager.register(session_id, payload.student_name, payload.student_id, payload.student_email)
        )

    @app.post("/sessions/{session_id}/start")
    def start_session(session_id: str, manager: ExamManager = Depends(manager_dep)) -> dict[str, object]:
        return _run(lambda: manager.start(session_id))

    @app.put("/sessions/{session_id}/answers/{question_id}")
    def change_answer(
        session_id: str,
        question_id: str,
        payload: AnswerPayload,
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        return _run(lambda: manager.answer(session_id, question_id, payload.value))

    @app.post("/sessions/{session_id}/next")
    def next_question(session_id: str, manager: ExamManager = Depends(manager_dep)) -> dict[str, object]:
        return _run(lambda: manager.next_question(session_id))

    @app.post("/sessions/{session_id}/previous")
    def previous_question(session_id: str, manager: ExamManager = Depends(manager_dep)) -> dict[str, object]:
        return _run(lambda: manager.previous_question(session_id))

    @app.post("/sessions/{session_id}/focus-events")
    def report_focus_event(
        session_id: str,
        payload: FocusEventPayload,
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        return _run(lambda: manager.push_focus_signal(session_id, payload.kind))

    @app.post("/sessions/{session_id}/submit")
    def submit_session(session_id: str, manager: ExamManager = Depends(manager_dep)) -> dict[str, object]:
        return _run(lambda: manager.submit(session_id))

    @app.post("/sessions/{session_id}/quit")
    def quit_session(session_id: str, manager: ExamManager = Depends(manager_dep)) -> dict[str, object]:
        return _run(lambda: manager.quit(session_id))

    @app.delete("/sessions/{session_id}", status_code=204)
    def delete_session(session_id: str, manager: ExamManager = Depends(manager_dep)) -> None:
        try:
            manager.discard_session(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=f"Unknown session {session_id}") from exc

    @app.get("/quizzes/{quiz_id}/results")
    def get_results(
        quiz_id: str,
        order: ResultOrder = ResultOrder.REPORT,
        manager: ExamManager = Depends(manager_dep),
    ) -> dict[str, object]:
        try:
            report = manager.load_report(quiz_id, order)
        except TransientRemoteError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return {
            "quiz_id": report.quiz_id,
            "quiz_title": report.quiz_title,
            "degraded": report.degraded,
            "results": [
                {
                    "student_id": result.student_id,
                    "student_name": result.student_name,
                    "score": result.score,
                    "total_points": result.total_points,
                    "percentage": result.percentage,
                    "submitted_at": format_timestamp(result.submitted_at),
                    "security_violations": result.security_violations,
                    "completed": result.completed,
                }
                for result in report.results
            ],
        }

    return app

