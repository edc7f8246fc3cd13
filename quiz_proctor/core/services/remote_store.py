"""Client for the remote quiz store (a PostgREST / Supabase backend).

Every failure mode (transport error, non-2xx status, undecodable body, store
not configured) surfaces as ``TransientRemoteError`` so that callers can treat
it exactly like missing data and fall through to the next source.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol
from uuid import uuid4

import requests

from quiz_proctor.constants.network_constants import DEFAULT_REMOTE_TIMEOUT_SECONDS
from quiz_proctor.core.errors import TransientRemoteError

logger = logging.getLogger(__name__)

_ATTEMPT_COLUMNS = (
    "id,quiz_id,student_name,student_id,student_email,score,total_points,"
    "submitted_at,security_violations,completed"
)


class RemoteStore(Protocol):
    def fetch_quiz(self, quiz_id: str) -> dict[str, Any] | None: ...

    def fetch_questions(self, quiz_id: str) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]: ...

    def find_attempt(self, quiz_id: str, student_id: str) -> dict[str, Any] | None: ...

    def insert_attempt(self, row: dict[str, Any]) -> str: ...

    def update_attempt(self, attempt_id: str, row: dict[str, Any]) -> None: ...

    def replace_answers(self, attempt_id: str, rows: list[dict[str, Any]]) -> None: ...

    def list_attempts(self, quiz_id: str) -> list[dict[str, Any]]: ...

    def record_notification(self, row: dict[str, Any]) -> str: ...

    def mark_notification_sent(self, notification_id: str, sent_at: str) -> None: ...

    def invoke_function(self, name: str, body: dict[str, Any]) -> dict[str, Any]: ...


class PostgrestRemoteStore:
    """``RemoteStore`` speaking the PostgREST dialect over ``requests``."""

    def __init__(
        self,
        base_url: str | None,
        api_key: str | None = None,
        timeout: float = DEFAULT_REMOTE_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = (base_url or "").rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        if api_key:
            self._session.headers.update({"apikey": api_key, "Authorization": f"Bearer {api_key}"})

    @property
    def configured(self) -> bool:
        return bool(self._base_url)

    # --- Quiz content ---

    def fetch_quiz(self, quiz_id: str) -> dict[str, Any] | None:
        rows = self._select("quizzes", {"id": f"eq.{quiz_id}", "select": "id,title,description,time_limit,created_at"})
        return rows[0] if rows else None

    def fetch_questions(self, quiz_id: str) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        questions = self._select(
            "questions",
            {"quiz_id": f"eq.{quiz_id}", "select": "id,text,type,points,required,order_number", "order": "order_number"},
        )
        if not questions:
            return [], []
        question_ids = ",".join(str(row["id"]) for row in questions)
        options = self._select(
            "options",
            {"question_id": f"in.({question_ids})", "select": "id,question_id,text,is_correct,order_number", "order": "order_number"},
        )
        return questions, options

    # --- Attempts ---

    def find_attempt(self, quiz_id: str, student_id: str) -> dict[str, Any] | None:
        rows = self._select(
            "quiz_attempts",
            {"quiz_id": f"eq.{quiz_id}", "student_id": f"eq.{student_id}", "select": "id", "limit": "1"},
        )
        return rows[0] if rows else None

    def insert_attempt(self, row: dict[str, Any]) -> str:
        payload = {"id": str(uuid4()), **row}
        created = self._request("POST", "/rest/v1/quiz_attempts", json=payload, prefer="return=representation")
        if isinstance(created, list) and created:
            return str(created[0].get("id", payload["id"]))
        return payload["id"]

    def update_attempt(self, attempt_id: str, row: dict[str, Any]) -> None:
        self._request("PATCH", "/rest/v1/quiz_attempts", params={"id": f"eq.{attempt_id}"}, json=row)

    def replace_answers(self, attempt_id: str, rows: list[dict[str, Any]]) -> None:
        self._request("DELETE", "/rest/v1/quiz_answers", params={"attempt_id": f"eq.{attempt_id}"})
        if rows:
            payload = [{"id": str(uuid4()), "attempt_id": attempt_id, **row} for row in rows]
            self._request("POST", "/rest/v1/quiz_answers", json=payload)

    def list_attempts(self, quiz_id: str) -> list[dict[str, Any]]:
        return self._select("quiz_attempts", {"quiz_id": f"eq.{quiz_id}", "select": _ATTEMPT_COLUMNS, "order": "student_id"})

    # --- Notifications ---

    def record_notification(self, row: dict[str, Any]) -> str:
        payload = {"id": str(uuid4()), **row}
        self._request("POST", "/rest/v1/email_notifications", json=payload)
        return payload["id"]

    def mark_notification_sent(self, notification_id: str, sent_at: str) -> None:
        self._request(
            "PATCH",
            "/rest/v1/email_notifications",
            params={"id": f"eq.{notification_id}"},
            json={"email_sent": True, "email_sent_at": sent_at},
        )

    def invoke_function(self, name: str, body: dict[str, Any]) -> dict[str, Any]:
        response = self._request("POST", f"/functions/v1/{name}", json=body)
        return response if isinstance(response, dict) else {}

    # --- HTTP plumbing ---

    def _select(self, table: str, params: dict[str, str]) -> list[dict[str, Any]]:
        rows = self._request("GET", f"/rest/v1/{table}", params=params)
        if not isinstance(rows, list):
            raise TransientRemoteError(f"Unexpected response shape from {table}.")
        return [row for row in rows if isinstance(row, dict)]

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        if not self.configured:
            raise TransientRemoteError("Remote store is not configured.")
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = self._session.request(
                method,
                f"{self._base_url}{path}",
                params=params,
                json=json,
                headers=headers,
                timeout=self._timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise TransientRemoteError(f"{method} {path} failed: {exc}") from exc
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise TransientRemoteError(f"{method} {path} returned a non-JSON body.") from exc
