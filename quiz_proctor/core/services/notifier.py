"""Outbound submission confirmations."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Protocol

from quiz_proctor.constants.network_constants import NOTIFICATION_FUNCTION_NAME
from quiz_proctor.core.errors import TransientRemoteError
from quiz_proctor.core.models import format_timestamp, utc_now
from quiz_proctor.core.services.remote_store import RemoteStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SubmissionNotice:
    quiz_id: str
    quiz_title: str
    student_name: str
    student_id: str
    student_email: str

    def to_payload(self) -> dict[str, str]:
        return {
            "quizId": self.quiz_id,
            "quizTitle": self.quiz_title,
            "studentName": self.student_name,
            "studentId": self.student_id,
            "studentEmail": self.student_email,
        }


class Notifier(Protocol):
    def send_confirmation(self, notice: SubmissionNotice) -> bool: ...


class RemoteFunctionNotifier:
    """Records the notification, invokes the mail function, then marks it sent."""

    def __init__(self, remote: RemoteStore, function_name: str = NOTIFICATION_FUNCTION_NAME) -> None:
        self._remote = remote
        self._function_name = function_name

    def send_confirmation(self, notice: SubmissionNotice) -> bool:
        try:
            notification_id = self._remote.record_notification(
                {
                    "quiz_id": notice.quiz_id,
                    "quiz_title": notice.quiz_title,
                    "student_name": notice.student_name,
                    "student_id": notice.student_id,
                    "student_email": notice.student_email,
                }
            )
            response = self._remote.invoke_function(self._function_name, notice.to_payload())
            if not response.get("success"):
                logger.warning("Confirmation function reported failure for %s: %r", notice.student_email, response)
                return False
            self._remote.mark_notification_sent(notification_id, format_timestamp(utc_now()))
        except TransientRemoteError:
            logger.warning("Could not send confirmation to %s", notice.student_email, exc_info=True)
            return False
        logger.info("Confirmation sent to %s for quiz %s", notice.student_email, notice.quiz_id)
        return True
