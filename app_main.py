"""Application entry point for the QuizProctor exam server."""

from __future__ import annotations

import socket

import uvicorn

from quiz_proctor.config import get_settings
from quiz_proctor.constants.about import APP_NAME, APP_VERSION
from quiz_proctor.core.exam_manager import ExamManager
from quiz_proctor.server.api_server import create_api_app
from quiz_proctor.utils.logging_config import configure_logging


def _determine_student_url(port: int) -> str:
    """Best-effort determination of the local IP for the student-facing URL."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            ip_address = sock.getsockname()[0]
    except OSError:
        ip_address = "127.0.0.1"
    return f"http://{ip_address}:{port}/"


def main() -> None:
    """Initialize logging, wire the exam services and serve the API until interrupted."""
    settings = get_settings()
    logger = configure_logging(settings.log_level)
    logger.info("Starting %s %s", APP_NAME, APP_VERSION)

    exam_manager = ExamManager.from_settings(settings)
    logger.info("Student API available at %s", _determine_student_url(settings.port))
    try:
        uvicorn.run(create_api_app(exam_manager), host=settings.host, port=settings.port, log_level="info")
    finally:
        exam_manager.shutdown()
        logger.info("%s stopped", APP_NAME)


if __name__ == "__main__":
    main()
