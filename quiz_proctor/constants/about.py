"""Static metadata describing QuizProctor."""

APP_NAME = "QuizProctor"
APP_VERSION = "0.1.0"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "QuizProctor runs timed, lightly proctored quiz sessions for browser clients. "
    "It resolves quiz content from the remote store or the local cache, scores "
    "submissions and keeps a durable local copy of every result."
)
