"""Key names used inside the local durable cache.

Questions for one quiz accumulated under more than one key over time. The
resolver tries ``QUESTION_KEY_TEMPLATES`` in order and writes every template
back once a question set is chosen.
"""

QUIZ_INDEX_KEY: str = "quizzes"
QUESTION_KEY_TEMPLATES: tuple[str, ...] = (
    "quiz_creator_questions_{quiz_id}",
    "quiz_questions_{quiz_id}",
)
RESULTS_KEY_TEMPLATE: str = "quiz_results_{quiz_id}"


def question_keys(quiz_id: str) -> list[str]:
    return [template.format(quiz_id=quiz_id) for template in QUESTION_KEY_TEMPLATES]


def results_key(quiz_id: str) -> str:
    return RESULTS_KEY_TEMPLATE.format(quiz_id=quiz_id)
