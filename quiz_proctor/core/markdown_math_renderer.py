"""Markdown + LaTeX rendering of question text for browser snapshots.

Question text is authored as markdown with ``$...$`` math. The server turns it
into an HTML fragment and leaves math typesetting to MathJax in the browser;
raw HTML in authored text is not passed through.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock

from markdown_it import MarkdownIt

from quiz_proctor.core.models import Question


@dataclass(slots=True)
class MarkdownMathRenderer:
    """Converts markdown-with-math into HTML fragments."""

    enable_html: bool = False
    _markdown: MarkdownIt = field(init=False, repr=False)
    _lock: Lock = field(init=False, repr=False, default_factory=Lock)

    def __post_init__(self) -> None:
        self._markdown = (
            MarkdownIt("commonmark", {"html": self.enable_html})
            .enable("table")
            .enable("strikethrough")
        )

    def render_fragment(self, markdown_text: str) -> str:
        sanitized = (markdown_text or "").strip()
        if not sanitized:
            return "<p><em>No content provided.</em></p>"
        with self._lock:
            return self._markdown.render(sanitized)

    def render_inline(self, markdown_text: str) -> str:
        """Render a short label such as an option text without a wrapping paragraph."""
        with self._lock:
            return self._markdown.renderInline((markdown_text or "").strip())

    def render_question(self, question: Question) -> dict[str, object]:
        return {
            "id": question.id,
            "type": question.type.value,
            "text_html": self.render_fragment(question.text),
            "points": question.points,
            "required": question.required,
            # isCorrect never leaves the server while a session is running
            "options": [
                {"id": option.id, "text_html": self.render_inline(option.text)}
                for option in question.options
            ],
        }


renderer = MarkdownMathRenderer()
