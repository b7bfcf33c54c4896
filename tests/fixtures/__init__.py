"""Shared testing helpers for the quizcraft test suite."""

from .markup import (  # noqa: F401
    EXAMPLE,
    question_block,
    question_lines,
    quiz_text,
    sequential_ids,
)

__all__ = [
    "EXAMPLE",
    "question_block",
    "question_lines",
    "quiz_text",
    "sequential_ids",
]
