"""Value types shared by the parser, session engine and share codec.

Every type here is an immutable dataclass. ``Session`` is the unit that gets
persisted, exported and shared; its ``to_dict``/``from_dict`` pair defines the
canonical JSON document for all three.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, MutableMapping, Optional

__all__ = [
    "ALL_TAGS",
    "LETTERS",
    "SESSION_VERSION",
    "SessionError",
    "Route",
    "Mode",
    "FeedbackLevel",
    "Question",
    "Diagnostic",
    "QuizMeta",
    "Quiz",
    "Answer",
    "Settings",
    "Session",
]

LETTERS: tuple[str, ...] = ("A", "B", "C", "D")
SESSION_VERSION = 1
ALL_TAGS = "All"


class SessionError(RuntimeError):
    """Raised when a session document cannot be deserialized."""


class Route(str, Enum):
    IMPORT = "import"
    QUIZ = "quiz"
    RESULTS = "results"


class Mode(str, Enum):
    STUDY = "study"
    TEST = "test"


class FeedbackLevel(str, Enum):
    """How much rationale text is revealed once feedback is visible."""

    ALL = "all"
    CORRECT_ONLY = "correct_only"


def _letter_map(values: Mapping[str, str]) -> Mapping[str, str]:
    return MappingProxyType({letter: values[letter] for letter in LETTERS})


@dataclass(frozen=True)
class Question:
    """A validated multiple-choice question produced by the parser."""

    id: str
    prompt: str
    choices: Mapping[str, str]
    answer: str
    rationale: str
    rationales: Mapping[str, str]
    tags: tuple[str, ...] = ()
    evidence: Optional[str] = None

    def to_dict(self) -> MutableMapping[str, Any]:
        payload: MutableMapping[str, Any] = {
            "id": self.id,
            "q": self.prompt,
            "choices": dict(self.choices),
            "ans": self.answer,
            "expCorrect": self.rationale,
            "expEach": dict(self.rationales),
            "tags": list(self.tags),
        }
        if self.evidence is not None:
            payload["evid"] = self.evidence
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Question":
        choices = _require_mapping(payload.get("choices"), "choices")
        rationales = _require_mapping(payload.get("expEach"), "expEach")
        answer = str(payload.get("ans", ""))
        if answer not in LETTERS:
            raise SessionError(
                f"Question answer must be one of A-D: {answer!r}"
            )
        try:
            choice_map = _letter_map({k: str(v) for k, v in choices.items()})
            rationale_map = _letter_map(
                {k: str(v) for k, v in rationales.items()}
            )
        except KeyError as exc:
            raise SessionError(f"Question is missing letter {exc}") from exc
        evidence = payload.get("evid")
        return cls(
            id=_require_str(payload.get("id"), "id"),
            prompt=_require_str(payload.get("q"), "q"),
            choices=choice_map,
            answer=answer,
            rationale=_require_str(payload.get("expCorrect"), "expCorrect"),
            rationales=rationale_map,
            tags=tuple(
                str(tag) for tag in _require_list(payload.get("tags"), "tags")
            ),
            evidence=str(evidence) if evidence else None,
        )

    def __hash__(self) -> int:
        return hash(self.id)


@dataclass(frozen=True)
class Diagnostic:
    """A line-addressed markup defect; ``q_index`` is the 1-based block."""

    q_index: int
    line: int
    message: str

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "qIndex": self.q_index,
            "line": self.line,
            "message": self.message,
        }


@dataclass(frozen=True)
class QuizMeta:
    source: str
    created_at: str


@dataclass(frozen=True)
class Quiz:
    questions: tuple[Question, ...]
    meta: QuizMeta

    def __len__(self) -> int:
        return len(self.questions)

    def index_of(self, question_id: str) -> int:
        for idx, question in enumerate(self.questions):
            if question.id == question_id:
                return idx
        return -1

    def get(self, question_id: str) -> Optional[Question]:
        idx = self.index_of(question_id)
        return self.questions[idx] if idx >= 0 else None

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "questions": [q.to_dict() for q in self.questions],
            "meta": {
                "source": self.meta.source,
                "createdAt": self.meta.created_at,
            },
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Quiz":
        raw_questions = payload.get("questions")
        if not isinstance(raw_questions, list):
            raise SessionError("Quiz questions must be a list.")
        meta = _require_mapping(payload.get("meta") or {}, "meta")
        return cls(
            questions=tuple(
                Question.from_dict(_require_mapping(item, "question"))
                for item in raw_questions
            ),
            meta=QuizMeta(
                source=str(meta.get("source", "")),
                created_at=str(meta.get("createdAt", "")),
            ),
        )


@dataclass(frozen=True)
class Answer:
    pick: str
    correct: bool
    at: str

    def to_dict(self) -> MutableMapping[str, Any]:
        return {"pick": self.pick, "correct": self.correct, "at": self.at}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Answer":
        pick = str(payload.get("pick", ""))
        if pick not in LETTERS:
            raise SessionError(f"Answer pick must be one of A-D: {pick!r}")
        return cls(
            pick=pick,
            correct=bool(payload.get("correct")),
            at=str(payload.get("at", "")),
        )


@dataclass(frozen=True)
class Settings:
    mode: Mode = Mode.STUDY
    timer_on: bool = True
    shuffle_questions: bool = False
    shuffle_answers: bool = False
    feedback: FeedbackLevel = FeedbackLevel.ALL
    tag_filter: str = ALL_TAGS

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "mode": self.mode.value,
            "timerOn": self.timer_on,
            "shuffleQuestions": self.shuffle_questions,
            "shuffleAnswers": self.shuffle_answers,
            "showAllOptionFeedback": self.feedback is FeedbackLevel.ALL,
            "tagFilter": self.tag_filter,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Settings":
        try:
            mode = Mode(payload.get("mode", Mode.STUDY.value))
        except ValueError as exc:
            raise SessionError(str(exc)) from exc
        show_all = payload.get("showAllOptionFeedback", True)
        return cls(
            mode=mode,
            timer_on=bool(payload.get("timerOn", True)),
            shuffle_questions=bool(payload.get("shuffleQuestions", False)),
            shuffle_answers=bool(payload.get("shuffleAnswers", False)),
            feedback=(
                FeedbackLevel.ALL if show_all else FeedbackLevel.CORRECT_ONLY
            ),
            tag_filter=str(payload.get("tagFilter", ALL_TAGS)),
        )


@dataclass(frozen=True)
class Session:
    """Complete state of one quiz-taking attempt."""

    route: Route = Route.IMPORT
    quiz: Optional[Quiz] = None
    ordering: tuple[int, ...] = ()
    position: int = 0
    answers: Mapping[str, Answer] = field(default_factory=dict)
    flags: frozenset[str] = frozenset()
    settings: Settings = field(default_factory=Settings)
    started_ms: Optional[int] = None
    elapsed_ms: int = 0
    version: int = SESSION_VERSION

    @property
    def total(self) -> int:
        return len(self.quiz) if self.quiz else 0

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "version": self.version,
            "route": self.route.value,
            "quiz": self.quiz.to_dict() if self.quiz else None,
            "order": list(self.ordering),
            "index": self.position,
            "answers": {
                qid: answer.to_dict() for qid, answer in self.answers.items()
            },
            "flags": {qid: True for qid in sorted(self.flags)},
            "settings": self.settings.to_dict(),
            "startMs": self.started_ms,
            "elapsed": self.elapsed_ms,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Session":
        if not isinstance(payload, Mapping):
            raise SessionError("Session payload must be a mapping.")
        try:
            route = Route(payload.get("route", Route.IMPORT.value))
        except ValueError as exc:
            raise SessionError(str(exc)) from exc
        raw_quiz = payload.get("quiz")
        quiz = (
            Quiz.from_dict(_require_mapping(raw_quiz, "quiz"))
            if raw_quiz is not None
            else None
        )
        total = len(quiz) if quiz else 0
        ordering = tuple(
            _require_int(i, "order")
            for i in _require_list(payload.get("order"), "order")
        )
        if any(i < 0 or i >= total for i in ordering):
            raise SessionError("Session order references a missing question.")
        position = _require_int(payload.get("index", 0), "index")
        if position < 0 or (ordering and position >= len(ordering)):
            raise SessionError("Session index is outside the question order.")
        answers = {
            str(qid): Answer.from_dict(_require_mapping(item, "answers"))
            for qid, item in _require_mapping(
                payload.get("answers") or {}, "answers"
            ).items()
        }
        flags = frozenset(
            str(qid)
            for qid, on in _require_mapping(
                payload.get("flags") or {}, "flags"
            ).items()
            if on
        )
        started = payload.get("startMs")
        return cls(
            route=route,
            quiz=quiz,
            ordering=ordering,
            position=position,
            answers=answers,
            flags=flags,
            settings=Settings.from_dict(
                _require_mapping(payload.get("settings") or {}, "settings")
            ),
            started_ms=(
                None
                if started is None
                else _require_int(started, "startMs")
            ),
            elapsed_ms=_require_int(payload.get("elapsed", 0), "elapsed"),
            version=_require_int(
                payload.get("version", SESSION_VERSION), "version"
            ),
        )


def _require_mapping(value: Any, name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise SessionError(f"'{name}' must be a mapping.")
    return value


def _require_list(value: Any, name: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise SessionError(f"'{name}' must be a list.")
    return value


def _require_str(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise SessionError(f"'{name}' must be a string.")
    return value


def _require_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SessionError(f"'{name}' must be a number.")
    return int(value)
