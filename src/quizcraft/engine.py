"""Session engine: pure transitions over immutable ``Session`` values.

Every operation takes a session and returns the next one. Invalid calls
(answering twice, finishing without a quiz, reviewing from the wrong route)
return the session unchanged instead of raising.

Correctness is computed when an answer is recorded, whatever the mode. The
mode only decides what ``feedback_for`` and ``progress_map`` expose.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import Callable, List, Literal, Optional

from .core.ids import IdFactory
from .markup.parser import ParseResult, parse
from .models import (
    ALL_TAGS,
    LETTERS,
    Answer,
    FeedbackLevel,
    Mode,
    Question,
    Quiz,
    QuizMeta,
    Route,
    Session,
    Settings,
)

__all__ = [
    "Feedback",
    "LoadOutcome",
    "ProgressCell",
    "ReviewSubset",
    "Score",
    "all_tags",
    "back_to_quiz",
    "choose",
    "current_question",
    "default_session",
    "display_letters",
    "feedback_for",
    "feedback_visible",
    "finish",
    "format_elapsed",
    "go_to_import",
    "jump",
    "load_text",
    "navigate",
    "progress_map",
    "reset",
    "resume",
    "retry",
    "review",
    "score",
    "start_quiz",
    "tick",
    "toggle_flag",
    "update_settings",
]

logger = logging.getLogger(__name__)

ReviewSubset = Literal["all", "missed", "flagged"]
Clock = Callable[[], float]
_SETTINGS_FIELDS = frozenset(item.name for item in fields(Settings))


@dataclass(frozen=True)
class Score:
    right: int
    wrong: int
    unanswered: int
    total: int
    percentage: int


@dataclass(frozen=True)
class Feedback:
    """What the learner may see about one answered question."""

    pick: str
    correct: bool
    answer: str
    rationale: str
    option_feedback: tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class ProgressCell:
    slot: int
    question_id: str
    current: bool
    answered: bool
    flagged: bool
    correct: Optional[bool]


@dataclass(frozen=True)
class LoadOutcome:
    session: Session
    result: ParseResult

    @property
    def loaded(self) -> bool:
        return self.session.route is Route.QUIZ and self.result.ok


def default_session(settings: Optional[Settings] = None) -> Session:
    return Session(settings=settings or Settings())


def load_text(
    session: Session,
    text: str,
    *,
    source: str,
    rng: Optional[random.Random] = None,
    clock: Clock = time.time,
    id_factory: Optional[IdFactory] = None,
) -> LoadOutcome:
    """Parse ``text`` and start a quiz only if it parsed without defects."""

    result = parse(text, id_factory=id_factory)
    if not result.ok:
        logger.info(
            "Quiz load rejected",
            extra={
                "source": source,
                "diagnostic_count": len(result.diagnostics),
            },
        )
        return LoadOutcome(session, result)
    quiz = Quiz(
        questions=result.questions,
        meta=QuizMeta(source=source, created_at=_iso_now(clock)),
    )
    started = start_quiz(session, quiz, rng=rng, clock=clock)
    logger.info(
        "Quiz loaded",
        extra={"source": source, "question_count": len(quiz)},
    )
    return LoadOutcome(started, result)


def start_quiz(
    session: Session,
    quiz: Quiz,
    *,
    rng: Optional[random.Random] = None,
    clock: Clock = time.time,
) -> Session:
    return replace(
        session,
        route=Route.QUIZ,
        quiz=quiz,
        ordering=_draw_ordering(len(quiz), session.settings, rng),
        position=0,
        answers={},
        flags=frozenset(),
        started_ms=_now_ms(clock),
        elapsed_ms=0,
    )


def current_question(session: Session) -> Optional[Question]:
    if session.quiz is None or not session.ordering:
        return None
    return session.quiz.questions[session.ordering[session.position]]


def choose(
    session: Session,
    question_id: str,
    letter: str,
    *,
    clock: Clock = time.time,
) -> Session:
    """Record the first answer for ``question_id``; later calls are no-ops."""

    if session.quiz is None or question_id in session.answers:
        return session
    pick = str(letter).strip().upper()
    question = session.quiz.get(question_id)
    if question is None or pick not in LETTERS:
        return session
    answers = dict(session.answers)
    answers[question_id] = Answer(
        pick=pick,
        correct=pick == question.answer,
        at=_iso_now(clock),
    )
    return replace(session, answers=answers)


def toggle_flag(session: Session, question_id: str) -> Session:
    if session.quiz is None or session.quiz.get(question_id) is None:
        return session
    return replace(session, flags=session.flags ^ {question_id})


def navigate(session: Session, delta: int) -> Session:
    return jump(session, session.position + delta)


def jump(session: Session, index: int) -> Session:
    """Move to ``index`` in the ordering, clamped to its bounds."""

    if not session.ordering:
        return session
    position = max(0, min(len(session.ordering) - 1, index))
    if position == session.position:
        return session
    return replace(session, position=position)


def finish(session: Session) -> Session:
    if session.route is not Route.QUIZ or session.quiz is None:
        return session
    return replace(session, route=Route.RESULTS)


def back_to_quiz(session: Session) -> Session:
    if session.route is not Route.RESULTS:
        return session
    return replace(session, route=Route.QUIZ)


def retry(
    session: Session,
    *,
    rng: Optional[random.Random] = None,
    clock: Clock = time.time,
) -> Session:
    """Restart the same quiz with no answers or flags."""

    if session.route is not Route.RESULTS or session.quiz is None:
        return session
    return replace(
        session,
        route=Route.QUIZ,
        ordering=_draw_ordering(len(session.quiz), session.settings, rng),
        position=0,
        answers={},
        flags=frozenset(),
        started_ms=_now_ms(clock),
        elapsed_ms=0,
    )


def review(session: Session, subset: ReviewSubset) -> Session:
    """Traverse all, missed, or flagged questions from the results screen.

    An empty subset keeps the current ordering.
    """

    if session.route is not Route.RESULTS or session.quiz is None:
        return session
    ids = [question.id for question in session.quiz.questions]
    if subset == "missed":
        ids = [
            qid
            for qid in ids
            if qid in session.answers and not session.answers[qid].correct
        ]
    elif subset == "flagged":
        ids = [qid for qid in ids if qid in session.flags]
    indices = tuple(
        idx for idx in map(session.quiz.index_of, ids) if idx >= 0
    )
    return replace(
        session,
        route=Route.QUIZ,
        ordering=indices or session.ordering,
        position=0,
    )


def go_to_import(session: Session) -> Session:
    if session.route is Route.IMPORT:
        return session
    return replace(session, route=Route.IMPORT)


def resume(session: Session) -> Session:
    """Return from the import screen to a retained quiz."""

    if session.route is not Route.IMPORT or not session.ordering:
        return session
    return replace(session, route=Route.QUIZ)


def reset(session: Session) -> Session:
    """Discard everything except the learner's settings."""

    return default_session(session.settings)


def update_settings(session: Session, **changes: object) -> Session:
    """Replace settings fields; unknown fields or bad values are ignored."""

    if not set(changes) <= _SETTINGS_FIELDS:
        return session
    try:
        if "mode" in changes:
            changes["mode"] = Mode(changes["mode"])
        if "feedback" in changes:
            changes["feedback"] = FeedbackLevel(changes["feedback"])
    except ValueError:
        return session
    settings = replace(session.settings, **changes)  # type: ignore[arg-type]
    return replace(session, settings=settings)


def tick(session: Session, *, clock: Clock = time.time) -> Session:
    """Refresh the derived elapsed time while a timed quiz is on screen."""

    if (
        session.route is not Route.QUIZ
        or not session.settings.timer_on
        or session.started_ms is None
    ):
        return session
    return replace(session, elapsed_ms=_now_ms(clock) - session.started_ms)


def score(session: Session) -> Score:
    total = session.total
    right = wrong = 0
    if session.quiz is not None:
        for question in session.quiz.questions:
            answer = session.answers.get(question.id)
            if answer is None:
                continue
            if answer.correct:
                right += 1
            else:
                wrong += 1
    percentage = round(right / total * 100) if total else 0
    return Score(
        right=right,
        wrong=wrong,
        unanswered=total - right - wrong,
        total=total,
        percentage=percentage,
    )


def feedback_visible(session: Session, question_id: str) -> bool:
    if question_id not in session.answers:
        return False
    if session.settings.mode is Mode.TEST:
        return session.route is Route.RESULTS
    return True


def feedback_for(session: Session, question_id: str) -> Optional[Feedback]:
    """Return feedback for ``question_id`` if the mode allows showing it."""

    if session.quiz is None or not feedback_visible(session, question_id):
        return None
    question = session.quiz.get(question_id)
    if question is None:
        return None
    answer = session.answers[question_id]
    options: tuple[tuple[str, str], ...] = ()
    if session.settings.feedback is FeedbackLevel.ALL:
        options = tuple(
            (letter, question.rationales[letter]) for letter in LETTERS
        )
    return Feedback(
        pick=answer.pick,
        correct=answer.correct,
        answer=question.answer,
        rationale=question.rationale,
        option_feedback=options,
    )


def display_letters(
    settings: Settings, rng: Optional[random.Random] = None
) -> tuple[str, ...]:
    """Order in which to render the choices for one view.

    A new permutation is drawn on every call when answer shuffling is on;
    stored picks always use the canonical letters.
    """

    letters = list(LETTERS)
    if settings.shuffle_answers:
        (rng or random.Random()).shuffle(letters)
    return tuple(letters)


def all_tags(session: Session) -> List[str]:
    if session.quiz is None:
        return []
    tags = {tag for q in session.quiz.questions for tag in q.tags}
    return sorted(tags, key=str.casefold)


def progress_map(session: Session) -> List[ProgressCell]:
    """Per-slot status for the current ordering, honouring the tag filter."""

    if session.quiz is None:
        return []
    tag = session.settings.tag_filter
    cells: List[ProgressCell] = []
    for slot, idx in enumerate(session.ordering):
        question = session.quiz.questions[idx]
        if tag != ALL_TAGS and tag not in question.tags:
            continue
        answer = session.answers.get(question.id)
        visible = feedback_visible(session, question.id)
        cells.append(
            ProgressCell(
                slot=slot,
                question_id=question.id,
                current=slot == session.position,
                answered=answer is not None,
                flagged=question.id in session.flags,
                correct=answer.correct if answer and visible else None,
            )
        )
    return cells


def format_elapsed(elapsed_ms: int) -> str:
    seconds = max(0, elapsed_ms) // 1000
    return f"{seconds // 60}:{seconds % 60:02d}"


def _draw_ordering(
    count: int, settings: Settings, rng: Optional[random.Random]
) -> tuple[int, ...]:
    ordering = list(range(count))
    if settings.shuffle_questions:
        (rng or random.Random()).shuffle(ordering)
    return tuple(ordering)


def _now_ms(clock: Clock) -> int:
    return int(clock() * 1000)


def _iso_now(clock: Clock) -> str:
    return datetime.fromtimestamp(clock(), tz=timezone.utc).isoformat()
