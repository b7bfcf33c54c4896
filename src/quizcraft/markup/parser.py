"""Tolerant parser for the line-oriented quiz markup.

The input is split into blocks on ``---`` separator lines and each block is
scanned on its own, so a single pass reports the defects of every block.
Blocks that produce any diagnostic contribute no question; callers must check
``ParseResult.ok`` before starting a session from the result.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..core.ids import IdFactory, IdGenerator
from ..models import LETTERS, Diagnostic, Question, _letter_map

__all__ = [
    "SEPARATOR",
    "ParseResult",
    "Preview",
    "count_blocks",
    "parse",
    "preview",
]

logger = logging.getLogger(__name__)

SEPARATOR = "---"
PREVIEW_LIMIT = 8
_MAX_QUOTE = 80

_FIELD_RE = re.compile(r"^([A-Za-z_]+)\s*:\s*(.*)$")
_CHOICE_RE = re.compile(r"^([A-D])\s*[):]\s*(.*)$", re.IGNORECASE)
_EXP_LETTER_RE = re.compile(r"^EXP_([A-D])$")

KEY_ALIASES = {
    "ANSWER": "ANS",
    "EXPLAIN": "EXP_CORRECT",
}


@dataclass(frozen=True)
class ParseResult:
    questions: tuple[Question, ...]
    diagnostics: tuple[Diagnostic, ...]

    @property
    def ok(self) -> bool:
        return not self.diagnostics and bool(self.questions)


@dataclass(frozen=True)
class Preview:
    """Counts shown while the user is still editing markup."""

    blocks: int
    valid: int
    diagnostics: tuple[Diagnostic, ...]


@dataclass
class _Block:
    lines: List[str] = field(default_factory=list)
    numbers: List[int] = field(default_factory=list)

    def first_line(self) -> int:
        return self.numbers[0] if self.numbers else 1


@dataclass
class _Fields:
    prompt: str = ""
    choices: dict = field(default_factory=lambda: dict.fromkeys(LETTERS, ""))
    answer: str = ""
    rationale: str = ""
    rationales: dict = field(
        default_factory=lambda: dict.fromkeys(LETTERS, "")
    )
    tags: List[str] = field(default_factory=list)
    evidence: str = ""


def parse(text: str, *, id_factory: Optional[IdFactory] = None) -> ParseResult:
    """Parse quiz markup into questions and diagnostics.

    Never raises; every defect is reported as a :class:`Diagnostic`.
    """

    make_id = id_factory or IdGenerator()
    questions: List[Question] = []
    diagnostics: List[Diagnostic] = []
    blocks = _split_blocks(_normalize_newlines(text))
    for q_index, block in enumerate(blocks, start=1):
        fields, block_diagnostics = _scan_block(block, q_index)
        if not block_diagnostics:
            questions.append(_build_question(fields, make_id()))
        diagnostics.extend(block_diagnostics)

    logger.debug(
        "Parsed quiz markup",
        extra={
            "block_count": len(blocks),
            "question_count": len(questions),
            "diagnostic_count": len(diagnostics),
        },
    )
    return ParseResult(tuple(questions), tuple(diagnostics))


def count_blocks(text: str) -> int:
    """Return the number of separator lines in ``text``."""

    lines = _normalize_newlines(text).split("\n")
    return sum(1 for line in lines if line.strip() == SEPARATOR)


def preview(text: str, *, id_factory: Optional[IdFactory] = None) -> Preview:
    result = parse(text, id_factory=id_factory)
    return Preview(
        blocks=count_blocks(text),
        valid=len(result.questions),
        diagnostics=result.diagnostics[:PREVIEW_LIMIT],
    )


def _normalize_newlines(text: str) -> str:
    return (text or "").replace("\r\n", "\n")


def _split_blocks(text: str) -> List[_Block]:
    blocks: List[_Block] = []
    current = _Block()
    for number, line in enumerate(text.split("\n"), start=1):
        if line.strip() == SEPARATOR:
            if any(item.strip() for item in current.lines):
                blocks.append(current)
            current = _Block()
            continue
        current.lines.append(line)
        current.numbers.append(number)
    if any(item.strip() for item in current.lines):
        blocks.append(current)
    return blocks


def _scan_block(
    block: _Block, q_index: int
) -> tuple[_Fields, List[Diagnostic]]:
    fields = _Fields()
    diagnostics: List[Diagnostic] = []
    classified: List[tuple[str, int]] = []
    last: Optional[str] = None

    for line, number in zip(block.lines, block.numbers):
        if not line.strip():
            continue
        if line.startswith("  ") and last is not None:
            _continue_field(fields, last, line[2:])
            continue

        classified.append((line, number))
        stripped = line.strip()
        key = _apply_field_line(fields, stripped)
        if key is not None:
            last = key
            continue
        choice = _CHOICE_RE.match(stripped)
        if choice:
            letter = choice.group(1).upper()
            fields.choices[letter] = choice.group(2)
            last = f"CHOICE_{letter}"
            continue
        message = f'Unrecognized line: "{_quote(stripped)}"'
        diagnostics.append(Diagnostic(q_index, number, message))

    diagnostics.extend(_validate(fields, block, classified, q_index))
    return fields, diagnostics


def _apply_field_line(fields: _Fields, stripped: str) -> Optional[str]:
    """Store a ``KEY: value`` line and return the field it opened."""

    match = _FIELD_RE.match(stripped)
    if not match:
        return None
    key = match.group(1).upper()
    key = KEY_ALIASES.get(key, key)
    value = match.group(2)
    if key == "Q":
        fields.prompt = value
    elif key == "ANS":
        fields.answer = value.strip().upper()
    elif key == "EXP_CORRECT":
        fields.rationale = value
    elif key == "TAGS":
        fields.tags = _split_tags(value)
    elif key == "EVID":
        fields.evidence = value
    else:
        letter = _EXP_LETTER_RE.match(key)
        if not letter:
            return None
        fields.rationales[letter.group(1)] = value
    return key


def _continue_field(fields: _Fields, last: str, extra: str) -> None:
    """Append to the open field; choice and ANS lines take no continuation."""

    if last == "Q":
        fields.prompt = _join(fields.prompt, extra)
    elif last == "EXP_CORRECT":
        fields.rationale = _join(fields.rationale, extra)
    elif last == "EVID":
        fields.evidence = _join(fields.evidence, extra)
    elif last == "TAGS":
        fields.tags.extend(_split_tags(extra))
    elif _EXP_LETTER_RE.match(last):
        letter = last[-1]
        fields.rationales[letter] = _join(fields.rationales[letter], extra)


def _validate(
    fields: _Fields,
    block: _Block,
    classified: Sequence[tuple[str, int]],
    q_index: int,
) -> List[Diagnostic]:
    def line_for(*prefixes: str) -> int:
        for line, number in classified:
            if line.strip().upper().startswith(prefixes):
                return number
        return block.first_line()

    found: List[Diagnostic] = []
    if not fields.prompt.strip():
        found.append(
            Diagnostic(q_index, line_for("Q:"), "Missing Q: (question text).")
        )
    for letter in LETTERS:
        if not fields.choices[letter].strip():
            found.append(
                Diagnostic(
                    q_index,
                    line_for(f"{letter})", f"{letter}:"),
                    f"Missing choice {letter})",
                )
            )
    if fields.answer not in LETTERS:
        found.append(
            Diagnostic(q_index, line_for("ANS:"), "ANS must be A, B, C, or D.")
        )
    if not fields.rationale.strip():
        found.append(
            Diagnostic(
                q_index, line_for("EXP_CORRECT:"), "Missing EXP_CORRECT:"
            )
        )
    for letter in LETTERS:
        if not fields.rationales[letter].strip():
            key = f"EXP_{letter}:"
            found.append(Diagnostic(q_index, line_for(key), f"Missing {key}"))
    return found


def _build_question(fields: _Fields, question_id: str) -> Question:
    return Question(
        id=question_id,
        prompt=fields.prompt,
        choices=_letter_map(fields.choices),
        answer=fields.answer,
        rationale=fields.rationale,
        rationales=_letter_map(fields.rationales),
        tags=tuple(fields.tags),
        evidence=fields.evidence or None,
    )


def _split_tags(value: str) -> List[str]:
    return [tag.strip() for tag in value.split(",") if tag.strip()]


def _join(current: str, extra: str) -> str:
    return f"{current}\n{extra}" if current else extra


def _quote(line: str) -> str:
    if len(line) > _MAX_QUOTE:
        return line[:_MAX_QUOTE] + "…"
    return line
