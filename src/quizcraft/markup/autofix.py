"""Best-effort cleanup of pasted quiz markup before parsing."""

from __future__ import annotations

import re

from .parser import SEPARATOR

__all__ = ["autofix"]

# Misspelled or mis-cased keys at line start, rewritten to canonical keys.
_KEY_FIXES: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(pattern, re.IGNORECASE | re.MULTILINE), replacement)
    for pattern, replacement in (
        (r"^[ \t]*q[ \t]*:", "Q:"),
        (r"^[ \t]*question[ \t]*:", "Q:"),
        (r"^[ \t]*ans[ \t]*:", "ANS:"),
        (r"^[ \t]*answer[ \t]*:", "ANS:"),
        (r"^[ \t]*exp_correct[ \t]*:", "EXP_CORRECT:"),
        (r"^[ \t]*explain[ \t]*:", "EXP_CORRECT:"),
        (r"^[ \t]*explanation[ \t]*:", "EXP_CORRECT:"),
        (r"^[ \t]*exp_a[ \t]*:", "EXP_A:"),
        (r"^[ \t]*exp_b[ \t]*:", "EXP_B:"),
        (r"^[ \t]*exp_c[ \t]*:", "EXP_C:"),
        (r"^[ \t]*exp_d[ \t]*:", "EXP_D:"),
        (r"^[ \t]*tags?[ \t]*:", "TAGS:"),
        (r"^[ \t]*evid[ \t]*:", "EVID:"),
        (r"^[ \t]*evidence[ \t]*:", "EVID:"),
    )
)


def autofix(text: str) -> str:
    """Return ``text`` with canonical keys and a trailing separator.

    Performs no validation; the result still has to go through the parser.
    """

    fixed = (text or "").replace("\r\n", "\n")
    for pattern, replacement in _KEY_FIXES:
        fixed = pattern.sub(replacement, fixed)
    trimmed = fixed.strip()
    if trimmed and not trimmed.endswith(SEPARATOR):
        fixed = f"{trimmed}\n{SEPARATOR}\n"
    return fixed
