from __future__ import annotations

from fixtures import EXAMPLE

from quizcraft.markup import autofix, parse


def test_autofix_rewrites_loose_keys() -> None:
    text = (
        "question: 2+2=?\n"
        "A) 3\nB) 4\nC) 5\nD) 6\n"
        "Answer : b\n"
        "Explanation: Because.\n"
        "exp_a: low\nExp_B: right\nEXP_c: high\nexp_D : high\n"
        "tag: math\n"
        "evidence: notes\n"
    )

    fixed = autofix(text)

    assert "Q: 2+2=?" in fixed
    assert "ANS: b" in fixed
    assert "EXP_CORRECT: Because." in fixed
    assert "EXP_D: high" in fixed
    assert "TAGS: math" in fixed
    assert "EVID: notes" in fixed
    assert fixed.endswith("\n---\n")
    result = parse(fixed)
    assert result.ok, result.diagnostics
    assert result.questions[0].answer == "B"


def test_autofix_keeps_existing_separator() -> None:
    assert autofix(EXAMPLE) == EXAMPLE


def test_autofix_normalizes_crlf() -> None:
    fixed = autofix(EXAMPLE.replace("\n", "\r\n"))

    assert "\r" not in fixed
    assert fixed == EXAMPLE


def test_autofix_only_touches_line_starts() -> None:
    text = "Q: what does answer: mean?\n---\n"

    assert autofix(text) == text


def test_autofix_leaves_blank_input_alone() -> None:
    assert autofix("") == ""
    assert autofix("  \n") == "  \n"
