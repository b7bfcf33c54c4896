from __future__ import annotations

from quizcraft.markup import BLANK_TEMPLATE, GeneratorForm, build_prompt, parse
from quizcraft.markup.prompt import MAX_COUNT, MIN_COUNT


def test_build_prompt_includes_form_values() -> None:
    form = GeneratorForm(
        topic="The Roman Republic",
        count=5,
        difficulty="hard",
        tag_hint="Rome, politics",
        evidence_hint="Chapter 3 notes",
    )

    prompt = build_prompt(form)

    assert "The Roman Republic" in prompt
    assert "Number of questions: 5" in prompt
    assert "Difficulty: Hard" in prompt
    assert "Chapter 3 notes" in prompt
    assert "TAGS: Rome, politics" in prompt
    assert "EVID:" in prompt
    assert prompt.endswith("Now generate 5 questions.")


def test_build_prompt_placeholders_and_toggles() -> None:
    prompt = build_prompt(
        GeneratorForm(include_tags=False, include_evidence=False)
    )

    assert "<YOUR TOPIC HERE>" in prompt
    assert "SOURCE / NOTES" not in prompt
    assert "EVID:" not in prompt
    assert "TAGS:" not in prompt


def test_generator_form_normalizes_count_and_difficulty() -> None:
    assert GeneratorForm(count=0).normalized().count == MIN_COUNT
    assert GeneratorForm(count=500).normalized().count == MAX_COUNT
    assert GeneratorForm(difficulty="extreme").normalized().difficulty == (
        "Medium"
    )
    assert GeneratorForm(difficulty=" easy ").normalized().difficulty == (
        "Easy"
    )


def test_blank_template_is_one_block() -> None:
    result = parse(BLANK_TEMPLATE)

    # placeholders are not valid letters, so the block is rejected
    assert [d.message for d in result.diagnostics] == [
        "ANS must be A, B, C, or D."
    ]
