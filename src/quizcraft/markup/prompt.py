"""Prompt text handed to an external chat model to author quiz markup."""

from __future__ import annotations

from dataclasses import dataclass, replace

from jinja2 import Environment, StrictUndefined, Template

__all__ = [
    "BLANK_TEMPLATE",
    "DIFFICULTIES",
    "GeneratorForm",
    "build_prompt",
]

DIFFICULTIES = ("Easy", "Medium", "Hard")
MIN_COUNT = 1
MAX_COUNT = 80

BLANK_TEMPLATE = """\
Q: <question text>
A) <choice text>
B) <choice text>
C) <choice text>
D) <choice text>
ANS: <A|B|C|D>
EXP_CORRECT: <why correct is correct>
EXP_A: <why A is right/wrong>
EXP_B: <why B is right/wrong>
EXP_C: <why C is right/wrong>
EXP_D: <why D is right/wrong>
EVID: <optional source cue>
TAGS: <optional tags>
---
"""

_PROMPT_TEMPLATE = """\
You are generating a multiple-choice quiz for a student.

TOPIC:
{{ topic or "<YOUR TOPIC HERE>" }}
{%- if include_evidence %}

SOURCE / NOTES (use ONLY this; do not invent facts):
{{ evidence_hint or "<PASTE EXCERPT OR NOTES HERE>" }}
{%- endif %}

Number of questions: {{ count }}
Difficulty: {{ difficulty }}
Style focus: {{ style }}

Distractor design rules (required):
- Each question must have 1 correct answer.
- Include 1 strong distractor (sounds right but has a subtle mistake).
- Include 2 wrong answers that are wrong by time period / concept / cause / \
location (pick what fits the topic).
- Keep distractors plausible (not silly).
- Keep correct letters balanced across the quiz.
- No long copyrighted quotes; paraphrase.

Output ONLY in this exact format (repeat for every question):
Q: <question text>
A) <choice text>
B) <choice text>
C) <choice text>
D) <choice text>
ANS: <A|B|C|D>
EXP_CORRECT: <why correct is correct (2-4 sentences)>
EXP_A: <feedback for option A (1-2 sentences)>
EXP_B: <feedback for option B (1-2 sentences)>
EXP_C: <feedback for option C (1-2 sentences)>
EXP_D: <feedback for option D (1-2 sentences)>
{%- if include_evidence %}
EVID: <short source cue like "Doc p.3" or "Paragraph 5">
{%- endif %}
{%- if include_tags %}
TAGS: {{ tag_hint or "<comma-separated tags>" }}
{%- endif %}
---

Now generate {{ count }} questions."""


@dataclass(frozen=True)
class GeneratorForm:
    topic: str = ""
    count: int = 12
    difficulty: str = "Medium"
    style: str = "Mixed (definition + inference + cause/effect)"
    include_tags: bool = True
    tag_hint: str = "Unit, theme, vocab"
    include_evidence: bool = True
    evidence_hint: str = ""

    def normalized(self) -> "GeneratorForm":
        """Clamp the count and fall back to a known difficulty."""

        count = max(MIN_COUNT, min(MAX_COUNT, int(self.count)))
        difficulty = self.difficulty.strip().capitalize()
        if difficulty not in DIFFICULTIES:
            difficulty = "Medium"
        return replace(self, count=count, difficulty=difficulty)


def prompt_template() -> Template:
    env = Environment(autoescape=False, undefined=StrictUndefined)
    return env.from_string(_PROMPT_TEMPLATE)


def build_prompt(form: GeneratorForm) -> str:
    """Render the generator prompt for ``form``."""

    values = form.normalized()
    return prompt_template().render(
        topic=values.topic.strip(),
        count=values.count,
        difficulty=values.difficulty,
        style=values.style,
        include_tags=values.include_tags,
        tag_hint=values.tag_hint.strip(),
        include_evidence=values.include_evidence,
        evidence_hint=values.evidence_hint.strip(),
    ).strip()
