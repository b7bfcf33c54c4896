"""Quiz markup: parsing, cleanup and authoring prompts."""

from .autofix import autofix
from .parser import (
    SEPARATOR,
    ParseResult,
    Preview,
    count_blocks,
    parse,
    preview,
)
from .prompt import BLANK_TEMPLATE, GeneratorForm, build_prompt

__all__ = [
    "SEPARATOR",
    "ParseResult",
    "Preview",
    "count_blocks",
    "parse",
    "preview",
    "autofix",
    "BLANK_TEMPLATE",
    "GeneratorForm",
    "build_prompt",
]
