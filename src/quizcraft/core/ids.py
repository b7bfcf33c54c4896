"""Identifier generation for parsed questions."""

from __future__ import annotations

import itertools
import random
import time
import uuid
from typing import Callable, Optional

__all__ = [
    "IdFactory",
    "IdGenerator",
    "composite_id",
    "random_id",
]

IdFactory = Callable[[], str]

_counter = itertools.count(1)


def random_id() -> str:
    """Return a cryptographically random identifier."""

    return str(uuid.uuid4())


def composite_id(
    *,
    now: Optional[Callable[[], float]] = None,
    rng: Optional[random.Random] = None,
) -> str:
    """Return a timestamp + counter + random identifier.

    Used when the platform cannot provide secure randomness.
    """

    clock = now or time.time
    source = rng or random.Random()
    millis = int(clock() * 1000)
    return f"{millis}-{next(_counter)}-{source.random():.12f}"


class IdGenerator:
    """Callable identifier capability with a deterministic fallback path."""

    def __init__(
        self,
        primary: Optional[IdFactory] = None,
        fallback: Optional[IdFactory] = None,
    ) -> None:
        self._primary = primary or random_id
        self._fallback = fallback or composite_id

    def __call__(self) -> str:
        try:
            return self._primary()
        except (NotImplementedError, OSError):
            return self._fallback()
