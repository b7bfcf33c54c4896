from __future__ import annotations

import random
import re
import uuid

from quizcraft.core import ids


def test_random_id_is_uuid4():
    value = ids.random_id()

    assert uuid.UUID(value).version == 4


def test_composite_id_shape_and_uniqueness():
    rng = random.Random(7)

    first = ids.composite_id(now=lambda: 12.5, rng=rng)
    second = ids.composite_id(now=lambda: 12.5, rng=rng)

    assert re.fullmatch(r"12500-\d+-0\.\d{12}", first)
    assert first != second


def test_generator_uses_primary():
    generator = ids.IdGenerator(primary=lambda: "primary")

    assert generator() == "primary"


def test_generator_falls_back_without_secure_randomness():
    def unavailable() -> str:
        raise NotImplementedError("no urandom")

    def broken() -> str:
        raise OSError("entropy pool closed")

    assert ids.IdGenerator(unavailable, lambda: "fb")() == "fb"
    assert ids.IdGenerator(broken, lambda: "fb")() == "fb"
    assert re.fullmatch(r"\d+-\d+-0\.\d{12}", ids.IdGenerator(broken)())
