from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Iterator

import pytest

TESTS_DIR = Path(__file__).resolve().parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

# Ensure src/ is importable without an editable install
ROOT = TESTS_DIR.parent
for extra in (ROOT / "src",):
    path_str = str(extra)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from fixtures import EXAMPLE, sequential_ids  # noqa: E402

from quizcraft import engine  # noqa: E402
from quizcraft.models import Session, Settings  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Iterator[None]:
    for key in list(os.environ):
        if key.startswith("QUIZCRAFT_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("QUIZCRAFT_DATA_HOME", str(tmp_path / "home"))
    yield
    logger = logging.getLogger("quizcraft")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def clock():
    """A frozen clock at 1_000 seconds past the epoch."""

    return lambda: 1000.0


@pytest.fixture
def load(clock):
    """Load markup into a fresh session with deterministic ids and time."""

    def _load(
        text: str = EXAMPLE,
        settings: Settings | None = None,
        **kwargs,
    ) -> Session:
        outcome = engine.load_text(
            engine.default_session(settings),
            text,
            source="test",
            clock=clock,
            id_factory=sequential_ids(),
            **kwargs,
        )
        assert outcome.loaded, outcome.result.diagnostics
        return outcome.session

    return _load
