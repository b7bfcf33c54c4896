from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path

from quizcraft.core import logging as core_logging


def _close(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def _console_handlers(logger: logging.Logger) -> list[logging.Handler]:
    return [
        handler
        for handler in logger.handlers
        if getattr(handler, "_quizcraft_console", False)
    ]


def test_configure_logger_writes_json(tmp_path):
    log_dir = tmp_path / "logs"
    logger, log_path = core_logging.configure_logger(
        "quizcraft.test",
        log_dir=log_dir,
        level="INFO",
        filename="test.log",
    )

    logger.debug("hidden")
    logger.info("hello world", extra={"event": "unit", "value": 3})

    class _Helper:
        def __repr__(self):  # noqa: D401
            return "helper"

    try:
        raise ValueError("boom")
    except ValueError:
        logger.exception(
            "with error",
            extra={
                "value": {"items": [Path(log_dir), 1], "tags": {"a"}},
                "obj": _Helper(),
            },
        )
    for handler in logger.handlers:
        handler.flush()

    lines = log_path.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert first["message"] == "hello world"
    assert first["level"] == "INFO"
    assert first["extra"] == {"event": "unit", "value": 3}

    payload = json.loads(lines[-1])
    assert "ValueError: boom" in payload["exception"]
    assert payload["extra"]["obj"] == "helper"
    assert payload["extra"]["value"]["items"] == [str(log_dir), 1]
    assert payload["extra"]["value"]["tags"] == ["a"]

    _close(logger)


def test_configure_logger_does_not_propagate(tmp_path):
    logger, _ = core_logging.configure_logger(
        "quizcraft.test_isolated", log_dir=tmp_path, filename="iso.log"
    )

    assert logger.propagate is False

    _close(logger)


def test_configure_logger_reuses_file_handler(tmp_path):
    name = "quizcraft.test_reuse"
    logger, first = core_logging.configure_logger(
        name, log_dir=tmp_path / "one", filename="reuse.log"
    )
    _, second = core_logging.configure_logger(
        name, log_dir=tmp_path / "two", level="DEBUG", filename="reuse.log"
    )

    assert first == second
    assert len(logger.handlers) == 1
    assert logger.handlers[0].level == logging.DEBUG

    _close(logger)


def test_console_handler_toggle(tmp_path):
    name = "quizcraft.test_toggle"

    logger, _ = core_logging.configure_logger(
        name, log_dir=tmp_path, verbose=True, filename="toggle.log"
    )
    assert len(_console_handlers(logger)) == 1

    core_logging.configure_logger(
        name, log_dir=tmp_path, verbose=True, filename="toggle.log"
    )
    assert len(_console_handlers(logger)) == 1

    core_logging.configure_logger(
        name, log_dir=tmp_path, verbose=False, filename="toggle.log"
    )
    assert not _console_handlers(logger)

    _close(logger)


def test_configure_logger_fallback_directory(tmp_path, monkeypatch):
    target = tmp_path / "blocked"
    fallback = tmp_path / "fallback"
    monkeypatch.setattr(core_logging, "_fallback_log_dir", lambda: fallback)
    original_mkdir = Path.mkdir

    def fake_mkdir(self, *args, **kwargs):  # noqa: ANN001
        if self == target:
            raise PermissionError("denied")
        return original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fake_mkdir)

    logger, log_path = core_logging.configure_logger(
        "quizcraft.test_blocked", log_dir=target, filename="blocked.log"
    )

    assert log_path == fallback / "blocked.log"
    assert log_path.exists()

    _close(logger)


def test_fallback_log_dir_uses_tempdir(tmp_path, monkeypatch):
    monkeypatch.setattr(tempfile, "gettempdir", lambda: str(tmp_path))

    assert core_logging._fallback_log_dir() == tmp_path / "quizcraft-logs"


def test_coerce_level_defaults():
    assert core_logging._coerce_level("bogus") == logging.INFO
    assert core_logging._coerce_level("warning") == logging.WARNING
