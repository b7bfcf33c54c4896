from __future__ import annotations

import base64
import json
import logging
from pathlib import Path

import pytest

from quizcraft import engine, share
from quizcraft.models import Mode, Route, Settings
from quizcraft.store import (
    SESSION_KEY,
    FileKeyValueStore,
    SessionStore,
    boot,
    export_snapshot,
)

DEEP = "[" * 100000 + "]" * 100000


class FailingStore:
    def get(self, key: str):
        raise OSError("disk on fire")

    def set(self, key: str, value: str) -> None:
        raise OSError("disk on fire")

    def remove(self, key: str) -> None:
        raise OSError("disk on fire")


class MemoryStore:
    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    def get(self, key: str):
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


@pytest.fixture
def answered(load, clock):
    session = engine.choose(load(), "q1", "A", clock=clock)
    return engine.toggle_flag(session, "q1")


def test_file_store_round_trip(tmp_path: Path) -> None:
    kv = FileKeyValueStore(tmp_path / "state")

    assert kv.get("alpha") is None
    kv.set("alpha", '{"x": 1}')
    assert kv.get("alpha") == '{"x": 1}'
    assert kv.path_for("alpha") == tmp_path / "state" / "alpha.json"
    kv.remove("alpha")
    kv.remove("alpha")
    assert kv.get("alpha") is None


@pytest.mark.parametrize("key", ["", "../escape", "a/b", "spaced key"])
def test_file_store_rejects_bad_keys(tmp_path: Path, key: str) -> None:
    with pytest.raises(ValueError):
        FileKeyValueStore(tmp_path).path_for(key)


def test_session_store_round_trip(tmp_path: Path, answered) -> None:
    store = SessionStore(FileKeyValueStore(tmp_path))

    assert store.load() is None
    assert store.save(answered) is True
    assert store.load() == answered

    record = json.loads((tmp_path / f"{SESSION_KEY}.json").read_text())
    assert record["version"] == 1
    assert record["session"]["answers"]["q1"]["pick"] == "A"

    assert store.clear() is True
    assert store.load() is None


def test_version_mismatch_is_treated_as_absent(answered, caplog) -> None:
    kv = MemoryStore()
    kv.set(
        SESSION_KEY,
        json.dumps({"version": 2, "session": answered.to_dict()}),
    )

    with caplog.at_level(logging.INFO, logger="quizcraft.store"):
        assert SessionStore(kv).load() is None
    assert "other version" in caplog.text


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[]",
        '{"version": 1, "session": "nope"}',
        '{"version": 1, "session": {"route": "quiz", "order": [4]}}',
        pytest.param(DEEP, id="deep-record"),
        pytest.param(
            '{"version": 1, "session": ' + DEEP + "}", id="deep-session"
        ),
    ],
)
def test_unreadable_records_are_ignored(raw: str) -> None:
    kv = MemoryStore()
    kv.set(SESSION_KEY, raw)

    assert SessionStore(kv).load() is None


def test_storage_failures_are_swallowed(answered, caplog) -> None:
    store = SessionStore(FailingStore())

    with caplog.at_level(logging.WARNING, logger="quizcraft.store"):
        assert store.load() is None
        assert store.save(answered) is False
        assert store.clear() is False
    assert len(caplog.records) == 3


def test_export_matches_plain_share_payload(tmp_path: Path, answered) -> None:
    target = tmp_path / "exports" / "snapshot.json"

    assert export_snapshot(answered, target) is True

    token = share.encode(answered, compressor=share.NullCompressor())
    data = token.split(".", 1)[1]
    padded = data + "=" * (-len(data) % 4)
    plain = json.loads(base64.urlsafe_b64decode(padded))
    assert json.loads(target.read_text(encoding="utf-8")) == plain


def test_export_failure_returns_false(tmp_path: Path, answered) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory", encoding="utf-8")

    assert export_snapshot(answered, blocker / "snapshot.json") is False


def test_boot_prefers_share_token(answered) -> None:
    kv = MemoryStore()
    store = SessionStore(kv)
    store.save(engine.default_session())
    token = share.encode(answered)

    session = boot(f"#q={token}", store)

    assert session == answered
    assert store.load() == answered


def test_boot_falls_back_to_persisted(answered) -> None:
    store = SessionStore(MemoryStore())
    store.save(answered)

    assert boot("#q=p.broken!", store) == answered
    assert boot(None, store) == answered


def test_boot_ignores_token_without_quiz(answered) -> None:
    store = SessionStore(MemoryStore())
    store.save(answered)
    empty_token = share.encode(engine.default_session())

    assert boot(empty_token, store) == answered


def test_boot_defaults_with_settings() -> None:
    settings = Settings(mode=Mode.TEST)

    session = boot("", SessionStore(FailingStore()), settings=settings)

    assert session.route is Route.IMPORT
    assert session.quiz is None
    assert session.settings == settings
