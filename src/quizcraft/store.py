"""Best-effort persistence, snapshot export and startup state selection.

Nothing in this module is required for correctness: read failures resolve to
``None`` and write failures to ``False``, and the caller keeps working with
the in-memory session either way.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol

from .engine import default_session
from .models import SESSION_VERSION, Session, SessionError, Settings
from .share import Compressor, decode, token_from_fragment

__all__ = [
    "SESSION_KEY",
    "FileKeyValueStore",
    "KeyValueStore",
    "SessionStore",
    "boot",
    "export_snapshot",
]

logger = logging.getLogger(__name__)

SESSION_KEY = "quizcraft_session"
_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class FileKeyValueStore:
    """One UTF-8 file per key under ``root``; writes are atomic."""

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise ValueError(f"Invalid store key: {key!r}")
        return self._root / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        _atomic_write_text(self.path_for(key), value)

    def remove(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)


class SessionStore:
    """The persisted session record, versioned under a fixed key."""

    def __init__(self, kv: KeyValueStore, *, key: str = SESSION_KEY) -> None:
        self._kv = kv
        self._key = key

    def load(self) -> Optional[Session]:
        try:
            raw = self._kv.get(self._key)
        except (OSError, ValueError) as exc:
            logger.warning(
                "Could not read persisted session", extra={"error": str(exc)}
            )
            return None
        if raw is None:
            return None
        try:
            record = json.loads(raw)
        except (ValueError, RecursionError) as exc:
            logger.warning(
                "Persisted session is not JSON", extra={"error": str(exc)}
            )
            return None
        if not isinstance(record, Mapping):
            return None
        if record.get("version") != SESSION_VERSION:
            logger.info(
                "Ignoring persisted session with other version",
                extra={"version": record.get("version")},
            )
            return None
        try:
            return Session.from_dict(record.get("session"))
        except (
            SessionError, ValueError, OverflowError, RecursionError
        ) as exc:
            logger.warning(
                "Persisted session is malformed", extra={"error": str(exc)}
            )
            return None

    def save(self, session: Session) -> bool:
        record = {"version": SESSION_VERSION, "session": session.to_dict()}
        try:
            self._kv.set(self._key, json.dumps(record, ensure_ascii=False))
        except (OSError, ValueError) as exc:
            logger.warning(
                "Could not persist session", extra={"error": str(exc)}
            )
            return False
        return True

    def clear(self) -> bool:
        try:
            self._kv.remove(self._key)
        except (OSError, ValueError) as exc:
            logger.warning(
                "Could not clear persisted session", extra={"error": str(exc)}
            )
            return False
        return True


def export_snapshot(session: Session, path: Path) -> bool:
    """Write the full session document (same shape as a plain share token)."""

    try:
        _atomic_write_text(path, _pretty(session.to_dict()))
    except OSError as exc:
        logger.warning(
            "Snapshot export failed",
            extra={"path": str(path), "error": str(exc)},
        )
        return False
    logger.info("Exported session snapshot", extra={"path": str(path)})
    return True


def boot(
    fragment: Optional[str],
    store: SessionStore,
    *,
    settings: Optional[Settings] = None,
    compressor: Optional[Compressor] = None,
) -> Session:
    """Choose the startup session: shared token, then persisted, then new."""

    token = token_from_fragment(fragment or "")
    if token:
        shared = decode(token, compressor=compressor)
        if shared is not None and shared.total:
            store.save(shared)
            logger.info("Booted from share token")
            return shared
        logger.info("Share token unusable; falling back")
    saved = store.load()
    if saved is not None:
        return saved
    return default_session(settings)


def _pretty(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2) + "\n"


def _atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile(
        "w",
        delete=False,
        encoding="utf-8",
        dir=str(path.parent),
    )
    try:
        handle.write(text)
        handle.flush()
        os.fsync(handle.fileno())
    finally:
        handle.close()
    os.replace(handle.name, path)
    try:
        path.chmod(0o600)
    except PermissionError:  # pragma: no cover - depends on filesystem
        pass
