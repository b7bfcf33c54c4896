"""Share codec: a whole session as a compact, URL-safe token.

Token format is ``<mode>.<base64url payload>`` without padding. Mode ``g``
carries gzip-compressed JSON, mode ``p`` the raw JSON. Compression is only
an optimization: when the injected compressor is unavailable or fails, the
plain form is emitted instead.
"""

from __future__ import annotations

import base64
import binascii
import gzip
import json
import logging
import re
import time
import zlib
from typing import Callable, Optional, Protocol
from urllib.parse import unquote

from .engine import default_session, load_text
from .models import Session, SessionError

__all__ = [
    "Compressor",
    "GzipCompressor",
    "NullCompressor",
    "canonical_bytes",
    "decode",
    "encode",
    "share_from_text",
    "share_url",
    "token_from_fragment",
]

logger = logging.getLogger(__name__)

COMPRESSED = "g"
PLAIN = "p"
FRAGMENT_KEY = "q"

_FRAGMENT_RE = re.compile(r"[#&]" + FRAGMENT_KEY + r"=([^&]+)")


class Compressor(Protocol):
    """Optional compression capability.

    Both methods return ``None`` when the capability is unavailable or the
    input cannot be processed.
    """

    def compress(self, data: bytes) -> Optional[bytes]: ...

    def decompress(self, data: bytes) -> Optional[bytes]: ...


class GzipCompressor:
    def compress(self, data: bytes) -> Optional[bytes]:
        try:
            return gzip.compress(data, mtime=0)
        except (OSError, zlib.error):
            return None

    def decompress(self, data: bytes) -> Optional[bytes]:
        try:
            return gzip.decompress(data)
        except (OSError, EOFError, zlib.error):
            return None


class NullCompressor:
    """Compression that is never available."""

    def compress(self, data: bytes) -> Optional[bytes]:
        return None

    def decompress(self, data: bytes) -> Optional[bytes]:
        return None


def canonical_bytes(session: Session) -> bytes:
    payload = session.to_dict()
    return json.dumps(
        payload, ensure_ascii=False, separators=(",", ":")
    ).encode("utf-8")


def encode(
    session: Session, *, compressor: Optional[Compressor] = None
) -> str:
    raw = canonical_bytes(session)
    packed = (compressor or GzipCompressor()).compress(raw)
    if packed is None:
        token = f"{PLAIN}.{_b64url_encode(raw)}"
    else:
        token = f"{COMPRESSED}.{_b64url_encode(packed)}"
    logger.debug(
        "Encoded share token",
        extra={
            "mode": token[0],
            "raw_bytes": len(raw),
            "token_chars": len(token),
        },
    )
    return token


def decode(
    token: str, *, compressor: Optional[Compressor] = None
) -> Optional[Session]:
    """Return the session carried by ``token`` or ``None`` if unusable."""

    mode, sep, data = (token or "").strip().partition(".")
    if not mode or not sep or not data:
        return _reject("missing mode or payload")
    try:
        payload = _b64url_decode(data)
    except (binascii.Error, ValueError) as exc:
        return _reject(f"bad base64: {exc}")

    if mode == COMPRESSED:
        payload = (compressor or GzipCompressor()).decompress(payload)
        if payload is None:
            return _reject("decompression unavailable or failed")
    elif mode != PLAIN:
        return _reject(f"unknown mode {mode!r}")

    try:
        document = json.loads(payload.decode("utf-8"))
        return Session.from_dict(document)
    except (ValueError, OverflowError, RecursionError, SessionError) as exc:
        return _reject(f"unreadable payload: {exc}")


def share_url(base_url: str, token: str) -> str:
    base = base_url.split("#", 1)[0]
    return f"{base}#{FRAGMENT_KEY}={token}"


def token_from_fragment(value: str) -> Optional[str]:
    """Extract the token from a share URL, a ``#q=`` fragment or a token."""

    text = (value or "").strip()
    if not text:
        return None
    match = _FRAGMENT_RE.search(text)
    if match:
        return unquote(match.group(1))
    if "#" in text or "://" in text:
        return None
    return text


def share_from_text(
    text: str,
    *,
    compressor: Optional[Compressor] = None,
    clock: Callable[[], float] = time.time,
) -> Optional[str]:
    """Encode a fresh quiz built from ``text``; ``None`` if it has defects."""

    outcome = load_text(
        default_session(), text, source="shared-text", clock=clock
    )
    if not outcome.loaded:
        return None
    return encode(outcome.session, compressor=compressor)


def _reject(reason: str) -> None:
    logger.debug("Share token rejected", extra={"reason": reason})
    return None


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64url_decode(data: str) -> bytes:
    padded = data + "=" * (-len(data) % 4)
    return base64.b64decode(padded, altchars=b"-_", validate=True)
