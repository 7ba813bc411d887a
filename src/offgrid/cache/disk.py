"""Disk tier of the offline cache: one signed file per entry.

Each entry lives in ``<root>/<directory_name>/<sha256(key)>``.  The key is
already a digest; hashing it again keeps file names uniform even if the
key scheme changes.  The directory is created on first write.

Files hold a small JSON envelope::

    {"version": 1, "payload": "<base64>", "timestamp": "<iso-8601>", "signature": "<hex>"}

``signature`` is an HMAC-SHA256 over version, timestamp and payload, so a
truncated, edited or foreign file is detected and reported as a miss.  The
signing secret is either supplied by configuration or generated once per
cache directory and stored next to the entries.

Reads never raise.  Writes go through a temp file and ``os.replace`` so a
reader sees either the previous complete entry or the new one, and raise
:class:`~offgrid.exceptions.CacheWriteError` on failure.
"""

from __future__ import annotations

import base64
import hmac
import logging
import re
import secrets
from datetime import datetime
from hashlib import sha256
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from offgrid.cache.keys import sha256_hex
from offgrid.config import atomic_write
from offgrid.exceptions import CacheWriteError
from offgrid.models import CacheEntry

logger = logging.getLogger(__name__)

_FORMAT_VERSION = 1
_SECRET_FILENAME = ".signing-key"
_ENTRY_NAME = re.compile(r"^[0-9a-f]{64}$")


class _StoredEntry(BaseModel):
    """On-disk envelope.  Private: not an interchange format."""

    version: int
    payload: str
    timestamp: str
    signature: str = Field(pattern=r"^[0-9a-f]{64}$")


class DiskCache:
    """Persists :class:`~offgrid.models.CacheEntry` objects across restarts.

    No expiry or eviction happens here; the operating system may still
    reclaim the cache directory under storage pressure.

    Args:
        root: Cache root, usually :func:`~offgrid.config.get_cache_dir`.
        directory_name: Sub-directory that holds the entry files.
        signing_key: Secret for entry signatures.  When ``None`` a random
            secret is generated on first use and kept in the directory.

    Example::

        disk = DiskCache("/tmp/offgrid")
        disk.write(key, CacheEntry(payload=b'{"id": 1}'))
        entry = disk.read(key)
    """

    def __init__(
        self,
        root: str | Path,
        directory_name: str = "http_cache",
        signing_key: Optional[str] = None,
    ) -> None:
        self._directory = Path(root) / directory_name
        self._secret: Optional[bytes] = signing_key.encode("utf-8") if signing_key else None

    @property
    def directory(self) -> Path:
        """Directory holding the entry files (may not exist yet)."""
        return self._directory

    def path_for(self, key: str) -> Path:
        """Return the file path used for *key*."""
        return self._directory / sha256_hex(key)

    # ------------------------------------------------------------------ #
    # Read / write
    # ------------------------------------------------------------------ #

    def read(self, key: str) -> Optional[CacheEntry]:
        """Load the entry for *key*.

        Returns:
            The stored entry, or ``None`` when the file is missing,
            unreadable, malformed, or fails signature verification.
        """
        path = self.path_for(key)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.debug("Cannot read cache file %s: %s", path, exc)
            return None

        try:
            stored = _StoredEntry.model_validate_json(raw)
        except ValidationError:
            logger.warning("Ignoring malformed cache file %s", path)
            return None
        if stored.version != _FORMAT_VERSION:
            logger.debug("Ignoring cache file %s with version %s", path, stored.version)
            return None

        try:
            secret = self._load_secret(create=False)
        except (OSError, ValueError) as exc:
            logger.warning("Cannot read cache signing key: %s", exc)
            return None
        if secret is None or not hmac.compare_digest(
            stored.signature, _sign(secret, stored.version, stored.timestamp, stored.payload)
        ):
            logger.warning("Ignoring cache file %s with an invalid signature", path)
            return None

        try:
            payload = base64.b64decode(stored.payload, validate=True)
            timestamp = datetime.fromisoformat(stored.timestamp)
        except ValueError:
            logger.warning("Ignoring undecodable cache file %s", path)
            return None
        return CacheEntry(payload=payload, timestamp=timestamp)

    def write(self, key: str, entry: CacheEntry) -> None:
        """Persist *entry* under *key*, replacing any previous entry.

        Raises:
            CacheWriteError: If the directory, the secret, or the file
                cannot be written.
        """
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            secret = self._load_secret(create=True)
            assert secret is not None
            payload = base64.b64encode(entry.payload).decode("ascii")
            timestamp = entry.timestamp.isoformat()
            stored = _StoredEntry(
                version=_FORMAT_VERSION,
                payload=payload,
                timestamp=timestamp,
                signature=_sign(secret, _FORMAT_VERSION, timestamp, payload),
            )
            atomic_write(self.path_for(key), stored.model_dump_json().encode("utf-8"))
        except (OSError, ValueError) as exc:
            raise CacheWriteError(f"Cannot write cache entry {key[:12]}: {exc}") from exc

    # ------------------------------------------------------------------ #
    # Maintenance
    # ------------------------------------------------------------------ #

    def delete(self, key: str) -> None:
        """Remove the entry for *key* if present."""
        try:
            self.path_for(key).unlink()
        except FileNotFoundError:
            pass

    def clear(self) -> int:
        """Remove every entry file and return how many were deleted.

        The signing secret is kept so entries written later by this
        instance stay readable.
        """
        removed = 0
        for path in self._entry_files():
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
        return removed

    def __len__(self) -> int:
        return sum(1 for _ in self._entry_files())

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _entry_files(self) -> list[Path]:
        if not self._directory.is_dir():
            return []
        return [p for p in self._directory.iterdir() if _ENTRY_NAME.match(p.name)]

    def _load_secret(self, create: bool) -> Optional[bytes]:
        """Return the signing secret, generating the per-directory one if allowed."""
        if self._secret is not None:
            return self._secret
        path = self._directory / _SECRET_FILENAME
        try:
            secret = path.read_text(encoding="ascii").strip().encode("ascii")
        except FileNotFoundError:
            if not create:
                return None
            secret = secrets.token_hex(32).encode("ascii")
            atomic_write(path, secret)
            path.chmod(0o600)
        self._secret = secret
        return secret


def _sign(secret: bytes, version: int, timestamp: str, payload: str) -> str:
    message = f"{version}|{timestamp}|{payload}".encode("utf-8")
    return hmac.new(secret, message, sha256).hexdigest()
