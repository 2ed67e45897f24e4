"""Snapshot persistence for the entry store.

The snapshot is a JSON document written with a temp-file-then-rename
sequence, so the target path always holds either the previous complete
snapshot or the new one. Timestamps are not stored: every loaded entry starts
its TTL clock at load time.

Layout::

    {"version": 1, "entries": {"<key>": {"v": "<base64>", "s": "<secret>"}}}
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Callable

from bootkv.core.errors import PersistenceAppError
from bootkv.services.entry_store import EntryStore

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` atomically.

    A temporary file is created in the target directory, written, fsynced and
    closed, then renamed over ``path``. On failure the temporary file is
    removed and ``path`` is left untouched.

    Raises:
        OSError: If any step fails.
    """

    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent,
        prefix=f"{path.stem}_temp_",
        suffix=path.suffix or ".tmp",
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def encode_snapshot(entries: dict[str, tuple[bytes, str | None]]) -> bytes:
    records: dict[str, dict[str, str]] = {}
    for key, (value, secret) in entries.items():
        record = {"v": base64.b64encode(value).decode("ascii")}
        if secret:
            record["s"] = secret
        records[key] = record
    return json.dumps({"version": SNAPSHOT_VERSION, "entries": records}).encode("utf-8")


def decode_snapshot(data: bytes) -> dict[str, tuple[bytes, str | None]]:
    """Parse snapshot bytes.

    Raises:
        PersistenceAppError: ``snapshot_corrupt`` if the document is not a
            valid snapshot.
    """

    try:
        document: Any = json.loads(data)
        if not isinstance(document, dict) or document.get("version") != SNAPSHOT_VERSION:
            raise ValueError("unsupported snapshot version")
        records = document.get("entries")
        if not isinstance(records, dict):
            raise ValueError("entries must be an object")

        entries: dict[str, tuple[bytes, str | None]] = {}
        for key, record in records.items():
            value = base64.b64decode(record["v"], validate=True)
            secret = record.get("s") or None
            if secret is not None and not isinstance(secret, str):
                raise ValueError(f"secret for {key!r} must be a string")
            entries[key] = (value, secret)
        return entries
    except (ValueError, TypeError, KeyError, AttributeError, binascii.Error) as exc:
        raise PersistenceAppError(
            code="snapshot_corrupt",
            message=f"Snapshot could not be decoded: {exc}",
        ) from exc


class PersistenceManager:
    """Loads the store at startup and flushes it to disk on demand."""

    def __init__(
        self,
        store: EntryStore,
        snapshot_path: Path | str,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._path = Path(snapshot_path)
        self._clock = clock
        self._flush_lock = threading.Lock()

    @property
    def snapshot_path(self) -> Path:
        return self._path

    def load(self) -> int:
        """Rehydrate the store from the snapshot file.

        Missing, unreadable or corrupt snapshots are logged and the store
        starts empty; startup never fails here.

        Returns:
            Number of entries loaded.
        """

        try:
            data = self._path.read_bytes()
        except FileNotFoundError:
            logger.info("persistence.snapshot_missing", extra={"snapshot_path": str(self._path)})
            return 0
        except OSError as exc:
            logger.error(
                "persistence.load_failed",
                extra={"snapshot_path": str(self._path), "error_msg": str(exc)},
            )
            return 0

        try:
            entries = decode_snapshot(data)
        except PersistenceAppError as exc:
            logger.error(
                "persistence.load_failed",
                extra={"snapshot_path": str(self._path), "error_code": exc.code, "error_msg": exc.message},
            )
            return 0

        now = self._clock()
        loaded = 0
        skipped = 0
        for key, (value, secret) in entries.items():
            if self._store.restore(key, value, secret, now):
                loaded += 1
            else:
                skipped += 1

        logger.info(
            "persistence.loaded",
            extra={"snapshot_path": str(self._path), "loaded": loaded, "skipped": skipped},
        )
        return loaded

    def flush(self) -> bool:
        """Write the current store contents to the snapshot file.

        The store lock is held only while copying entries; encoding and disk
        I/O run without it.

        Returns:
            True on success, False if the flush failed (previous snapshot kept).
        """

        with self._flush_lock:
            return self._flush_locked()

    def _flush_locked(self) -> bool:
        start = time.perf_counter()
        entries = self._store.snapshot()
        try:
            atomic_write_bytes(self._path, encode_snapshot(entries))
        except (OSError, TypeError, ValueError) as exc:
            error = PersistenceAppError(code="persistence_io_error", message=str(exc))
            logger.error(
                "persistence.flush_failed",
                extra={
                    "snapshot_path": str(self._path),
                    "error_code": error.code,
                    "error_msg": error.message,
                },
            )
            return False

        logger.info(
            "persistence.flushed",
            extra={
                "snapshot_path": str(self._path),
                "entries": len(entries),
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        return True

    def close(self, grace_seconds: float = 10.0) -> bool:
        """Final flush on shutdown.

        Waits up to ``grace_seconds`` for an in-flight flush to finish. If it
        does not finish in time the final flush is skipped rather than racing
        it on the same path.
        """

        if not self._flush_lock.acquire(timeout=grace_seconds):
            logger.warning(
                "persistence.shutdown_flush_skipped",
                extra={"snapshot_path": str(self._path), "grace_s": grace_seconds},
            )
            return False
        try:
            return self._flush_locked()
        finally:
            self._flush_lock.release()
