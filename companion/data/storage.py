"""
Companion Engine — JSON persistence substrate.

Each store owns one JSON file. Reads never fail the caller: a missing,
unreadable or corrupt file degrades to the default value so a bad data
file can never block startup. Writes go to a temp file that replaces the
target, and a failed write is logged and reported as ``False``.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable, TypeVar

from pydantic import TypeAdapter, ValidationError

from companion.core.errors import PersistenceReadFailure, PersistenceWriteFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

_adapters: dict[Any, TypeAdapter] = {}


def _adapter(type_: Any) -> TypeAdapter:
    adapter = _adapters.get(type_)
    if adapter is None:
        adapter = TypeAdapter(type_)
        _adapters[type_] = adapter
    return adapter


# ---------------------------------------------------------------------------
# Low-level read / write
# ---------------------------------------------------------------------------


def read_document(path: str | Path, type_: Any) -> Any:
    """Read and validate ``path`` against ``type_``.

    Raises:
        FileNotFoundError: the file does not exist.
        PersistenceReadFailure: the file is unreadable or fails validation.
    """
    path = Path(path)
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        raise
    except OSError as exc:
        raise PersistenceReadFailure(str(path), f"unreadable: {exc}") from exc

    try:
        return _adapter(type_).validate_json(raw)
    except ValidationError as exc:
        raise PersistenceReadFailure(
            str(path), f"invalid content ({exc.error_count()} errors)",
        ) from exc


def write_document(path: str | Path, value: Any, type_: Any) -> None:
    """Serialize ``value`` as pretty-printed JSON and replace ``path``.

    Raises:
        PersistenceWriteFailure: serialization or any file operation failed.
        The temp file is cleaned up on error.
    """
    path = Path(path)
    try:
        payload = _adapter(type_).dump_json(value, indent=2)
    except Exception as exc:
        raise PersistenceWriteFailure(str(path), f"serialization failed: {exc}") from exc

    tmp_path: str | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            prefix=f"{path.name}.", suffix=".tmp", dir=str(path.parent),
        )
        with os.fdopen(fd, "wb") as fh:
            fh.write(payload)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except OSError as exc:
        if tmp_path is not None:
            try:
                Path(tmp_path).unlink(missing_ok=True)
            except OSError:
                pass
        raise PersistenceWriteFailure(str(path), str(exc)) from exc


def _quarantine(path: Path) -> None:
    """Keep a copy of a corrupt file next to it before it gets overwritten."""
    target = path.with_name(path.name + ".corrupt")
    try:
        shutil.copyfile(path, target)
        logger.info("Corrupt file copied to %s", target)
    except OSError as exc:
        logger.debug("Could not copy corrupt file %s: %s", path, exc)


# ---------------------------------------------------------------------------
# Public boundary: never raises
# ---------------------------------------------------------------------------


def load_document(path: str | Path, type_: Any, default: Callable[[], T]) -> T:
    """Load a document, falling back to ``default()`` on any read failure."""
    path = Path(path)
    try:
        return read_document(path, type_)
    except FileNotFoundError:
        logger.debug("No data file at %s, using defaults", path)
    except PersistenceReadFailure as exc:
        logger.warning("Failed to load %s, using defaults: %s", path, exc.reason)
        if path.exists():
            _quarantine(path)
    return default()


def save_document(path: str | Path, value: Any, type_: Any) -> bool:
    """Save a document. Returns False (after logging) if the write failed."""
    try:
        write_document(path, value, type_)
    except PersistenceWriteFailure as exc:
        logger.error("Failed to save %s: %s", exc.path, exc.reason)
        return False
    return True


def load_records(path: str | Path, record_type: type[T]) -> list[T]:
    """Load a JSON array of ``record_type`` records, or ``[]``."""
    return load_document(path, list[record_type], list)


def save_records(path: str | Path, records: list[T], record_type: type[T]) -> bool:
    """Save ``records`` as a JSON array."""
    return save_document(path, records, list[record_type])
