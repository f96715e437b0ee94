"""Durable storage for in-progress processes.

``ProcessStore`` saves, loads and clears a :class:`ProcessState` through a
small key-value contract. Persistence is best effort: failures are logged
and swallowed so the wizard keeps working from its in-memory state, and a
corrupted or outdated stored value is repaired on read rather than
surfaced to the caller.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol

import structlog
from pydantic import ValidationError

from contract_packet.flow.state import ProcessState, new_process_state
from contract_packet.models import PrintData

logger = structlog.get_logger(__name__)

DEFAULT_STATE_KEY = "contract_packet_state_v3"
PRINT_DATA_SUFFIX = "print"

# Values written by broken clients that mean "nothing stored".
_EMPTY_MARKERS = frozenset({"", "undefined", "null"})


# ---------------------------------------------------------------------------
# Key-value backends
# ---------------------------------------------------------------------------


class KeyValueStore(Protocol):
    """String key-value storage used by :class:`ProcessStore`."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class InMemoryStore:
    """Process-local key-value store."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)


class JsonFileStore:
    """Key-value store kept in a single JSON file.

    Every write rewrites the whole file through a temporary file and
    ``os.replace`` so a crash never leaves a half-written document.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        text = self._path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"{self._path} does not hold a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def _write_all(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent, prefix=self._path.name, suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read_all()
            if key in data:
                del data[key]
                self._write_all(data)


# ---------------------------------------------------------------------------
# Schema backfill
# ---------------------------------------------------------------------------


def _backfill(stored: dict[str, Any], defaults: dict[str, Any]) -> dict[str, Any]:
    """Overlay *stored* onto *defaults*, recursing into nested records.

    Keys missing from an older stored schema, or stored as ``null`` where
    the current schema expects a record, take their default value.
    Nullable fields whose default is ``None`` keep whatever was stored.
    """
    merged = dict(defaults)
    for key, value in stored.items():
        default = defaults.get(key)
        if isinstance(default, dict):
            if isinstance(value, dict):
                merged[key] = _backfill(value, default)
            # null or wrong type: keep the default record
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Process store
# ---------------------------------------------------------------------------


class ProcessStore:
    """Load/save/clear adapter for one process namespace.

    Args:
        kv: Backend implementing :class:`KeyValueStore`.
        namespace: Identifies the process (normally its ``process_id``).
        state_key: Key prefix, bumped when the stored schema breaks.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        namespace: str,
        state_key: str = DEFAULT_STATE_KEY,
    ) -> None:
        self._kv = kv
        self.namespace = namespace
        self.state_key = state_key

    @property
    def key(self) -> str:
        return f"{self.state_key}:{self.namespace}"

    @property
    def print_key(self) -> str:
        return f"{self.key}:{PRINT_DATA_SUFFIX}"

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def save(self, state: ProcessState) -> None:
        """Store *state*; never raises."""
        try:
            self._kv.set(self.key, state.to_json())
        except Exception as exc:
            logger.error(
                "process_state_save_failed",
                key=self.key,
                process_id=state.process_id,
                error=str(exc),
            )
            return
        logger.debug(
            "process_state_saved",
            key=self.key,
            step=state.current_step.value,
        )

    def load(self) -> ProcessState:
        """Return the stored state, or a fresh one if nothing usable is stored."""
        try:
            raw = self._kv.get(self.key)
        except Exception as exc:
            logger.error("process_state_load_failed", key=self.key, error=str(exc))
            return new_process_state(self.namespace)

        if raw is None:
            return new_process_state(self.namespace)

        if raw.strip() in _EMPTY_MARKERS:
            logger.warning("process_state_empty_marker", key=self.key, value=raw)
            self._discard()
            return new_process_state(self.namespace)

        try:
            stored = json.loads(raw)
            if not isinstance(stored, dict):
                raise ValueError("stored process state is not an object")
            defaults = new_process_state(self.namespace).model_dump(
                by_alias=True, mode="json"
            )
            state = ProcessState.model_validate(_backfill(stored, defaults))
        except (ValueError, ValidationError) as exc:
            logger.warning("process_state_corrupted", key=self.key, error=str(exc))
            self._discard()
            return new_process_state(self.namespace)

        if not state.process_id:
            state.process_id = self.namespace
        return state

    def exists(self) -> bool:
        """``True`` when a usable state entry is stored for this process."""
        try:
            raw = self._kv.get(self.key)
        except Exception as exc:
            logger.error("process_state_load_failed", key=self.key, error=str(exc))
            return False
        return raw is not None and raw.strip() not in _EMPTY_MARKERS

    def clear(self) -> None:
        """Remove everything stored for this process."""
        for key in (self.key, self.print_key):
            try:
                self._kv.remove(key)
            except Exception as exc:
                logger.error("process_state_clear_failed", key=key, error=str(exc))
        logger.info("process_state_cleared", namespace=self.namespace)

    def _discard(self) -> None:
        try:
            self._kv.remove(self.key)
        except Exception as exc:
            logger.error("process_state_discard_failed", key=self.key, error=str(exc))

    # ------------------------------------------------------------------
    # Print snapshot
    # ------------------------------------------------------------------

    def save_print_data(self, data: PrintData) -> None:
        try:
            self._kv.set(self.print_key, data.model_dump_json(by_alias=True))
        except Exception as exc:
            logger.error("print_data_save_failed", key=self.print_key, error=str(exc))

    def load_print_data(self) -> PrintData | None:
        try:
            raw = self._kv.get(self.print_key)
            if raw is None or raw.strip() in _EMPTY_MARKERS:
                return None
            return PrintData.model_validate_json(raw)
        except (ValueError, ValidationError) as exc:
            logger.warning("print_data_corrupted", key=self.print_key, error=str(exc))
            return None
        except Exception as exc:
            logger.error("print_data_load_failed", key=self.print_key, error=str(exc))
            return None

    def discard_print_data(self) -> None:
        """Drop the print snapshot; the next render uses live state."""
        try:
            self._kv.remove(self.print_key)
        except Exception as exc:
            logger.error("print_data_discard_failed", key=self.print_key, error=str(exc))
