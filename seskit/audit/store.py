"""Persistence backends for audit trails.

Stores hand out deep-copied snapshots; only :class:`AuditTrailLedger` decides
what gets appended. Writes for one resource id are serialized through
:meth:`TrailStorePort.lock`.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, ContextManager, Protocol
from urllib.parse import quote, unquote

from seskit.audit.records import AuditRecord, AuditTrail

logger = logging.getLogger(__name__)

TRAIL_FILE_SUFFIX = ".jsonl"


class TrailStorePort(Protocol):
    """Port interface for audit trail persistence.

    Side effects: implementations may write to disk (offline).
    """

    def get(self, resource_id: str) -> AuditTrail | None:
        """Return a snapshot of the trail or None when unknown."""
        ...

    def create(self, trail: AuditTrail) -> None:
        """Persist a new, empty trail."""
        ...

    def append(
        self,
        resource_id: str,
        record: AuditRecord,
        *,
        root_hash: str,
        last_modified: datetime,
    ) -> None:
        """Append ``record`` and store the new root hash."""
        ...

    def seal(self, resource_id: str, *, sealed_at: datetime) -> None:
        """Flag the trail as sealed."""
        ...

    def resource_ids(self) -> list[str]:
        """Return the ids of all stored trails."""
        ...

    def lock(self, resource_id: str) -> ContextManager[None]:
        """Return a re-entrant lock serializing writes to ``resource_id``."""
        ...


class _KeyedLocks:
    """Lazily created re-entrant locks, one per resource id."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.RLock())
        with lock:
            yield


class InMemoryTrailStore:
    """Process-local trail store; trails are lost when the process exits."""

    def __init__(self) -> None:
        self._trails: dict[str, AuditTrail] = {}
        self._locks = _KeyedLocks()

    def get(self, resource_id: str) -> AuditTrail | None:
        trail = self._trails.get(resource_id)
        return trail.model_copy(deep=True) if trail is not None else None

    def create(self, trail: AuditTrail) -> None:
        if trail.resource_id in self._trails:
            raise ValueError(f"Audit trail '{trail.resource_id}' already exists")
        self._trails[trail.resource_id] = trail.model_copy(deep=True)

    def append(
        self,
        resource_id: str,
        record: AuditRecord,
        *,
        root_hash: str,
        last_modified: datetime,
    ) -> None:
        trail = self._require(resource_id)
        trail.records.append(record.model_copy(deep=True))
        trail.root_hash = root_hash
        trail.last_modified = last_modified

    def seal(self, resource_id: str, *, sealed_at: datetime) -> None:
        trail = self._require(resource_id)
        trail.is_sealed = True
        trail.sealed_at = sealed_at

    def resource_ids(self) -> list[str]:
        return sorted(self._trails)

    def lock(self, resource_id: str) -> ContextManager[None]:
        return self._locks.hold(resource_id)

    def _require(self, resource_id: str) -> AuditTrail:
        try:
            return self._trails[resource_id]
        except KeyError:
            raise KeyError(f"Audit trail '{resource_id}' does not exist") from None


class JsonlTrailStore(InMemoryTrailStore):
    """Append-only JSONL trail store, one file per resource id.

    Each file holds a ``created`` line, one ``record`` line per audit record
    (carrying the root hash after that record) and at most one ``sealed`` line.
    Every line is fsync'd before the in-memory view is updated. Files are
    replayed on first access so trails survive process restarts.

    A single process is expected to write a given directory.
    """

    def __init__(self, root: Path) -> None:
        super().__init__()
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)
        self._loaded: set[str] = set()

    # ---------------------------------------------------------------------#
    # Internal helpers
    # ---------------------------------------------------------------------#

    def _path_for(self, resource_id: str) -> Path:
        return self.root / f"{quote(resource_id, safe='')}{TRAIL_FILE_SUFFIX}"

    def _write_line(self, resource_id: str, payload: dict[str, Any]) -> None:
        line = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        with open(self._path_for(resource_id), "a", encoding="utf-8") as fh:
            fh.write(line + "\n")
            fh.flush()
            os.fsync(fh.fileno())

    def _ensure_loaded(self, resource_id: str) -> None:
        if resource_id in self._loaded:
            return
        self._loaded.add(resource_id)

        path = self._path_for(resource_id)
        if not path.exists():
            return

        trail = self._replay(path)
        if trail is not None:
            self._trails[resource_id] = trail
            logger.debug("Loaded %d audit records from %s", len(trail.records), path)

    def _replay(self, path: Path) -> AuditTrail | None:
        trail: AuditTrail | None = None
        with open(path, encoding="utf-8") as fh:
            for line_num, raw_line in enumerate(fh, 1):
                line = raw_line.strip()
                if not line:
                    continue

                try:
                    entry = json.loads(line)
                    kind = entry["type"]
                    if kind == "created":
                        trail = AuditTrail.model_validate(entry["trail"])
                    elif trail is None:
                        raise ValueError("trail header missing")
                    elif kind == "record":
                        trail.records.append(AuditRecord.model_validate(entry["record"]))
                        trail.root_hash = entry["root_hash"]
                        trail.last_modified = datetime.fromisoformat(entry["last_modified"])
                    elif kind == "sealed":
                        trail.is_sealed = True
                        trail.sealed_at = datetime.fromisoformat(entry["sealed_at"])
                    else:
                        raise ValueError(f"unknown entry type {kind!r}")
                except (KeyError, ValueError) as exc:
                    raise ValueError(f"Invalid entry at line {line_num} in {path}: {exc}") from exc

        return trail

    # ---------------------------------------------------------------------#
    # Public API
    # ---------------------------------------------------------------------#

    def get(self, resource_id: str) -> AuditTrail | None:
        self._ensure_loaded(resource_id)
        return super().get(resource_id)

    def create(self, trail: AuditTrail) -> None:
        self._ensure_loaded(trail.resource_id)
        if trail.resource_id in self._trails:
            raise ValueError(f"Audit trail '{trail.resource_id}' already exists")
        self._write_line(
            trail.resource_id,
            {"type": "created", "trail": trail.model_dump(mode="json", exclude={"records"})},
        )
        super().create(trail)

    def append(
        self,
        resource_id: str,
        record: AuditRecord,
        *,
        root_hash: str,
        last_modified: datetime,
    ) -> None:
        self._ensure_loaded(resource_id)
        self._require(resource_id)
        self._write_line(
            resource_id,
            {
                "type": "record",
                "record": record.model_dump(mode="json"),
                "root_hash": root_hash,
                "last_modified": last_modified.isoformat(),
            },
        )
        super().append(resource_id, record, root_hash=root_hash, last_modified=last_modified)

    def seal(self, resource_id: str, *, sealed_at: datetime) -> None:
        self._ensure_loaded(resource_id)
        self._require(resource_id)
        self._write_line(resource_id, {"type": "sealed", "sealed_at": sealed_at.isoformat()})
        super().seal(resource_id, sealed_at=sealed_at)

    def resource_ids(self) -> list[str]:
        on_disk = {
            unquote(path.name[: -len(TRAIL_FILE_SUFFIX)])
            for path in self.root.glob(f"*{TRAIL_FILE_SUFFIX}")
        }
        return sorted(on_disk | set(self._trails))
