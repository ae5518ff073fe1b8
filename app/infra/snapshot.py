from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

import redis

from app.core.errors import PersistenceError

logger = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    """Where the flat `{capes, emotes, emotesRev}` document lives between restarts.

    `load` returns the raw decoded JSON (or None when nothing was saved yet);
    both methods raise PersistenceError on I/O or decode failures.
    """

    def load(self) -> Any: ...

    def save(self, document: dict[str, Any]) -> None: ...


class FileSnapshotStore:
    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> Any:
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise PersistenceError(f"cannot read {self.path}: {e}") from e

    def save(self, document: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Write-then-rename so a crash mid-write never leaves a truncated file.
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(document, fh, indent=2)
                os.replace(tmp, self.path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceError(f"cannot write {self.path}: {e}") from e


class RedisSnapshotStore:
    """Keeps the whole document as one JSON string under a single key."""

    def __init__(self, *, r: redis.Redis, key: str) -> None:
        self.r = r
        self.key = key

    def load(self) -> Any:
        try:
            raw = self.r.get(self.key)
        except redis.RedisError as e:
            raise PersistenceError(f"cannot read redis key {self.key}: {e}") from e
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise PersistenceError(f"redis key {self.key} is not JSON: {e}") from e

    def save(self, document: dict[str, Any]) -> None:
        try:
            self.r.set(self.key, json.dumps(document))
        except redis.RedisError as e:
            raise PersistenceError(f"cannot write redis key {self.key}: {e}") from e


class MemorySnapshotStore:
    """Keeps the last saved document in process; used by tests and `memory` backend."""

    def __init__(self, document: Any = None) -> None:
        self.document = document

    def load(self) -> Any:
        return json.loads(json.dumps(self.document)) if self.document is not None else None

    def save(self, document: dict[str, Any]) -> None:
        self.document = json.loads(json.dumps(document))
