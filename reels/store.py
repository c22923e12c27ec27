"""
Reel store — indexed, lock-protected table of ``ReelRecord`` values.

Reels live in memory keyed by id (insertion order = creation order) and
every mutation is written through to one JSON document.  The write happens
under the same lock as the mutation, and a failed write rolls the table
back, so memory and disk never disagree.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import ValidationError

from utils.errors import NotFoundError, StorageError
from utils.schemas import DirectorInfo, ReelEditState, ReelRecord, VideoRecord

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled Reel"
_ID_LENGTH = 10
_IMMUTABLE_FIELDS = frozenset({"id", "created_at"})


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _field_names() -> Dict[str, str]:
    """Map both attribute names and camelCase aliases to attribute names."""
    names: Dict[str, str] = {}
    for name, info in ReelRecord.model_fields.items():
        names[name] = name
        if info.alias:
            names[info.alias] = name
    return names


class ReelStore:
    def __init__(self, path: str | Path, *, clock: Callable[[], str] = _utc_now) -> None:
        self._path = Path(path)
        self._clock = clock
        self._lock = threading.Lock()
        self._reels: Dict[str, ReelRecord] = {}
        self._fields = _field_names()
        self._load()

    # ── CRUD ────────────────────────────────────────────────────────────

    def create(
        self,
        videos: List[VideoRecord],
        title: Optional[str] = None,
        description: Optional[str] = None,
        director_info: Optional[DirectorInfo] = None,
        edit_state: Optional[ReelEditState] = None,
    ) -> ReelRecord:
        now = self._clock()
        with self._lock:
            reel = ReelRecord(
                id=self._new_id(),
                videos=list(videos),
                title=title or DEFAULT_TITLE,
                description=description or "",
                director_info=director_info,
                edit_state=edit_state,
                created_at=now,
                updated_at=now,
            )
            self._reels[reel.id] = reel
            try:
                self._flush()
            except StorageError:
                del self._reels[reel.id]
                raise
        logger.info("Created reel %s (%d videos)", reel.id, len(reel.videos))
        return reel.model_copy(deep=True)

    def get(self, reel_id: str) -> Optional[ReelRecord]:
        with self._lock:
            reel = self._reels.get(reel_id)
            return reel.model_copy(deep=True) if reel else None

    def list(self) -> List[ReelRecord]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._reels.values()]

    def update(self, reel_id: str, fields: Mapping[str, Any]) -> ReelRecord:
        """
        Replace any field except ``id`` / ``createdAt`` and bump ``updatedAt``.

        Keys may be attribute names or camelCase aliases; unknown keys are
        ignored.  Raises ``NotFoundError`` for an unknown id.
        """
        with self._lock:
            current = self._reels.get(reel_id)
            if current is None:
                raise NotFoundError(f"Reel '{reel_id}' not found")

            changes: Dict[str, Any] = {}
            for key, value in fields.items():
                name = self._fields.get(key)
                if name is None:
                    logger.debug("Ignoring unknown reel field %r", key)
                elif name in _IMMUTABLE_FIELDS:
                    logger.debug("Ignoring attempt to change reel %s", name)
                else:
                    changes[name] = value

            merged = current.model_dump()
            merged.update(changes)
            merged["updated_at"] = self._clock()
            try:
                updated = ReelRecord.model_validate(merged)
            except ValidationError as exc:
                raise ValueError(f"Invalid reel update: {exc}") from exc

            self._reels[reel_id] = updated
            try:
                self._flush()
            except StorageError:
                self._reels[reel_id] = current
                raise
        logger.info("Updated reel %s (%s)", reel_id, ", ".join(sorted(changes)) or "no fields")
        return updated.model_copy(deep=True)

    def delete(self, reel_id: str) -> bool:
        with self._lock:
            removed = self._reels.pop(reel_id, None)
            if removed is None:
                return False
            try:
                self._flush()
            except StorageError:
                # restore at the end; creation order of the others is kept
                self._reels[reel_id] = removed
                raise
        logger.info("Deleted reel %s", reel_id)
        return True

    # ── persistence ─────────────────────────────────────────────────────

    def _load(self) -> None:
        if not self._path.exists():
            self._flush()
            logger.info("Initialised empty reel store at %s", self._path)
            return
        try:
            document = json.loads(self._path.read_text(encoding="utf-8") or "[]")
            reels = [ReelRecord.model_validate(item) for item in document]
        except (OSError, ValueError, TypeError) as exc:
            raise StorageError(f"Reel store {self._path} is unreadable: {exc}") from exc
        self._reels = {r.id: r for r in reels}
        logger.info("Loaded %d reels from %s", len(self._reels), self._path)

    def _flush(self) -> None:
        document = [r.to_wire() for r in self._reels.values()]
        tmp_name: Optional[str] = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".reels-", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Could not write reel store {self._path}: {exc}") from exc

    def _new_id(self) -> str:
        while True:
            candidate = uuid.uuid4().hex[:_ID_LENGTH]
            if candidate not in self._reels:
                return candidate
