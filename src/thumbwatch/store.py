"""
Optional durable fingerprint store.

The in-memory tracker is the authoritative view of a session; a store only
accumulates, per fingerprint, the origins (e.g. page URLs) it was seen on so
that counts survive across sessions.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .dedup.hash import Fingerprint
from .logging import get_logger

logger = get_logger(__name__)

STORE_FORMAT_VERSION = 1


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class FingerprintRecord:
    """Everything persisted about one fingerprint."""
    fingerprint: Fingerprint
    count: int                      # Number of distinct origins
    origins: Tuple[str, ...]        # Origins in first-seen order
    first_seen_at: str              # ISO 8601, UTC
    last_seen_at: str               # ISO 8601, UTC

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["origins"] = list(self.origins)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FingerprintRecord":
        # Records written before origins were tracked have none
        origins = tuple(data.get("origins") or ())
        seen = data.get("first_seen_at") or data.get("last_seen_at") or _now()
        return cls(
            fingerprint=data["fingerprint"],
            count=len(origins) if origins else int(data.get("count", 0)),
            origins=origins,
            first_seen_at=seen,
            last_seen_at=data.get("last_seen_at") or seen,
        )


def merge_origin(existing: Optional[FingerprintRecord], fingerprint: Fingerprint, origin: str) -> FingerprintRecord:
    """
    Fold one sighting into a record.

    A new origin is appended and the count bumped; an origin that is
    already known leaves the record unchanged.
    """
    now = _now()
    if existing is None:
        return FingerprintRecord(fingerprint, 1, (origin,), now, now)
    if origin in existing.origins:
        return existing
    origins = existing.origins + (origin,)
    return replace(existing, count=len(origins), origins=origins, last_seen_at=now)


class FingerprintStore(ABC):
    """Abstract keyed-by-fingerprint store."""

    @abstractmethod
    def get(self, fingerprint: Fingerprint) -> Optional[FingerprintRecord]:
        """Return the record for a fingerprint, if any."""

    @abstractmethod
    def upsert(self, fingerprint: Fingerprint, origin: str) -> FingerprintRecord:
        """Record that a fingerprint was seen at origin and return the updated record."""

    @abstractmethod
    def clear(self) -> None:
        """Delete every record."""

    @abstractmethod
    def list_all(self) -> List[FingerprintRecord]:
        """All records, in insertion order."""


class MemoryFingerprintStore(FingerprintStore):
    def __init__(self) -> None:
        self._records: Dict[Fingerprint, FingerprintRecord] = {}

    def get(self, fingerprint: Fingerprint) -> Optional[FingerprintRecord]:
        return self._records.get(fingerprint)

    def upsert(self, fingerprint: Fingerprint, origin: str) -> FingerprintRecord:
        existing = self._records.get(fingerprint)
        updated = merge_origin(existing, fingerprint, origin)
        if updated is not existing:
            self._records[fingerprint] = updated
        return updated

    def clear(self) -> None:
        self._records.clear()

    def list_all(self) -> List[FingerprintRecord]:
        return list(self._records.values())


class JsonFingerprintStore(MemoryFingerprintStore):
    """
    Store persisted as a single JSON document.

    The whole file is rewritten on each change through a temporary file and
    os.replace, so a crash never leaves a half-written store behind.
    """

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        for item in data.get("records", []):
            record = FingerprintRecord.from_dict(item)
            self._records[record.fingerprint] = record
        logger.debug(f"Loaded {len(self._records)} records from {self.path}")

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "version": STORE_FORMAT_VERSION,
            "records": [record.to_dict() for record in self._records.values()],
        }
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def upsert(self, fingerprint: Fingerprint, origin: str) -> FingerprintRecord:
        existing = self._records.get(fingerprint)
        updated = super().upsert(fingerprint, origin)
        if updated is not existing:
            if existing is not None:
                logger.info(f"New origin for {fingerprint[:8]}...: {origin}")
            self._save()
        return updated

    def clear(self) -> None:
        super().clear()
        self._save()
        logger.info(f"Cleared fingerprint store {self.path}")
