from __future__ import annotations

import shutil
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from cicd_pipeline.core import (
    DuplicateArtifactError,
    MissingArtifactError,
    atomic_write_bytes,
    copy_or_hardlink,
    digest_payload,
    utc_now,
)


@dataclass(frozen=True, slots=True)
class ArtifactHandle:
    """
    A write-once payload produced by one stage and read by others.
    """

    key: str
    producer_stage: str
    payload_location: Path
    retention: timedelta
    sha256: str
    bytes: int
    created_at: datetime

    @property
    def expires_at(self) -> datetime:
        return self.created_at + self.retention

    def to_dict(self) -> dict[str, object]:
        return {
            "key": self.key,
            "producer_stage": self.producer_stage,
            "payload_location": str(self.payload_location),
            "retention_s": int(self.retention.total_seconds()),
            "digest": f"sha256:{self.sha256}",
            "bytes": self.bytes,
            "created_at_utc": self.created_at.isoformat().replace("+00:00", "Z"),
        }


class ArtifactStore:
    """
    Content-addressed handoff of stage outputs within one run.

    Layout: {root}/{sha256}. Two keys with identical content share one blob.
    Retention is advisory; payloads stay readable until `purge()`.
    """

    def __init__(self, root: Path, *, retention: timedelta = timedelta(days=1)) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.retention = retention
        self._handles: dict[str, ArtifactHandle] = {}
        self._lock = threading.Lock()

    def put(self, key: str, producer_stage: str, payload: bytes | Path) -> ArtifactHandle:
        with self._lock:
            existing = self._handles.get(key)
            if existing is not None:
                raise DuplicateArtifactError(key, producer_stage, existing.producer_stage)

            in_memory = isinstance(payload, (bytes, bytearray))
            if not in_memory and not Path(payload).is_file():
                raise MissingArtifactError(key, f"payload file not found: {payload}")

            digest = digest_payload(payload)
            location = self.root / digest.sha256
            if not location.exists():
                if in_memory:
                    atomic_write_bytes(location, bytes(payload))
                else:
                    copy_or_hardlink(Path(payload), location)

            handle = ArtifactHandle(
                key=key,
                producer_stage=producer_stage,
                payload_location=location,
                retention=self.retention,
                sha256=digest.sha256,
                bytes=digest.bytes,
                created_at=utc_now(),
            )
            self._handles[key] = handle
            return handle

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._handles

    def handle(self, key: str) -> ArtifactHandle:
        with self._lock:
            h = self._handles.get(key)
        if h is None:
            raise MissingArtifactError(key)
        return h

    def path(self, key: str) -> Path:
        return self.handle(key).payload_location

    def get(self, key: str) -> bytes:
        return self.path(key).read_bytes()

    def handles(self) -> list[ArtifactHandle]:
        with self._lock:
            return sorted(self._handles.values(), key=lambda h: h.key)

    def expired(self, now: datetime | None = None) -> list[ArtifactHandle]:
        at = now or utc_now()
        return [h for h in self.handles() if h.expires_at <= at]

    def purge(self) -> None:
        """Drop every payload; called when the run ends."""
        with self._lock:
            self._handles.clear()
        shutil.rmtree(self.root, ignore_errors=True)
