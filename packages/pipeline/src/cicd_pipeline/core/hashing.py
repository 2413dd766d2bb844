import hashlib
from dataclasses import dataclass
from pathlib import Path

_CHUNK = 1024 * 1024


@dataclass(frozen=True)
class Digest:
    sha256: str
    bytes: int

    @property
    def ref(self) -> str:
        """OCI-style digest reference."""
        return f"sha256:{self.sha256}"


def sha256_bytes(b: bytes) -> str:
    return hashlib.sha256(b).hexdigest()


def sha256_file(path: Path, *, chunk_bytes: int = _CHUNK) -> Digest:
    h = hashlib.sha256()
    total = 0
    with Path(path).open("rb") as f:
        for block in iter(lambda: f.read(chunk_bytes), b""):
            h.update(block)
            total += len(block)
    return Digest(sha256=h.hexdigest(), bytes=total)


def digest_payload(payload: bytes | bytearray | Path) -> Digest:
    """Digest an in-memory payload or a file on disk."""
    if isinstance(payload, (bytes, bytearray)):
        return Digest(sha256=sha256_bytes(bytes(payload)), bytes=len(payload))
    return sha256_file(Path(payload))
