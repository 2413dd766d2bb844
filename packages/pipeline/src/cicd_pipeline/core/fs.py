import os
import shutil
import tempfile
from pathlib import Path


def ensure_parent(path: Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)


def safe_unlink(path: os.PathLike[str] | str) -> None:
    try:
        Path(path).unlink(missing_ok=True)
    except OSError:
        return


def fsync_dir(parent: Path) -> None:
    """
    Ensure directory entry durability after atomic rename.
    """
    fd: int | None = None
    try:
        fd = os.open(parent, os.O_RDONLY)
        os.fsync(fd)
    finally:
        if fd is not None:
            os.close(fd)


def _atomic_write(path: Path, data: bytes, *, mode: int | None) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd: int | None = None
    tmp_path: Path | None = None
    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.",
            suffix=".tmp",
            dir=str(path.parent),
        )
        tmp_path = Path(tmp_name)

        with os.fdopen(fd, "wb") as f:
            fd = None
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        if mode is not None:
            os.chmod(tmp_path, mode)

        os.replace(tmp_path, path)
        fsync_dir(path.parent)
    finally:
        if fd is not None:
            os.close(fd)
        if tmp_path is not None and tmp_path.exists():
            safe_unlink(tmp_path)


def atomic_write_text(
    path: Path,
    text: str,
    *,
    encoding: str = "utf-8",
    mode: int | None = 0o644,
) -> None:
    """
    Atomically write text to `path`.

    Guarantees:
      - readers either see the old complete file or the new complete file
      - temp file written in the same directory (atomic replace works)
      - file contents are fsync()'d before replace

    Pass mode=None to keep the permissions mkstemp gives the temp file.
    """
    _atomic_write(path, text.encode(encoding), mode=mode)


def atomic_write_bytes(path: Path, data: bytes, *, mode: int | None = 0o644) -> None:
    _atomic_write(path, data, mode=mode)


def copy_or_hardlink(src: Path, dst: Path) -> None:
    """
    Prefer hardlink (O(1), no extra disk), fallback to copy2.
    """
    src = Path(src)
    dst = Path(dst)
    ensure_parent(dst)
    try:
        os.link(src, dst)
    except OSError:
        shutil.copy2(src, dst)
