from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol

from .gate import GatePolicy, ScanResult
from .tags import TagSet


class Toolchain(Protocol):
    """Static analysis, compiler and test runner for the checkout."""

    def lint(self, workspace: Path) -> None: ...
    def build(self, workspace: Path) -> Path: ...
    def test(self, workspace: Path) -> None: ...


class ImageBuilder(Protocol):
    def build(
        self,
        *,
        workspace: Path,
        image_name: str,
        tags: TagSet,
        labels: Mapping[str, str],
        archive_path: Path,
    ) -> Path:
        """Build the image with every tag and save it to `archive_path`."""
        ...


class Scanner(Protocol):
    def scan(self, image_archive: Path, *, policy: GatePolicy) -> ScanResult: ...


class Registry(Protocol):
    def publish(
        self, image_archive: Path, *, image_name: str, tags: TagSet
    ) -> list[str]:
        """Push every tag of the archived image; return the pushed refs."""
        ...


class VersionControl(Protocol):
    def commit(self, path: Path, message: str) -> str:
        """Commit `path` with `message`; return the new revision id."""
        ...


@dataclass(frozen=True, slots=True)
class Collaborators:
    """External tools the stages invoke."""

    toolchain: Toolchain
    image_builder: ImageBuilder
    scanner: Scanner
    registry: Registry
    vcs: VersionControl
