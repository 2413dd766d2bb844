from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

import pytest
import structlog

from cicd_pipeline.core import Settings, StageExecutionError
from cicd_pipeline.pipeline import (
    ArtifactStore,
    Collaborators,
    EventSink,
    GatePolicy,
    RunContext,
    ScanResult,
    TagResolver,
    TagSet,
    TriggerContext,
)

VALUES_YAML = """\
replicaCount: 1

image:
  repository: ghcr.io/rust-todo
  pullPolicy: IfNotPresent
  tag: "0000000"

service:
  type: ClusterIP
  port: 8080
"""

COMMIT = "9f8e7d6c5b4a39281706f5e4d3c2b1a098765432"


@dataclass
class FakeToolchain:
    fail: set[str] = field(default_factory=set)
    calls: list[str] = field(default_factory=list)

    def _call(self, step: str) -> None:
        self.calls.append(step)
        if step in self.fail:
            raise StageExecutionError(f"{step} failed", returncode=101)

    def lint(self, workspace: Path) -> None:
        self._call("lint")

    def build(self, workspace: Path) -> Path:
        self._call("build")
        binary = Path(workspace) / "target" / "release" / "rust-todo"
        binary.parent.mkdir(parents=True, exist_ok=True)
        binary.write_bytes(b"\x7fELF fake binary")
        return binary

    def test(self, workspace: Path) -> None:
        self._call("test")


@dataclass
class FakeImageBuilder:
    built: list[tuple[str, ...]] = field(default_factory=list)

    def build(
        self,
        *,
        workspace: Path,
        image_name: str,
        tags: TagSet,
        labels: Mapping[str, str],
        archive_path: Path,
    ) -> Path:
        refs = tuple(f"{image_name}:{t.value}" for t in tags)
        self.built.append(refs)
        archive = Path(archive_path)
        archive.parent.mkdir(parents=True, exist_ok=True)
        archive.write_text("\n".join(refs), encoding="utf-8")
        return archive


@dataclass
class FakeScanner:
    result: ScanResult = field(default_factory=ScanResult)
    scanned: list[bytes] = field(default_factory=list)

    def scan(self, image_archive: Path, *, policy: GatePolicy) -> ScanResult:
        self.scanned.append(Path(image_archive).read_bytes())
        return self.result


@dataclass
class FakeRegistry:
    pushed: list[str] = field(default_factory=list)

    def publish(self, image_archive: Path, *, image_name: str, tags: TagSet) -> list[str]:
        refs = [f"{image_name}:{t.value}" for t in tags]
        self.pushed.extend(refs)
        return refs


@dataclass
class FakeVcs:
    error: Exception | None = None
    commits: list[tuple[Path, str]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def commit(self, path: Path, message: str) -> str:
        if self.error is not None:
            raise self.error
        with self._lock:
            self.commits.append((Path(path), message))
            return f"rev{len(self.commits)}"


@dataclass
class FakeTools:
    toolchain: FakeToolchain = field(default_factory=FakeToolchain)
    image_builder: FakeImageBuilder = field(default_factory=FakeImageBuilder)
    scanner: FakeScanner = field(default_factory=FakeScanner)
    registry: FakeRegistry = field(default_factory=FakeRegistry)
    vcs: FakeVcs = field(default_factory=FakeVcs)

    def bundle(self) -> Collaborators:
        return Collaborators(
            toolchain=self.toolchain,
            image_builder=self.image_builder,
            scanner=self.scanner,
            registry=self.registry,
            vcs=self.vcs,
        )


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    ws = tmp_path / "ws"
    values = ws / "helm" / "rust-todo" / "values.yaml"
    values.parent.mkdir(parents=True)
    values.write_text(VALUES_YAML, encoding="utf-8")
    return ws


@pytest.fixture
def settings(tmp_path: Path, workspace: Path) -> Settings:
    return Settings(
        _env_file=None,
        image_owner=None,
        workspace=workspace,
        run_root=tmp_path / "runs",
        workers=4,
    )


@pytest.fixture
def fake_tools() -> FakeTools:
    return FakeTools()


@pytest.fixture
def push_trigger() -> TriggerContext:
    return TriggerContext.direct_push(branch="main", commit_id=COMMIT)


@pytest.fixture
def make_run_context(tmp_path: Path, settings: Settings, fake_tools: FakeTools):
    def _make(trigger: TriggerContext, *, run_settings: Settings | None = None) -> RunContext:
        run_root = tmp_path / "run"
        return RunContext(
            run_id="test-run",
            run_root=run_root,
            trigger=trigger,
            settings=run_settings or settings,
            tag_resolver=TagResolver(),
            artifacts=ArtifactStore(run_root / "artifacts"),
            tools=fake_tools.bundle(),
            logger=structlog.get_logger("tests"),
            events=EventSink(run_root / "events.jsonl"),
        )

    return _make
