from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

from cicd_pipeline.core import RunProvenance, atomic_write_text

from .scheduler import RunOutcome
from .stage import StageResult


@dataclass(slots=True)
class RunReport:
    run_id: str
    started_at_utc: str
    finished_at_utc: str
    status: str  # "success" | "failed" | "skipped"
    failing_stage: Optional[str]
    duration_ms: int

    trigger: dict[str, Any] = field(default_factory=dict)
    tags: list[dict[str, str]] = field(default_factory=list)
    stages: list[StageResult] = field(default_factory=list)
    artifacts: list[dict[str, Any]] = field(default_factory=list)
    events_jsonl: Optional[str] = None
    provenance: Optional[RunProvenance] = None
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def write_json(self, path: Path) -> None:
        atomic_write_text(
            Path(path),
            json.dumps(self.to_dict(), ensure_ascii=False, indent=2, default=str) + "\n",
        )


def build_run_report(
    *,
    run_id: str,
    started_at_utc: str,
    finished_at_utc: str,
    duration_ms: int,
    outcome: RunOutcome,
    trigger: dict[str, Any],
    tags: list[dict[str, str]],
    artifacts: list[dict[str, Any]],
    events_jsonl: str | None,
    provenance: RunProvenance | None = None,
    meta: dict[str, Any] | None = None,
) -> RunReport:
    return RunReport(
        run_id=run_id,
        started_at_utc=started_at_utc,
        finished_at_utc=finished_at_utc,
        status=outcome.status.value,
        failing_stage=outcome.failing_stage,
        duration_ms=duration_ms,
        trigger=trigger,
        tags=tags,
        stages=outcome.stages,
        artifacts=artifacts,
        events_jsonl=events_jsonl,
        provenance=provenance,
        meta=meta or {},
    )
