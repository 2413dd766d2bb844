from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

from cicd_pipeline.core import (
    ILogger,
    provenance_from_env,
    Settings,
    configure_logging,
    format_duration_ms,
    get_logger,
    monotonic_ms,
    new_run_id,
    utc_now_iso,
)

from .artifacts import ArtifactStore
from .collaborators import Collaborators
from .context import RunContext
from .events import EventSink, EventType, make_event
from .graph import JobGraph
from .report import build_run_report
from .scheduler import RunOutcome, RunStatus, Scheduler
from .tags import TagResolver
from .trigger import TriggerContext


@dataclass(frozen=True, slots=True)
class RunResult:
    outcome: RunOutcome
    run_root: Path
    report_path: Path
    events_path: Path

    @property
    def exit_code(self) -> int:
        return self.outcome.exit_code


def default_logger() -> ILogger:
    """
    Provide a structlog BoundLogger that satisfies ILogger.
    """
    configure_logging()
    return get_logger("pipeline")


def tag_resolver_for(settings: Settings) -> TagResolver:
    return TagResolver(
        short_sha_length=settings.short_sha_length, fixed_label=settings.fixed_label
    )


class PipelineRunner:
    def __init__(
        self,
        *,
        graph: JobGraph,
        settings: Settings,
        tools: Collaborators,
        logger: ILogger | None = None,
    ) -> None:
        self.graph = graph
        self.settings = settings
        self.tools = tools
        self.logger: ILogger = logger or default_logger()
        self.tag_resolver = tag_resolver_for(settings)

    def run(
        self,
        trigger: TriggerContext,
        *,
        run_id: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> RunResult:
        """
        Execute the pipeline for one trigger and write:
          - events.jsonl
          - run_report.json
        """
        meta = meta or {}
        rid = run_id or new_run_id()
        run_root = Path(self.settings.run_root) / rid
        run_root.mkdir(parents=True, exist_ok=True)

        events_path = run_root / "events.jsonl"
        sink = EventSink(events_path)
        store = ArtifactStore(
            run_root / "artifacts",
            retention=timedelta(hours=self.settings.artifact_retention_hours),
        )

        ctx = RunContext(
            run_id=rid,
            run_root=run_root,
            trigger=trigger,
            settings=self.settings,
            tag_resolver=self.tag_resolver,
            artifacts=store,
            tools=self.tools,
            logger=self.logger,
            events=sink,
            meta=meta,
        )

        started_at = utc_now_iso()
        provenance = provenance_from_env(run_id=rid, started_at_utc=started_at)
        t0 = monotonic_ms()

        tags = self.tag_resolver.resolve(trigger)

        self.logger.info(
            "Pipeline starting",
            run_id=rid,
            event_kind=trigger.event_kind.value,
            branch=trigger.branch_name,
            commit=trigger.commit_id,
            stages=list(self.graph.order),
            run_root=str(run_root),
        )
        sink.emit(
            make_event(
                event_type=EventType.RUN_START, run_id=rid, **trigger.to_dict(), **meta
            )
        )
        ctx.emit(EventType.TAGS_RESOLVED, tags=list(tags.values), primary=tags.primary.value)

        # the report, purge and run.finish are written even if the scheduler raises
        outcome = RunOutcome(status=RunStatus.FAILED)
        try:
            outcome = Scheduler(max_workers=self.settings.workers).execute(self.graph, ctx)
        except Exception:
            self.logger.exception("Scheduler aborted", run_id=rid)
            raise
        finally:
            duration = monotonic_ms() - t0
            report = build_run_report(
                run_id=rid,
                started_at_utc=started_at,
                finished_at_utc=utc_now_iso(),
                duration_ms=duration,
                outcome=outcome,
                trigger=trigger.to_dict(),
                tags=tags.to_list(),
                artifacts=[h.to_dict() for h in store.handles()],
                events_jsonl=str(events_path),
                provenance=provenance,
                meta=meta,
            )
            report_json = run_root / "run_report.json"
            report.write_json(report_json)

            if not self.settings.keep_artifacts:
                purged = len(store.handles())
                store.purge()
                ctx.emit(EventType.ARTIFACTS_PURGED, count=purged)

            sink.emit(
                make_event(
                    event_type=EventType.RUN_FINISH,
                    run_id=rid,
                    status=outcome.status.value,
                    failing_stage=outcome.failing_stage,
                    duration_ms=duration,
                    report_json=str(report_json),
                )
            )

        log_fields: dict[str, object] = {
            "status": outcome.status.value,
            "duration_ms": duration,
            "duration": format_duration_ms(duration),
            "report": str(report_json),
        }
        if outcome.failing_stage:
            log_fields["failing_stage"] = outcome.failing_stage
        self.logger.info("Run Complete", **log_fields)

        return RunResult(
            outcome=outcome,
            run_root=run_root,
            report_path=report_json,
            events_path=events_path,
        )
