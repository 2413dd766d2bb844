"""Dependency-gated, event-driven execution of a JobGraph."""

from __future__ import annotations

import contextvars
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Optional

from .conditions import ConditionalExecutor
from .context import RunContext
from .events import EventType
from .graph import JobGraph
from .stage import SkipReason, Stage, StageResult, StageStatus, run_stage


class RunStatus(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(slots=True)
class RunOutcome:
    status: RunStatus
    failing_stage: Optional[str] = None
    stages: list[StageResult] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        return 1 if self.status is RunStatus.FAILED else 0

    def result(self, stage: str) -> StageResult:
        for r in self.stages:
            if r.stage == stage:
                return r
        raise KeyError(stage)


class Scheduler:
    """
    Runs every stage once its dependencies have resolved.

    - a stage whose dependency failed is skipped, never invoked
    - a stage whose run predicate is false is skipped; that does not block
      its dependents unless they consume an artifact it declares
    - stages with satisfied, disjoint dependencies run concurrently
    """

    def __init__(
        self,
        *,
        max_workers: int = 4,
        conditions: ConditionalExecutor | None = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.max_workers = max_workers
        self.conditions = conditions or ConditionalExecutor()

    def execute(self, graph: JobGraph, ctx: RunContext) -> RunOutcome:
        return _Execution(graph, ctx, self.conditions).run(self.max_workers)


class _Execution:
    def __init__(
        self, graph: JobGraph, ctx: RunContext, conditions: ConditionalExecutor
    ) -> None:
        self.graph = graph
        self.ctx = ctx
        self.conditions = conditions
        self.results: dict[str, StageResult] = {}
        self.withheld: set[str] = set()
        self.failing_stage: str | None = None
        self.position = {name: i for i, name in enumerate(graph.order, start=1)}
        self.log = ctx.logger.bind(component="scheduler")

    def run(self, max_workers: int) -> RunOutcome:
        running: dict[Future[StageResult], Stage] = {}

        with ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="stage"
        ) as pool:
            while True:
                self._launch_ready(pool, running)
                if not running:
                    break

                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for fut in sorted(done, key=lambda f: self.position[running[f].name]):
                    stage = running.pop(fut)
                    self._complete(stage, fut.result())

        return self._outcome()

    def _launch_ready(
        self, pool: ThreadPoolExecutor, running: dict[Future[StageResult], Stage]
    ) -> None:
        # A skip resolves a stage without running it and can unblock its
        # dependents, so sweep until a pass resolves nothing new.
        swept = True
        while swept:
            swept = False
            for stage in self._ready_stages(running):
                if self._resolve_without_running(stage):
                    swept = True
                    continue
                # stage threads see the run-scoped log bindings
                fut = pool.submit(
                    contextvars.copy_context().run,
                    run_stage,
                    ctx=self.ctx,
                    stage=stage,
                    index=self.position[stage.name],
                    total=len(self.graph),
                )
                running[fut] = stage

    def _ready_stages(self, running: dict[Future[StageResult], Stage]) -> list[Stage]:
        """Unresolved stages whose dependencies are all resolved and non-blocking."""
        in_flight = {s.name for s in running.values()}
        ready: list[Stage] = []
        for stage in self.graph:
            name = stage.name
            if name in self.results or name in in_flight:
                continue
            deps = [self.results.get(d) for d in stage.depends_on]
            if all(r is not None and not r.blocks_dependents for r in deps):
                ready.append(stage)
        return ready

    def _resolve_without_running(self, stage: Stage) -> bool:
        if not self.conditions.should_run(stage, self.ctx.trigger):
            self.withheld.update(stage.produces)
            self._skip(stage.name, SkipReason.CONDITION, "run predicate is false")
            return True

        missing = sorted(k for k in stage.consumes if k in self.withheld)
        if missing:
            self.withheld.update(stage.produces)
            self._skip(
                stage.name,
                SkipReason.MISSING_ARTIFACT,
                f"artifact(s) never produced: {', '.join(missing)}",
            )
            return True
        return False

    def _complete(self, stage: Stage, result: StageResult) -> None:
        self.results[stage.name] = result
        if result.status is StageStatus.SUCCESS:
            self.ctx.record_outputs(stage.name, result.outputs)
            return

        if self.failing_stage is None:
            self.failing_stage = stage.name
        self.log.error("Stage failed; skipping dependents", failed=stage.name)
        for dep in self.graph.dependents_of(stage.name):
            if dep not in self.results:
                self._skip(dep, SkipReason.UPSTREAM_FAILED, f"{stage.name} failed")

    def _skip(self, name: str, reason: SkipReason, detail: str) -> None:
        self.results[name] = StageResult.skipped(name, reason, detail)
        self.ctx.emit(
            EventType.STAGE_SKIPPED, stage=name, reason=reason.value, detail=detail
        )
        self.ctx.stage_logger(name).info(
            "Stage skipped", reason=reason.value, detail=detail
        )

    def _outcome(self) -> RunOutcome:
        ordered = [self.results[name] for name in self.graph.order]
        if self.failing_stage is not None:
            status = RunStatus.FAILED
        elif ordered and all(r.status is StageStatus.SKIPPED for r in ordered):
            status = RunStatus.SKIPPED
        else:
            status = RunStatus.SUCCESS
        return RunOutcome(
            status=status, failing_stage=self.failing_stage, stages=ordered
        )
