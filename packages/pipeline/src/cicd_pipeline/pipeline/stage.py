from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional

import structlog
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt
from tenacity.wait import wait_base

from cicd_pipeline.core import (
    MissingArtifactError,
    StageError,
    TransientError,
    format_duration_ms,
    monotonic_ms,
    stage_error_from_exc,
    utc_now_iso,
)

from .conditions import RunPredicate, always
from .events import EventType

if TYPE_CHECKING:
    from .context import RunContext, StageContext

log = structlog.get_logger(__name__)

StageFn = Callable[["StageContext"], dict[str, Any] | None]


class StageStatus(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class SkipReason(StrEnum):
    CONDITION = "condition"
    MISSING_ARTIFACT = "missing_artifact"
    UPSTREAM_FAILED = "upstream_failed"


@dataclass(frozen=True, slots=True)
class Stage:
    """
    One node of the job graph. Defined before the run; never mutated.
    """

    name: str
    action: StageFn
    depends_on: frozenset[str] = frozenset()
    run_predicate: RunPredicate = always
    produces: frozenset[str] = frozenset()
    consumes: frozenset[str] = frozenset()

    @classmethod
    def define(
        cls,
        name: str,
        action: StageFn,
        *,
        needs: Iterable[str] = (),
        when: RunPredicate = always,
        produces: Iterable[str] = (),
        consumes: Iterable[str] = (),
    ) -> "Stage":
        return cls(
            name=name,
            action=action,
            depends_on=frozenset(needs),
            run_predicate=when,
            produces=frozenset(produces),
            consumes=frozenset(consumes),
        )


@dataclass(slots=True)
class StageResult:
    stage: str
    status: StageStatus
    started_at_utc: Optional[str] = None
    finished_at_utc: Optional[str] = None
    duration_ms: int = 0

    outputs: dict[str, Any] = field(default_factory=dict)
    metrics: dict[str, Any] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    artifacts: list[str] = field(default_factory=list)
    skip_reason: Optional[SkipReason] = None
    skip_detail: Optional[str] = None
    error: Optional[StageError] = None

    @property
    def blocks_dependents(self) -> bool:
        return self.status is StageStatus.FAILED or (
            self.status is StageStatus.SKIPPED
            and self.skip_reason is SkipReason.UPSTREAM_FAILED
        )

    @classmethod
    def skipped(cls, stage: str, reason: SkipReason, detail: str | None = None) -> "StageResult":
        now = utc_now_iso()
        return cls(
            stage=stage,
            status=StageStatus.SKIPPED,
            started_at_utc=now,
            finished_at_utc=now,
            skip_reason=reason,
            skip_detail=detail,
        )


class DeterministicExponentialBackoff(wait_base):
    def __init__(self, *, base: float = 0.5, cap: float = 4.0) -> None:
        self._base = float(base)
        self._cap = float(cap)

    def __call__(self, retry_state) -> float:
        n = retry_state.attempt_number
        if n <= 1:
            return 0.0
        return min(self._cap, self._base * (2 ** (n - 2)))


def with_retries(
    fn: StageFn,
    *,
    stage_id: str,
    attempts: int,
    backoff_base: float = 0.5,
    backoff_cap: float = 4.0,
) -> StageFn:
    """
    Wrap a whole stage invocation in a retry policy.

    Only TransientError is retried; the last error is re-raised unchanged.
    """
    if attempts <= 1:
        return fn

    def _before_sleep(retry_state) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        log.warning(
            "stage.retry",
            stage=stage_id,
            attempt=retry_state.attempt_number,
            error=repr(exc) if exc else None,
        )

    def _retrying_fn(sctx: StageContext) -> dict[str, Any] | None:
        retrying = Retrying(
            stop=stop_after_attempt(attempts),
            wait=DeterministicExponentialBackoff(base=backoff_base, cap=backoff_cap),
            retry=retry_if_exception_type(TransientError),
            reraise=True,
            before_sleep=_before_sleep,
        )
        for attempt in retrying:
            with attempt:
                return fn(sctx)
        return None

    return _retrying_fn


def run_stage(
    *,
    ctx: RunContext,
    stage: Stage,
    index: int | None = None,
    total: int | None = None,
) -> StageResult:
    stage_id = stage.name
    sctx = ctx.for_stage(stage)
    log_ = sctx.log

    t0 = monotonic_ms()
    started_at = utc_now_iso()
    position = f"{index}/{total}" if index is not None and total is not None else None

    ctx.emit(EventType.STAGE_START, stage=stage_id)
    log_.info("Stage starting", position=position, started_at=started_at)

    warnings: list[str] = []
    metrics: dict[str, Any] = {}

    try:
        action = with_retries(
            stage.action,
            stage_id=stage_id,
            attempts=int(ctx.settings.stage_retries.get(stage_id, 1)),
        )
        out = action(sctx) or {}
        if not isinstance(out, dict):
            raise TypeError(
                f"Stage {stage_id} returned {type(out).__name__}, expected dict or None"
            )

        if "_warnings" in out:
            w = out.pop("_warnings")
            if isinstance(w, list):
                warnings.extend(str(x) for x in w)

        if "_metrics" in out:
            m = out.pop("_metrics")
            if isinstance(m, dict):
                metrics.update(m)

        # postcondition: every declared artifact exists
        for key in sorted(stage.produces):
            if not ctx.artifacts.has(key):
                raise MissingArtifactError(
                    key, f"stage {stage_id} finished without producing it"
                )

        for w in warnings:
            ctx.emit(EventType.STAGE_WARN, stage=stage_id, message=w)
            log_.warning(w)

        if metrics:
            ctx.emit(EventType.STAGE_METRICS, stage=stage_id, metrics=metrics)

        finished_at = utc_now_iso()
        duration = monotonic_ms() - t0

        ctx.emit(EventType.STAGE_SUCCESS, stage=stage_id, duration_ms=duration)
        log_.info(
            "Stage succeeded",
            position=position,
            duration_ms=duration,
            duration=format_duration_ms(duration),
            warnings=len(warnings),
            outputs=sorted(out.keys()),
            artifacts=sorted(stage.produces),
        )

        return StageResult(
            stage=stage_id,
            status=StageStatus.SUCCESS,
            started_at_utc=started_at,
            finished_at_utc=finished_at,
            duration_ms=duration,
            outputs=out,
            metrics=metrics,
            warnings=warnings,
            artifacts=sorted(stage.produces),
        )

    except Exception as e:
        error = stage_error_from_exc(e)
        finished_at = utc_now_iso()
        duration = monotonic_ms() - t0

        ctx.emit(
            EventType.STAGE_FAILED,
            stage=stage_id,
            duration_ms=duration,
            exc_type=type(e).__name__,
            message=str(e),
        )
        log_.error(
            "Stage failed",
            position=position,
            duration_ms=duration,
            duration=format_duration_ms(duration),
            error=str(e),
            exc_type=type(e).__name__,
        )
        log_.exception("Stage exception")

        return StageResult(
            stage=stage_id,
            status=StageStatus.FAILED,
            started_at_utc=started_at,
            finished_at_utc=finished_at,
            duration_ms=duration,
            metrics=metrics,
            warnings=warnings,
            error=error,
        )
