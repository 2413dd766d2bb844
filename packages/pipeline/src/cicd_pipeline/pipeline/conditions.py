from __future__ import annotations

from typing import TYPE_CHECKING, Callable

import structlog

from .trigger import EventKind, TriggerContext

if TYPE_CHECKING:
    from .stage import Stage

log = structlog.get_logger(__name__)

RunPredicate = Callable[[TriggerContext], bool]


def always(ctx: TriggerContext) -> bool:
    return True


def not_proposed_change(ctx: TriggerContext) -> bool:
    """Pre-merge runs validate only: no registry push, no config mutation."""
    return ctx.event_kind is not EventKind.PROPOSED_CHANGE


class ConditionalExecutor:
    """Decides whether a stage runs for the current trigger."""

    def should_run(self, stage: Stage, ctx: TriggerContext) -> bool:
        run = bool(stage.run_predicate(ctx))
        log.debug(
            "stage.condition",
            stage=stage.name,
            predicate=getattr(stage.run_predicate, "__name__", repr(stage.run_predicate)),
            event_kind=ctx.event_kind.value,
            run=run,
        )
        return run
