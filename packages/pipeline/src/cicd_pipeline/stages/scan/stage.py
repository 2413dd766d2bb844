from __future__ import annotations

from typing import TypedDict

from cicd_pipeline.core import GateBlockedError, Settings
from cicd_pipeline.pipeline import (
    EventType,
    GateDecision,
    GateEvaluator,
    GatePolicy,
    Severity,
    StageContext,
    TagSet,
)

from ..containerize import IMAGE_ARTIFACT


class StageScanResult(TypedDict):
    image_ref: str
    decision: str
    scan: dict[str, object]
    _metrics: dict[str, int]


def gate_policy_from_settings(settings: Settings) -> GatePolicy:
    return GatePolicy(
        block_at=Severity[settings.block_severity],
        ignore_unfixed=settings.ignore_unfixed,
    )


def stage_scan(sctx: StageContext) -> StageScanResult:
    """
    Scan the archived image and apply the gate. A block fails the stage.
    """
    built = sctx.upstream("containerize")
    tags = TagSet.from_list(built["tags"])
    image_ref = f"{built['image_name']}:{tags.primary.value}"

    policy = gate_policy_from_settings(sctx.settings)
    result = sctx.tools.scanner.scan(sctx.artifact_path(IMAGE_ARTIFACT), policy=policy)
    decision = GateEvaluator(policy).evaluate(result)

    sctx.run.emit(
        EventType.GATE_DECISION,
        stage=sctx.stage.name,
        image_ref=image_ref,
        decision=decision.value,
        **result.to_dict(),
    )

    blocking = result.count_at_or_above(policy.block_at)
    if decision is GateDecision.BLOCK:
        raise GateBlockedError(
            f"{image_ref}: {blocking} fixable finding(s) at or above "
            f"{policy.block_at.name} ({result.to_dict()['severity_counts']})"
        )

    sctx.log.info("Gate passed", image_ref=image_ref)
    return {
        "image_ref": image_ref,
        "decision": decision.value,
        "scan": result.to_dict(),
        "_metrics": {"blocking_findings": blocking},
    }
