from __future__ import annotations

from typing import TypedDict

from cicd_pipeline.pipeline import EventType, StageContext, TagSet

from ..containerize import IMAGE_ARTIFACT


class StagePublishResult(TypedDict):
    image_name: str
    pushed: list[str]
    primary_tag: str
    _metrics: dict[str, int]


def stage_publish(sctx: StageContext) -> StagePublishResult:
    built = sctx.upstream("containerize")
    image_name = str(built["image_name"])
    tags = TagSet.from_list(built["tags"])

    pushed = sctx.tools.registry.publish(
        sctx.artifact_path(IMAGE_ARTIFACT), image_name=image_name, tags=tags
    )
    sctx.run.emit(EventType.PUBLISH_PUSHED, stage=sctx.stage.name, refs=pushed)

    return {
        "image_name": image_name,
        "pushed": pushed,
        "primary_tag": tags.primary.value,
        "_metrics": {"pushed": len(pushed)},
    }
