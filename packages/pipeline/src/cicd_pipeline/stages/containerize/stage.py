from __future__ import annotations

from typing import TypedDict

from cicd_pipeline.pipeline import StageContext, TagSet, TriggerContext

IMAGE_ARTIFACT = "image"


class StageContainerizeResult(TypedDict):
    image_name: str
    image_ref: str
    primary_tag: str
    tags: list[dict[str, str]]
    image_sha256: str
    _metrics: dict[str, int]


def image_labels(trigger: TriggerContext, tags: TagSet) -> dict[str, str]:
    return {
        "org.opencontainers.image.revision": trigger.commit_id,
        "org.opencontainers.image.version": tags.primary.value,
        "org.opencontainers.image.ref.name": trigger.branch_name,
    }


def stage_containerize(sctx: StageContext) -> StageContainerizeResult:
    """
    Build and archive the image.

    The tag set is returned in the outputs so scan, publish and record use
    exactly the tags the image was built with.
    """
    image_name = sctx.settings.image_name
    tags = sctx.tag_resolver.resolve(sctx.trigger)

    archive = sctx.tools.image_builder.build(
        workspace=sctx.workspace,
        image_name=image_name,
        tags=tags,
        labels=image_labels(sctx.trigger, tags),
        archive_path=sctx.scratch_dir / "image.tar",
    )
    handle = sctx.put_artifact(IMAGE_ARTIFACT, archive)
    sctx.log.info("Image archived", image=image_name, tags=list(tags.values))

    return {
        "image_name": image_name,
        "image_ref": f"{image_name}:{tags.primary.value}",
        "primary_tag": tags.primary.value,
        "tags": tags.to_list(),
        "image_sha256": handle.sha256,
        "_metrics": {"image_bytes": handle.bytes, "tags": len(tags)},
    }
