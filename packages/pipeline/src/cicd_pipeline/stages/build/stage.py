from __future__ import annotations

from typing import TypedDict

from cicd_pipeline.pipeline import StageContext

BINARY_ARTIFACT = "binary"


class StageBuildResult(TypedDict):
    binary_sha256: str
    binary_name: str
    _metrics: dict[str, int]


def stage_build(sctx: StageContext) -> StageBuildResult:
    binary = sctx.tools.toolchain.build(sctx.workspace)
    handle = sctx.put_artifact(BINARY_ARTIFACT, binary)
    return {
        "binary_sha256": handle.sha256,
        "binary_name": binary.name,
        "_metrics": {"binary_bytes": handle.bytes},
    }
