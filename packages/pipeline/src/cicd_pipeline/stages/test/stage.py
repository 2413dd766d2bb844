from __future__ import annotations

from typing import Any

from cicd_pipeline.pipeline import StageContext


def stage_test(sctx: StageContext) -> dict[str, Any]:
    sctx.tools.toolchain.test(sctx.workspace)
    return {}
