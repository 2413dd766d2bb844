from __future__ import annotations

from typing import Any

from cicd_pipeline.pipeline import StageContext


def stage_lint(sctx: StageContext) -> dict[str, Any]:
    """Formatting and lint checks; no artifact."""
    sctx.tools.toolchain.lint(sctx.workspace)
    return {"workspace": str(sctx.workspace)}
