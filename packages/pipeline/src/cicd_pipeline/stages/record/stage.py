from __future__ import annotations

from pathlib import Path
from typing import TypedDict

from cicd_pipeline.core import InternalError, StageExecutionError
from cicd_pipeline.pipeline import CommitStatus, EventType, StageContext, StateCommitter


class StageRecordResult(TypedDict):
    path: str
    tag: str
    status: str


def stage_record(sctx: StageContext) -> StageRecordResult:
    """
    Write the primary image tag into the deployment configuration and commit it.
    """
    tag = str(sctx.upstream("containerize")["primary_tag"])

    # containerize resolved the tags; the resolver must agree on the primary one
    expected = sctx.tag_resolver.primary(sctx.trigger).value
    if tag != expected:
        raise InternalError(f"image tag {tag!r} does not match resolved tag {expected!r}")

    path = Path(sctx.settings.values_file)
    if not path.is_absolute():
        path = sctx.workspace / path

    committer = StateCommitter(sctx.tools.vcs, field=sctx.settings.tag_field)
    status = committer.apply(path, tag)
    if status is CommitStatus.FAILED:
        raise StageExecutionError(f"could not commit {path} with tag {tag}")

    event = (
        EventType.RECORD_COMMITTED
        if status is CommitStatus.COMMITTED
        else EventType.RECORD_NOOP
    )
    sctx.run.emit(event, stage=sctx.stage.name, path=str(path), tag=tag)
    return {"path": str(path), "tag": tag, "status": status.value}
