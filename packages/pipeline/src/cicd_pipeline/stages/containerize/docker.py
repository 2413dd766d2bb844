from __future__ import annotations

from pathlib import Path
from typing import Mapping

import structlog

from cicd_pipeline.core import Settings, StageExecutionError, run_command, safe_unlink
from cicd_pipeline.pipeline import TagSet

log = structlog.get_logger(__name__)


class DockerImageBuilder:
    """Builds the image from the checkout and saves it as a tarball."""

    def __init__(self, settings: Settings, *, dockerfile: str = "Dockerfile") -> None:
        self.dockerfile = dockerfile
        self.timeout_s = settings.command_timeout_s

    def build(
        self,
        *,
        workspace: Path,
        image_name: str,
        tags: TagSet,
        labels: Mapping[str, str],
        archive_path: Path,
    ) -> Path:
        refs = [f"{image_name}:{t.value}" for t in tags]
        if not refs:
            raise StageExecutionError("cannot build an image without tags")

        cmd = ["docker", "build", "--file", self.dockerfile]
        for ref in refs:
            cmd += ["--tag", ref]
        for key in sorted(labels):
            cmd += ["--label", f"{key}={labels[key]}"]
        cmd.append(".")

        run_command(cmd, cwd=workspace, timeout_s=self.timeout_s)
        log.info("image.built", refs=refs)

        archive = Path(archive_path)
        archive.parent.mkdir(parents=True, exist_ok=True)
        safe_unlink(archive)
        run_command(
            ["docker", "save", "--output", str(archive), *refs],
            cwd=workspace,
            timeout_s=self.timeout_s,
        )
        if not archive.is_file():
            raise StageExecutionError(f"docker save did not write {archive}")
        return archive
