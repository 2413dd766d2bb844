from __future__ import annotations

from pathlib import Path

import structlog

from cicd_pipeline.core import PipelineError, Settings, run_command

log = structlog.get_logger(__name__)


class GitVersionControl:
    """Commits (and optionally pushes) a single tracked file."""

    def __init__(self, settings: Settings) -> None:
        self.repo_root = Path(settings.workspace)
        self.push = settings.git_push
        self.author_name = settings.git_author_name
        self.author_email = settings.git_author_email
        self.timeout_s = settings.command_timeout_s

    def _git(self, *args: str) -> str:
        res = run_command(
            [
                "git",
                "-c",
                f"user.name={self.author_name}",
                "-c",
                f"user.email={self.author_email}",
                *args,
            ],
            cwd=self.repo_root,
            timeout_s=self.timeout_s,
        )
        return res.stdout.strip()

    def commit(self, path: Path, message: str) -> str:
        target = Path(path)
        if target.is_absolute():
            target = target.resolve().relative_to(self.repo_root.resolve())

        self._git("add", "--", target.as_posix())
        self._git("commit", "--message", message, "--", target.as_posix())
        revision = self._git("rev-parse", "HEAD")
        if self.push:
            try:
                self._git("push")
            except PipelineError:
                # drop the local commit; the caller restores the working file
                self._git("reset", "--quiet", "HEAD~1")
                raise
        log.info("git.committed", path=target.as_posix(), revision=revision, pushed=self.push)
        return revision
