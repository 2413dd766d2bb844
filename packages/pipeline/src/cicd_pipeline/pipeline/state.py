from __future__ import annotations

import os
import re
from enum import StrEnum
from pathlib import Path

import structlog

from cicd_pipeline.core import PipelineError, WriteError, atomic_write_text

from .collaborators import VersionControl

log = structlog.get_logger(__name__)

COMMIT_MESSAGE_TEMPLATE = "ci: update image tag to {tag}"


class CommitStatus(StrEnum):
    COMMITTED = "committed"
    NO_OP_NO_CHANGE = "noop"
    FAILED = "failed"


def commit_message(tag_value: str) -> str:
    return COMMIT_MESSAGE_TEMPLATE.format(tag=tag_value)


def substitute_tag(text: str, tag_value: str, *, field: str = "tag") -> str:
    """
    Replace the value of every `<field>:` entry with the quoted tag.

    Indentation and anything before the field on the same line is kept.
    """
    pattern = re.compile(rf"(?m)(^|[\s{{,]){re.escape(field)}:[^\n]*$")
    return pattern.sub(lambda m: f'{m.group(1)}{field}: "{tag_value}"', text)


class StateCommitter:
    """
    Records the deployed image tag in a tracked configuration file.

    apply() is idempotent: when the file already carries the tag nothing is
    written and no commit is made.
    """

    def __init__(self, vcs: VersionControl, *, field: str = "tag") -> None:
        self.vcs = vcs
        self.field = field

    def apply(self, file_path: Path, tag_value: str) -> CommitStatus:
        path = Path(file_path)
        if not path.is_file():
            raise WriteError(f"Tracked configuration file not found: {path}")
        if not os.access(path, os.W_OK):
            raise WriteError(f"Tracked configuration file is not writable: {path}")

        try:
            before = path.read_text(encoding="utf-8")
        except OSError as e:
            raise WriteError(f"Cannot read {path}: {e}") from e

        after = substitute_tag(before, tag_value, field=self.field)
        if after == before:
            if f"{self.field}:" not in before:
                log.warning("record.field_missing", path=str(path), field=self.field)
            log.info("record.noop", path=str(path), tag=tag_value)
            return CommitStatus.NO_OP_NO_CHANGE

        mode = path.stat().st_mode & 0o777
        try:
            atomic_write_text(path, after, mode=mode)
        except OSError as e:
            raise WriteError(f"Cannot write {path}: {e}") from e

        message = commit_message(tag_value)
        try:
            revision = self.vcs.commit(path, message)
        except PipelineError as e:
            log.error("record.commit_rejected", path=str(path), error=str(e))
            # working file is left at the last recorded state
            try:
                atomic_write_text(path, before, mode=mode)
            except OSError as restore_err:
                raise WriteError(f"Cannot restore {path}: {restore_err}") from e
            return CommitStatus.FAILED

        log.info("record.committed", path=str(path), tag=tag_value, revision=revision)
        return CommitStatus.COMMITTED
