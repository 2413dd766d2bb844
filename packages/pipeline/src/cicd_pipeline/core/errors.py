from __future__ import annotations

import traceback
from dataclasses import dataclass
from typing import Sequence


class PipelineError(RuntimeError):
    """Base error"""


@dataclass(frozen=True, slots=True)
class StageError:
    """
    A normalized error record for stage failures.
    """

    exc_type: str
    message: str
    traceback: str


def stage_error_from_exc(exc: BaseException) -> StageError:
    return StageError(
        exc_type=type(exc).__name__,
        message=str(exc),
        traceback=traceback.format_exc(),
    )


class GraphDefinitionError(PipelineError):
    """The pipeline definition is invalid; fatal at construction"""


class CyclicGraphError(GraphDefinitionError):
    def __init__(self, stages: Sequence[str]) -> None:
        self.stages = tuple(stages)
        super().__init__(
            f"Job graph contains a cycle through stage(s): {', '.join(self.stages)}"
        )


class TriggerError(PipelineError):
    """Trigger input is missing or not one the pipeline accepts"""


class TransientError(PipelineError):
    """
    Retryable failures such as registry timeouts or temporary upstream 5xx
    """


class StageExecutionError(PipelineError):
    """A collaborator reported failure (non-zero exit)"""

    def __init__(
        self,
        message: str,
        *,
        command: Sequence[str] | None = None,
        returncode: int | None = None,
        output_tail: str | None = None,
    ) -> None:
        msg = message
        if output_tail:
            msg += f"\n{output_tail}"
        super().__init__(msg)
        self.command = tuple(command) if command is not None else None
        self.returncode = returncode
        self.output_tail = output_tail


class GateBlockedError(PipelineError):
    """Scan found a blocking vulnerability"""


class AuthError(PipelineError):
    """Registry credentials missing or rejected"""


class WriteError(PipelineError):
    """Tracked configuration file could not be updated"""


class InternalError(PipelineError):
    """Bugs or invariant violation in the graph definition or our code"""


class DuplicateArtifactError(InternalError):
    def __init__(self, key: str, producer: str, existing: str) -> None:
        super().__init__(
            f"Artifact {key!r} already produced by {existing!r}; "
            f"second put from {producer!r} rejected"
        )
        self.key = key
        self.producer = producer
        self.existing = existing


class MissingArtifactError(InternalError):
    def __init__(self, key: str, detail: str | None = None) -> None:
        msg = f"Artifact {key!r} has not been produced"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)
        self.key = key
