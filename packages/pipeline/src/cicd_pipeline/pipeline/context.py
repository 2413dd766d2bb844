from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from cicd_pipeline.core import ILogger, InternalError, MissingArtifactError, Settings

from .artifacts import ArtifactHandle, ArtifactStore
from .collaborators import Collaborators
from .events import EventSink, EventType, make_event
from .tags import TagResolver
from .trigger import TriggerContext

if TYPE_CHECKING:
    from .stage import Stage


@dataclass(slots=True)
class RunContext:
    """
    Context shared across stages for a single pipeline run.
    """

    run_id: str
    run_root: Path
    trigger: TriggerContext
    settings: Settings
    tag_resolver: TagResolver
    artifacts: ArtifactStore
    tools: Collaborators
    logger: ILogger
    events: EventSink

    # optional free-form metadata
    meta: dict[str, Any] = field(default_factory=dict)

    # outputs of completed stages; written by the scheduler thread only
    _outputs: dict[str, dict[str, Any]] = field(default_factory=dict)

    def stage_logger(self, stage: str) -> ILogger:
        return self.logger.bind(stage=stage)

    def emit(self, event: EventType | str, *, stage: str | None = None, **kw: object) -> None:
        # Keep event chatter at debug level to leave console logs readable.
        event_value = event.value if isinstance(event, EventType) else str(event)
        self.events.emit(
            make_event(event_type=event_value, run_id=self.run_id, stage=stage, **kw)
        )
        self.logger.debug(event_value, event_type=event_value, stage=stage, **kw)

    def record_outputs(self, stage: str, outputs: dict[str, Any]) -> None:
        self._outputs[stage] = dict(outputs)

    def outputs_of(self, stage: str) -> dict[str, Any]:
        try:
            return self._outputs[stage]
        except KeyError:
            raise MissingArtifactError(
                f"outputs:{stage}", "stage has not completed successfully"
            ) from None

    def for_stage(self, stage: Stage) -> StageContext:
        return StageContext(run=self, stage=stage, log=self.stage_logger(stage.name))


@dataclass(slots=True)
class StageContext:
    """
    What one stage action sees: the run plus guarded artifact access.
    """

    run: RunContext
    stage: Stage
    log: ILogger

    @property
    def trigger(self) -> TriggerContext:
        return self.run.trigger

    @property
    def settings(self) -> Settings:
        return self.run.settings

    @property
    def tools(self) -> Collaborators:
        return self.run.tools

    @property
    def tag_resolver(self) -> TagResolver:
        return self.run.tag_resolver

    @property
    def workspace(self) -> Path:
        return Path(self.run.settings.workspace)

    @property
    def scratch_dir(self) -> Path:
        d = self.run.run_root / "work" / self.stage.name
        d.mkdir(parents=True, exist_ok=True)
        return d

    def upstream(self, stage: str) -> dict[str, Any]:
        return self.run.outputs_of(stage)

    def put_artifact(self, key: str, payload: bytes | Path) -> ArtifactHandle:
        if key not in self.stage.produces:
            raise InternalError(
                f"stage {self.stage.name} does not declare artifact {key!r}"
            )
        handle = self.run.artifacts.put(key, self.stage.name, payload)
        self.run.emit(
            EventType.ARTIFACT_WRITTEN,
            stage=self.stage.name,
            key=key,
            sha256=handle.sha256,
            bytes=handle.bytes,
        )
        return handle

    def artifact_path(self, key: str) -> Path:
        if key not in self.stage.consumes:
            raise InternalError(
                f"stage {self.stage.name} does not declare it consumes {key!r}"
            )
        return self.run.artifacts.path(key)
