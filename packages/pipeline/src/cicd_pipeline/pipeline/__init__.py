from .artifacts import ArtifactHandle, ArtifactStore
from .collaborators import (
    Collaborators,
    ImageBuilder,
    Registry,
    Scanner,
    Toolchain,
    VersionControl,
)
from .conditions import ConditionalExecutor, always, not_proposed_change
from .context import RunContext, StageContext
from .events import EventSink, EventType
from .gate import GateDecision, GateEvaluator, GatePolicy, ScanResult, Severity
from .graph import JobGraph
from .runner import PipelineRunner, RunResult, tag_resolver_for
from .scheduler import RunOutcome, RunStatus, Scheduler
from .stage import SkipReason, Stage, StageFn, StageResult, StageStatus
from .state import CommitStatus, StateCommitter, commit_message
from .tags import Tag, TagResolver, TagScheme, TagSet
from .trigger import EventKind, TriggerContext, trigger_from_env

__all__ = [
    "ArtifactHandle",
    "ArtifactStore",
    "Collaborators",
    "ImageBuilder",
    "Registry",
    "Scanner",
    "Toolchain",
    "VersionControl",
    "ConditionalExecutor",
    "always",
    "not_proposed_change",
    "RunContext",
    "StageContext",
    "EventSink",
    "EventType",
    "GateDecision",
    "GateEvaluator",
    "GatePolicy",
    "ScanResult",
    "Severity",
    "JobGraph",
    "PipelineRunner",
    "RunResult",
    "tag_resolver_for",
    "RunOutcome",
    "RunStatus",
    "Scheduler",
    "SkipReason",
    "Stage",
    "StageFn",
    "StageResult",
    "StageStatus",
    "CommitStatus",
    "StateCommitter",
    "commit_message",
    "Tag",
    "TagResolver",
    "TagScheme",
    "TagSet",
    "EventKind",
    "TriggerContext",
    "trigger_from_env",
]
