from .config import Settings, load_settings
from .errors import (
    AuthError,
    CyclicGraphError,
    DuplicateArtifactError,
    GateBlockedError,
    GraphDefinitionError,
    InternalError,
    MissingArtifactError,
    PipelineError,
    StageError,
    StageExecutionError,
    TransientError,
    TriggerError,
    WriteError,
    stage_error_from_exc,
)
from .fs import (
    atomic_write_bytes,
    atomic_write_text,
    copy_or_hardlink,
    ensure_parent,
    safe_unlink,
)
from .hashing import Digest, digest_payload, sha256_bytes, sha256_file
from .logging import ILogger, bind, configure_logging, get_logger
from .proc import CommandResult, run_command
from .provenance import RunProvenance, new_run_id, provenance_from_env
from .time import format_duration_ms, monotonic_ms, utc_now, utc_now_iso

__all__ = [
    "Settings",
    "load_settings",
    "AuthError",
    "CyclicGraphError",
    "DuplicateArtifactError",
    "GateBlockedError",
    "GraphDefinitionError",
    "InternalError",
    "MissingArtifactError",
    "PipelineError",
    "StageError",
    "StageExecutionError",
    "TransientError",
    "TriggerError",
    "WriteError",
    "stage_error_from_exc",
    "atomic_write_bytes",
    "atomic_write_text",
    "copy_or_hardlink",
    "ensure_parent",
    "safe_unlink",
    "Digest",
    "digest_payload",
    "sha256_bytes",
    "sha256_file",
    "ILogger",
    "bind",
    "configure_logging",
    "get_logger",
    "CommandResult",
    "run_command",
    "RunProvenance",
    "new_run_id",
    "provenance_from_env",
    "format_duration_ms",
    "monotonic_ms",
    "utc_now",
    "utc_now_iso",
]
