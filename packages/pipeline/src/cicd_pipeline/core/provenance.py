from __future__ import annotations

import os
import platform
import uuid
from dataclasses import dataclass, field
from typing import Mapping, Optional


def new_run_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class RunProvenance:
    """
    Where a pipeline run executed; recorded in the run report.

    The ci_* fields are filled when the run happens inside a CI runner.
    """

    run_id: str
    started_at_utc: str
    hostname: str = field(default_factory=platform.node)
    python: str = field(default_factory=platform.python_version)
    ci_run_id: Optional[str] = None
    ci_run_attempt: Optional[str] = None
    ci_workflow: Optional[str] = None
    ci_actor: Optional[str] = None
    ci_repository: Optional[str] = None


def provenance_from_env(
    *, run_id: str, started_at_utc: str, env: Mapping[str, str] | None = None
) -> RunProvenance:
    env = os.environ if env is None else env
    return RunProvenance(
        run_id=run_id,
        started_at_utc=started_at_utc,
        ci_run_id=env.get("GITHUB_RUN_ID"),
        ci_run_attempt=env.get("GITHUB_RUN_ATTEMPT"),
        ci_workflow=env.get("GITHUB_WORKFLOW"),
        ci_actor=env.get("GITHUB_ACTOR"),
        ci_repository=env.get("GITHUB_REPOSITORY"),
    )
