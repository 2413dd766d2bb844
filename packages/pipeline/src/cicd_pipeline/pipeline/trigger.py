from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, Mapping, Optional

from cicd_pipeline.core import TriggerError

_PR_REF_RE = re.compile(r"^refs/pull/(\d+)/")


class EventKind(StrEnum):
    DIRECT_PUSH = "push"
    PROPOSED_CHANGE = "pull_request"


@dataclass(frozen=True, slots=True)
class TriggerContext:
    """
    The event that started a pipeline run.

    For a proposed change, `branch_name` is the branch the change targets.
    """

    event_kind: EventKind
    branch_name: str
    commit_id: str
    proposed_change_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.branch_name.strip():
            raise TriggerError("branch_name must not be empty")
        if not self.commit_id.strip():
            raise TriggerError("commit_id must not be empty")
        if self.event_kind is EventKind.PROPOSED_CHANGE:
            if not (self.proposed_change_id or "").strip():
                raise TriggerError("a proposed-change trigger needs proposed_change_id")
        elif self.proposed_change_id is not None:
            raise TriggerError("a direct push carries no proposed_change_id")

    @classmethod
    def direct_push(cls, *, branch: str, commit_id: str) -> "TriggerContext":
        return cls(
            event_kind=EventKind.DIRECT_PUSH, branch_name=branch, commit_id=commit_id
        )

    @classmethod
    def proposed_change(
        cls, *, change_id: str, target_branch: str, commit_id: str
    ) -> "TriggerContext":
        return cls(
            event_kind=EventKind.PROPOSED_CHANGE,
            branch_name=target_branch,
            commit_id=commit_id,
            proposed_change_id=str(change_id),
        )

    @property
    def is_proposed_change(self) -> bool:
        return self.event_kind is EventKind.PROPOSED_CHANGE

    def targets(self, branch: str) -> bool:
        return self.branch_name == branch

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_kind": self.event_kind.value,
            "branch_name": self.branch_name,
            "commit_id": self.commit_id,
            "proposed_change_id": self.proposed_change_id,
        }


def _change_id_from_env(env: Mapping[str, str]) -> str | None:
    event_path = env.get("GITHUB_EVENT_PATH")
    if event_path and Path(event_path).is_file():
        payload = json.loads(Path(event_path).read_text(encoding="utf-8"))
        number = (payload.get("pull_request") or {}).get("number") or payload.get(
            "number"
        )
        if number is not None:
            return str(number)

    m = _PR_REF_RE.match(env.get("GITHUB_REF", ""))
    return m.group(1) if m else None


def trigger_from_env(env: Mapping[str, str] | None = None) -> TriggerContext:
    """
    Build the trigger from the CI runner's environment.

    push          -> DirectPush(GITHUB_REF_NAME, GITHUB_SHA)
    pull_request  -> ProposedChange(<number>, GITHUB_BASE_REF, GITHUB_SHA)
    """
    env = os.environ if env is None else env

    event = env.get("GITHUB_EVENT_NAME", "")
    sha = env.get("GITHUB_SHA", "")

    if event == EventKind.DIRECT_PUSH.value:
        return TriggerContext.direct_push(
            branch=env.get("GITHUB_REF_NAME", ""), commit_id=sha
        )
    if event == EventKind.PROPOSED_CHANGE.value:
        change_id = _change_id_from_env(env)
        if change_id is None:
            raise TriggerError(
                "pull_request event without a change number "
                "(GITHUB_EVENT_PATH or refs/pull/<n>/... GITHUB_REF)"
            )
        return TriggerContext.proposed_change(
            change_id=change_id,
            target_branch=env.get("GITHUB_BASE_REF", ""),
            commit_id=sha,
        )
    raise TriggerError(f"Unsupported trigger event: {event or '<unset>'}")
