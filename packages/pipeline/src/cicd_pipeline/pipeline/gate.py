from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
from typing import Mapping

import structlog

log = structlog.get_logger(__name__)


class Severity(IntEnum):
    UNKNOWN = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def parse(cls, value: str) -> "Severity":
        try:
            return cls[value.strip().upper()]
        except KeyError:
            return cls.UNKNOWN


class GateDecision(StrEnum):
    PASS = "pass"
    BLOCK = "block"


@dataclass(frozen=True, slots=True)
class ScanResult:
    """
    Vulnerability counts per severity for one image.

    fixable_only: the scanner dropped findings with no available fix, so
    every counted finding is fixable.
    """

    severity_counts: Mapping[Severity, int] = field(default_factory=dict)
    fixable_only: bool = True

    def count_at_or_above(self, threshold: Severity) -> int:
        return sum(n for sev, n in self.severity_counts.items() if sev >= threshold)

    def to_dict(self) -> dict[str, object]:
        return {
            "severity_counts": {
                s.name: n for s, n in sorted(self.severity_counts.items())
            },
            "fixable_only": self.fixable_only,
        }


@dataclass(frozen=True, slots=True)
class GatePolicy:
    block_at: Severity = Severity.HIGH
    ignore_unfixed: bool = True

    @property
    def tracked(self) -> tuple[Severity, ...]:
        return tuple(s for s in Severity if s >= self.block_at)


class GateEvaluator:
    """Pass/block decision for a scan result."""

    def __init__(self, policy: GatePolicy | None = None) -> None:
        self.policy = policy or GatePolicy()

    def evaluate(self, result: ScanResult) -> GateDecision:
        blocking = result.count_at_or_above(self.policy.block_at)
        if blocking == 0:
            return GateDecision.PASS

        if self.policy.ignore_unfixed and not result.fixable_only:
            # Counts may include unfixable findings we cannot tell apart.
            log.warning(
                "gate.unfiltered_result",
                blocking=blocking,
                block_at=self.policy.block_at.name,
            )
        return GateDecision.BLOCK
