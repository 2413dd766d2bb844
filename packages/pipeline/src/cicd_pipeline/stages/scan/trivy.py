from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from cicd_pipeline.core import Settings, StageExecutionError, run_command
from cicd_pipeline.pipeline import GatePolicy, ScanResult, Severity


class TrivyVulnerability(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    vulnerability_id: str = Field(default="", alias="VulnerabilityID")
    pkg_name: str = Field(default="", alias="PkgName")
    severity: str = Field(default="UNKNOWN", alias="Severity")
    fixed_version: Optional[str] = Field(default=None, alias="FixedVersion")

    @property
    def fixable(self) -> bool:
        return bool((self.fixed_version or "").strip())


class TrivyResult(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    target: str = Field(default="", alias="Target")
    vulnerabilities: Optional[list[TrivyVulnerability]] = Field(
        default=None, alias="Vulnerabilities"
    )


class TrivyReport(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    artifact_name: str = Field(default="", alias="ArtifactName")
    results: Optional[list[TrivyResult]] = Field(default=None, alias="Results")

    def vulnerabilities(self) -> list[TrivyVulnerability]:
        out: list[TrivyVulnerability] = []
        for r in self.results or []:
            out.extend(r.vulnerabilities or [])
        return out


def scan_result_from_report(report: TrivyReport, *, fixable_only: bool) -> ScanResult:
    counts: dict[Severity, int] = {}
    for v in report.vulnerabilities():
        if fixable_only and not v.fixable:
            continue
        sev = Severity.parse(v.severity)
        counts[sev] = counts.get(sev, 0) + 1
    return ScanResult(severity_counts=counts, fixable_only=fixable_only)


class TrivyScanner:
    """Scans a saved image archive; never re-resolves the image by name."""

    def __init__(self, settings: Settings, *, vuln_types: str = "os,library") -> None:
        self.vuln_types = vuln_types
        self.timeout_s = settings.command_timeout_s
        self.cwd = Path(settings.workspace)

    def scan(self, image_archive: Path, *, policy: GatePolicy) -> ScanResult:
        cmd = [
            "trivy",
            "image",
            "--input",
            str(image_archive),
            "--format",
            "json",
            "--quiet",
            "--exit-code",
            "0",
            "--vuln-type",
            self.vuln_types,
            "--severity",
            ",".join(s.name for s in policy.tracked),
        ]
        if policy.ignore_unfixed:
            cmd.append("--ignore-unfixed")

        res = run_command(cmd, cwd=self.cwd, timeout_s=self.timeout_s)
        try:
            report = TrivyReport.model_validate_json(res.stdout or "{}")
        except ValidationError as e:
            raise StageExecutionError(f"unreadable trivy report: {e}") from e
        return scan_result_from_report(report, fixable_only=policy.ignore_unfixed)
