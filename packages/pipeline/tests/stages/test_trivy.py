from __future__ import annotations

import json

from cicd_pipeline.pipeline import GatePolicy, Severity
from cicd_pipeline.stages.scan import TrivyReport, gate_policy_from_settings, scan_result_from_report

REPORT = {
    "SchemaVersion": 2,
    "ArtifactName": "image.tar",
    "ArtifactType": "container_image",
    "Results": [
        {
            "Target": "image.tar (debian 12.5)",
            "Class": "os-pkgs",
            "Vulnerabilities": [
                {
                    "VulnerabilityID": "CVE-2024-0001",
                    "PkgName": "openssl",
                    "InstalledVersion": "3.0.11-1",
                    "FixedVersion": "3.0.13-1",
                    "Severity": "CRITICAL",
                },
                {
                    "VulnerabilityID": "CVE-2024-0002",
                    "PkgName": "zlib1g",
                    "InstalledVersion": "1:1.2.13",
                    "Severity": "HIGH",
                },
                {
                    "VulnerabilityID": "CVE-2024-0003",
                    "PkgName": "libc6",
                    "FixedVersion": "2.36-9+deb12u4",
                    "Severity": "MEDIUM",
                },
            ],
        },
        {"Target": "app/rust-todo", "Class": "lang-pkgs"},
    ],
}


def test_report_parsing_counts_fixable_findings() -> None:
    report = TrivyReport.model_validate_json(json.dumps(REPORT))
    assert len(report.vulnerabilities()) == 3

    fixable = scan_result_from_report(report, fixable_only=True)
    assert dict(fixable.severity_counts) == {Severity.CRITICAL: 1, Severity.MEDIUM: 1}
    assert fixable.fixable_only

    everything = scan_result_from_report(report, fixable_only=False)
    assert everything.count_at_or_above(Severity.HIGH) == 2
    assert not everything.fixable_only


def test_clean_report() -> None:
    report = TrivyReport.model_validate_json('{"ArtifactName": "image.tar"}')
    result = scan_result_from_report(report, fixable_only=True)
    assert result.count_at_or_above(Severity.LOW) == 0


def test_gate_policy_from_settings(settings) -> None:
    assert gate_policy_from_settings(settings) == GatePolicy(Severity.HIGH, True)

    strict = settings.model_copy(update={"block_severity": "MEDIUM", "ignore_unfixed": False})
    assert gate_policy_from_settings(strict) == GatePolicy(Severity.MEDIUM, False)
