from .stage import gate_policy_from_settings, stage_scan
from .trivy import TrivyReport, TrivyScanner, scan_result_from_report

__all__ = [
    "gate_policy_from_settings",
    "stage_scan",
    "TrivyReport",
    "TrivyScanner",
    "scan_result_from_report",
]
