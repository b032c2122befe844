# auditgpt/models/__init__.py
from .job import InputMode, Job, JobState, LogEntry, LogKind, Phase, PhaseStatus  # noqa
from .report import (  # noqa
    AuditReport,
    Confidence,
    EconomicRisk,
    GasFinding,
    Severity,
    UpgradeabilityFinding,
    Vulnerability,
)

__all__ = [
    "InputMode", "Job", "JobState", "LogEntry", "LogKind", "Phase", "PhaseStatus",
    "AuditReport", "Confidence", "EconomicRisk", "GasFinding", "Severity",
    "UpgradeabilityFinding", "Vulnerability",
]
