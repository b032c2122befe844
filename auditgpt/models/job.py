# auditgpt/models/job.py
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from auditgpt.errors import InvalidPhaseTransition
from auditgpt.models.report import AuditReport


class InputMode(str, Enum):
    ADDRESS = "address"
    SOURCE = "source"


class JobState(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    RESULTS = "results"
    ERROR = "error"


class Phase(str, Enum):
    FETCH = "fetch"
    STATIC_ANALYSIS = "static-analysis"
    GAS_ANALYSIS = "gas-analysis"
    ECONOMIC_ANALYSIS = "economic-analysis"
    UPGRADE_ANALYSIS = "upgrade-analysis"
    REPORT_GENERATION = "report-generation"


class PhaseStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class LogKind(str, Enum):
    INFO = "info"
    PROCESS = "process"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


# forward-only; re-asserting the current status is allowed separately
_ALLOWED = {
    PhaseStatus.PENDING: {PhaseStatus.PROCESSING, PhaseStatus.FAILED},
    PhaseStatus.PROCESSING: {PhaseStatus.COMPLETED, PhaseStatus.FAILED},
    PhaseStatus.COMPLETED: set(),
    PhaseStatus.FAILED: set(),
}

SOURCE_TARGET_LABEL = "Manual Source Code"


def pending_phases() -> Dict[Phase, PhaseStatus]:
    return {phase: PhaseStatus.PENDING for phase in Phase}


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    message: str
    kind: LogKind = LogKind.INFO

    @classmethod
    def now(cls, message: str, kind: LogKind = LogKind.INFO) -> "LogEntry":
        return cls(timestamp=datetime.now(timezone.utc), message=message, kind=kind)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "type": self.kind.value,
        }


@dataclass
class Job:
    """
    One audit run. Only the orchestrator that owns it mutates it.

    The explorer credential lives here for the duration of the run only:
    it is never serialized and the orchestrator clears it at terminal state.
    """

    mode: Optional[InputMode] = None
    input: str = ""
    credential: str = field(default="", repr=False)
    phases: Dict[Phase, PhaseStatus] = field(default_factory=pending_phases)
    log: List[LogEntry] = field(default_factory=list)
    result: Optional[AuditReport] = None
    state: JobState = JobState.IDLE

    @property
    def target(self) -> str:
        if self.mode is InputMode.ADDRESS:
            return self.input
        if self.mode is InputMode.SOURCE:
            return SOURCE_TARGET_LABEL
        return ""

    def set_phase(self, phase: Phase, status: PhaseStatus) -> None:
        current = self.phases[phase]
        if status == current:
            return
        if status not in _ALLOWED[current]:
            raise InvalidPhaseTransition(
                f"Phase '{phase.value}' cannot move from {current.value} to {status.value}"
            )
        self.phases[phase] = status

    def append_log(self, message: str, kind: LogKind = LogKind.INFO) -> LogEntry:
        entry = LogEntry.now(message, kind)
        self.log.append(entry)
        return entry

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value if self.mode else None,
            "target": self.target,
            "state": self.state.value,
            "phases": {phase.value: status.value for phase, status in self.phases.items()},
            "log": [entry.to_dict() for entry in self.log],
            "result": self.result.to_dict() if self.result else None,
        }
