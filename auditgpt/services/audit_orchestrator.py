import logging
import re
import time
from typing import Callable, Iterable, Optional, Tuple

from auditgpt.errors import JobInProgressError, ValidationError
from auditgpt.models.job import (
    InputMode,
    Job,
    JobState,
    LogKind,
    Phase,
    PhaseStatus,
    pending_phases,
)
from auditgpt.services.audit_engine import AuditEngineClient
from auditgpt.services.source_provider import SourceProvider, is_valid_address

logger = logging.getLogger(__name__)

CREDENTIAL_RE = re.compile(r"^[A-Za-z0-9]{34}$")
MIN_SOURCE_LENGTH = 50
SOURCE_ADDRESS_SENTINEL = "N/A (Source Input)"
UPLOADED_CONTRACT_NAME = "Uploaded Contract"

_LOG_LEVELS = {
    LogKind.INFO: logging.INFO,
    LogKind.PROCESS: logging.INFO,
    LogKind.SUCCESS: logging.INFO,
    LogKind.WARNING: logging.WARNING,
    LogKind.ERROR: logging.ERROR,
}

Listener = Callable[[Job], None]


def is_valid_credential(value: str) -> bool:
    return CREDENTIAL_RE.match(value or "") is not None


def validate_request(
    mode,
    value: str,
    credential: str = "",
    min_source_length: int = MIN_SOURCE_LENGTH,
) -> InputMode:
    """
    Check job input before anything is touched. Returns the parsed mode,
    raises ValidationError with a user-facing message otherwise.
    """
    try:
        mode = InputMode(mode)
    except ValueError:
        raise ValidationError(f"Unknown input mode: {mode!r}") from None

    value = value or ""
    if mode is InputMode.ADDRESS:
        if not is_valid_address(value):
            raise ValidationError("Invalid Polygon Address Format")
        credential = (credential or "").strip()
        if credential and not is_valid_credential(credential):
            raise ValidationError(
                "Invalid API Key format. It must be 34 alphanumeric characters."
            )
    elif len(value.strip()) < min_source_length:
        raise ValidationError("Source code is too short or empty.")
    return mode


class AuditOrchestrator:
    """
    Drives one audit job through fetch -> static -> gas -> economic -> upgrade -> report.

    Runs sequentially in the caller's thread. `listener` sees the job after every
    published change; `sleep` paces the final phase updates.
    """

    def __init__(
        self,
        source_provider: SourceProvider,
        audit_engine: AuditEngineClient,
        listener: Optional[Listener] = None,
        pacing: float = 0.4,
        sleep: Callable[[float], None] = time.sleep,
        min_source_length: int = MIN_SOURCE_LENGTH,
    ):
        self.source_provider = source_provider
        self.audit_engine = audit_engine
        self.listener = listener
        self.pacing = pacing
        self.sleep = sleep
        self.min_source_length = min_source_length
        self.job = Job()

    # --- helpers ---

    def _publish(self) -> None:
        if self.listener:
            self.listener(self.job)

    def _log(self, message: str, kind: LogKind = LogKind.INFO) -> None:
        self.job.append_log(message, kind)
        logger.log(_LOG_LEVELS[kind], message, extra={"job_target": self.job.target})
        self._publish()

    def _transition(self, changes: Iterable[Tuple[Phase, PhaseStatus]]) -> None:
        for phase, status in changes:
            self.job.set_phase(phase, status)
        self._publish()

    def _pace(self) -> None:
        if self.pacing > 0:
            self.sleep(self.pacing)

    # --- entry point ---

    def start_job(self, mode, value: str, credential: str = "") -> Job:
        if self.job.state is JobState.PROCESSING:
            raise JobInProgressError("An audit job is already running.")

        try:
            mode = validate_request(mode, value, credential, self.min_source_length)
        except ValidationError as e:
            self._log(str(e), LogKind.ERROR)
            raise

        job = self.job
        job.mode = mode
        job.input = value
        job.credential = (credential or "").strip()
        job.phases = pending_phases()
        job.log = []
        job.result = None
        job.state = JobState.PROCESSING
        self._log(f"Initializing Job: {job.target}", LogKind.PROCESS)

        try:
            self._run()
        except Exception as e:
            self._fail(e)
        finally:
            job.credential = ""
        return job

    def _run(self) -> None:
        job = self.job
        self.audit_engine.ensure_configured()

        # Phase 1: source
        if job.mode is InputMode.ADDRESS:
            self._transition([(Phase.FETCH, PhaseStatus.PROCESSING)])
            self._log("Phase 1: Retrieving on-chain data...")
            contract = self.source_provider.fetch_source(
                job.input, job.credential or None, on_log=self._log
            )
            source_code, contract_name = contract.source_code, contract.name
        else:
            self._log("Phase 1: Using provided source code input.")
            source_code, contract_name = job.input, UPLOADED_CONTRACT_NAME
            # nothing to fetch: PROCESSING and COMPLETED go out in one update
            job.set_phase(Phase.FETCH, PhaseStatus.PROCESSING)
        self._transition([
            (Phase.FETCH, PhaseStatus.COMPLETED),
            (Phase.STATIC_ANALYSIS, PhaseStatus.PROCESSING),
        ])

        # Phase 2: one engine request covers all four analysis phases
        self._log(f"Phase 2: Initializing Analysis Engine ({self.audit_engine.primary_model})...")
        self._log(f"Analyzing {len(source_code)} bytes of source code...")
        self._transition([
            (Phase.STATIC_ANALYSIS, PhaseStatus.PROCESSING),
            (Phase.GAS_ANALYSIS, PhaseStatus.PROCESSING),
            (Phase.ECONOMIC_ANALYSIS, PhaseStatus.PROCESSING),
            (Phase.UPGRADE_ANALYSIS, PhaseStatus.PROCESSING),
        ])

        report = self.audit_engine.audit(source_code, contract_name)
        address = job.input if job.mode is InputMode.ADDRESS else SOURCE_ADDRESS_SENTINEL
        report = report.model_copy(update={"contract_address": address})

        self._transition([(Phase.STATIC_ANALYSIS, PhaseStatus.COMPLETED)])
        self._log(f"Static Analysis Complete: {len(report.vulnerabilities)} findings", LogKind.SUCCESS)
        self._pace()

        self._transition([(Phase.GAS_ANALYSIS, PhaseStatus.COMPLETED)])
        self._log(f"Gas Profiling Complete: {len(report.gas_analysis)} optimizations found", LogKind.SUCCESS)
        self._pace()

        self._transition([(Phase.ECONOMIC_ANALYSIS, PhaseStatus.COMPLETED)])
        self._log(
            f"Economic Modeling Complete: {len(report.economic_analysis)} vectors analyzed",
            LogKind.SUCCESS,
        )
        self._pace()

        self._transition([
            (Phase.UPGRADE_ANALYSIS, PhaseStatus.COMPLETED),
            (Phase.REPORT_GENERATION, PhaseStatus.PROCESSING),
        ])
        self._log(
            f"Upgradeability Check Complete: {len(report.upgradeability_analysis)} items reviewed",
            LogKind.SUCCESS,
        )
        self._pace()

        job.set_phase(Phase.REPORT_GENERATION, PhaseStatus.COMPLETED)
        job.append_log("Audit Report Generated Successfully", LogKind.SUCCESS)
        job.result = report
        job.state = JobState.RESULTS
        logger.info("[%s] audit finished, score %s", job.target, report.overall_score)
        self._publish()

    def _fail(self, error: Exception) -> None:
        job = self.job
        job.append_log(str(error), LogKind.ERROR)
        job.state = JobState.ERROR
        job.result = None
        for phase, status in job.phases.items():
            if status is not PhaseStatus.COMPLETED:
                job.set_phase(phase, PhaseStatus.FAILED)
        logger.error("[%s] audit failed: %s", job.target or "job", error)
        self._publish()


def build_orchestrator(config, listener: Optional[Listener] = None) -> AuditOrchestrator:
    return AuditOrchestrator(
        source_provider=SourceProvider.from_config(config),
        audit_engine=AuditEngineClient.from_config(config),
        listener=listener,
        pacing=config.get("PHASE_PACING_SECONDS", 0.4),
        min_source_length=config.get("MIN_SOURCE_LENGTH", MIN_SOURCE_LENGTH),
    )
