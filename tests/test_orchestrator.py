import json

import pytest

from auditgpt.errors import (
    ConfigurationError,
    JobInProgressError,
    NotFoundError,
    ValidationError,
)
from auditgpt.models.job import JobState, LogKind, Phase, PhaseStatus
from auditgpt.services.audit_engine import AuditEngineClient, EngineTier
from auditgpt.services.audit_orchestrator import (
    SOURCE_ADDRESS_SENTINEL,
    is_valid_credential,
    validate_request,
)
from conftest import (
    SAMPLE_SOURCE,
    VALID_ADDRESS,
    FakeEngine,
    FakeSourceProvider,
    fake_openai_client,
    sample_payload,
)

PHASE_ORDER = [
    Phase.FETCH,
    Phase.STATIC_ANALYSIS,
    Phase.GAS_ANALYSIS,
    Phase.ECONOMIC_ANALYSIS,
    Phase.UPGRADE_ANALYSIS,
    Phase.REPORT_GENERATION,
]


def _engine_with(*outcomes):
    client, completions = fake_openai_client(*outcomes)
    engine = AuditEngineClient(
        api_key="sk-test",
        primary=EngineTier("primary-model", reasoning_effort="high"),
        secondary=EngineTier("secondary-model"),
        client=client,
    )
    return engine, completions


def _completion_order(snapshots):
    """Phases in the order they were first seen COMPLETED across listener snapshots."""
    seen = []
    for phases in snapshots:
        for phase, status in phases.items():
            if status is PhaseStatus.COMPLETED and phase not in seen:
                seen.append(phase)
    return seen


# --- validation ---

@pytest.mark.parametrize("address", [
    "",
    "0x123",
    "7ceB23fD6bC0adD59E62ac25578270cFf1b9f619",
    "0x7ceB23fD6bC0adD59E62ac25578270cFf1b9f61Z",
    "0x7ceB23fD6bC0adD59E62ac25578270cFf1b9f6190",
    "  0x7ceB23fD6bC0adD59E62ac25578270cFf1b9f619 ",
])
def test_invalid_address_leaves_job_untouched(make_orchestrator, address):
    provider = FakeSourceProvider()
    orch = make_orchestrator(provider=provider)

    with pytest.raises(ValidationError):
        orch.start_job("address", address)

    job = orch.job
    assert job.state is JobState.IDLE
    assert all(status is PhaseStatus.PENDING for status in job.phases.values())
    assert len(job.log) == 1
    assert job.log[0].kind is LogKind.ERROR
    assert job.log[0].message == "Invalid Polygon Address Format"
    assert provider.calls == []


@pytest.mark.parametrize("source", ["", "   ", "contract A {}", " " * 80 + "x" * 49 + "\n" * 10])
def test_short_source_leaves_job_untouched(make_orchestrator, source):
    engine = FakeEngine()
    orch = make_orchestrator(engine=engine)

    with pytest.raises(ValidationError, match="too short"):
        orch.start_job("source", source)

    assert orch.job.state is JobState.IDLE
    assert all(status is PhaseStatus.PENDING for status in orch.job.phases.values())
    assert [e.kind for e in orch.job.log] == [LogKind.ERROR]
    assert engine.calls == []


def test_validation_failure_after_a_finished_job_keeps_its_result(make_orchestrator):
    orch = make_orchestrator()
    orch.start_job("address", VALID_ADDRESS)
    log_size = len(orch.job.log)

    with pytest.raises(ValidationError):
        orch.start_job("source", "too short")

    assert orch.job.state is JobState.RESULTS
    assert orch.job.result is not None
    assert len(orch.job.log) == log_size + 1


def test_credential_format():
    assert is_valid_credential("ABCDEFGHIJKLMNOPQRSTUVWXYZ12345678")
    assert not is_valid_credential("short")
    assert not is_valid_credential("ABCDEFGHIJKLMNOPQRSTUVWXYZ123456789")
    assert not is_valid_credential("ABCDEFGHIJKLMNOPQRSTUVWXYZ1234567-")


def test_bad_credential_is_rejected_before_fetch(make_orchestrator):
    provider = FakeSourceProvider()
    orch = make_orchestrator(provider=provider)

    with pytest.raises(ValidationError, match="34 alphanumeric"):
        orch.start_job("address", VALID_ADDRESS, "short")

    assert provider.calls == []
    assert orch.job.state is JobState.IDLE


def test_unknown_mode_is_a_validation_error():
    with pytest.raises(ValidationError):
        validate_request("bytecode", VALID_ADDRESS)


# --- happy paths ---

def test_address_job_completes_every_phase_in_order(make_orchestrator):
    snapshots = []
    provider = FakeSourceProvider()
    orch = make_orchestrator(
        provider=provider,
        listener=lambda job: snapshots.append(dict(job.phases)),
    )

    job = orch.start_job("address", f"  {VALID_ADDRESS} ", "ABCDEFGHIJKLMNOPQRSTUVWXYZ12345678")

    assert job.state is JobState.RESULTS
    assert all(status is PhaseStatus.COMPLETED for status in job.phases.values())
    assert _completion_order(snapshots) == PHASE_ORDER
    assert job.result.contract_address == VALID_ADDRESS
    assert job.result.contract_name == "Vault"
    assert provider.calls == [(VALID_ADDRESS, "ABCDEFGHIJKLMNOPQRSTUVWXYZ12345678")]
    assert job.credential == ""


def test_address_job_log_stream(make_orchestrator):
    job = make_orchestrator().start_job("address", VALID_ADDRESS)
    messages = [entry.message for entry in job.log]

    assert messages[0] == f"Initializing Job: {VALID_ADDRESS}"
    assert job.log[0].kind is LogKind.PROCESS
    assert "Phase 1: Retrieving on-chain data..." in messages
    assert "Querying block explorer..." in messages
    assert "Phase 2: Initializing Analysis Engine (fake-primary)..." in messages
    assert messages[-5:] == [
        "Static Analysis Complete: 1 findings",
        "Gas Profiling Complete: 2 optimizations found",
        "Economic Modeling Complete: 1 vectors analyzed",
        "Upgradeability Check Complete: 0 items reviewed",
        "Audit Report Generated Successfully",
    ]
    assert all(entry.kind is LogKind.SUCCESS for entry in job.log[-5:])
    timestamps = [entry.timestamp for entry in job.log]
    assert timestamps == sorted(timestamps)


def test_source_job_uses_sentinel_and_skips_fetch(make_orchestrator):
    provider = FakeSourceProvider()
    engine = FakeEngine()
    snapshots = []
    orch = make_orchestrator(
        provider=provider,
        engine=engine,
        listener=lambda job: snapshots.append(dict(job.phases)),
    )

    job = orch.start_job("source", SAMPLE_SOURCE)

    assert job.state is JobState.RESULTS
    assert job.result.contract_address == SOURCE_ADDRESS_SENTINEL
    assert provider.calls == []
    assert engine.calls == [(SAMPLE_SOURCE, "Uploaded Contract")]
    assert _completion_order(snapshots) == PHASE_ORDER
    assert job.log[0].message == "Initializing Job: Manual Source Code"
    assert job.to_dict()["target"] == "Manual Source Code"


def test_four_analysis_phases_processing_together(make_orchestrator):
    seen = []

    def listener(job):
        analysis = [job.phases[p] for p in PHASE_ORDER[1:5]]
        if all(status is PhaseStatus.PROCESSING for status in analysis):
            seen.append(job.phases[Phase.FETCH])

    make_orchestrator(listener=listener).start_job("address", VALID_ADDRESS)
    assert seen and all(status is PhaseStatus.COMPLETED for status in seen)


def test_phases_never_regress(make_orchestrator):
    rank = {
        PhaseStatus.PENDING: 0,
        PhaseStatus.PROCESSING: 1,
        PhaseStatus.COMPLETED: 2,
        PhaseStatus.FAILED: 2,
    }
    snapshots = []
    make_orchestrator(listener=lambda job: snapshots.append(dict(job.phases))).start_job(
        "address", VALID_ADDRESS
    )
    for before, after in zip(snapshots, snapshots[1:]):
        for phase in PHASE_ORDER:
            assert rank[after[phase]] >= rank[before[phase]]


def test_pacing_sleeps_between_final_transitions(make_orchestrator):
    from auditgpt.services.audit_orchestrator import AuditOrchestrator

    delays = []
    orch = AuditOrchestrator(FakeSourceProvider(), FakeEngine(), pacing=0.4, sleep=delays.append)
    orch.start_job("source", SAMPLE_SOURCE)
    assert delays == [0.4, 0.4, 0.4, 0.4]


def test_new_job_resets_previous_state(make_orchestrator):
    orch = make_orchestrator(engine=FakeEngine(error=RuntimeError("boom")))
    orch.start_job("source", SAMPLE_SOURCE)
    assert orch.job.state is JobState.ERROR

    orch.audit_engine = FakeEngine()
    job = orch.start_job("source", SAMPLE_SOURCE)
    assert job.state is JobState.RESULTS
    assert not any(entry.kind is LogKind.ERROR for entry in job.log)


def test_running_job_rejects_second_start(make_orchestrator):
    orch = make_orchestrator()
    orch.job.state = JobState.PROCESSING

    with pytest.raises(JobInProgressError):
        orch.start_job("source", SAMPLE_SOURCE)
    assert orch.job.log == []


# --- engine fallback ---

def test_primary_failure_falls_back_transparently(make_orchestrator):
    engine, completions = _engine_with(RuntimeError("503 overloaded"), json.dumps(sample_payload()))

    job = make_orchestrator(engine=engine).start_job("address", VALID_ADDRESS)

    assert job.state is JobState.RESULTS
    assert [call["model"] for call in completions.calls] == ["primary-model", "secondary-model"]
    assert "reasoning_effort" not in completions.calls[1]


def test_both_tiers_failing_ends_in_error(make_orchestrator):
    engine, _ = _engine_with(RuntimeError("503 overloaded"), RuntimeError("429 quota exceeded"))

    job = make_orchestrator(engine=engine).start_job("address", VALID_ADDRESS)

    assert job.state is JobState.ERROR
    assert job.result is None
    assert job.phases[Phase.FETCH] is PhaseStatus.COMPLETED
    assert all(job.phases[p] is PhaseStatus.FAILED for p in PHASE_ORDER[1:])
    errors = [entry for entry in job.log if entry.kind is LogKind.ERROR]
    assert len(errors) == 1
    assert errors[0].message == "Analysis Engine Failed: 429 quota exceeded"


def test_failure_message_is_logged_verbatim(make_orchestrator):
    job = make_orchestrator(engine=FakeEngine(error=RuntimeError("engine down"))).start_job(
        "source", SAMPLE_SOURCE
    )
    errors = [entry for entry in job.log if entry.kind is LogKind.ERROR]
    assert [e.message for e in errors] == ["engine down"]


def test_fetch_failure_fails_every_phase(make_orchestrator):
    engine = FakeEngine()
    provider = FakeSourceProvider(error=NotFoundError("Contract source code not verified"))

    job = make_orchestrator(provider=provider, engine=engine).start_job("address", VALID_ADDRESS)

    assert job.state is JobState.ERROR
    assert all(status is PhaseStatus.FAILED for status in job.phases.values())
    assert job.log[-1].message == "Contract source code not verified"
    assert engine.calls == []


def test_missing_engine_credential_fails_before_any_phase(make_orchestrator):
    provider = FakeSourceProvider()
    engine = FakeEngine(config_error=ConfigurationError("API Key missing."))

    job = make_orchestrator(provider=provider, engine=engine).start_job("address", VALID_ADDRESS)

    assert job.state is JobState.ERROR
    assert provider.calls == []
    assert all(status is PhaseStatus.FAILED for status in job.phases.values())
    assert [e.message for e in job.log if e.kind is LogKind.ERROR] == ["API Key missing."]


def test_failure_is_published_in_one_update(make_orchestrator):
    snapshots = []
    orch = make_orchestrator(
        engine=FakeEngine(error=RuntimeError("boom")),
        listener=lambda job: snapshots.append((job.state, dict(job.phases))),
    )
    orch.start_job("source", SAMPLE_SOURCE)

    state, phases = snapshots[-1]
    assert state is JobState.ERROR
    assert phases[Phase.FETCH] is PhaseStatus.COMPLETED
    assert all(phases[p] is PhaseStatus.FAILED for p in PHASE_ORDER[1:])
    # no snapshot shows the error state with phases still in flight
    for state, phases in snapshots:
        if state is JobState.ERROR:
            assert PhaseStatus.PROCESSING not in phases.values()
