# auditgpt/errors.py
"""
Error taxonomy for audit jobs.

Everything except ValidationError is caught at the orchestrator boundary and
turned into a single error log entry plus a terminal ERROR state.
"""


class AuditError(Exception):
    """Base class for every failure an audit job can report."""


class ValidationError(AuditError):
    """Bad address, credential or source input. Never reaches any I/O."""


class JobInProgressError(AuditError):
    """A job is already PROCESSING on this orchestrator."""


class InvalidPhaseTransition(AuditError):
    """A phase was asked to move backwards."""


class ConfigurationError(AuditError):
    """Required configuration (the engine credential) is missing."""


class UpstreamFetchError(AuditError):
    """The source provider could not deliver contract source."""


class NotFoundError(UpstreamFetchError):
    """Unknown or unverified contract."""


class UpstreamError(UpstreamFetchError):
    """Network failure, rate limit or a response we could not read."""


class EngineUnavailableError(AuditError):
    """Both model tiers failed."""


class MalformedResponseError(AuditError):
    """The model answered but the payload does not parse or fit the schema."""
