# auditgpt/models/report.py
from datetime import datetime, timezone
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    INFO = "Info"


class Confidence(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class _Finding(BaseModel):
    # wire names are camelCase (engine schema), attributes snake_case
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Vulnerability(_Finding):
    """One security finding (SWC id or detector name in `id`)."""

    id: str
    title: str
    severity: Severity
    description: str
    line_number: int = Field(alias="lineNumber")
    remediation: str
    code_fix: str = Field(alias="codeFix")
    impact: str
    confidence: Confidence


class GasFinding(_Finding):
    category: str
    description: str
    potential_savings: str = Field(alias="potentialSavings")
    code_snippet: str = Field(alias="codeSnippet")


class EconomicRisk(_Finding):
    vector: str
    risk_level: Severity = Field(alias="riskLevel")
    scenario: str
    mitigation: str


class UpgradeabilityFinding(_Finding):
    type: str
    severity: Severity
    description: str
    recommendation: str


class AuditReport(BaseModel):
    """
    Parsed and validated result of one audit job.

    Immutable: the orchestrator fills `contract_address` through
    `model_copy(update=...)` once the engine has answered.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    contract_name: str = Field(alias="contractName")
    contract_address: str = Field(default="", alias="contractAddress")
    network: str
    audit_date: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="auditDate"
    )
    overall_score: float = Field(alias="overallScore", ge=0, le=100)
    summary: str
    vulnerabilities: List[Vulnerability] = Field(default_factory=list)
    gas_analysis: List[GasFinding] = Field(default_factory=list, alias="gasAnalysis")
    economic_analysis: List[EconomicRisk] = Field(default_factory=list, alias="economicAnalysis")
    upgradeability_analysis: List[UpgradeabilityFinding] = Field(
        default_factory=list, alias="upgradeabilityAnalysis"
    )
    formal_verification_suggestions: List[str] = Field(
        default_factory=list, alias="formalVerificationSuggestions"
    )

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
