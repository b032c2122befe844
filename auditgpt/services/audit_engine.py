import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import pydantic
from openai import OpenAI

from auditgpt.errors import ConfigurationError, EngineUnavailableError, MalformedResponseError
from auditgpt.models.report import AuditReport
from auditgpt.services.audit_prompt import AUDIT_SYSTEM_PROMPT, RESPONSE_FORMAT, build_user_prompt

logger = logging.getLogger(__name__)

# fences must open and close on their own lines; JSON strings never hold raw newlines
FENCED_BLOCK_RE = re.compile(r"^```(?:json)?[ \t]*\n([\s\S]*?)\n```[ \t]*$", re.MULTILINE | re.IGNORECASE)

DEFAULT_CONTRACT_NAME = "SmartContract"
_REQUIRED_FIELDS = ("overallScore", "summary")
_LIST_FIELDS = (
    "vulnerabilities",
    "gasAnalysis",
    "economicAnalysis",
    "upgradeabilityAnalysis",
    "formalVerificationSuggestions",
)


# ---------------------------
# Response cleaning
# ---------------------------

def extract_json(raw: str) -> str:
    """
    Pull the JSON document out of a free-form model answer.

    A fence on its own lines wins; otherwise slice from the first `{` to the last `}`.
    Text with neither is returned stripped and left for the JSON parser to reject.
    """
    text = (raw or "").strip()
    match = FENCED_BLOCK_RE.search(text)
    if match:
        return match.group(1)

    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        return text[first:last + 1]
    return text


def parse_report(
    raw: str,
    contract_name: Optional[str] = None,
    network: str = "Polygon PoS",
    audit_date: Optional[datetime] = None,
) -> AuditReport:
    """Clean, decode and validate a raw engine answer into an AuditReport."""
    if not raw or not raw.strip():
        raise MalformedResponseError("AI Analysis failed to generate output")

    try:
        data = json.loads(extract_json(raw))
    except json.JSONDecodeError as e:
        logger.error("JSON parse error: %s", e)
        raise MalformedResponseError(
            "Failed to parse AI Analysis results. The model output was not valid JSON."
        ) from e

    if not isinstance(data, dict):
        raise MalformedResponseError("AI Analysis results must be a JSON object")

    missing = [key for key in _REQUIRED_FIELDS if data.get(key) is None]
    if missing:
        raise MalformedResponseError(
            f"AI Analysis results are missing required fields: {', '.join(missing)}"
        )

    payload = {k: v for k, v in data.items() if k not in ("contractAddress", "auditDate", "network")}
    for key in _LIST_FIELDS:
        if payload.get(key) is None:
            logger.warning("Engine response has no '%s'; treating it as empty", key)
            payload[key] = []

    payload["contractName"] = data.get("contractName") or contract_name or DEFAULT_CONTRACT_NAME
    payload["network"] = network
    if audit_date is not None:
        payload["auditDate"] = audit_date

    try:
        return AuditReport.model_validate(payload)
    except pydantic.ValidationError as e:
        raise MalformedResponseError(
            f"AI Analysis results do not match the report schema ({e.error_count()} errors): "
            f"{e.errors()[0]['msg']}"
        ) from e


# ---------------------------
# Client
# ---------------------------

@dataclass(frozen=True)
class EngineTier:
    model: str
    reasoning_effort: Optional[str] = None


class AuditEngineClient:
    """
    Sends contract source to the model under the report schema.

    Two fixed tiers: a high-capability reasoning model first, then a cheaper
    model if the first request fails for any reason. Nothing else retries.
    """

    def __init__(
        self,
        api_key: str,
        primary: EngineTier,
        secondary: EngineTier,
        network: str = "Polygon PoS",
        timeout: float = 300.0,
        client=None,
    ):
        self.api_key = api_key
        self.primary = primary
        self.secondary = secondary
        self.network = network
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_config(cls, config) -> "AuditEngineClient":
        return cls(
            api_key=config.get("AUDIT_ENGINE_API_KEY", ""),
            primary=EngineTier(
                model=config["AUDIT_PRIMARY_MODEL"],
                reasoning_effort=config.get("AUDIT_PRIMARY_REASONING_EFFORT") or None,
            ),
            secondary=EngineTier(model=config["AUDIT_SECONDARY_MODEL"]),
            network=config.get("NETWORK_LABEL", "Polygon PoS"),
            timeout=config.get("AUDIT_REQUEST_TIMEOUT", 300.0),
        )

    @property
    def primary_model(self) -> str:
        return self.primary.model

    def ensure_configured(self) -> None:
        if not self.api_key and self._client is None:
            raise ConfigurationError(
                "API Key missing. Please check your environment configuration (OPENAI_API_KEY)."
            )

    def _get_client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout)
        return self._client

    def _request(self, tier: EngineTier, source_code: str, contract_name: Optional[str]) -> str:
        kwargs = {
            "model": tier.model,
            "messages": [
                {"role": "system", "content": AUDIT_SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(source_code, contract_name)},
            ],
            "response_format": RESPONSE_FORMAT,
        }
        if tier.reasoning_effort:
            kwargs["reasoning_effort"] = tier.reasoning_effort

        response = self._get_client().chat.completions.create(**kwargs)
        return response.choices[0].message.content or ""

    def audit(self, source_code: str, contract_name: Optional[str] = None) -> AuditReport:
        self.ensure_configured()

        try:
            raw = self._request(self.primary, source_code, contract_name)
        except Exception as primary_error:
            logger.warning(
                "Primary model %s failed, falling back to %s: %s",
                self.primary.model, self.secondary.model, primary_error,
            )
            try:
                raw = self._request(self.secondary, source_code, contract_name)
            except Exception as e:
                logger.error("Secondary model %s failed: %s", self.secondary.model, e)
                raise EngineUnavailableError(f"Analysis Engine Failed: {e}") from e

        return parse_report(raw, contract_name, network=self.network)
