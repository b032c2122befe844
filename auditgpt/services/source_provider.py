import json
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

import requests
from web3 import Web3

from auditgpt.errors import NotFoundError, UpstreamError

logger = logging.getLogger(__name__)

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

# explorer answers status=0 for both "unknown contract" and infra problems;
# these fragments mean the latter
_UPSTREAM_MESSAGES = (
    "rate limit",
    "invalid api key",
    "missing/invalid api key",
    "too many",
    "timeout",
)

LogCallback = Callable[[str], None]


@dataclass
class ContractSource:
    """Verified source and metadata returned by the explorer."""

    address: str
    name: str
    source_code: str
    compiler_version: str = ""
    license_type: str = ""
    is_proxy: bool = False
    implementation_address: str = ""
    source_files: Dict[str, str] = field(default_factory=dict)


def is_valid_address(value: Optional[str]) -> bool:
    """`0x` + 40 hex chars; the hex body is case-insensitive (no checksum check)."""
    return bool(value) and ADDRESS_RE.match(value) is not None


# ---------------------------
# Response parsing
# ---------------------------

def _unpack_standard_json(source_code: str) -> Dict[str, str]:
    """
    Explorers return multi-file contracts as Solidity standard JSON input,
    sometimes wrapped in an extra pair of braces: {{ ... }}.
    Returns {} when the source is a plain flattened file.
    """
    text = source_code.strip()
    if text.startswith("{{") and text.endswith("}}"):
        text = text[1:-1]
    elif not text.startswith("{"):
        return {}

    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return {}

    sources = payload.get("sources") if isinstance(payload, dict) else None
    if not isinstance(sources, dict):
        # some explorers drop the wrapper and return {path: {content}} directly
        sources = payload if isinstance(payload, dict) else {}
    return {
        name: entry.get("content", "")
        for name, entry in sources.items()
        if isinstance(entry, dict) and entry.get("content")
    }


def _join_source_files(files: Dict[str, str]) -> str:
    return "\n\n".join(f"// File: {name}\n{content}" for name, content in files.items())


def _parse_source_result(data: dict, address: str) -> ContractSource:
    """
    Parse an explorer `getsourcecode` response.

    Shape: {"status": "1", "message": "OK", "result": [{"SourceCode": ..., "ContractName": ...}]}
    """
    status = str(data.get("status"))
    result = data.get("result")

    if status != "1":
        message = str(data.get("message") or "")
        detail = result if isinstance(result, str) else ""
        text = f"{message} {detail}".lower()
        if any(fragment in text for fragment in _UPSTREAM_MESSAGES):
            raise UpstreamError(f"Block explorer error: {detail or message}")
        raise NotFoundError(f"Contract not verified or not found at {address}: {detail or message}")

    if not isinstance(result, list) or not result or not isinstance(result[0], dict):
        raise UpstreamError(f"Could not interpret block explorer response for {address}")

    entry = result[0]
    source_code = entry.get("SourceCode") or ""
    if not source_code.strip():
        raise NotFoundError(f"Contract source code not verified at {address}")

    files = _unpack_standard_json(source_code)
    if files:
        source_code = _join_source_files(files)

    implementation = (entry.get("Implementation") or "").strip()
    return ContractSource(
        address=address,
        name=entry.get("ContractName") or "Unknown Contract",
        source_code=source_code,
        compiler_version=entry.get("CompilerVersion") or "",
        license_type=entry.get("LicenseType") or "",
        is_proxy=str(entry.get("Proxy", "0")) == "1" or bool(implementation),
        implementation_address=implementation,
        source_files=files,
    )


# ---------------------------
# Provider
# ---------------------------

class SourceProvider:
    """Resolves a contract address to verified source through an Etherscan-v2 style API."""

    def __init__(
        self,
        base_url: str,
        chain_id: str,
        default_api_key: str = "",
        timeout: float = 20.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url
        self.chain_id = str(chain_id)
        self.default_api_key = default_api_key
        self.timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_config(cls, config) -> "SourceProvider":
        return cls(
            base_url=config["EXPLORER_API_BASE"],
            chain_id=config["EXPLORER_CHAIN_ID"],
            default_api_key=config.get("EXPLORER_API_KEY", ""),
            timeout=config.get("EXPLORER_TIMEOUT", 20.0),
        )

    def fetch_source(
        self,
        address: str,
        credential: Optional[str] = None,
        on_log: Optional[LogCallback] = None,
    ) -> ContractSource:
        emit = on_log or (lambda message: None)
        address = (address or "").strip()
        if not is_valid_address(address):
            raise NotFoundError(f"Invalid contract address format: {address}")

        params = {
            "chainid": self.chain_id,
            "module": "contract",
            "action": "getsourcecode",
            "address": Web3.to_checksum_address(address),
        }
        api_key = (credential or "").strip() or self.default_api_key
        if api_key:
            params["apikey"] = api_key
        else:
            emit("No explorer API key supplied; using the shared rate limit.")

        emit(f"Querying block explorer (chain {self.chain_id}) for {address}...")
        try:
            resp = self._session.get(self.base_url, params=params, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as e:
            raise UpstreamError(f"Block explorer request failed: {e}") from e
        except ValueError as e:
            raise UpstreamError("Block explorer returned a non-JSON response") from e

        contract = _parse_source_result(data, address)
        emit(
            f"Source code retrieved: {contract.name} ({len(contract.source_code)} bytes, "
            f"compiler {contract.compiler_version or 'unknown'}, license {contract.license_type or 'unknown'})"
        )
        if contract.source_files:
            emit(f"Unpacked {len(contract.source_files)} source files from standard JSON input")
        if contract.is_proxy:
            emit(f"Proxy detected; implementation at {contract.implementation_address or 'unknown'}")

        logger.info("Fetched source for %s (%s)", address, contract.name)
        return contract
