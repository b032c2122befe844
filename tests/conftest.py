import json
import os
from types import SimpleNamespace

import pytest

from auditgpt import create_app
from auditgpt.services.audit_engine import parse_report
from auditgpt.services.audit_orchestrator import AuditOrchestrator
from auditgpt.services.source_provider import ContractSource

VALID_ADDRESS = "0x7ceB23fD6bC0adD59E62ac25578270cFf1b9f619"
SAMPLE_SOURCE = """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.20;

contract Vault {
    mapping(address => uint256) public balances;

    function withdraw() external {
        (bool ok, ) = msg.sender.call{value: balances[msg.sender]}("");
        require(ok);
        balances[msg.sender] = 0;
    }
}
"""


def sample_payload():
    return {
        "contractName": "Vault",
        "overallScore": 42,
        "summary": "Reentrancy in withdraw allows draining the vault.",
        "vulnerabilities": [
            {
                "id": "SWC-107",
                "title": "Reentrancy",
                "severity": "High",
                "description": "State is updated after the external call.",
                "lineNumber": 8,
                "remediation": "Apply checks-effects-interactions.",
                "codeFix": "balances[msg.sender] = 0; before the call",
                "impact": "Full loss of deposited funds.",
                "confidence": "High",
            }
        ],
        "gasAnalysis": [
            {
                "category": "Storage",
                "description": "Cache balances[msg.sender] in memory.",
                "potentialSavings": "~100 gas",
                "codeSnippet": "uint256 amount = balances[msg.sender];",
            },
            {
                "category": "Errors",
                "description": "Use custom errors instead of require strings.",
                "potentialSavings": "~50 gas",
                "codeSnippet": "error TransferFailed();",
            },
        ],
        "economicAnalysis": [
            {
                "vector": "Flash loan",
                "riskLevel": "Low",
                "scenario": "No price dependency.",
                "mitigation": "None required.",
            }
        ],
        "upgradeabilityAnalysis": [],
        "formalVerificationSuggestions": ["sum(balances) <= address(this).balance"],
    }


class FakeSourceProvider:
    def __init__(self, name="Vault", source_code=SAMPLE_SOURCE, error=None):
        self.name = name
        self.source_code = source_code
        self.error = error
        self.calls = []

    def fetch_source(self, address, credential=None, on_log=None):
        self.calls.append((address, credential))
        if on_log:
            on_log("Querying block explorer...")
        if self.error:
            raise self.error
        return ContractSource(address=address, name=self.name, source_code=self.source_code)


class FakeEngine:
    primary_model = "fake-primary"

    def __init__(self, payload=None, error=None, config_error=None):
        self.payload = payload if payload is not None else sample_payload()
        self.error = error
        self.config_error = config_error
        self.calls = []

    def ensure_configured(self):
        if self.config_error:
            raise self.config_error

    def audit(self, source_code, contract_name=None):
        self.calls.append((source_code, contract_name))
        if self.error:
            raise self.error
        return parse_report(json.dumps(self.payload), contract_name)


class FakeCompletions:
    """Stands in for `OpenAI().chat.completions`; each outcome is a text or an exception."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        message = SimpleNamespace(content=outcome)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_openai_client(*outcomes):
    completions = FakeCompletions(outcomes)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


@pytest.fixture(scope="session")
def app():
    os.environ["FLASK_ENV"] = "testing"
    app = create_app("testing")
    with app.app_context():
        yield app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_orchestrator():
    def factory(provider=None, engine=None, listener=None):
        return AuditOrchestrator(
            source_provider=provider or FakeSourceProvider(),
            audit_engine=engine or FakeEngine(),
            listener=listener,
            pacing=0,
        )

    return factory
