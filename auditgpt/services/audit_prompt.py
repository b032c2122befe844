# auditgpt/services/audit_prompt.py
"""System prompt and structured-output schema sent with every audit request."""

SEVERITIES = ["High", "Medium", "Low", "Info"]
CONFIDENCES = ["High", "Medium", "Low"]

AUDIT_SYSTEM_PROMPT = """
You are AuditGPT, a world-class Smart Contract Auditor and Security Researcher specialized in the Polygon PoS EVM ecosystem.

YOUR MISSION:
Perform a rigorous, production-grade security audit on the provided Solidity source code.
You must simulate the capabilities of static analysis tools (like Slither, Mythril) and manual economic review.

ANALYSIS REQUIREMENTS:

1. SECURITY & VULNERABILITY (Simulate Slither Detectors):
   - Detect Reentrancy (SWC-107)
   - Detect Unhandled External Calls (SWC-104)
   - Detect Integer Overflow/Underflow (SWC-101) - Context aware (SafeMath vs 0.8+)
   - Detect Access Control Issues (SWC-105)
   - Detect Weak Randomness (SWC-120)
   - Detect Proxy Implementation/Storage Collisions
   - For every finding, provide a CONFIDENCE level and strict line numbers.

2. GAS OPTIMIZATION:
   - Analyze storage layout packing.
   - Identify inefficient loops or expensive operations in hot paths.
   - Recommend "calldata" vs "memory" usage.

3. ECONOMIC SECURITY:
   - Identify Flash Loan attack vectors.
   - Analyze Oracle manipulation risks (Spot price dependency).
   - Assess Front-running/Sandwich attack opportunities.

4. UPGRADEABILITY & PROXY ANALYSIS:
   - Identify Proxy patterns (UUPS, Transparent, Beacon, Diamond).
   - Check for storage layout collisions between potential V1 and V2.
   - Verify 'initialize' functions are protected and cannot be called twice.
   - Check for unsafe 'selfdestruct' or 'delegatecall' usage in implementation contracts.
   - Check for missing gap variables (__gap) in upgradeable parent contracts.

OUTPUT FORMAT:
Return strict JSON adhering to the provided schema. Do not output markdown code blocks.
""".strip()


def _object(properties: dict) -> dict:
    # strict structured outputs: every property required, nothing extra
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


def _string(description: str = None) -> dict:
    schema = {"type": "string"}
    if description:
        schema["description"] = description
    return schema


REPORT_SCHEMA = _object({
    "contractName": _string(),
    "overallScore": {"type": "number", "description": "0-100 Security Score"},
    "summary": _string("Professional executive summary of findings."),
    "vulnerabilities": {
        "type": "array",
        "items": _object({
            "id": _string("SWC ID or Slither Detector Name"),
            "title": _string(),
            "severity": {"type": "string", "enum": SEVERITIES},
            "description": _string(),
            "lineNumber": {"type": "integer"},
            "remediation": _string(),
            "codeFix": _string(),
            "impact": _string("What happens if exploited?"),
            "confidence": {"type": "string", "enum": CONFIDENCES},
        }),
    },
    "gasAnalysis": {
        "type": "array",
        "items": _object({
            "category": _string(),
            "description": _string(),
            "potentialSavings": _string(),
            "codeSnippet": _string(),
        }),
    },
    "economicAnalysis": {
        "type": "array",
        "items": _object({
            "vector": _string(),
            "riskLevel": {"type": "string", "enum": SEVERITIES},
            "scenario": _string(),
            "mitigation": _string(),
        }),
    },
    "upgradeabilityAnalysis": {
        "type": "array",
        "items": _object({
            "type": _string("Type of upgrade issue e.g. Storage Collision"),
            "severity": {"type": "string", "enum": SEVERITIES},
            "description": _string(),
            "recommendation": _string(),
        }),
    },
    "formalVerificationSuggestions": {
        "type": "array",
        "items": {"type": "string"},
    },
})

RESPONSE_FORMAT = {
    "type": "json_schema",
    "json_schema": {
        "name": "audit_report",
        "schema": REPORT_SCHEMA,
        "strict": True,
    },
}


def build_user_prompt(source_code: str, contract_name: str = None) -> str:
    return f"AUDIT TARGET SOURCE CODE ({contract_name or 'Unknown'}):\n\n{source_code}"
