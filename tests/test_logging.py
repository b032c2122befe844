import json
import logging

import pytest

from auditgpt import parse_origins
from auditgpt.logging_setup import JsonRequestFormatter, QuietPathFilter, setup_logging


def _record(msg="Phase 1: Retrieving on-chain data...", **extra):
    record = logging.LogRecord("auditgpt.services.audit_orchestrator", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_outside_request_has_job_fields():
    line = JsonRequestFormatter().format(_record(task_id="t-1", job_target="0xabc"))
    data = json.loads(line)
    assert data["level"] == "INFO"
    assert data["msg"] == "Phase 1: Retrieving on-chain data..."
    assert data["task_id"] == "t-1"
    assert data["job_target"] == "0xabc"
    assert "http" not in data


def test_formatter_inside_request_adds_http_block(app):
    with app.test_request_context("/api/audit/start", method="POST", headers={"X-Request-ID": "r-9"}):
        data = json.loads(JsonRequestFormatter().format(_record()))
    assert data["http"]["method"] == "POST"
    assert data["http"]["path"] == "/api/audit/start"
    assert data["http"]["request_id"] == "r-9"
    assert "task_id" not in data


@pytest.mark.parametrize("path, kept", [("/healthz", False), ("/metrics", False), ("/api/audit/start", True)])
def test_quiet_paths_are_filtered(app, path, kept):
    with app.test_request_context(path):
        assert QuietPathFilter().filter(_record()) is kept


def test_setup_logging_honours_level_and_quiets_clients(app):
    app.config["LOG_LEVEL"] = "debug"
    try:
        setup_logging(app)
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("openai").level == logging.WARNING
    finally:
        app.config["LOG_LEVEL"] = "INFO"
        setup_logging(app)
    assert logging.getLogger().level == logging.INFO


@pytest.mark.parametrize("raw, expected", [
    (None, "*"),
    ("", "*"),
    (" * ", "*"),
    ("https://a.example, https://b.example,", ["https://a.example", "https://b.example"]),
])
def test_parse_origins(raw, expected):
    assert parse_origins(raw) == expected


def test_cors_headers_on_api_routes(client):
    rv = client.get("/api/audit/schema", headers={"Origin": "https://ui.example"})
    assert rv.headers["Access-Control-Allow-Origin"] == "*"
