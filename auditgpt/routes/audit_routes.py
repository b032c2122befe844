# auditgpt/routes/audit_routes.py
from flask import Blueprint, current_app, jsonify, request

from auditgpt.errors import ValidationError
from auditgpt.models.job import InputMode, LogEntry, LogKind
from auditgpt.services.audit_orchestrator import validate_request
from auditgpt.services.audit_prompt import REPORT_SCHEMA

bp = Blueprint("audit", __name__)  # prefix is applied in auditgpt/__init__.py

# celery state -> job status exposed to clients
_STATUS_BY_STATE = {
    "PENDING": "queued",
    "RECEIVED": "queued",
    "STARTED": "processing",
    "PROGRESS": "processing",
    "RETRY": "processing",
}


def _job_input(data: dict, mode: str) -> str:
    if mode == InputMode.SOURCE.value:
        return str(data.get("source") or data.get("source_code") or "")
    return str(data.get("address") or data.get("contract_address") or "").strip()


@bp.post("/start")
def start():
    """
    Audit: start a job
    ---
    tags:
      - Audit
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            mode:
              type: string
              enum: [address, source]
              default: address
            address:
              type: string
              description: Verified contract address (address mode).
              example: "0x7ceB23fD6bC0adD59E62ac25578270cFf1b9f619"
            api_key:
              type: string
              description: Optional explorer API key (34 alphanumeric characters).
            source:
              type: string
              description: Solidity source code (source mode, at least 50 characters).
    responses:
      202:
        description: Accepted (job queued)
      400:
        description: Invalid input
    """
    data = request.get_json(silent=True) or {}
    mode = str(data.get("mode") or InputMode.ADDRESS.value).strip().lower()
    value = _job_input(data, mode)
    credential = str(data.get("api_key") or "").strip()

    try:
        validate_request(mode, value, credential, current_app.config.get("MIN_SOURCE_LENGTH", 50))
    except ValidationError as e:
        entry = LogEntry.now(str(e), LogKind.ERROR)
        return jsonify({"ok": False, "error": str(e), "log": [entry.to_dict()]}), 400

    # deferred import: the task module needs the celery app bound first
    from auditgpt.tasks.audit_tasks import run_audit

    async_res = run_audit.delay(mode, value, credential)
    current_app.logger.info("audit job queued: %s", async_res.id)

    return jsonify({"ok": True, "task_id": async_res.id, "status": "queued"}), 202


@bp.get("/status/<task_id>")
def status(task_id: str):
    """
    Audit: job status, phases, log and (when finished) the report
    ---
    tags:
      - Audit
    parameters:
      - in: path
        name: task_id
        required: true
        type: string
    responses:
      200:
        description: OK
      500:
        description: The task itself crashed
    """
    from auditgpt.tasks.audit_tasks import run_audit

    res = run_audit.AsyncResult(task_id)
    state = res.state

    if state == "SUCCESS":
        job = res.result or {}
        return jsonify({"ok": True, "task_id": task_id, "status": job.get("state"), "job": job}), 200

    if state == "FAILURE":
        return jsonify({"ok": False, "task_id": task_id, "status": "error", "error": str(res.result)}), 500

    job = res.info if state == "PROGRESS" and isinstance(res.info, dict) else None
    return jsonify({
        "ok": True,
        "task_id": task_id,
        "status": _STATUS_BY_STATE.get(state, state.lower()),
        "job": job,
    }), 200


@bp.get("/schema")
def schema():
    """
    Audit: structured-output schema the engine must follow
    ---
    tags:
      - Audit
    responses:
      200:
        description: OK
    """
    return jsonify(REPORT_SCHEMA), 200
