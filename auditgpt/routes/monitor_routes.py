# auditgpt/routes/monitor_routes.py
from dataclasses import asdict

from flask import Blueprint, current_app, jsonify, request

from auditgpt.errors import ValidationError
from auditgpt.services.monitor_service import AlreadyMonitoredError, MonitorSimulator

bp = Blueprint("monitor", __name__)  # mounted at /api/monitor


def _simulator() -> MonitorSimulator:
    return current_app.extensions["monitor"]


def _not_monitored(address: str):
    return jsonify({"ok": False, "error": f"contract {address} is not monitored"}), 404


@bp.get("/contracts")
def list_contracts():
    """
    Monitoring: monitored contracts with their recent events and stats
    ---
    tags:
      - Monitoring
    responses:
      200:
        description: OK
    """
    items = [c.to_dict() for c in _simulator().list_contracts()]
    return jsonify({"ok": True, "items": items}), 200


@bp.post("/contracts")
def add_contract():
    """
    Monitoring: add a contract to the simulator
    ---
    tags:
      - Monitoring
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - address
            - name
          properties:
            address:
              type: string
              example: "0x7ceB23fD6bC0adD59E62ac25578270cFf1b9f619"
            name:
              type: string
              example: "USDC Vault"
    responses:
      201:
        description: Created
      400:
        description: Missing or invalid fields
      409:
        description: Already monitored
    """
    data = request.get_json(silent=True) or {}
    try:
        contract = _simulator().add_contract(str(data.get("address") or ""), str(data.get("name") or ""))
    except AlreadyMonitoredError as e:
        return jsonify({"ok": False, "error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"ok": False, "error": str(e)}), 400
    return jsonify({"ok": True, "contract": contract.to_dict()}), 201


@bp.delete("/contracts/<address>")
def remove_contract(address: str):
    """
    Monitoring: stop monitoring a contract
    ---
    tags:
      - Monitoring
    parameters:
      - in: path
        name: address
        required: true
        type: string
    responses:
      200:
        description: OK
      404:
        description: Not monitored
    """
    try:
        contract = _simulator().remove_contract(address)
    except KeyError:
        return _not_monitored(address)
    return jsonify({"ok": True, "removed": contract.address}), 200


@bp.post("/contracts/<address>/toggle")
def toggle_contract(address: str):
    """
    Monitoring: pause or resume a contract
    ---
    tags:
      - Monitoring
    parameters:
      - in: path
        name: address
        required: true
        type: string
    responses:
      200:
        description: OK
      404:
        description: Not monitored
    """
    try:
        contract = _simulator().toggle_contract(address)
    except KeyError:
        return _not_monitored(address)
    return jsonify({"ok": True, "address": contract.address, "status": contract.status}), 200


@bp.post("/tick")
def tick():
    """
    Monitoring: advance the simulation one step (the UI polls this every ~2s)
    ---
    tags:
      - Monitoring
    responses:
      200:
        description: Events generated in this step
    """
    events = _simulator().tick()
    return jsonify({"ok": True, "events": [e.to_dict() for e in events]}), 200


@bp.get("/feed")
def feed():
    """
    Monitoring: live feed across all contracts, newest first
    ---
    tags:
      - Monitoring
    responses:
      200:
        description: OK
    """
    return jsonify({"ok": True, "items": _simulator().feed()}), 200


@bp.get("/chart")
def chart():
    """
    Monitoring: last 20 gas / transaction-volume points
    ---
    tags:
      - Monitoring
    responses:
      200:
        description: OK
    """
    return jsonify({"ok": True, "points": _simulator().chart()}), 200


@bp.get("/alerts")
def get_alerts():
    """
    Monitoring: alert configuration
    ---
    tags:
      - Monitoring
    responses:
      200:
        description: OK
    """
    return jsonify({"ok": True, "config": asdict(_simulator().alert_config)}), 200


@bp.put("/alerts")
def update_alerts():
    """
    Monitoring: update alert configuration (partial)
    ---
    tags:
      - Monitoring
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            email: {type: string}
            slack_webhook: {type: string}
            discord_webhook: {type: string}
            min_eth_transfer: {type: number, example: 10}
            gas_threshold: {type: integer, example: 300}
            detect_flash_loans: {type: boolean, example: true}
    responses:
      200:
        description: OK
      400:
        description: Unknown or badly typed setting
    """
    data = request.get_json(silent=True) or {}
    try:
        config = _simulator().update_alert_config(**data)
    except ValidationError as e:
        return jsonify({"ok": False, "error": str(e)}), 400
    return jsonify({"ok": True, "config": asdict(config)}), 200
