from flask import Blueprint, current_app, jsonify

bp = Blueprint("health", __name__)


@bp.get("/healthz")
def healthz():
    """
    Healthcheck
    ---
    tags:
      - Health
    responses:
      200:
        description: OK
    """
    config = current_app.config
    return jsonify({
        "ok": True,
        "engine_configured": bool(config.get("AUDIT_ENGINE_API_KEY")),
        "network": config.get("NETWORK_LABEL"),
    }), 200
