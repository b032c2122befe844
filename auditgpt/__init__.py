from flask import Flask
from flasgger import Swagger
from prometheus_flask_exporter import PrometheusMetrics
from flask_cors import CORS

from .logging_setup import setup_logging
from .routes import audit_routes, health, monitor_routes
from .config import DevelopmentConfig, ProductionConfig, TestingConfig
from .services.monitor_service import MonitorSimulator
from .tasks.celery_app import init_celery

__version__ = "1.0.0"

CONFIGS = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}

SWAGGER_TEMPLATE = {
    "swagger": "2.0",
    "info": {
        "title": "AuditGPT API",
        "description": "AI smart-contract audits (security, gas, economic, upgradeability) and a monitoring simulator.",
        "version": __version__,
    },
    "basePath": "/",
    "tags": [
        {"name": "Audit", "description": "Queue audit jobs and poll their phases, log and report"},
        {"name": "Monitoring", "description": "Simulated live activity for watched contracts"},
        {"name": "Health", "description": "Liveness and engine configuration"},
    ],
}


def parse_origins(raw):
    """'*' / empty -> '*', otherwise the comma separated origins."""
    raw = (raw or "").strip()
    if raw in ("", "*"):
        return "*"
    return [o.strip() for o in raw.split(",") if o.strip()]


def _init_cors(app):
    # the UI polls /api/audit/status and /api/monitor/* from another origin
    CORS(
        app,
        resources={r"/api/*": {"origins": parse_origins(app.config.get("CORS_ORIGINS"))}},
        supports_credentials=False,
        methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "X-Request-ID"],
    )


def _init_swagger(app):
    Swagger(
        app,
        template=SWAGGER_TEMPLATE,
        config={
            "headers": [],
            "specs": [{
                "endpoint": "apispec_1",
                "route": "/apispec_1.json",
                "rule_filter": lambda rule: rule.rule.startswith(("/api/", "/healthz")),
                "model_filter": lambda tag: True,
            }],
            "static_url_path": "/flasgger_static",
            "swagger_ui": True,
            "specs_route": "/apidocs/",
        },
    )


def create_app(config_name: str = "development"):
    app = Flask(__name__)
    app.config.from_object(CONFIGS.get(config_name.lower(), DevelopmentConfig))

    setup_logging(app)
    _init_cors(app)

    # tasks run inside this app's context
    init_celery(app)

    # one simulator per process; its state is not shared between workers
    app.extensions["monitor"] = MonitorSimulator(seed=app.config.get("MONITOR_SEED"))

    _init_swagger(app)

    app.register_blueprint(health.bp)
    app.register_blueprint(audit_routes.bp, url_prefix="/api/audit")
    app.register_blueprint(monitor_routes.bp, url_prefix="/api/monitor")

    metrics = PrometheusMetrics(app, path="/metrics")
    metrics.info("app_info", "AuditGPT service", version=__version__)

    app.logger.info("AuditGPT ready (%s, network %s)", config_name, app.config.get("NETWORK_LABEL"))
    return app
