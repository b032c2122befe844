# auditgpt/config.py
import os


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw not in (None, "") else default


class BaseConfig:
    CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "redis://redis:6379/0")
    CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", "redis://redis:6379/0")
    CELERY_TASK_ALWAYS_EAGER = False
    JSON_SORT_KEYS = False
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    # "*" or a comma separated list of origins
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # --- Audit engine (OpenAI) ---
    AUDIT_ENGINE_API_KEY = os.environ.get("OPENAI_API_KEY", "")
    AUDIT_PRIMARY_MODEL = os.environ.get("AUDIT_PRIMARY_MODEL", "o3")
    AUDIT_PRIMARY_REASONING_EFFORT = os.environ.get("AUDIT_PRIMARY_REASONING_EFFORT", "high")
    AUDIT_SECONDARY_MODEL = os.environ.get("AUDIT_SECONDARY_MODEL", "gpt-4o-mini")
    AUDIT_REQUEST_TIMEOUT = _env_float("AUDIT_REQUEST_TIMEOUT", 300.0)

    # --- Block explorer (Etherscan v2 multichain endpoint, Polygon PoS by default) ---
    EXPLORER_API_BASE = os.environ.get("EXPLORER_API_BASE", "https://api.etherscan.io/v2/api")
    EXPLORER_CHAIN_ID = os.environ.get("EXPLORER_CHAIN_ID", "137")
    EXPLORER_API_KEY = os.environ.get("POLYGONSCAN_API_KEY", "")
    EXPLORER_TIMEOUT = _env_float("EXPLORER_TIMEOUT", 20.0)
    NETWORK_LABEL = os.environ.get("NETWORK_LABEL", "Polygon PoS")

    # --- Job pipeline ---
    PHASE_PACING_SECONDS = _env_float("PHASE_PACING_SECONDS", 0.4)
    MIN_SOURCE_LENGTH = 50

    # --- Monitoring simulator ---
    MONITOR_SEED = int(os.environ["MONITOR_SEED"]) if os.environ.get("MONITOR_SEED") else None


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    ENV = "development"


class ProductionConfig(BaseConfig):
    DEBUG = False
    ENV = "production"


class TestingConfig(BaseConfig):
    TESTING = True
    ENV = "testing"
    CELERY_BROKER_URL = "memory://"
    CELERY_RESULT_BACKEND = "cache+memory://"
    CELERY_TASK_ALWAYS_EAGER = True
    AUDIT_ENGINE_API_KEY = "test-key"
    EXPLORER_API_KEY = ""
    PHASE_PACING_SECONDS = 0.0
    MONITOR_SEED = 1234
