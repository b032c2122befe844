import logging
import json
import time
from flask import has_request_context, request

# paths polled by probes / scrapers; their access logs are noise
QUIET_PATHS = ("/healthz", "/metrics")

# HTTP client libraries that log every engine / explorer request at INFO
CHATTY_LOGGERS = ("openai", "httpx", "httpcore", "urllib3")

# fields audit code attaches through `extra=`
JOB_FIELDS = ("task_id", "job_target")


class QuietPathFilter(logging.Filter):
    def filter(self, record):
        return not (has_request_context() and request.path in QUIET_PATHS)


class JsonRequestFormatter(logging.Formatter):
    """One JSON object per line: base fields, request info when serving HTTP, job fields from `extra=`."""

    def format(self, record):
        data = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        if has_request_context():
            data["http"] = {
                "method": request.method,
                "path": request.path,
                "remote_addr": request.headers.get("X-Forwarded-For", request.remote_addr),
                "request_id": request.headers.get("X-Request-ID"),
            }

        for field in JOB_FIELDS:
            value = getattr(record, field, None)
            if value:
                data[field] = value

        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(data, ensure_ascii=False)


def _level(app, default):
    name = str((app.config.get("LOG_LEVEL") if app else None) or "").upper()
    resolved = logging.getLevelName(name) if name else None
    return resolved if isinstance(resolved, int) else default


def setup_logging(app=None, level=logging.INFO):
    level = _level(app, level)
    root = logging.getLogger()
    root.setLevel(level)

    # drop duplicated handlers on reload
    for h in list(root.handlers):
        root.removeHandler(h)

    h = logging.StreamHandler()
    h.setFormatter(JsonRequestFormatter())
    h.addFilter(QuietPathFilter())
    root.addHandler(h)

    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    if app:
        app.logger.handlers = [h]
        app.logger.setLevel(level)
    return h
