import os
import logging
from celery import Celery
from celery.signals import worker_ready

logger = logging.getLogger(__name__)


def make_celery() -> Celery:
    """
    Base Celery instance with JSON-only serialization.
    Broker/backend are overridden from the Flask config in init_celery().
    """
    celery_app = Celery("auditgpt")

    broker_url = os.getenv("CELERY_BROKER_URL", "redis://redis:6379/0")
    result_backend = os.getenv("CELERY_RESULT_BACKEND", broker_url)

    celery_app.conf.update(
        broker_url=broker_url,
        result_backend=result_backend,
        task_ignore_result=False,
        task_track_started=True,
        task_store_eager_result=True,
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone=os.getenv("TZ", "UTC"),
        enable_utc=True,
    )
    return celery_app


celery = make_celery()


@worker_ready.connect
def _report_connections(sender=None, **kwargs):
    """Connection diagnostics, only when a real worker boots."""
    app = sender.app if sender is not None else celery
    try:
        conn = app.connection_for_write()
        conn.ensure_connection(max_retries=1)
        logger.info("✅ Celery connected to broker: %s", app.conf.broker_url)
    except Exception as e:
        logger.error("❌ Error connecting to Celery broker (%s): %s", app.conf.broker_url, e)


def init_celery(flask_app) -> Celery:
    """Bind the Celery app to a Flask app: config, app context per task, task registration."""
    config = flask_app.config
    celery.conf.update(
        broker_url=config.get("CELERY_BROKER_URL") or celery.conf.broker_url,
        result_backend=config.get("CELERY_RESULT_BACKEND") or config.get("CELERY_BROKER_URL"),
        task_always_eager=bool(config.get("CELERY_TASK_ALWAYS_EAGER", False)),
        task_eager_propagates=bool(config.get("CELERY_TASK_ALWAYS_EAGER", False)),
        task_store_eager_result=True,
    )

    TaskBase = celery.Task

    class ContextTask(TaskBase):
        def __call__(self, *args, **kwargs):
            with flask_app.app_context():
                return TaskBase.__call__(self, *args, **kwargs)

    celery.Task = ContextTask
    celery.set_default()
    flask_app.extensions["celery"] = celery

    from auditgpt.tasks import audit_tasks  # noqa: F401  (registers audit.run)

    return celery
