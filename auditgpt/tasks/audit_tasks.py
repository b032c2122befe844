# auditgpt/tasks/audit_tasks.py
import logging

from celery import shared_task
from flask import current_app

from auditgpt.errors import ValidationError
from auditgpt.models.job import Job
from auditgpt.services.audit_orchestrator import build_orchestrator

logger = logging.getLogger(__name__)

PROGRESS = "PROGRESS"


def _progress_publisher(task):
    """Listener that mirrors every job change into the task result backend."""

    def publish(job: Job) -> None:
        # called directly (tests, shell): there is no task id to report against
        if task.request.called_directly or not task.request.id:
            return
        task.update_state(state=PROGRESS, meta=job.to_dict())

    return publish


@shared_task(bind=True, name="audit.run")
def run_audit(self, mode: str, value: str, credential: str = ""):
    """
    Run one audit job end to end and return the final job snapshot.

    Pipeline failures are part of the snapshot (state=error), not task failures.
    """
    orchestrator = build_orchestrator(current_app.config, listener=_progress_publisher(self))
    extra = {"task_id": self.request.id}
    logger.info("audit.run started (%s)", mode, extra=extra)

    try:
        job = orchestrator.start_job(mode, value, credential)
    except ValidationError as e:
        # the route validates first; this only happens for direct submissions
        logger.warning("audit.run rejected input: %s", e, extra=extra)
        return orchestrator.job.to_dict()

    logger.info("audit.run finished with state %s", job.state.value, extra=extra)
    return job.to_dict()
