# celery -A celery_worker.celery worker --loglevel=info
import os

from auditgpt import create_app

flask_app = create_app(os.getenv("FLASK_ENV", "development"))
celery = flask_app.extensions["celery"]
