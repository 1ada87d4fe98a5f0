"""
Celery app for the transcode workers.

Run a worker on the transcoding queue with:
    celery -A transcoding worker -Q transcoding --concurrency 1
"""
import os
from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "transcoding.settings")

celery_app = Celery("transcoding")
celery_app.config_from_object("django.conf:settings", namespace="CELERY")
celery_app.autodiscover_tasks(["renditions"])
