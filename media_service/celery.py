import os
from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "media_service.settings")

celery_app = Celery("media_service")
celery_app.config_from_object("django.conf:settings", namespace="CELERY")
celery_app.autodiscover_tasks()

# Late-acked processing tasks: a worker holds only the message it is working on
celery_app.conf.worker_prefetch_multiplier = 1

# Renditions can take minutes; keep index notifications off that queue
celery_app.conf.task_routes = {
    "media.tasks.process_media": {"queue": "media"},
    "media.search_index.notify_search_index": {"queue": "notifications"},
}

celery_app.conf.beat_schedule = {
    "reconcile-processing": {
        "task": "media.tasks.reconcile_processing",
        "schedule": float(os.getenv("MEDIA_RECONCILE_INTERVAL", "300")),
    },
}
