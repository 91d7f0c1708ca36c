from __future__ import annotations

from celery import Celery

from boletas.core.config import settings


def make_celery() -> Celery:
    app = Celery("boletas", broker=settings.redis_url, backend=settings.redis_url)
    app.conf.update(
        task_always_eager=settings.environment in {"dev", "test"},
        task_eager_propagates=True,
        task_track_started=True,
        beat_schedule={
            "cleanup-temp-uploads": {
                "task": "cleanup_temp_uploads",
                "schedule": 6 * 60 * 60,
            },
        },
    )
    app.autodiscover_tasks(["boletas.worker.tasks"])
    return app


celery_app = make_celery()
