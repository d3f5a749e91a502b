from celery import Celery

from app.config import settings


def get_celery_config() -> dict:
    return {
        "broker_url": settings.celery_broker_url,
        "result_backend": settings.celery_result_backend or settings.celery_broker_url,
        "timezone": settings.celery_timezone,
        "task_acks_late": True,
        "worker_prefetch_multiplier": 1,
    }


celery_app = Celery("billing_ledger")
celery_app.conf.update(get_celery_config())
celery_app.autodiscover_tasks(["app.tasks"])
