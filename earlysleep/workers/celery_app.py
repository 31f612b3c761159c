from celery import Celery

from earlysleep.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "earlysleep",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "earlysleep.workers.tasks.goodnight_reactions",
        "earlysleep.workers.tasks.slot_rollup",
        "earlysleep.workers.tasks.friendship_sweep",
    ],
)

celery_app.conf.update(
    task_default_queue="q_normal",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="Asia/Shanghai",
    enable_utc=True,
)


@celery_app.task(name="earlysleep.workers.celery_app.ping")
def ping() -> str:
    return "pong"
