from celery import Celery
from config import ENV


class CeleryManager:
    def __init__(self):
        self.env = ENV()
        self.celery_app = Celery(
            "affiliate_points",
            broker=self.env.CELERY_BROKER_URL,
            backend=self.env.CELERY_RESULT_BACKEND,
            include=["services.bground.tasks"],
        )

        self.celery_app.conf.update(
            task_serializer="json",
            result_serializer="json",
            accept_content=["json"],
            timezone=self.env.CELERY_TIMEZONE,
            worker_prefetch_multiplier=1,
            task_acks_late=True,
            beat_schedule={
                "drain-pending-effects": {
                    "task": "effects.drain_pending",
                    "schedule": self.env.EFFECT_DRAIN_INTERVAL_SECONDS,
                    "kwargs": {"limit": self.env.EFFECT_DRAIN_BATCH},
                },
            },
        )
