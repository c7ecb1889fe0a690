import os

from celery import Celery
from celery.schedules import crontab

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'backend.settings')

app = Celery('trustlayer')

# CELERY_* keys in Django settings (broker, result backend, eager mode).
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()

BILLING_TASKS = (
    "billing.tasks.process_razorpay_event_async",
    "billing.tasks.reconcile_unapplied_effects",
    "billing.tasks.expire_lapsed_subscriptions",
    "billing.tasks.fail_stale_pending_transactions",
    "billing.tasks.cleanup_webhook_event_logs",
)

app.conf.task_routes = {
    **{name: {"queue": "billing"} for name in BILLING_TASKS},
    '*': {'queue': 'default'},
}
app.conf.task_default_queue = 'default'

app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_track_started=True,
    task_time_limit=5 * 60,
    task_soft_time_limit=4 * 60,
    worker_prefetch_multiplier=1,
    # Webhook events must survive a worker crash mid-task.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_queues={
        'default': {'exchange': 'default', 'routing_key': 'default'},
        'billing': {'exchange': 'billing', 'routing_key': 'billing'},
    },
    task_store_errors_even_if_ignored=True,
)

app.conf.beat_schedule = {
    "reconcile_unapplied_effects_10min": {
        "task": "billing.tasks.reconcile_unapplied_effects",
        "schedule": crontab(minute="*/10"),
        "options": {"queue": "billing", "priority": 8},
    },
    "expire_lapsed_subscriptions_hourly": {
        "task": "billing.tasks.expire_lapsed_subscriptions",
        "schedule": crontab(minute=5),
        "options": {"queue": "billing"},
    },
    "fail_stale_pending_transactions_hourly": {
        "task": "billing.tasks.fail_stale_pending_transactions",
        "schedule": crontab(minute=20),
        "options": {"queue": "billing"},
    },
    "cleanup_webhook_logs_daily": {
        "task": "billing.tasks.cleanup_webhook_event_logs",
        "schedule": crontab(hour=4, minute=0),
        "options": {"queue": "billing"},
    },
}
