from celery.schedules import crontab
from .settings import settings

# Basic Celery Configuration
broker_url = settings.REDIS_URL
result_backend = settings.REDIS_URL

# Task Discovery
include = ["notifier.tasks"]

# Timezone Configuration
timezone = "UTC"
enable_utc = True

# Task Result Configuration
result_expires = 3600

# Task Serialization
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"

# Task Execution Configuration
task_track_started = True
task_time_limit = 30 * 60  # 30 minutes
task_soft_time_limit = 25 * 60  # 25 minutes

# Worker Configuration
worker_concurrency = settings.WORKER_CONCURRENCY
worker_prefetch_multiplier = 1
worker_max_tasks_per_child = 1000

# Jobs run once; the broker never redelivers them. Failed and lost
# deliveries are re-driven by the recovery sweeper
task_acks_late = True
task_reject_on_worker_lost = False
task_max_retries = 0

beat_schedule = {
    # Materialize occurrences for the forward window - every hour
    "generate-events": {
        "task": "notifier.tasks.cron.event_generator.generate_events_task",
        "schedule": crontab(minute=0),
        "args": ("generate_events_cron",),
    },
    # Enqueue due occurrences - every 5 minutes
    "dispatch-events": {
        "task": "notifier.tasks.cron.event_dispatcher.dispatch_events_task",
        "schedule": crontab(minute="*/5"),
        "args": ("dispatch_events_cron",),
    },
    # Re-drive failed and stuck occurrences - every 30 minutes
    "recover-events": {
        "task": "notifier.tasks.cron.recovery_sweeper.recover_events_task",
        "schedule": crontab(minute="*/30"),
        "args": ("recover_events_cron",),
    },
}

# Timezone matcher at the top of every hour, off unless enabled
if settings.ENABLE_HOURLY_EVENT_CHECK:
    beat_schedule["check-events"] = {
        "task": "notifier.tasks.cron.event_checker.check_events_task",
        "schedule": crontab(minute=0),
        "args": ("check_events_cron",),
    }

# Default Queue
task_default_queue = "notifier"

# Beat Scheduler Configuration
beat_schedule_filename = "tmp/celerybeat-schedule"
