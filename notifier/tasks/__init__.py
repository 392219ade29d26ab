from .background import *
from .cron import *

__all__ = [
    "send_notification_task",
    "recalculate_user_events_task",
    # Scheduled/Cron Tasks
    "generate_events_task",
    "dispatch_events_task",
    "recover_events_task",
    "check_events_task",
]
