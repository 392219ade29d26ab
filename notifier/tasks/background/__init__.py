from .notification_sender import send_notification_task
from .user_event_recalculation import recalculate_user_events_task

__all__ = [
    "send_notification_task",
    "recalculate_user_events_task",
]
