from .event_generator import generate_events_task
from .event_dispatcher import dispatch_events_task
from .recovery_sweeper import recover_events_task
from .event_checker import check_events_task

__all__ = [
    "generate_events_task",
    "dispatch_events_task",
    "recover_events_task",
    "check_events_task",
]
