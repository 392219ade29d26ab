from .locks import RedisLock
from .notification_queue import NotificationQueue
from .timezone_cache import TimezoneCache
from .event_generator import EventGenerator
from .event_dispatcher import EventDispatcher
from .notification_delivery import NotificationDeliveryService
from .recovery_sweeper import RecoverySweeper
from .event_checker import EventChecker
from .scheduler_service import SchedulerService

__all__ = [
    "RedisLock",
    "NotificationQueue",
    "TimezoneCache",
    "EventGenerator",
    "EventDispatcher",
    "NotificationDeliveryService",
    "RecoverySweeper",
    "EventChecker",
    "SchedulerService",
]
