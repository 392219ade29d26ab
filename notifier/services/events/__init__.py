from .base import BaseEventProcessor
from .birthday_processor import BirthdayProcessor
from .anniversary_processor import AnniversaryProcessor
from .registry import EventProcessorRegistry, create_default_registry
from .event_log_store import EventLogStore

__all__ = [
    "BaseEventProcessor",
    "BirthdayProcessor",
    "AnniversaryProcessor",
    "EventProcessorRegistry",
    "create_default_registry",
    "EventLogStore",
]
