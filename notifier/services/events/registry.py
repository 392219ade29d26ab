from typing import Dict, List, Optional

from notifier.config.settings import Settings, settings as default_settings
from notifier.db.models import EventKind
from notifier.utils.logging import get_logger

from .anniversary_processor import AnniversaryProcessor
from .base import BaseEventProcessor
from .birthday_processor import BirthdayProcessor

logger = get_logger()


class EventProcessorRegistry:
    """Registry mapping each event kind to its processor"""

    def __init__(self, processors: Optional[List[BaseEventProcessor]] = None):
        self._processors: Dict[EventKind, BaseEventProcessor] = {}
        for processor in processors or []:
            self.register(processor)

    def register(self, processor: BaseEventProcessor) -> None:
        """Register a processor, replacing any processor for the same kind"""
        self._processors[processor.event_kind] = processor
        logger.debug(f"Registered processor for event kind: {processor.event_kind.value}")

    def get(self, event_kind: EventKind) -> Optional[BaseEventProcessor]:
        processor = self._processors.get(event_kind)
        if processor is None:
            logger.warning(f"No processor registered for event kind: {event_kind}")
        return processor

    def processors(self) -> List[BaseEventProcessor]:
        return list(self._processors.values())

    def list_registered_kinds(self) -> List[EventKind]:
        return list(self._processors.keys())

    def is_registered(self, event_kind: EventKind) -> bool:
        return event_kind in self._processors


def create_default_registry(
    app_settings: Settings = default_settings,
) -> EventProcessorRegistry:
    """Build the registry with the birthday and anniversary processors"""
    return EventProcessorRegistry(
        [
            BirthdayProcessor(check_hour=app_settings.BIRTHDAY_CHECK_HOUR),
            AnniversaryProcessor(check_hour=app_settings.ANNIVERSARY_CHECK_HOUR),
        ]
    )
