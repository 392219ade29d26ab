from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class NotificationChannel(ABC):
    """Outbound delivery channel"""

    @property
    @abstractmethod
    def channel_name(self) -> str:
        pass

    @abstractmethod
    async def send(
        self, message: str, metadata: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Deliver the message. Returns False instead of raising on failure."""
        pass
