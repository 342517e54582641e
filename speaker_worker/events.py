"""
Outbound lifecycle events.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict

SPEAK_BEGIN = "speaker.speak.begin"
SPEAK_END = "speaker.speak.end"
SPEAK_CONTENT = "speaker.speak.content"


class EventPublisher(ABC):
    """Publishes lifecycle events; publishing is best effort and never raises."""

    @abstractmethod
    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        pass


class NullPublisher(EventPublisher):
    """Used when no message queue is configured."""

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        return None
