"""Channel abstraction: destination directory + text transport."""
from __future__ import annotations

from abc import ABC, abstractmethod


class Channel(ABC):
    """A messaging platform that can enumerate destinations and deliver text to them."""

    @abstractmethod
    def list_destinations(self) -> list[str]:
        """Destinations in delivery order; raise DirectoryError if unavailable."""
        ...

    @abstractmethod
    def send(self, destination: str, message: str) -> None:
        """Deliver message; raise DeliveryUnreachable / DeliveryRejected on failure."""
        ...
