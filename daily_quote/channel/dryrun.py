"""Dry-run wrapper: real destination directory, logged instead of sent."""
from __future__ import annotations

import logging

from daily_quote.channel.base import Channel

logger = logging.getLogger(__name__)


class DryRunChannel(Channel):
    def __init__(self, inner: Channel) -> None:
        self.inner = inner
        self.sent: list[tuple[str, str]] = []

    def list_destinations(self) -> list[str]:
        return self.inner.list_destinations()

    def send(self, destination: str, message: str) -> None:
        preview = message[:200].replace("\n", " ")
        logger.info(
            "Dry-run: would send to destination='%s' via channel='%s' preview=%r",
            destination,
            type(self.inner).__name__,
            preview,
        )
        self.sent.append((destination, message))
