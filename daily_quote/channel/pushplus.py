"""PushPlus channel: destinations are configured topic (group) codes."""
from __future__ import annotations

import logging
from typing import Any

import requests

from daily_quote.channel.base import Channel
from daily_quote.errors import DeliveryRejected, DeliveryUnreachable

logger = logging.getLogger(__name__)

PUSHPLUS_URL = "https://www.pushplus.plus/send"
# destination meaning "the token owner", i.e. no topic
OWNER = "owner"


class PushPlusChannel(Channel):
    """POST to PushPlus with token/title/content/template, one call per topic."""

    def __init__(self, config: dict[str, Any], session: Any = None) -> None:
        token = str(config.get("token") or "").strip()
        if not token:
            raise ValueError("config: pushplus channel missing 'token' (env var not set or empty?)")
        self.token = token
        self.title = str(config.get("title") or "每日语录")
        self.template = str(config.get("template") or "txt")
        self.topics = [str(t) for t in config.get("topics") or []]
        self.url = str(config.get("url") or PUSHPLUS_URL)
        self.timeout = float(config.get("timeout", 10))
        self._http = session or requests
        mask = f"{token[:4]}***" if len(token) > 4 else "***"
        logger.info("PushPlus token: length=%s prefix=%s", len(token), mask)

    def list_destinations(self) -> list[str]:
        return list(self.topics) or [OWNER]

    def send(self, destination: str, message: str) -> None:
        payload: dict[str, Any] = {
            "token": self.token,
            "title": self.title,
            "content": message,
            "template": self.template,
        }
        if destination != OWNER:
            payload["topic"] = destination

        try:
            resp = self._http.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise DeliveryUnreachable(destination, f"PushPlus request failed: {e}") from e
        if resp.status_code != 200:
            raise DeliveryRejected(
                destination, f"PushPlus send failed: status={resp.status_code} body={resp.text[:500]}"
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise DeliveryRejected(destination, f"PushPlus returned non-JSON: {e}") from e
        if isinstance(data, dict) and data.get("code") != 200:
            raise DeliveryRejected(
                destination, f"PushPlus API error: code={data.get('code')} msg={data.get('msg', '')}"
            )
