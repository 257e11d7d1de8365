"""OneBot v11 HTTP API channel: destinations are the bot's group ids."""
from __future__ import annotations

import logging
from typing import Any

import requests

from daily_quote.channel.base import Channel
from daily_quote.errors import DeliveryRejected, DeliveryUnreachable, DirectoryError

logger = logging.getLogger(__name__)


class OneBotChannel(Channel):
    def __init__(self, config: dict[str, Any], session: Any = None) -> None:
        base_url = str(config.get("base_url") or "").strip()
        if not base_url:
            raise ValueError("config: onebot channel missing 'base_url'")
        self.base_url = base_url.rstrip("/")
        self.access_token = str(config.get("access_token") or "").strip()
        self.timeout = float(config.get("timeout", 10))
        self.exclude = {str(g) for g in config.get("exclude_groups") or []}
        self._http = session or requests

    def _headers(self) -> dict[str, str]:
        if self.access_token:
            return {"Authorization": f"Bearer {self.access_token}"}
        return {}

    def _call(self, action: str, payload: dict[str, Any]):
        return self._http.post(
            f"{self.base_url}/{action}", json=payload, headers=self._headers(), timeout=self.timeout
        )

    def list_destinations(self) -> list[str]:
        try:
            resp = self._call("get_group_list", {})
        except requests.RequestException as e:
            raise DirectoryError(f"获取群列表失败: {e}") from e
        if resp.status_code != 200:
            raise DirectoryError(f"获取群列表失败: status={resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise DirectoryError(f"获取群列表失败: non-JSON response ({e})") from e
        if not isinstance(data, dict) or data.get("retcode") != 0 or not isinstance(data.get("data"), list):
            raise DirectoryError("获取群列表失败")

        groups = [
            str(g["group_id"])
            for g in data["data"]
            if isinstance(g, dict) and g.get("group_id")
        ]
        return [g for g in groups if g not in self.exclude]

    def send(self, destination: str, message: str) -> None:
        group_id: Any = int(destination) if destination.isdigit() else destination
        try:
            resp = self._call(
                "send_group_msg",
                {"group_id": group_id, "message": message, "auto_escape": True},
            )
        except requests.RequestException as e:
            raise DeliveryUnreachable(destination, str(e)) from e
        if resp.status_code != 200:
            raise DeliveryRejected(destination, f"status={resp.status_code} body={resp.text[:200]}")
        try:
            data = resp.json()
        except ValueError:
            data = None
        if not isinstance(data, dict) or data.get("retcode") != 0:
            retcode = data.get("retcode") if isinstance(data, dict) else None
            raise DeliveryRejected(destination, f"send_group_msg failed: retcode={retcode}")
        ack = data.get("data")
        message_id = ack.get("message_id") if isinstance(ack, dict) else None
        logger.debug("sent to group %s (message_id=%s)", destination, message_id)
