"""Token usage statistics for the last 24 hours from a New-API style dashboard."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

import requests

from daily_quote.errors import UsageError
from daily_quote.models import UsageReport

logger = logging.getLogger(__name__)

WINDOW = timedelta(hours=24)


def format_large_number(num: int) -> str:
    """12345 -> '1.23万', 123456789 -> '1.23亿'."""
    if num < 100_000_000:
        return f"{num / 10_000:.2f}万"
    return f"{num / 100_000_000:.2f}亿"


class UsageClient:
    def __init__(
        self,
        base_url: str,
        authorization: str = "",
        user_id: str = "",
        username: str = "",
        timeout: float = 10,
        session: Any = None,
    ) -> None:
        self.base_url = base_url
        self.authorization = authorization
        self.user_id = user_id
        self.username = username
        self.timeout = timeout
        self._http = session or requests

    def fetch(self, now: datetime) -> UsageReport:
        start = now - WINDOW
        params = {
            "username": self.username,
            "start_timestamp": int(start.timestamp()),
            "end_timestamp": int(now.timestamp()),
            "default_time": "hour",
        }
        headers = {"Authorization": self.authorization, "New-Api-User": self.user_id}
        try:
            resp = self._http.get(self.base_url, params=params, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise UsageError(f"usage request failed: {e}") from e
        if resp.status_code != 200:
            raise UsageError(f"usage request failed: status={resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise UsageError(f"usage response is not JSON: {e}") from e

        rows = data.get("data") if isinstance(data, dict) else None
        if not isinstance(data, dict) or not data.get("success") or not isinstance(rows, list):
            raise UsageError("未获取到有效token用量数据")

        total = 0
        for row in rows:
            if isinstance(row, dict):
                try:
                    total += int(row.get("token_used") or 0)
                except (TypeError, ValueError):
                    logger.warning("skip usage row with bad token_used: %r", row.get("token_used"))
        return UsageReport(total_tokens=total, points=len(rows), start=start, end=now)


def format_usage(report: UsageReport) -> str:
    per_hour = round(report.points / 24)
    return "\n".join(
        [
            f"⏱️ 统计时间: {report.start:%Y-%m-%d %H:%M:%S}",
            f"至 {report.end:%Y-%m-%d %H:%M:%S}",
            f"🪙 总Token用量: {format_large_number(report.total_tokens)} ({report.total_tokens:,})",
            f"📈 数据点数: {report.points} (平均每小时约{per_hour}个数据点)",
        ]
    )
