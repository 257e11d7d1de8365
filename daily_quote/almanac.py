"""Remote almanac (lunar calendar) lookup over HTTP."""
from __future__ import annotations

import logging
from typing import Any

import requests

from daily_quote.errors import RemoteAnnotationError
from daily_quote.models import AlmanacEntry

logger = logging.getLogger(__name__)

DEFAULT_ALMANAC_URL = "https://www.36jxs.com/api/Commonweal/almanac"


class HttpAlmanac:
    """Queries ``{url}?sun=YYYY-MM-DD``; success is ``code == 1`` with a ``data`` object."""

    def __init__(self, url: str = DEFAULT_ALMANAC_URL, timeout: float = 10, session: Any = None) -> None:
        self.url = url
        self.timeout = timeout
        self._http = session or requests

    def fetch(self, date_str: str) -> AlmanacEntry:
        try:
            resp = self._http.get(self.url, params={"sun": date_str}, timeout=self.timeout)
        except requests.RequestException as e:
            raise RemoteAnnotationError(f"almanac request failed: {e}") from e
        if resp.status_code != 200:
            raise RemoteAnnotationError(f"请求失败: {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise RemoteAnnotationError(f"almanac response is not JSON: {e}") from e

        inner = data.get("data") if isinstance(data, dict) else None
        if not isinstance(data, dict) or data.get("code") != 1 or not isinstance(inner, dict):
            raise RemoteAnnotationError("API数据格式错误")

        try:
            era = f"{inner['TianGanDiZhiYear']}年【{inner['LYear']}年】"
            sub_date = f"{inner['LMonth']}{inner['LDay']}"
        except KeyError as e:
            raise RemoteAnnotationError(f"API数据缺少字段: {e}") from e
        logger.debug("almanac %s: %s %s", date_str, era, sub_date)
        return AlmanacEntry(era_label=era, sub_date_label=sub_date)
