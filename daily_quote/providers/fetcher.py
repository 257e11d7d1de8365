"""Content fetcher: one HTTP call per provider, normalized via known response schemas."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urlparse

import requests

from daily_quote.errors import FetchError, FetchTimeout, HttpError, NetworkError, SchemaError
from daily_quote.models import ContentItem, Provider

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10
FALLBACK_FIELDS = ("text", "content", "msg", "hitokoto")


def _non_empty_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _extract_mir6(data: Any) -> str | None:
    if not isinstance(data, dict) or data.get("code") != 200:
        return None
    return _non_empty_str(data.get("text"))


def _extract_aa1(data: Any) -> str | None:
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        return None
    return _non_empty_str(data[0].get("wangyiyunreping"))


def _extract_4qb(data: Any) -> str | None:
    if not isinstance(data, dict) or data.get("code") != 1:
        return None
    return _non_empty_str(data.get("text"))


@dataclass(frozen=True)
class ResponseSchema:
    """Known payload shape: returns the text, or None when the payload is malformed."""

    name: str
    hosts: tuple[str, ...]
    extract: Callable[[Any], str | None]


SCHEMAS: dict[str, ResponseSchema] = {
    s.name: s
    for s in (
        ResponseSchema("mir6", ("api.mir6.com",), _extract_mir6),
        ResponseSchema("aa1", ("v.api.aa1.cn",), _extract_aa1),
        ResponseSchema("4qb", ("api.4qb.cn",), _extract_4qb),
    )
}


def resolve_schema(provider: Provider) -> ResponseSchema | None:
    """Schema named by the provider, else matched by URL host; None for unknown providers."""
    if provider.schema:
        if provider.schema not in SCHEMAS:
            raise ValueError(f"unknown response schema '{provider.schema}' for provider {provider.id}")
        return SCHEMAS[provider.schema]
    host = (urlparse(provider.url).hostname or "").lower()
    for schema in SCHEMAS.values():
        if host in schema.hosts:
            return schema
    return None


def extract_fallback(data: Any) -> str:
    """Best effort for unknown providers: common text fields, else the whole payload."""
    if isinstance(data, dict):
        for key in FALLBACK_FIELDS:
            text = _non_empty_str(data.get(key))
            if text:
                return text
    if isinstance(data, str) and data.strip():
        return data.strip()
    return json.dumps(data, ensure_ascii=False)


class ContentFetcher:
    """Fetches one ContentItem from a provider. No retries; callers decide."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, session: Any = None) -> None:
        self.timeout = timeout
        self._http = session or requests

    def fetch(self, provider: Provider) -> ContentItem:
        try:
            text = self._fetch_text(provider)
        except FetchError as e:
            logger.error("[%s] 获取语录失败: %s", provider.id, e)
            raise
        return ContentItem(text=text, provider_id=provider.id)

    def _fetch_text(self, provider: Provider) -> str:
        try:
            resp = self._http.get(provider.url, timeout=self.timeout)
        except requests.Timeout as e:
            raise FetchTimeout(provider.id, f"timeout after {self.timeout}s: {e}") from e
        except requests.RequestException as e:
            raise NetworkError(provider.id, str(e)) from e

        if resp.status_code != 200:
            raise HttpError(provider.id, resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise SchemaError(provider.id, f"response is not JSON: {e}") from e

        schema = resolve_schema(provider)
        if schema is None:
            return extract_fallback(data)
        text = schema.extract(data)
        if text is None:
            preview = repr(data)
            if len(preview) > 200:
                preview = preview[:200] + "..."
            raise SchemaError(provider.id, f"API返回数据格式不正确 (schema={schema.name}, body={preview})")
        return text
