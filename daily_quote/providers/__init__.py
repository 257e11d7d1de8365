# Content providers: weighted pool + fetcher
from __future__ import annotations

from daily_quote.providers.fetcher import SCHEMAS, ContentFetcher, resolve_schema
from daily_quote.providers.registry import ProviderRegistry

__all__ = ["SCHEMAS", "ContentFetcher", "ProviderRegistry", "resolve_schema"]
