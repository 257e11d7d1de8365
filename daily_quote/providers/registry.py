"""Weighted provider pool."""
from __future__ import annotations

import logging
import random
from typing import Any

from daily_quote.errors import EmptyPoolError, ProviderIndexError, ProviderPoolError
from daily_quote.models import Provider
from daily_quote.providers.fetcher import SCHEMAS

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Holds providers in registration order and picks one by weight.

    ``current`` is an operator-chosen index shown in the provider list. It is
    display metadata only: ``select()`` always draws from the full weighted
    distribution.
    """

    def __init__(self, providers: list[Provider] | None = None, rng: random.Random | None = None) -> None:
        self._providers: list[Provider] = []
        self._rng = rng or random.Random()
        self.current = 0
        for p in providers or []:
            self.register(p)

    @classmethod
    def from_config(cls, raw: list[dict[str, Any]], rng: random.Random | None = None) -> ProviderRegistry:
        providers = [
            Provider(
                id=str(item["id"]),
                url=str(item["url"]),
                weight=float(item.get("weight", 1)),
                schema=item.get("schema"),
            )
            for item in raw
        ]
        return cls(providers, rng=rng)

    def register(self, provider: Provider) -> None:
        if not provider.weight > 0:
            raise ProviderPoolError(f"provider '{provider.id}' weight must be > 0, got {provider.weight}")
        if any(p.id == provider.id for p in self._providers):
            raise ProviderPoolError(f"duplicate provider id '{provider.id}'")
        if provider.schema is not None and provider.schema not in SCHEMAS:
            raise ProviderPoolError(
                f"provider '{provider.id}' schema '{provider.schema}' not in {sorted(SCHEMAS)}"
            )
        self._providers.append(provider)

    def list(self) -> list[Provider]:
        return list(self._providers)

    def __len__(self) -> int:
        return len(self._providers)

    @property
    def total_weight(self) -> float:
        return sum(p.weight for p in self._providers)

    def set_current(self, index: int) -> Provider:
        if not 0 <= index < len(self._providers):
            raise ProviderIndexError(index, len(self._providers))
        self.current = index
        logger.info("current provider set to %s (%s)", index, self._providers[index].id)
        return self._providers[index]

    def select(self) -> Provider:
        total = self.total_weight
        if not self._providers or total <= 0:
            raise EmptyPoolError("provider pool is empty")
        r = self._rng.random() * total
        for p in self._providers:
            if r < p.weight:
                return p
            r -= p.weight
        # float rounding can leave r == remaining weight of the last provider
        return self._providers[-1]
