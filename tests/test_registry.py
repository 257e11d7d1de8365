import random
from collections import Counter

import pytest

from daily_quote.errors import EmptyPoolError, ProviderIndexError, ProviderPoolError
from daily_quote.models import Provider
from daily_quote.providers import ProviderRegistry


class _FixedRandom:
    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


def _pool() -> list[Provider]:
    return [
        Provider("a", "https://a.example/q", 5),
        Provider("b", "https://b.example/q", 7),
        Provider("c", "https://c.example/q", 3),
    ]


def test_select_converges_to_weight_share() -> None:
    registry = ProviderRegistry(_pool(), rng=random.Random(1234))
    trials = 30_000
    counts = Counter(registry.select().id for _ in range(trials))
    total = registry.total_weight
    for p in registry.list():
        assert counts[p.id] / trials == pytest.approx(p.weight / total, abs=0.015)


def test_select_scans_in_registration_order() -> None:
    # total 15: [0,5) -> a, [5,12) -> b, [12,15) -> c
    assert ProviderRegistry(_pool(), rng=_FixedRandom(0.0)).select().id == "a"
    assert ProviderRegistry(_pool(), rng=_FixedRandom(6 / 15)).select().id == "b"
    assert ProviderRegistry(_pool(), rng=_FixedRandom(11.9 / 15)).select().id == "b"
    assert ProviderRegistry(_pool(), rng=_FixedRandom(0.9999)).select().id == "c"


def test_select_on_empty_pool_raises_empty_pool() -> None:
    with pytest.raises(EmptyPoolError):
        ProviderRegistry().select()
    with pytest.raises(ProviderPoolError):
        ProviderRegistry([]).select()


def test_register_rejects_non_positive_weight_and_duplicates() -> None:
    registry = ProviderRegistry()
    with pytest.raises(ProviderPoolError):
        registry.register(Provider("zero", "https://z.example", 0))
    with pytest.raises(ProviderPoolError):
        registry.register(Provider("neg", "https://n.example", -1))
    registry.register(Provider("ok", "https://o.example", 1))
    with pytest.raises(ProviderPoolError):
        registry.register(Provider("ok", "https://o2.example", 1))
    assert [p.id for p in registry.list()] == ["ok"]


def test_set_current_bounds() -> None:
    registry = ProviderRegistry(_pool())
    assert registry.set_current(2).id == "c"
    assert registry.current == 2
    with pytest.raises(ProviderIndexError):
        registry.set_current(3)
    with pytest.raises(ProviderIndexError):
        registry.set_current(-1)
    assert registry.current == 2


def test_set_current_does_not_change_selection() -> None:
    plain = ProviderRegistry(_pool(), rng=random.Random(7))
    overridden = ProviderRegistry(_pool(), rng=random.Random(7))
    overridden.set_current(2)
    assert [plain.select().id for _ in range(200)] == [overridden.select().id for _ in range(200)]


def test_from_config_defaults_weight_to_one() -> None:
    registry = ProviderRegistry.from_config(
        [{"id": "x", "url": "https://x.example"}, {"id": "y", "url": "https://y.example", "weight": 4, "schema": "4qb"}]
    )
    assert [(p.id, p.weight, p.schema) for p in registry.list()] == [("x", 1.0, None), ("y", 4.0, "4qb")]


def test_register_rejects_unknown_schema() -> None:
    registry = ProviderRegistry()
    with pytest.raises(ProviderPoolError, match="schema 'typo'"):
        registry.register(Provider("x", "https://x.example", 1, schema="typo"))
    assert len(registry) == 0
    registry.register(Provider("y", "https://api.4qb.cn/api/emowenan", 1, schema="4qb"))
    assert [p.id for p in registry.list()] == ["y"]
