"""Shared fakes for ports and HTTP."""
from __future__ import annotations

from datetime import datetime
from typing import Any

import pytest

from daily_quote.errors import DeliveryRejected, NetworkError, RemoteAnnotationError
from daily_quote.models import AlmanacEntry, ContentItem, DayAnnotation, Provider

_NO_JSON = object()


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = _NO_JSON, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self) -> Any:
        if self._payload is _NO_JSON:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


class FakeSession:
    """Returns queued responses (or raises queued exceptions) and records calls."""

    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def _next(self, method: str, url: str, kwargs: dict[str, Any]) -> Any:
        self.calls.append((method, url, kwargs))
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, BaseException):
            raise item
        return item

    def get(self, url: str, **kwargs: Any) -> Any:
        return self._next("GET", url, kwargs)

    def post(self, url: str, **kwargs: Any) -> Any:
        return self._next("POST", url, kwargs)


class FakeAlmanac:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[str] = []

    def fetch(self, date_str: str) -> AlmanacEntry:
        self.calls.append(date_str)
        if self.fail:
            raise RemoteAnnotationError("almanac down")
        return AlmanacEntry(era_label="乙巳蛇年【乙巳年】", sub_date_label="八月廿九")


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeFetcher:
    """Returns '<provider>-<n>' texts; fails on the listed 1-based call numbers."""

    def __init__(self, fail_on: set[int] | None = None) -> None:
        self.fail_on = fail_on or set()
        self.calls = 0

    def fetch(self, provider: Provider) -> ContentItem:
        self.calls += 1
        if self.calls in self.fail_on:
            raise NetworkError(provider.id, "connection reset")
        return ContentItem(text=f"quote-{self.calls}", provider_id=provider.id)


class FakeChannel:
    """Directory + transport; rejects destinations listed in ``reject``."""

    def __init__(self, destinations: list[str] | None = None, reject: set[str] | None = None) -> None:
        self.destinations = list(destinations or [])
        self.reject = reject or set()
        self.sent: list[tuple[str, str]] = []
        self.list_calls = 0

    def list_destinations(self) -> list[str]:
        self.list_calls += 1
        return self.destinations

    def send(self, destination: str, message: str) -> None:
        if destination in self.reject:
            raise DeliveryRejected(destination, "bot muted")
        self.sent.append((destination, message))


class CountingDayCache:
    def __init__(self, annotation: DayAnnotation) -> None:
        self.annotation = annotation
        self.calls = 0

    def get(self) -> DayAnnotation:
        self.calls += 1
        return self.annotation


@pytest.fixture
def annotation() -> DayAnnotation:
    return DayAnnotation(
        calendar_date="2026-10-19",
        display_date="2026年10月19日",
        time_of_day="00:00:01",
        weekday_label="星期一",
        era_label="乙巳蛇年【乙巳年】",
        sub_date_label="八月廿九",
        computed_at=1_792_339_201_000,
        cached_at=1_792_339_201_000,
    )


@pytest.fixture
def fakes():
    """Access to fake classes without importing conftest directly."""

    class _Fakes:
        Response = FakeResponse
        Session = FakeSession
        Almanac = FakeAlmanac
        Clock = FakeClock
        Fetcher = FakeFetcher
        Channel = FakeChannel
        DayCache = CountingDayCache

    return _Fakes
