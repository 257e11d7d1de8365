"""Core data models and collaborator ports for the quote push engine."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Literal, Protocol

DEGRADED_ERA_LABEL = "农历数据获取失败"


class RunMode(str, Enum):
    """What triggered a dispatch run; selects pacing and the message footer."""

    SCHEDULED = "scheduled"
    MANUAL = "manual"


@dataclass(frozen=True)
class Provider:
    """One content source in the weighted pool."""

    id: str
    url: str
    weight: float
    schema: str | None = None


@dataclass(frozen=True)
class ContentItem:
    text: str
    provider_id: str


@dataclass(frozen=True)
class AlmanacEntry:
    """Era and lunar sub-date labels returned by the remote almanac."""

    era_label: str
    sub_date_label: str


@dataclass(frozen=True)
class DayAnnotation:
    """Once-per-day header metadata (date, weekday, lunar era)."""

    calendar_date: str
    display_date: str
    time_of_day: str
    weekday_label: str
    era_label: str
    sub_date_label: str
    computed_at: int
    cached_at: int
    degraded: bool = False

    def to_record(self) -> dict[str, Any]:
        """Serialize to the persisted cache record (keyed externally by calendar_date)."""
        return {
            "timestamp": self.computed_at,
            "date": self.display_date,
            "time": self.time_of_day,
            "weekday": self.weekday_label,
            "chineseEra": self.era_label,
            "lunarDate": self.sub_date_label,
            "cacheTime": self.cached_at,
        }

    @classmethod
    def from_record(cls, calendar_date: str, record: dict[str, Any]) -> DayAnnotation:
        """Build from a persisted record; raises KeyError/TypeError/ValueError if malformed."""
        era = str(record["chineseEra"])
        sub_date = str(record.get("lunarDate") or "")
        return cls(
            calendar_date=calendar_date,
            display_date=str(record["date"]),
            time_of_day=str(record["time"]),
            weekday_label=str(record["weekday"]),
            era_label=era,
            sub_date_label=sub_date,
            computed_at=int(record["timestamp"]),
            cached_at=int(record.get("cacheTime") or record["timestamp"]),
            degraded=era == DEGRADED_ERA_LABEL and not sub_date,
        )


@dataclass(frozen=True)
class DeliveryOutcome:
    destination: str
    succeeded: bool
    provider_id: str | None = None
    error: str = ""


@dataclass(frozen=True)
class DispatchSummary:
    success_count: int
    fail_count: int
    elapsed_seconds: float = 0.0

    @property
    def total(self) -> int:
        return self.success_count + self.fail_count


ProbeStatus = Literal["ok", "degraded", "failed"]


@dataclass(frozen=True)
class ProbeResult:
    target_name: str
    ok: bool
    status: ProbeStatus
    status_label: str
    latency_ms: int
    error_class: str | None = None
    error_label: str = ""
    detail: str = ""
    group: str = ""


@dataclass(frozen=True)
class ProbeSummary:
    total: int
    ok: int
    degraded: int
    failed: int
    mean_latency_ms: int


@dataclass(frozen=True)
class UsageReport:
    total_tokens: int
    points: int
    start: datetime
    end: datetime


class DestinationDirectory(Protocol):
    """Enumerates delivery destinations."""

    def list_destinations(self) -> list[str]:
        """Return destinations in delivery order; raise DirectoryError if unavailable."""
        ...


class Transport(Protocol):
    """Delivers one text message to one destination."""

    def send(self, destination: str, message: str) -> None:
        """Raise DeliveryUnreachable or DeliveryRejected on failure."""
        ...


class KeyValueStore(Protocol):
    """Keyed record storage used by the day cache."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def keys(self) -> list[str]: ...

    def delete(self, key: str) -> None: ...


class AlmanacSource(Protocol):
    """Remote day-annotation lookup."""

    def fetch(self, date_str: str) -> AlmanacEntry:
        """Return lunar labels for a YYYY-MM-DD date; raise RemoteAnnotationError on failure."""
        ...


class Scheduler(Protocol):
    """Recurring trigger registration (cron-style)."""

    def register(self, expression: str, callback: Callable[[], Any], name: str = "") -> None: ...


class ProbeTarget(Protocol):
    """One independently checked remote target."""

    name: str
    timeout: float

    def check(self) -> ProbeResult: ...

    def timed_out(self, latency_ms: int) -> ProbeResult:
        """Result to report when the check overran its own deadline."""
        ...
