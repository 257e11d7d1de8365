"""Once-per-day almanac annotation cache."""
from __future__ import annotations

import logging
import threading
from datetime import datetime, tzinfo
from typing import Callable

from daily_quote.errors import RemoteAnnotationError
from daily_quote.models import DEGRADED_ERA_LABEL, AlmanacEntry, AlmanacSource, DayAnnotation, KeyValueStore

logger = logging.getLogger(__name__)

WEEKDAYS = ("一", "二", "三", "四", "五", "六", "日")


def weekday_label(dt: datetime) -> str:
    return f"星期{WEEKDAYS[dt.weekday()]}"


def epoch_millis(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


class DayCache:
    """Memoizes one DayAnnotation per local calendar day.

    Entries for any other date are purged on every access. A stored entry for
    today is reused only if its recorded instant also falls on today and is
    not in the future; otherwise (clock skew, hand-edited store) it is
    recomputed. A failed remote lookup yields a degraded annotation that is
    cached too, so the remote is not retried until the date changes.

    ``get()`` never raises.
    """

    def __init__(
        self,
        store: KeyValueStore,
        almanac: AlmanacSource,
        clock: Callable[[], datetime] | None = None,
        tz: tzinfo | None = None,
    ) -> None:
        self.store = store
        self.almanac = almanac
        self.tz = tz
        self._clock = clock or (lambda: datetime.now(self.tz))
        self._lock = threading.Lock()

    def get(self) -> DayAnnotation:
        with self._lock:
            return self._get_locked()

    def _get_locked(self) -> DayAnnotation:
        now = self._clock()
        today = now.strftime("%Y-%m-%d")
        now_ms = epoch_millis(now)

        cached = self._load_today(today)
        if cached is not None and self._is_consistent(cached, today, now_ms, now):
            logger.info("[时间校验] 使用缓存数据（系统时间:%s）", now.strftime("%H:%M:%S"))
            return cached

        logger.info("[时间校验] 请求最新数据（系统时间:%s）", now.strftime("%H:%M:%S"))
        try:
            entry = self.almanac.fetch(today)
        except RemoteAnnotationError as e:
            logger.error("获取农历失败: %s", e)
            entry = None
        except Exception:
            logger.exception("获取农历失败 (unexpected error)")
            entry = None

        annotation = self._build(now, today, now_ms, entry)
        try:
            self.store.set(today, annotation.to_record())
        except (OSError, TypeError, ValueError) as e:
            logger.error("写入缓存失败: %s", e)
        return annotation

    def _load_today(self, today: str) -> DayAnnotation | None:
        try:
            for key in self.store.keys():
                if key != today:
                    self.store.delete(key)
            record = self.store.get(today)
        except (OSError, ValueError) as e:
            logger.error("读取缓存失败: %s", e)
            return None
        if record is None:
            return None
        try:
            return DayAnnotation.from_record(today, record)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("cache record for %s is malformed, recomputing: %s", today, e)
            return None

    def _is_consistent(self, cached: DayAnnotation, today: str, now_ms: int, now: datetime) -> bool:
        if cached.calendar_date != today or cached.computed_at > now_ms:
            return False
        recorded = datetime.fromtimestamp(cached.computed_at / 1000, tz=now.tzinfo)
        return recorded.strftime("%Y-%m-%d") == today

    @staticmethod
    def _build(now: datetime, today: str, now_ms: int, entry: AlmanacEntry | None) -> DayAnnotation:
        return DayAnnotation(
            calendar_date=today,
            display_date=f"{now.year}年{now.month}月{now.day}日",
            time_of_day=now.strftime("%H:%M:%S"),
            weekday_label=weekday_label(now),
            era_label=entry.era_label if entry else DEGRADED_ERA_LABEL,
            sub_date_label=entry.sub_date_label if entry else "",
            computed_at=now_ms,
            cached_at=now_ms,
            degraded=entry is None,
        )
