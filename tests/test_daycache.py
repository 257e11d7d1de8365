import json
from datetime import datetime
from pathlib import Path

from daily_quote.daycache import DayCache, epoch_millis, weekday_label
from daily_quote.models import DEGRADED_ERA_LABEL
from daily_quote.store import JsonFileStore, MemoryStore


def _cache(fakes, now: datetime, fail: bool = False, store=None):
    clock = fakes.Clock(now)
    almanac = fakes.Almanac(fail=fail)
    store = store if store is not None else MemoryStore()
    return DayCache(store, almanac, clock=clock), clock, almanac, store


def test_same_day_reuses_cached_annotation(fakes) -> None:
    cache, clock, almanac, _ = _cache(fakes, datetime(2026, 10, 19, 0, 0, 1))
    first = cache.get()
    clock.now = datetime(2026, 10, 19, 15, 30, 0)
    second = cache.get()

    assert almanac.calls == ["2026-10-19"]
    assert first == second
    assert first.display_date == "2026年10月19日"
    assert first.time_of_day == "00:00:01"
    assert first.weekday_label == "星期一"
    assert first.era_label == "乙巳蛇年【乙巳年】"
    assert not first.degraded


def test_date_rollover_refetches_and_purges_previous_day(fakes) -> None:
    cache, clock, almanac, store = _cache(fakes, datetime(2026, 10, 19, 23, 59, 0))
    cache.get()
    clock.now = datetime(2026, 10, 20, 0, 0, 5)
    fresh = cache.get()

    assert almanac.calls == ["2026-10-19", "2026-10-20"]
    assert store.keys() == ["2026-10-20"]
    assert fresh.calendar_date == "2026-10-20"
    assert fresh.weekday_label == "星期二"


def test_remote_failure_is_degraded_and_cached_until_date_changes(fakes) -> None:
    cache, clock, almanac, store = _cache(fakes, datetime(2026, 10, 19, 8, 0, 0), fail=True)
    degraded = cache.get()
    assert degraded.degraded
    assert degraded.era_label == DEGRADED_ERA_LABEL
    assert degraded.sub_date_label == ""
    assert store.get("2026-10-19")["chineseEra"] == DEGRADED_ERA_LABEL

    clock.now = datetime(2026, 10, 19, 20, 0, 0)
    assert cache.get() == degraded
    assert len(almanac.calls) == 1

    almanac.fail = False
    clock.now = datetime(2026, 10, 20, 8, 0, 0)
    recovered = cache.get()
    assert not recovered.degraded
    assert len(almanac.calls) == 2


def test_clock_moved_backwards_invalidates_entry(fakes) -> None:
    cache, clock, almanac, _ = _cache(fakes, datetime(2026, 10, 19, 10, 0, 0))
    cache.get()
    clock.now = datetime(2026, 10, 19, 9, 0, 0)
    again = cache.get()
    assert len(almanac.calls) == 2
    assert again.time_of_day == "09:00:00"


def test_entry_whose_instant_is_another_day_is_recomputed(fakes) -> None:
    store = MemoryStore(
        {
            "2026-10-19": {
                "timestamp": epoch_millis(datetime(2026, 10, 12, 9, 0, 0)),
                "date": "2026年10月12日",
                "time": "09:00:00",
                "weekday": "星期一",
                "chineseEra": "stale",
                "lunarDate": "stale",
                "cacheTime": 0,
            }
        }
    )
    cache, _, almanac, _ = _cache(fakes, datetime(2026, 10, 19, 12, 0, 0), store=store)
    assert cache.get().era_label == "乙巳蛇年【乙巳年】"
    assert almanac.calls == ["2026-10-19"]


def test_reads_existing_cache_file_shape(fakes, tmp_path: Path) -> None:
    path = tmp_path / "data" / "lunar_cache.json"
    path.parent.mkdir()
    written_at = epoch_millis(datetime(2026, 10, 19, 0, 0, 2))
    path.write_text(
        json.dumps(
            {
                "2026-10-18": {"timestamp": 1, "date": "x", "time": "x", "weekday": "x", "chineseEra": "x", "lunarDate": "x", "cacheTime": 1},
                "2026-10-19": {
                    "timestamp": written_at,
                    "date": "2026年10月19日",
                    "time": "00:00:02",
                    "weekday": "星期一",
                    "chineseEra": "乙巳蛇年【乙巳年】",
                    "lunarDate": "八月廿九",
                    "cacheTime": written_at + 5,
                },
            },
            ensure_ascii=False,
        ),
        encoding="utf-8",
    )
    cache, _, almanac, _ = _cache(fakes, datetime(2026, 10, 19, 12, 0, 0), store=JsonFileStore(path))
    annotation = cache.get()

    assert almanac.calls == []
    assert annotation.sub_date_label == "八月廿九"
    assert annotation.cached_at == written_at + 5
    assert list(json.loads(path.read_text(encoding="utf-8"))) == ["2026-10-19"]


def test_json_store_writes_record_shape(fakes, tmp_path: Path) -> None:
    path = tmp_path / "lunar_cache.json"
    cache, _, _, _ = _cache(fakes, datetime(2026, 10, 19, 7, 8, 9), store=JsonFileStore(path))
    cache.get()
    record = json.loads(path.read_text(encoding="utf-8"))["2026-10-19"]
    assert set(record) == {"timestamp", "date", "time", "weekday", "chineseEra", "lunarDate", "cacheTime"}
    assert record["time"] == "07:08:09"


def test_corrupt_cache_file_is_treated_as_empty(fakes, tmp_path: Path) -> None:
    path = tmp_path / "lunar_cache.json"
    path.write_text("{not json", encoding="utf-8")
    cache, _, almanac, _ = _cache(fakes, datetime(2026, 10, 19, 7, 0, 0), store=JsonFileStore(path))
    assert not cache.get().degraded
    assert almanac.calls == ["2026-10-19"]


def test_weekday_label_sunday() -> None:
    assert weekday_label(datetime(2026, 10, 18)) == "星期日"
