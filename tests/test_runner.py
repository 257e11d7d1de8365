from datetime import datetime
from pathlib import Path

import pytest

from daily_quote.dispatcher import FanOutDispatcher
from daily_quote.models import RunMode
from daily_quote.runner import (
    build_app,
    load_app,
    load_config,
    register_schedules,
    resolve_env,
    schedules_to_run,
    validate_config,
)
from daily_quote.scheduler import CronScheduler


def _config(tmp_path: Path, **extra) -> dict:
    config = {
        "providers": [
            {"id": "mir6=1", "url": "https://api.mir6.com/api/yulu?txt=1&type=json", "weight": 5},
            {"id": "4qb", "url": "https://api.4qb.cn/api/emowenan?type=json", "weight": 7},
        ],
        "channel": {"type": "onebot", "base_url": "http://bot:5700"},
        "cache": {"path": str(tmp_path / "lunar_cache.json")},
        "schedules": [{"id": "midnight", "cron": "0 0 * * *"}],
        "pacing": {"manual": 0, "scheduled": 0},
        "operators": [10001],
    }
    config.update(extra)
    return config


def test_validate_config_accepts_example(tmp_path: Path) -> None:
    validate_config(_config(tmp_path))


@pytest.mark.parametrize(
    "override,message",
    [
        ({"providers": []}, "providers is empty"),
        ({"providers": [{"url": "https://x"}]}, "missing 'id'"),
        ({"providers": [{"id": "a"}]}, "missing 'url'"),
        ({"providers": [{"id": "a", "url": "u", "weight": 0}]}, "weight must be > 0"),
        ({"providers": [{"id": "a", "url": "u"}, {"id": "a", "url": "v"}]}, "duplicate provider id"),
        ({"providers": [{"id": "a", "url": "u", "schema": "nope"}]}, "schema 'nope'"),
        ({"channel": {"type": "fax"}}, "Unknown channel type"),
        ({"schedules": [{"id": "s", "cron": "bogus"}]}, "invalid cron"),
        ({"schedules": [{"id": "s", "cron": "* * * * *"}, {"id": "s", "cron": "* * * * *"}]}, "duplicate schedule id"),
        ({"timezone": "Mars/Olympus_Mons"}, "unknown timezone"),
    ],
)
def test_validate_config_errors(tmp_path: Path, override: dict, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        validate_config(_config(tmp_path, **override))


def test_load_config_resolves_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ONEBOT_ACCESS_TOKEN", "s3cret")
    path = tmp_path / "config.yaml"
    path.write_text(
        "channel:\n  type: onebot\n  access_token: ${ONEBOT_ACCESS_TOKEN}\n  extra: ${NOT_SET_ANYWHERE}\n",
        encoding="utf-8",
    )
    config = load_config(path)
    assert config["channel"]["access_token"] == "s3cret"
    assert config["channel"]["extra"] == "${NOT_SET_ANYWHERE}"
    assert resolve_env([1, {"a": None}]) == [1, {"a": None}]


def test_load_app_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_app(tmp_path / "missing.yaml")


def test_schedules_to_run(tmp_path: Path) -> None:
    config = _config(tmp_path, schedules=[{"id": "midnight", "cron": "0 0 * * *"}, {"id": "noon", "cron": "0 12 * * *"}])
    assert [s["id"] for s in schedules_to_run(config, datetime(2026, 10, 19, 12, 0, 30), None)] == ["noon"]
    assert schedules_to_run(config, datetime(2026, 10, 19, 12, 5), None) == []
    assert [s["id"] for s in schedules_to_run(config, datetime(2026, 10, 19, 12, 5), "midnight")] == ["midnight"]
    with pytest.raises(ValueError):
        schedules_to_run(config, datetime(2026, 10, 19), "missing")


def test_build_app_wires_engine(tmp_path: Path, fakes) -> None:
    channel = fakes.Channel(destinations=["g1", "g2"])
    app = build_app(_config(tmp_path), channel=channel)
    assert isinstance(app.dispatcher, FanOutDispatcher)
    assert app.dispatcher.transport is channel
    assert app.dispatcher.pacing[RunMode.MANUAL] == 0
    assert [p.id for p in app.registry.list()] == ["mir6=1", "4qb"]
    assert app.operators == {"10001"}
    assert app.usage is None
    assert (tmp_path / "lunar_cache.json").exists()


def test_registered_schedule_runs_scheduled_push(tmp_path: Path, fakes) -> None:
    channel = fakes.Channel(destinations=["g1", "g2"])
    app = build_app(_config(tmp_path), channel=channel)
    app.dispatcher.fetcher = fakes.Fetcher()
    app.day_cache.almanac = fakes.Almanac()

    scheduler = CronScheduler()
    register_schedules(app, scheduler)
    assert scheduler.tick(datetime(2026, 10, 19, 0, 0, 3)) == 1
    assert [dest for dest, _ in channel.sent] == ["g1", "g2"]
    assert all("[每日推送 来自:" in msg for _, msg in channel.sent)
