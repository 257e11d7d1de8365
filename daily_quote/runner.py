"""Runner: load config, wire the engine, run cron-matched schedules (one-shot or as a service)."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Any, Callable
from zoneinfo import ZoneInfo

import yaml
from croniter import croniter

from daily_quote.almanac import DEFAULT_ALMANAC_URL, HttpAlmanac
from daily_quote.channel import Channel, build_channel, get_channel
from daily_quote.daycache import DayCache
from daily_quote.dispatcher import FanOutDispatcher
from daily_quote.models import RunMode
from daily_quote.probe import EndpointTarget, ModelTarget, ProbeAggregator, build_targets
from daily_quote.providers import SCHEMAS, ContentFetcher, ProviderRegistry
from daily_quote.scheduler import CronScheduler, cron_matches
from daily_quote.store import JsonFileStore
from daily_quote.usage import UsageClient

logger = logging.getLogger(__name__)

DEFAULT_CACHE_PATH = "data/lunar_cache.json"

# Match ${VAR_NAME} in config strings
ENV_PLACEHOLDER_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def resolve_env(value: Any) -> Any:
    """Replace ${ENV_VAR} in every string of a loaded config with os.environ values."""
    if isinstance(value, str):
        return ENV_PLACEHOLDER_RE.sub(lambda m: os.environ.get(m.group(1), m.group(0)), value)
    if isinstance(value, dict):
        return {k: resolve_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_env(v) for v in value]
    return value


def load_config(path: str | Path) -> dict:
    """Load YAML config from path and resolve ${ENV} placeholders."""
    with open(path, encoding="utf-8") as f:
        return resolve_env(yaml.safe_load(f) or {})


def validate_config(config: dict) -> None:
    """Validate providers, channel, schedules, timezone; raise ValueError on error."""
    providers = config.get("providers") or []
    if not providers:
        raise ValueError("config: providers is empty")
    if not isinstance(providers, list):
        raise ValueError("config: providers must be a list")

    seen_provider_ids = set()
    for i, p in enumerate(providers):
        if not isinstance(p, dict):
            raise ValueError(f"config: providers[{i}] must be a dict")
        pid = p.get("id")
        if not pid:
            raise ValueError(f"config: providers[{i}] missing 'id'")
        if pid in seen_provider_ids:
            raise ValueError(f"config: duplicate provider id '{pid}'")
        seen_provider_ids.add(pid)
        if not p.get("url"):
            raise ValueError(f"config: provider '{pid}' missing 'url'")
        try:
            weight = float(p.get("weight", 1))
        except (TypeError, ValueError):
            raise ValueError(f"config: provider '{pid}' weight must be a number")
        if not weight > 0:
            raise ValueError(f"config: provider '{pid}' weight must be > 0")
        schema = p.get("schema")
        if schema is not None and schema not in SCHEMAS:
            raise ValueError(f"config: provider '{pid}' schema '{schema}' not in {sorted(SCHEMAS)}")

    channel_cfg = config.get("channel") or {}
    if not isinstance(channel_cfg, dict):
        raise ValueError("config: channel must be a dict")
    get_channel(channel_cfg.get("type", "onebot"))

    seen_schedule_ids = set()
    for i, sch in enumerate(config.get("schedules") or []):
        if not isinstance(sch, dict):
            raise ValueError(f"config: schedules[{i}] must be a dict")
        sid = sch.get("id")
        if not sid:
            raise ValueError(f"config: schedules[{i}] missing 'id'")
        if sid in seen_schedule_ids:
            raise ValueError(f"config: duplicate schedule id '{sid}'")
        seen_schedule_ids.add(sid)
        cron_expr = sch.get("cron")
        if not cron_expr or not croniter.is_valid(cron_expr):
            raise ValueError(f"config: schedule '{sid}' has invalid cron {cron_expr!r}")

    tz_name = config.get("timezone")
    if tz_name:
        try:
            ZoneInfo(tz_name)
        except Exception:
            raise ValueError(f"config: unknown timezone '{tz_name}'")


@dataclass
class App:
    """Wired engine objects for one process."""

    config: dict
    registry: ProviderRegistry
    day_cache: DayCache
    channel: Channel
    dispatcher: FanOutDispatcher
    probe: ProbeAggregator
    model_targets: list[ModelTarget]
    endpoint_targets: list[EndpointTarget]
    clock: Callable[[], datetime]
    usage: UsageClient | None = None
    operators: set[str] = field(default_factory=set)

    @property
    def probe_notice(self) -> str:
        return str((self.config.get("probe") or {}).get("notice") or "")


def _timezone(config: dict) -> tzinfo | None:
    tz_name = config.get("timezone")
    return ZoneInfo(tz_name) if tz_name else None


def build_app(config: dict, dry_run: bool = False, channel: Channel | None = None) -> App:
    """Wire registry, fetcher, day cache, channel and dispatcher from a validated config."""
    tz = _timezone(config)

    def clock() -> datetime:
        return datetime.now(tz)

    registry = ProviderRegistry.from_config(config["providers"])
    fetch_cfg = config.get("fetch") or {}
    fetcher = ContentFetcher(timeout=float(fetch_cfg.get("timeout", 10)))

    almanac_cfg = config.get("almanac") or {}
    almanac = HttpAlmanac(
        url=str(almanac_cfg.get("url") or DEFAULT_ALMANAC_URL),
        timeout=float(almanac_cfg.get("timeout", 10)),
    )
    cache_cfg = config.get("cache") or {}
    store = JsonFileStore(cache_cfg.get("path") or DEFAULT_CACHE_PATH)
    day_cache = DayCache(store, almanac, clock=clock, tz=tz)

    if channel is None:
        channel = build_channel(config.get("channel") or {}, dry_run=dry_run)

    pacing_cfg = config.get("pacing") or {}
    pacing = {
        RunMode.MANUAL: float(pacing_cfg.get("manual", 3.0)),
        RunMode.SCHEDULED: float(pacing_cfg.get("scheduled", 2.0)),
    }
    dispatcher = FanOutDispatcher(
        registry=registry,
        fetcher=fetcher,
        day_cache=day_cache,
        transport=channel,
        directory=channel,
        pacing=pacing,
    )

    models, endpoints = build_targets(config.get("probe") or {})

    usage = None
    usage_cfg = config.get("usage") or {}
    if usage_cfg.get("url"):
        usage = UsageClient(
            base_url=str(usage_cfg["url"]),
            authorization=str(usage_cfg.get("authorization") or ""),
            user_id=str(usage_cfg.get("user_id") or ""),
            username=str(usage_cfg.get("username") or ""),
        )

    return App(
        config=config,
        registry=registry,
        day_cache=day_cache,
        channel=channel,
        dispatcher=dispatcher,
        probe=ProbeAggregator(),
        model_targets=models,
        endpoint_targets=endpoints,
        clock=clock,
        usage=usage,
        operators={str(o) for o in config.get("operators") or []},
    )


def load_app(config_path: str | Path, dry_run: bool = False) -> App:
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"config not found: {path}")
    config = load_config(path)
    validate_config(config)
    if dry_run:
        logger.info("Dry-run mode enabled: will fetch quotes but not send any messages to channels.")
    return build_app(config, dry_run=dry_run)


def schedules_to_run(config: dict, now: datetime, schedule_id: str | None) -> list[dict]:
    """Return list of schedule dicts to run: either [schedule with id] or cron-matched."""
    schedules = config.get("schedules") or []
    if schedule_id is not None:
        for sch in schedules:
            if sch.get("id") == schedule_id:
                return [sch]
        raise ValueError(f"schedule id '{schedule_id}' not found in config")
    return [sch for sch in schedules if cron_matches(sch["cron"], now)]


def scheduled_push(app: App, schedule_id: str) -> None:
    summary = app.dispatcher.run(RunMode.SCHEDULED)
    logger.info(
        "schedule %s done: success=%s fail=%s elapsed=%.1fs",
        schedule_id,
        summary.success_count,
        summary.fail_count,
        summary.elapsed_seconds,
    )


def register_schedules(app: App, scheduler: CronScheduler) -> None:
    for sch in app.config.get("schedules") or []:
        sid = sch["id"]
        scheduler.register(sch["cron"], lambda sid=sid: scheduled_push(app, sid), name=sid)


def run(config_path: str | Path, schedule_id: str | None = None, dry_run: bool = False) -> None:
    """One pass: run schedules matching the current minute (or the one named by schedule_id)."""
    app = load_app(config_path, dry_run=dry_run)
    now = app.clock()
    schedules = schedules_to_run(app.config, now, schedule_id)
    if not schedules:
        logger.info("No schedules to run (current time does not match any cron). Use --schedule <id> to run a schedule anyway.")
        return
    logger.info("Running %s schedule(s): %s", len(schedules), [s.get("id") for s in schedules])
    for sch in schedules:
        sid = sch.get("id", "?")
        try:
            scheduled_push(app, sid)
        except Exception as e:
            logger.exception("schedule failed schedule=%s: %s", sid, e)


def serve(config_path: str | Path, dry_run: bool = False) -> None:
    """Long-running process: register every schedule and tick once per minute."""
    app = load_app(config_path, dry_run=dry_run)
    scheduler = CronScheduler(clock=app.clock)
    register_schedules(app, scheduler)
    scheduler.run_forever()
