"""Sequential, paced fan-out of freshly fetched quotes to every destination."""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from daily_quote.daycache import DayCache
from daily_quote.errors import DeliveryError, DispatchBusyError, FetchError, ProviderPoolError
from daily_quote.message import MODE_TAGS, TEST_TAG, compose_message
from daily_quote.models import (
    ContentItem,
    DayAnnotation,
    DeliveryOutcome,
    DestinationDirectory,
    DispatchSummary,
    RunMode,
    Transport,
)
from daily_quote.providers import ContentFetcher, ProviderRegistry

logger = logging.getLogger(__name__)

DEFAULT_PACING: dict[RunMode, float] = {
    RunMode.MANUAL: 3.0,
    RunMode.SCHEDULED: 2.0,
}

MODE_LOG_LABELS = {RunMode.SCHEDULED: "定时", RunMode.MANUAL: "手动"}


class FanOutDispatcher:
    """Delivers one independently fetched quote per destination.

    Deliveries are strictly sequential with a pacing wait after every send
    except the last. The day annotation is resolved once per run and shared;
    content is fetched per destination. Any fetch or delivery failure counts
    against that destination only; only a DirectoryError aborts the run.
    Overlapping runs are rejected with DispatchBusyError.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        fetcher: ContentFetcher,
        day_cache: DayCache,
        transport: Transport,
        directory: DestinationDirectory,
        pacing: dict[RunMode, float] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.fetcher = fetcher
        self.day_cache = day_cache
        self.transport = transport
        self.directory = directory
        self.pacing = {**DEFAULT_PACING, **(pacing or {})}
        self._sleep = sleep
        self._monotonic = monotonic
        self._run_lock = threading.Lock()
        self.last_outcomes: list[DeliveryOutcome] = []

    @property
    def busy(self) -> bool:
        return self._run_lock.locked()

    def run(
        self,
        mode: RunMode,
        destinations: list[str] | None = None,
        annotation: DayAnnotation | None = None,
    ) -> DispatchSummary:
        if not self._run_lock.acquire(blocking=False):
            raise DispatchBusyError("a push run is already in progress")
        try:
            return self._run(mode, destinations, annotation)
        finally:
            self._run_lock.release()

    def _run(
        self,
        mode: RunMode,
        destinations: list[str] | None,
        annotation: DayAnnotation | None,
    ) -> DispatchSummary:
        label = MODE_LOG_LABELS[mode]
        started = self._monotonic()
        logger.info("[%s] 开始全群语录推送", label)

        if destinations is None:
            destinations = self.directory.list_destinations()
        snapshot = list(destinations)
        logger.info("[语录推送] 共找到 %s 个目标", len(snapshot))
        if not snapshot:
            logger.info("[语录推送] 没有需要推送的目标")
            self.last_outcomes = []
            return DispatchSummary(0, 0, 0.0)

        if annotation is None:
            annotation = self.day_cache.get()
        tag = MODE_TAGS[mode]
        delay = self.pacing[mode]
        outcomes: list[DeliveryOutcome] = []

        for i, dest in enumerate(snapshot):
            logger.info("[%s/%s] 正在向 %s 推送...", i + 1, len(snapshot), dest)
            try:
                item = self.fetch_one()
            except (ProviderPoolError, FetchError) as e:
                logger.error("[推送失败] %s: 获取语录失败: %s", dest, e)
                outcomes.append(DeliveryOutcome(dest, False, error=str(e)))
                continue
            except Exception as e:
                logger.exception("[推送失败] %s: 获取语录时发生未知错误", dest)
                outcomes.append(DeliveryOutcome(dest, False, error=f"{type(e).__name__}: {e}"))
                continue

            try:
                self.transport.send(dest, compose_message(annotation, item, tag))
                outcomes.append(DeliveryOutcome(dest, True, provider_id=item.provider_id))
            except DeliveryError as e:
                logger.error("[推送失败] %s: 发送失败 (%s): %s", dest, type(e).__name__, e)
                outcomes.append(DeliveryOutcome(dest, False, provider_id=item.provider_id, error=str(e)))
            except Exception as e:
                logger.exception("[推送失败] %s: 发送时发生未知错误", dest)
                outcomes.append(
                    DeliveryOutcome(dest, False, provider_id=item.provider_id, error=f"{type(e).__name__}: {e}")
                )

            if i < len(snapshot) - 1 and delay > 0:
                self._sleep(delay)

        self.last_outcomes = outcomes
        success = sum(1 for o in outcomes if o.succeeded)
        summary = DispatchSummary(
            success_count=success,
            fail_count=len(snapshot) - success,
            elapsed_seconds=self._monotonic() - started,
        )
        logger.info("[语录推送] 完成: 成功 %s 个, 失败 %s 个", summary.success_count, summary.fail_count)
        return summary

    def fetch_one(self) -> ContentItem:
        """Select a provider by weight and fetch one snippet from it."""
        return self.fetcher.fetch(self.registry.select())

    def compose_one(self, tag: str | None = None) -> str:
        """Fetch one snippet and compose a full message; fetch errors propagate."""
        item = self.fetch_one()
        return compose_message(self.day_cache.get(), item, tag)

    def send_test(self, destination: str) -> ContentItem:
        """Single-destination test push; all errors propagate to the caller."""
        item = self.fetch_one()
        self.transport.send(destination, compose_message(self.day_cache.get(), item, TEST_TAG))
        logger.info("test push sent to %s via %s", destination, item.provider_id)
        return item
