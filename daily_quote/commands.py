"""Thin command adapter: maps chat keywords and operator commands onto the engine.

A host bot forwards each incoming message as an event with ``text``,
``sender_id`` and ``reply(text)``. The engine itself knows nothing about the
host.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Protocol

from daily_quote.errors import (
    DirectoryError,
    DispatchBusyError,
    FetchError,
    ProviderIndexError,
    ProviderPoolError,
    QuotePushError,
    UsageError,
)
from daily_quote.message import APOLOGY, format_dispatch_summary, format_provider_list
from daily_quote.models import RunMode
from daily_quote.probe import format_probe_report
from daily_quote.runner import App
from daily_quote.usage import format_usage

logger = logging.getLogger(__name__)


class Event(Protocol):
    text: str
    sender_id: str

    def reply(self, text: str) -> None: ...


@dataclass
class ConsoleEvent:
    """Event for local use: replies are collected and printed."""

    text: str
    sender_id: str = "console"
    replies: list[str] = field(default_factory=list)
    echo: bool = True

    def reply(self, text: str) -> None:
        self.replies.append(text)
        if self.echo:
            print(text)


@dataclass
class Rule:
    pattern: re.Pattern[str]
    handler: Callable[[Event, re.Match[str]], None]
    operator_only: bool = False


def probe_report(app: App) -> list[str]:
    """Run model and endpoint probes together and render the report segments."""
    targets = [*app.model_targets, *app.endpoint_targets]
    results = app.probe.run_all(targets)
    n = len(app.model_targets)
    return format_probe_report(results[:n], results[n:], app.clock(), app.probe_notice)


class CommandRouter:
    def __init__(self, app: App) -> None:
        self.app = app
        self.rules = [
            Rule(re.compile(r"^(网易云热评|到点了|12点了)$"), self.random_quote),
            Rule(re.compile(r"^#语录全群推送$"), self.push_all, operator_only=True),
            Rule(re.compile(r"^#语录测试推送(\d+)$"), self.test_push, operator_only=True),
            Rule(re.compile(r"^#语录切换API(\d+)$"), self.switch_provider, operator_only=True),
            Rule(re.compile(r"^#语录API列表$"), self.list_providers, operator_only=True),
            Rule(re.compile(r"^#?公益模型状态$"), self.model_status),
            Rule(re.compile(r"^#?token统计$"), self.token_usage),
        ]

    def is_operator(self, sender_id: str) -> bool:
        return str(sender_id) in self.app.operators

    def handle(self, event: Event) -> bool:
        """Dispatch to the first matching rule; False if nothing handled the message."""
        text = (event.text or "").strip()
        for rule in self.rules:
            m = rule.pattern.match(text)
            if not m:
                continue
            if rule.operator_only and not self.is_operator(event.sender_id):
                logger.info("ignored operator command %r from %s", text, event.sender_id)
                return False
            rule.handler(event, m)
            return True
        return False

    def random_quote(self, event: Event, m: re.Match[str]) -> None:
        try:
            event.reply(self.app.dispatcher.compose_one())
        except (FetchError, ProviderPoolError) as e:
            logger.error("获取语录失败: %s", e)
            event.reply(APOLOGY)

    def push_all(self, event: Event, m: re.Match[str]) -> None:
        if self.app.dispatcher.busy:
            event.reply("已有推送任务正在进行，请稍后再试")
            return
        event.reply("开始执行全群语录推送，请稍候...")
        annotation = self.app.day_cache.get()
        try:
            summary = self.app.dispatcher.run(RunMode.MANUAL, annotation=annotation)
        except DispatchBusyError:
            event.reply("已有推送任务正在进行，请稍后再试")
            return
        except DirectoryError as e:
            logger.error("手动推送失败: %s", e)
            event.reply(f"全群推送失败: {e}")
            return
        event.reply(format_dispatch_summary(summary))

    def test_push(self, event: Event, m: re.Match[str]) -> None:
        destination = m.group(1)
        try:
            self.app.dispatcher.send_test(destination)
        except QuotePushError as e:
            logger.error("测试推送失败: %s", e)
            event.reply(f"测试推送失败: {e}")
            return
        event.reply(f"已向群 {destination} 发送测试推送")

    def switch_provider(self, event: Event, m: re.Match[str]) -> None:
        try:
            provider = self.app.registry.set_current(int(m.group(1)) - 1)
        except ProviderIndexError:
            event.reply("无效的API编号，请使用#语录API列表查看可用API")
            return
        event.reply(f"已切换到API: {provider.id}")

    def list_providers(self, event: Event, m: re.Match[str]) -> None:
        event.reply(format_provider_list(self.app.registry.list(), self.app.registry.current))

    def model_status(self, event: Event, m: re.Match[str]) -> None:
        event.reply("\n\n".join(probe_report(self.app)))

    def token_usage(self, event: Event, m: re.Match[str]) -> None:
        if self.app.usage is None:
            event.reply("未配置token统计接口")
            return
        event.reply("正在统计最近24小时token用量...")
        try:
            report = self.app.usage.fetch(self.app.clock())
        except UsageError as e:
            logger.error("统计token用量出错: %s", e)
            event.reply(f"统计token用量出错: {e}")
            return
        event.reply(format_usage(report))
