"""Message and reply text composition."""
from __future__ import annotations

from daily_quote.models import ContentItem, DayAnnotation, DispatchSummary, Provider, RunMode

SEPARATOR = "————————"
APOLOGY = "暂时没有合适的语录，晚点再试试吧~"

MODE_TAGS = {
    RunMode.SCHEDULED: "每日推送",
    RunMode.MANUAL: "手动推送",
}
TEST_TAG = "测试推送"


def compose_message(annotation: DayAnnotation, item: ContentItem, tag: str | None = None) -> str:
    """Header with the day annotation, the snippet, and a source footer."""
    footer = f"[{tag} 来自:{item.provider_id}]" if tag else f"[来自:{item.provider_id}]"
    return "\n".join(
        [
            f"🕑{annotation.display_date} {annotation.time_of_day} {annotation.weekday_label}",
            f"🗓️{annotation.era_label} {annotation.sub_date_label}",
            SEPARATOR,
            item.text,
            footer,
        ]
    )


def format_dispatch_summary(summary: DispatchSummary) -> str:
    return (
        "全群推送完成！\n"
        f"成功: {summary.success_count}个\n"
        f"失败: {summary.fail_count}个\n"
        f"耗时: {summary.elapsed_seconds:.1f}秒"
    )


def format_provider_list(providers: list[Provider], current: int) -> str:
    lines = ["当前配置的API列表:"]
    for i, p in enumerate(providers):
        lines.append(f"{i + 1}. {p.id} (权重:{p.weight:g})")
        lines.append(f"   URL: {p.url}")
        if i == current:
            lines.append("   ← 当前使用中")
    lines.append("\n使用 #语录切换API[编号] 切换当前API")
    return "\n".join(lines)
