"""Concurrent health probes for model endpoints and connectivity lines.

Every target runs on its own worker thread at the same time. Each result is
awaited against that target's own deadline, so one hung target is reported as
timed out without holding back its siblings. There is no pacing here: the
targets are distinct endpoints with no shared rate limit.
"""
from __future__ import annotations

import concurrent.futures
import logging
import time
from datetime import datetime
from typing import Any, Callable

import requests

from daily_quote.models import ProbeResult, ProbeSummary, ProbeTarget

logger = logging.getLogger(__name__)

TEST_PROMPT = "请回复'运行正常'"
EXPECTED_REPLY = "运行正常"
MAX_RESPONSE_LENGTH = 80
DEFAULT_MODEL_TIMEOUT = 10
DEFAULT_ENDPOINT_TIMEOUT = 8

# raised before any request leaves the process
CONFIG_ERRORS = (
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
    requests.exceptions.InvalidURL,
    requests.exceptions.InvalidHeader,
)


def truncate_response(text: Any, limit: int = MAX_RESPONSE_LENGTH) -> str:
    if not isinstance(text, str):
        return "无文本响应"
    return text if len(text) <= limit else text[:limit] + "..."


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _is_dns_failure(exc: BaseException) -> bool:
    text = repr(exc)
    return "NameResolutionError" in text or "Name or service not known" in text or "getaddrinfo failed" in text


class ModelTarget:
    """OpenAI-compatible chat completion check: the model must answer the test prompt."""

    def __init__(
        self,
        site: str,
        base_url: str,
        api_key: str,
        model: str,
        display: str | None = None,
        timeout: float = DEFAULT_MODEL_TIMEOUT,
        session: Any = None,
    ) -> None:
        self.site = site
        self.base_url = base_url
        self.api_key = api_key
        self.model = model
        self.name = display or model
        self.timeout = timeout
        self._http = session or requests

    def _body(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": TEST_PROMPT}],
            "max_tokens": 50,
        }
        if "dashscope.aliyuncs.com" in self.base_url:
            body["enable_thinking"] = False
            body["stream"] = False
        return body

    def _failed(self, label: str, latency: int, error_class: str, error_label: str, detail: str) -> ProbeResult:
        return ProbeResult(
            target_name=self.name,
            ok=False,
            status="failed",
            status_label=label,
            latency_ms=latency,
            error_class=error_class,
            error_label=error_label,
            detail=truncate_response(detail),
            group=self.site,
        )

    def timed_out(self, latency_ms: int) -> ProbeResult:
        return self._failed("⌛ 请求超时", latency_ms, "timeout", "超时", "无响应")

    def check(self) -> ProbeResult:
        start = time.monotonic()
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        try:
            resp = self._http.post(self.base_url, json=self._body(), headers=headers, timeout=self.timeout)
        except requests.Timeout:
            return self.timed_out(_elapsed_ms(start))
        except CONFIG_ERRORS as e:
            return self._failed("❌ 请求失败", _elapsed_ms(start), "config", "配置错误", str(e))
        except requests.RequestException as e:
            return self._failed("❌ 无响应", _elapsed_ms(start), "network", "网络错误", str(e))
        except (TypeError, ValueError) as e:
            return self._failed("❌ 请求失败", _elapsed_ms(start), "config", "配置错误", str(e))
        latency = _elapsed_ms(start)

        try:
            data = resp.json()
        except ValueError:
            data = None

        if resp.status_code >= 400:
            message = "未知错误"
            if isinstance(data, dict) and isinstance(data.get("error"), dict):
                message = str(data["error"].get("message") or message)
            return self._failed("❌ API错误", latency, "http", f"HTTP {resp.status_code}", message)

        content = None
        try:
            content = data["choices"][0]["message"]["content"].strip()
        except (KeyError, IndexError, TypeError, AttributeError):
            pass
        ok = bool(content) and EXPECTED_REPLY in content
        return ProbeResult(
            target_name=self.name,
            ok=ok,
            status="ok" if ok else "degraded",
            status_label="✅ 运行正常" if ok else "⚠️ 响应异常",
            latency_ms=latency,
            detail=truncate_response(content or "无有效内容"),
            group=self.site,
        )


class EndpointTarget:
    """Connectivity check: GET the URL, only HTTP 200 counts as reachable."""

    def __init__(self, name: str, url: str, timeout: float = DEFAULT_ENDPOINT_TIMEOUT, session: Any = None) -> None:
        self.name = name
        self.url = url
        self.timeout = timeout
        self._http = session or requests

    def _failed(self, label: str, latency: int, error_class: str) -> ProbeResult:
        return ProbeResult(
            target_name=self.name,
            ok=False,
            status="failed",
            status_label=label,
            latency_ms=latency,
            error_class=error_class,
            error_label=label,
        )

    def timed_out(self, latency_ms: int) -> ProbeResult:
        return self._failed("超时", latency_ms, "timeout")

    def check(self) -> ProbeResult:
        start = time.monotonic()
        try:
            resp = self._http.get(self.url, timeout=self.timeout)
        except requests.Timeout:
            return self.timed_out(_elapsed_ms(start))
        except requests.RequestException as e:
            label = "DNS解析失败" if _is_dns_failure(e) else "网络错误"
            return self._failed(label, _elapsed_ms(start), "network")
        latency = _elapsed_ms(start)
        if resp.status_code != 200:
            return self._failed(str(resp.status_code), latency, "http")
        return ProbeResult(
            target_name=self.name,
            ok=True,
            status="ok",
            status_label="200",
            latency_ms=latency,
        )


class ProbeAggregator:
    """Runs all targets concurrently and returns results in input order."""

    def __init__(self, grace: float = 1.0, monotonic: Callable[[], float] = time.monotonic) -> None:
        self.grace = grace
        self._monotonic = monotonic

    def run_all(self, targets: list[ProbeTarget]) -> list[ProbeResult]:
        if not targets:
            return []
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=len(targets), thread_name_prefix="probe"
        )
        started = self._monotonic()
        futures = [executor.submit(t.check) for t in targets]
        results: list[ProbeResult] = []
        try:
            for target, future in zip(targets, futures):
                remaining = max(0.0, started + target.timeout + self.grace - self._monotonic())
                try:
                    results.append(future.result(timeout=remaining))
                except concurrent.futures.TimeoutError:
                    future.cancel()
                    latency = int((self._monotonic() - started) * 1000)
                    logger.warning("probe %s exceeded %ss", target.name, target.timeout)
                    results.append(target.timed_out(latency))
                except Exception as e:
                    logger.exception("probe %s crashed", target.name)
                    latency = int((self._monotonic() - started) * 1000)
                    results.append(
                        ProbeResult(
                            target_name=target.name,
                            ok=False,
                            status="failed",
                            status_label="❌ 请求失败",
                            latency_ms=latency,
                            error_class="config",
                            error_label="配置错误",
                            detail=truncate_response(str(e)),
                            group=getattr(target, "site", ""),
                        )
                    )
        finally:
            # do not join threads of targets that overran their deadline
            executor.shutdown(wait=False, cancel_futures=True)
        return results


def summarize(results: list[ProbeResult]) -> ProbeSummary:
    """Count ok/degraded/failed; mean latency over results without an error."""
    ok = sum(1 for r in results if r.status == "ok")
    degraded = sum(1 for r in results if r.status == "degraded")
    clean = [r.latency_ms for r in results if not r.error_class]
    return ProbeSummary(
        total=len(results),
        ok=ok,
        degraded=degraded,
        failed=len(results) - ok - degraded,
        mean_latency_ms=round(sum(clean) / len(clean)) if clean else 0,
    )


def build_targets(probe_cfg: dict[str, Any]) -> tuple[list[ModelTarget], list[EndpointTarget]]:
    """Build model and endpoint targets from the ``probe`` config section."""
    model_timeout = float(probe_cfg.get("timeout", DEFAULT_MODEL_TIMEOUT))
    endpoint_timeout = float(probe_cfg.get("endpoint_timeout", DEFAULT_ENDPOINT_TIMEOUT))
    models: list[ModelTarget] = []
    for site in probe_cfg.get("sites") or []:
        for model in site.get("models") or []:
            models.append(
                ModelTarget(
                    site=str(site["name"]),
                    base_url=str(site["base_url"]),
                    api_key=str(site.get("api_key") or ""),
                    model=str(model["name"]),
                    display=model.get("display"),
                    timeout=model_timeout,
                )
            )
    endpoints = [
        EndpointTarget(name=str(ep["name"]), url=str(ep["url"]), timeout=endpoint_timeout)
        for ep in probe_cfg.get("endpoints") or []
    ]
    return models, endpoints


def format_model_status(r: ProbeResult) -> str:
    lines = [
        f"🛠️ 模型: {r.target_name}",
        f"📊 状态: {r.status_label}",
        f"⏱️ 延迟: {r.latency_ms}ms",
        f"💬 响应: {r.detail}",
    ]
    if r.error_label:
        lines.append(f"⚠️ 错误: {r.error_label}")
    return "\n".join(lines)


def format_summary(s: ProbeSummary) -> str:
    return (
        "📊 检测总结:\n"
        f"✅ 正常模型: {s.ok}/{s.total}\n"
        f"⚠️ 异常模型: {s.degraded}/{s.total}\n"
        f"❌ 失败模型: {s.failed}/{s.total}\n"
        f"⏱️ 平均延迟: {s.mean_latency_ms}ms\n"
        "💡 提示: 失败模型可能需要检查API密钥或服务状态"
    )


def format_probe_report(
    model_results: list[ProbeResult],
    endpoint_results: list[ProbeResult],
    now: datetime,
    notice: str = "",
) -> list[str]:
    """Report as a list of message segments, one per block."""
    segments = [f"📡 模型状态检测 - {now:%Y-%m-%d %H:%M:%S}"]
    grouped: dict[str, list[ProbeResult]] = {}
    for r in model_results:
        grouped.setdefault(r.group, []).append(r)
    for site, items in grouped.items():
        segments.append(f"🏠 站点: {site}")
        segments.extend(format_model_status(r) for r in items)

    segments.append("🛰️ 线路连通性:")
    for r in endpoint_results:
        icon = "✅" if r.ok else "❌"
        segments.append(f"{icon} {r.target_name}  —  {r.status_label} [{r.latency_ms}ms]")

    segments.append(format_summary(summarize(model_results)))
    if notice:
        segments.append(notice.strip())
    return segments
