"""
Layer 1a – 转发节点选择层
按顺序通过不可信的 CORS 转发节点请求目标 URL，返回第一个合法 JSON 响应。
单个节点的失败（网络错误、超时、非 2xx、空响应、非 JSON）只记录日志，不向上抛出。
"""

import asyncio
import json
import logging
from typing import Any, List, Optional, Sequence
from urllib.parse import quote

import httpx

from market_data_service.config import settings
from market_data_service.exceptions import NoRelayAvailable, RelayTransportError

logger = logging.getLogger(__name__)

# 与浏览器 encodeURIComponent 保持一致的保留字符
_URI_COMPONENT_SAFE = "-_.!~*'()"


def build_relay_url(template: str, target_url: str) -> str:
    """
    将已编码的目标 URL 代入转发节点模板

    模板含 {url} 占位符时替换占位符，否则直接拼接在末尾（前缀式节点）
    """
    encoded = quote(target_url, safe=_URI_COMPONENT_SAFE)
    if "{url}" in template:
        return template.replace("{url}", encoded)
    return f"{template}{encoded}"


class RelaySelector:
    """转发节点轮询器：依次尝试每个节点，直到取得可解析的 JSON"""

    def __init__(
        self,
        relays: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
        sweeps: Optional[int] = None,
        backoff: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._relays: List[str] = list(relays if relays is not None else settings.RELAY_URLS)
        self._timeout = timeout if timeout is not None else settings.RELAY_TIMEOUT
        self._sweeps = max(1, sweeps if sweeps is not None else settings.RELAY_SWEEPS)
        self._backoff = backoff if backoff is not None else settings.RELAY_RETRY_BACKOFF
        self._client = client
        self._owns_client = client is None

    @property
    def relays(self) -> List[str]:
        return list(self._relays)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": settings.USER_AGENT},
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ── 公共接口 ──────────────────────────────────────────

    async def fetch_json(self, target_url: str) -> Any:
        """
        通过转发节点获取目标 URL 的 JSON 内容

        Returns:
            第一个状态 2xx、非空且可解析的响应体（原样返回，不做语义校验）

        Raises:
            NoRelayAvailable: 所有节点均失败，消息为最后一次错误
        """
        if not self._relays:
            raise NoRelayAvailable("未配置任何转发节点")

        last_error: Optional[RelayTransportError] = None
        for sweep in range(1, self._sweeps + 1):
            for relay in self._relays:
                try:
                    return await self._attempt(relay, target_url)
                except RelayTransportError as exc:
                    last_error = exc
                    logger.debug(f"转发节点失败（第 {sweep} 轮）: {exc}")

            if sweep < self._sweeps:
                delay = self._backoff * sweep
                logger.debug(f"全部转发节点失败，{delay:.1f}s 后开始第 {sweep + 1} 轮")
                await asyncio.sleep(delay)

        raise NoRelayAvailable(str(last_error) if last_error else "所有转发节点均不可用")

    async def _attempt(self, relay: str, target_url: str) -> Any:
        request_url = build_relay_url(relay, target_url)
        # httpx 的 timeout 只限制单个阶段，整次尝试的时长由 wait_for 限制
        try:
            response = await asyncio.wait_for(
                self._get_client().get(request_url, timeout=self._timeout),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise RelayTransportError(relay, f"超时（{self._timeout}s）")
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise RelayTransportError(relay, f"传输错误: {exc}")

        if not response.is_success:
            raise RelayTransportError(relay, f"状态码 {response.status_code}")

        text = response.text
        if not text or not text.strip():
            raise RelayTransportError(relay, "空响应")

        try:
            return json.loads(text)
        except (ValueError, RecursionError):
            # 嵌套过深的响应体会触发 RecursionError
            raise RelayTransportError(relay, "响应不是 JSON")


# ── 模块级别单例 ──────────────────────────────────────────
_relay: Optional[RelaySelector] = None


def get_relay_selector() -> RelaySelector:
    global _relay
    if _relay is None:
        _relay = RelaySelector()
    return _relay


async def close_relay_selector() -> None:
    """关闭共享的 HTTP 连接池"""
    global _relay
    if _relay is not None:
        await _relay.close()
        _relay = None
