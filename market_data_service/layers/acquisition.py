"""
Layer 1b – 数据获取层（请求编排）
把 (symbol, range, interval) 请求解析为经过校验的行情结果：
  1. 读缓存（键为原始请求）
  2. 精确请求 → 转发节点轮询 → 结构与语义校验
  3. 仅日内请求失败时按降级阶梯依次重试（5d/1d → 1mo/1d）
  4. 全部失败返回显式的不可用标记，而不是抛异常
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple
from urllib.parse import quote, urlencode

from pydantic import ValidationError

from market_data_service.config import settings
from market_data_service.exceptions import NoPriceData, NoRelayAvailable
from market_data_service.layers.cache import CHART_NAMESPACE, CacheLayer, get_cache_layer
from market_data_service.layers.relay import RelaySelector, get_relay_selector
from market_data_service.models.market import (
    ChartEnvelope,
    ChartResult,
    FetchOutcome,
    RangeSpec,
    Result,
    SearchEnvelope,
    SearchMatch,
    normalize_symbol,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedChart:
    """缓存载荷：校验后的上游结果 + 实际命中的阶梯级别"""

    result: ChartResult
    served: RangeSpec


def parse_chart_payload(payload: Any) -> ChartResult:
    """
    在接入边界解析上游图表响应

    结构：chart.result 必须是非空数组
    语义：至少一个非空收盘价，或元数据中带有当前价 / 昨收价

    Raises:
        NoPriceData: 结构无效或没有任何可用价格
    """
    try:
        envelope = ChartEnvelope.model_validate(payload)
    except ValidationError as exc:
        raise NoPriceData(f"响应结构无效: {exc.error_count()} 处错误")

    if not envelope.chart.result:
        raise NoPriceData("chart.result 为空")

    result = envelope.chart.result[0]
    if not result.has_close_prices() and not result.has_meta_price():
        raise NoPriceData("响应中没有可用价格")
    return result


def validate_chart_payload(payload: Any) -> Result[ChartResult]:
    """与 parse_chart_payload 相同，但以 Result 返回，供降级阶梯逐级判断"""
    try:
        return Result.success(parse_chart_payload(payload))
    except NoPriceData as exc:
        return Result.failure(exc.kind, str(exc))


class AcquisitionLayer:
    """数据获取层：缓存 → 精确请求 → 降级阶梯"""

    def __init__(
        self,
        relay: Optional[RelaySelector] = None,
        cache: Optional[CacheLayer] = None,
        ladder: Optional[Sequence[Tuple[str, str]]] = None,
    ):
        self._relay = relay if relay is not None else get_relay_selector()
        self._cache = cache if cache is not None else get_cache_layer()
        rungs = ladder if ladder is not None else settings.FALLBACK_LADDER
        self._ladder: List[RangeSpec] = [RangeSpec.of(r, i) for r, i in rungs]

    # ── URL 构造 ──────────────────────────────────────────

    @staticmethod
    def build_chart_url(symbol: str, rung: RangeSpec) -> str:
        query = urlencode({"interval": rung.interval.value, "range": rung.range.value})
        return f"{settings.CHART_URL}/{quote(symbol, safe='')}?{query}"

    @staticmethod
    def build_search_url(query: str) -> str:
        params = urlencode({
            "q": query,
            "quotesCount": settings.SEARCH_QUOTES_COUNT,
            "newsCount": 0,
        })
        return f"{settings.SEARCH_URL}?{params}"

    def plan(self, requested: RangeSpec) -> List[RangeSpec]:
        """请求阶梯：粗粒度请求不降级"""
        if requested.is_coarse:
            return [requested]
        return [requested] + self._ladder

    # ── 图表数据 ──────────────────────────────────────────

    async def fetch_chart(
        self,
        symbol: str,
        range_: Optional[str] = None,
        interval: Optional[str] = None,
    ) -> FetchOutcome:
        """获取单个代码的图表数据，失败时返回 available=False 的结果"""
        symbol = normalize_symbol(symbol)
        requested = RangeSpec.of(
            range_ or settings.DEFAULT_RANGE,
            interval or settings.DEFAULT_INTERVAL,
        )
        key_parts = (symbol, requested.range.value, requested.interval.value)

        cached = await self._cache.get(CHART_NAMESPACE, *key_parts)
        if cached is not None:
            return FetchOutcome(
                symbol=symbol,
                requested=requested,
                result=cached.result,
                served=cached.served,
                cache_hit=True,
            )

        outcome = FetchOutcome(symbol=symbol, requested=requested)
        rungs = self.plan(requested)
        for index, rung in enumerate(rungs):
            attempt = await self._attempt(symbol, rung)
            outcome.attempts.append(str(rung))
            if attempt.ok:
                if index > 0:
                    logger.info(f"{symbol}: 使用降级请求 {rung}（原请求 {requested}）")
                outcome.result = attempt.value
                outcome.served = rung
                outcome.error = None
                outcome.error_message = ""
                await self._cache.set(CachedChart(attempt.value, rung), CHART_NAMESPACE, *key_parts)
                return outcome

            outcome.error = attempt.error
            outcome.error_message = attempt.message
            if index + 1 < len(rungs):
                logger.warning(f"{symbol}: 请求 {rung} 失败（{attempt.message}），尝试 {rungs[index + 1]}")

        logger.warning(f"{symbol}: 所有请求均失败，最后错误: {outcome.error_message}")
        return outcome

    async def _attempt(self, symbol: str, rung: RangeSpec) -> Result[ChartResult]:
        url = self.build_chart_url(symbol, rung)
        try:
            payload = await self._relay.fetch_json(url)
        except NoRelayAvailable as exc:
            return Result.failure(exc.kind, str(exc))
        return validate_chart_payload(payload)

    # ── 代码搜索 ──────────────────────────────────────────

    async def search(self, query: str) -> List[SearchMatch]:
        """按关键词搜索代码，只保留上游标记为权威来源的结果"""
        if not query or not query.strip():
            return []
        try:
            payload = await self._relay.fetch_json(self.build_search_url(query.strip()))
        except NoRelayAvailable as exc:
            logger.warning(f"代码搜索失败: {exc}")
            return []

        try:
            envelope = SearchEnvelope.model_validate(payload)
        except ValidationError:
            logger.warning("代码搜索响应结构无效")
            return []

        matches = []
        for item in envelope.quotes or []:
            if not item.is_yahoo_finance or not item.symbol:
                continue
            matches.append(SearchMatch(
                symbol=item.symbol,
                name=item.shortname or item.longname or item.symbol,
                type=item.quote_type or "UNKNOWN",
                exchange=item.exchange,
            ))
        return matches


# ── 模块级别单例 ──────────────────────────────────────────
_acquisition: Optional[AcquisitionLayer] = None


def get_acquisition_layer() -> AcquisitionLayer:
    global _acquisition
    if _acquisition is None:
        _acquisition = AcquisitionLayer()
    return _acquisition
