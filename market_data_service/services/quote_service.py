"""
行情服务
整合获取、处理、分析三层：单个代码的 获取 → 清洗 → 分析 流水线
数据问题不抛异常，统一返回 available=False 的 SymbolQuote
"""

import logging
from typing import Any, Dict, Optional, Tuple

from market_data_service.exceptions import InsufficientSeriesError
from market_data_service.layers.acquisition import AcquisitionLayer, get_acquisition_layer
from market_data_service.layers.analysis import get_analysis_layer
from market_data_service.layers.presentation import build_chart_view
from market_data_service.layers.processing import get_processing_layer
from market_data_service.models.chart import ChartViewConfig
from market_data_service.models.market import CleanSeries, InstrumentMeta, SymbolQuote

logger = logging.getLogger(__name__)


class QuoteService:
    """单代码行情服务"""

    def __init__(self, acquisition: Optional[AcquisitionLayer] = None):
        self._acq = acquisition if acquisition is not None else get_acquisition_layer()
        self._proc = get_processing_layer()
        self._analysis = get_analysis_layer()

    async def get_quote(
        self,
        symbol: str,
        range_: Optional[str] = None,
        interval: Optional[str] = None,
    ) -> SymbolQuote:
        quote, _ = await self._pipeline(symbol, range_, interval)
        return quote

    async def get_chart(
        self,
        symbol: str,
        range_: Optional[str] = None,
        interval: Optional[str] = None,
        show_sma: bool = True,
    ) -> Dict[str, Any]:
        """
        获取行情 + 图表视图

        Returns:
            {"quote": SymbolQuote, "chart": ChartView}
        """
        quote, series = await self._pipeline(symbol, range_, interval)
        config = ChartViewConfig(
            range=quote.range or range_ or "1y",
            currency=quote.meta.currency if quote.meta else None,
            show_sma50=show_sma,
            show_sma200=show_sma,
        )
        return {"quote": quote, "chart": build_chart_view(quote.symbol, series, config)}

    async def _pipeline(
        self,
        symbol: str,
        range_: Optional[str],
        interval: Optional[str],
    ) -> Tuple[SymbolQuote, CleanSeries]:
        outcome = await self._acq.fetch_chart(symbol, range_, interval)
        if not outcome.available:
            return SymbolQuote(
                symbol=outcome.symbol,
                available=False,
                error=outcome.error,
                message=outcome.error_message,
                range=outcome.requested.range.value,
                interval=outcome.requested.interval.value,
            ), CleanSeries()

        served = outcome.served
        meta = InstrumentMeta.from_chart_meta(outcome.result.meta, outcome.symbol)
        series = self._proc.extract_series(outcome.result)
        base = dict(
            symbol=outcome.symbol,
            meta=meta,
            range=served.range.value,
            interval=served.interval.value,
            cache_hit=outcome.cache_hit,
        )

        try:
            analysis = self._analysis.require(series, meta, served.range.value)
        except InsufficientSeriesError as exc:
            logger.info(f"{outcome.symbol}: 无法分析（{exc}）")
            return SymbolQuote(available=False, error=exc.kind, message=str(exc), **base), series

        return SymbolQuote(available=True, analysis=analysis, **base), series


# ── 模块级别单例 ──────────────────────────────────────────
_quote_service: Optional[QuoteService] = None


def get_quote_service() -> QuoteService:
    global _quote_service
    if _quote_service is None:
        _quote_service = QuoteService()
    return _quote_service
