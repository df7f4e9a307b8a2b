"""
组合服务
并发刷新所有持仓的行情流水线，同时获取 EUR/USD 汇率并计算组合估值。
任何一个代码的失败都只会降级为该代码的不可用标记，不会中断整个批次；
汇率获取失败时使用配置中的兜底汇率。
"""

import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from market_data_service.config import settings
from market_data_service.layers.acquisition import AcquisitionLayer, get_acquisition_layer
from market_data_service.layers.processing import get_processing_layer
from market_data_service.models.market import ErrorKind, SymbolQuote
from market_data_service.models.portfolio import Position, PortfolioSnapshot, PositionValuation
from market_data_service.services.quote_service import QuoteService, get_quote_service

logger = logging.getLogger(__name__)

_FX_RANGE = "5d"
_FX_INTERVAL = "1d"


class PortfolioService:
    """组合批量刷新与估值"""

    def __init__(
        self,
        quotes: Optional[QuoteService] = None,
        acquisition: Optional[AcquisitionLayer] = None,
    ):
        self._quotes = quotes if quotes is not None else get_quote_service()
        self._acq = acquisition if acquisition is not None else get_acquisition_layer()
        self._proc = get_processing_layer()

    # ── 批量行情 ──────────────────────────────────────────

    async def fetch_quotes(
        self,
        symbols: Sequence[str],
        range_: Optional[str] = None,
        interval: Optional[str] = None,
    ) -> List[SymbolQuote]:
        """并发获取所有代码，结果顺序与输入一致"""
        results = await asyncio.gather(
            *(self._quotes.get_quote(s, range_, interval) for s in symbols),
            return_exceptions=True,
        )
        quotes = []
        for symbol, result in zip(symbols, results):
            if isinstance(result, BaseException):
                logger.error(f"{symbol}: 行情流水线异常", exc_info=result)
                quotes.append(SymbolQuote(
                    symbol=symbol.strip().upper(),
                    available=False,
                    error=ErrorKind.UNEXPECTED,
                    message=str(result),
                ))
            else:
                quotes.append(result)
        return quotes

    # ── 汇率 ──────────────────────────────────────────────

    async def eur_usd_rate(self) -> Tuple[float, bool]:
        """返回 (汇率, 是否使用兜底值)"""
        try:
            outcome = await self._acq.fetch_chart(settings.FX_SYMBOL, _FX_RANGE, _FX_INTERVAL)
        except Exception as exc:
            logger.warning(f"汇率获取异常，使用兜底汇率 {settings.FX_FALLBACK_RATE}: {exc}")
            return settings.FX_FALLBACK_RATE, True

        rate = None
        if outcome.available:
            rate = outcome.result.meta.regular_market_price
            if rate is None:
                rate = self._proc.extract_series(outcome.result).last_price

        if not rate or rate <= 0:
            logger.warning(f"汇率不可用，使用兜底汇率 {settings.FX_FALLBACK_RATE}")
            return settings.FX_FALLBACK_RATE, True
        return float(rate), False

    # ── 组合刷新 ──────────────────────────────────────────

    async def refresh(
        self,
        positions: Sequence[Position],
        range_: Optional[str] = None,
        interval: Optional[str] = None,
    ) -> PortfolioSnapshot:
        """刷新整个组合：汇率与所有代码并发执行"""
        (rate, fx_fallback), quotes = await asyncio.gather(
            self.eur_usd_rate(),
            self.fetch_quotes([p.symbol for p in positions], range_, interval),
        )
        return self.value(positions, quotes, rate, fx_fallback)

    @staticmethod
    def value(
        positions: Sequence[Position],
        quotes: Sequence[SymbolQuote],
        rate: float,
        fx_fallback: bool = False,
    ) -> PortfolioSnapshot:
        """
        组合估值

        本币市值 = 价格 × 数量；USD 计价的持仓按汇率折算为 EUR，
        权重 = EUR 市值 / EUR 总市值 × 100
        """
        valuations = []
        total_eur = 0.0
        for position, quote in zip(positions, quotes):
            valuation = PositionValuation(symbol=quote.symbol, quantity=position.quantity, quote=quote)
            if quote.available and quote.analysis is not None:
                native = quote.analysis.price * position.quantity
                eur = native / rate if quote.analysis.currency == "USD" else native
                valuation.value_native = native
                valuation.value_eur = eur
                total_eur += eur
            valuations.append(valuation)

        for valuation in valuations:
            if valuation.value_eur is not None:
                valuation.weight_percent = (
                    valuation.value_eur / total_eur * 100 if total_eur > 0 else 0.0
                )

        available = sum(1 for q in quotes if q.available)
        return PortfolioSnapshot(
            positions=valuations,
            total_eur=total_eur,
            total_usd=total_eur * rate,
            eur_usd_rate=rate,
            fx_fallback=fx_fallback,
            available_count=available,
            unavailable_count=len(quotes) - available,
        )


# ── 模块级别单例 ──────────────────────────────────────────
_portfolio_service: Optional[PortfolioService] = None


def get_portfolio_service() -> PortfolioService:
    global _portfolio_service
    if _portfolio_service is None:
        _portfolio_service = PortfolioService()
    return _portfolio_service
