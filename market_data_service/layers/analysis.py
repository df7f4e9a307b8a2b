"""
Layer 4 – 技术分析层
在 CleanSeries 上计算：参考价与涨跌幅、SMA50 / SMA200、趋势判断、年化波动率
纯函数计算，不访问网络或存储
"""

import logging
import math
from typing import Optional

import numpy as np
import pandas as pd

from market_data_service.exceptions import InsufficientSeriesError
from market_data_service.models.market import (
    AnalysisResult,
    ChartRange,
    CleanSeries,
    InstrumentMeta,
    Trend,
)

logger = logging.getLogger(__name__)

TRADING_DAYS_PER_YEAR = 252
SHORT_WINDOW = 50
LONG_WINDOW = 200


class AnalysisLayer:
    """技术分析层"""

    # ── 参考价 / 涨跌 ─────────────────────────────────────

    def reference_price(
        self,
        series: CleanSeries,
        meta: Optional[InstrumentMeta],
        range_: Optional[str],
    ) -> Optional[float]:
        """
        默认以区间首个价格为参考价；
        单日区间且有昨收价时改用昨收价（显示“较昨日”而非“较开盘”）
        """
        if range_ == ChartRange.ONE_DAY.value and meta is not None and meta.previous_close is not None:
            return meta.previous_close
        return series.first_price

    def compute_change(self, current: float, reference: float):
        """返回 (涨跌额, 涨跌幅%)，参考价为 0 时涨跌幅为 0"""
        change = current - reference
        if reference == 0:
            return change, 0.0
        return change, change / reference * 100

    # ── 均线 ──────────────────────────────────────────────

    def sma(self, series: CleanSeries, window: int) -> Optional[float]:
        """最近 window 个点的简单移动平均，数据不足返回 None"""
        if window <= 0 or len(series) < window:
            return None
        return float(pd.Series(series.prices[-window:]).mean())

    def classify_trend(
        self,
        current: float,
        sma_short: Optional[float],
        sma_long: Optional[float],
    ) -> Trend:
        """双均线趋势：高于两条均线为看涨，低于两条均线为看跌，其余为中性"""
        if sma_short is None or sma_long is None:
            return Trend.NEUTRAL
        if current > sma_short and current > sma_long:
            return Trend.BULLISH
        if current < sma_short and current < sma_long:
            return Trend.BEARISH
        return Trend.NEUTRAL

    # ── 波动率 ────────────────────────────────────────────

    def volatility(self, series: CleanSeries) -> float:
        """对数收益率总体标准差 × √252 × 100（年化百分比）"""
        prices = np.asarray(series.prices, dtype=float)
        if prices.size < 3:
            return 0.0
        with np.errstate(divide="ignore", invalid="ignore"):
            returns = np.log(prices[1:] / prices[:-1])
        # 非正价格产生的无效收益率不参与计算
        returns = returns[np.isfinite(returns)]
        if returns.size < 2:
            return 0.0
        return float(np.std(returns, ddof=0) * math.sqrt(TRADING_DAYS_PER_YEAR) * 100)

    # ── 汇总 ──────────────────────────────────────────────

    def analyze(
        self,
        series: CleanSeries,
        meta: InstrumentMeta,
        range_: Optional[str] = None,
    ) -> Optional[AnalysisResult]:
        """少于 2 个点返回 None，否则返回完整的分析结果"""
        if len(series) < 2:
            return None

        current = series.last_price
        reference = self.reference_price(series, meta, range_)
        change, change_percent = self.compute_change(current, reference)

        sma50 = self.sma(series, SHORT_WINDOW)
        sma200 = self.sma(series, LONG_WINDOW)

        return AnalysisResult(
            symbol=meta.symbol,
            name=meta.name,
            instrument_type=meta.instrument_type,
            currency=meta.currency,
            price=current,
            reference_price=reference,
            change=change,
            change_percent=change_percent,
            sma50=sma50,
            sma200=sma200,
            trend=self.classify_trend(current, sma50, sma200),
            volatility=self.volatility(series),
        )

    def require(
        self,
        series: CleanSeries,
        meta: InstrumentMeta,
        range_: Optional[str] = None,
    ) -> AnalysisResult:
        """与 analyze 相同，但数据不足时抛出 InsufficientSeriesError"""
        result = self.analyze(series, meta, range_)
        if result is None:
            raise InsufficientSeriesError(f"清洗后仅有 {len(series)} 个有效价格点")
        return result


# ── 模块级别单例 ──────────────────────────────────────────
_analysis: Optional[AnalysisLayer] = None


def get_analysis_layer() -> AnalysisLayer:
    global _analysis
    if _analysis is None:
        _analysis = AnalysisLayer()
    return _analysis
