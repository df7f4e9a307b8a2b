"""
图表视图构建
纯函数：(CleanSeries, ChartViewConfig) → ChartView
每次调用返回新的视图描述，由调用方持有，不保留任何模块级图表状态
"""

from typing import List, Optional

import pandas as pd

from market_data_service.layers.analysis import LONG_WINDOW, SHORT_WINDOW
from market_data_service.layers.processing import get_processing_layer
from market_data_service.models.chart import ChartPoint, ChartView, ChartViewConfig
from market_data_service.models.market import CleanSeries


def _rolling_points(df: pd.DataFrame, window: int) -> List[ChartPoint]:
    """只输出完整窗口的滚动均值点"""
    if len(df) < window:
        return []
    rolled = df["value"].rolling(window=window, min_periods=window).mean()
    return [
        ChartPoint(time=int(t), value=float(v))
        for t, v in zip(df["time"], rolled)
        if pd.notna(v)
    ]


def build_chart_view(
    symbol: str,
    series: CleanSeries,
    config: Optional[ChartViewConfig] = None,
) -> ChartView:
    config = config or ChartViewConfig()
    view = ChartView(symbol=symbol, range=config.range, currency=config.currency)
    if series.empty:
        return view

    df = get_processing_layer().to_frame(series)
    view.points = [ChartPoint(time=t, value=v) for t, v in zip(series.timestamps, series.prices)]
    view.start_time = series.timestamps[0]
    view.end_time = series.timestamps[-1]

    first, last = series.first_price, series.last_price
    if first:
        view.performance_percent = (last - first) / first * 100
    view.direction = "up" if (view.performance_percent or 0) >= 0 else "down"

    if config.show_sma50:
        view.sma50 = _rolling_points(df, SHORT_WINDOW)
    if config.show_sma200:
        view.sma200 = _rolling_points(df, LONG_WINDOW)
    return view
