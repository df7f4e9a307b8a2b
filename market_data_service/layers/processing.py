"""
Layer 3 – 数据处理层
把上游的并行数组 (timestamp, price) 清洗为 CleanSeries：
去掉空值 → 按时间戳去重（保留原始顺序中第一次出现的值）→ 按时间升序排序
"""

import logging
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from market_data_service.models.market import ChartResult, CleanSeries

logger = logging.getLogger(__name__)


class ProcessingLayer:
    """数据处理层：清洗 + 去重 + 排序"""

    def normalize_series(
        self,
        timestamps: Sequence[Optional[int]],
        prices: Sequence[Optional[float]],
    ) -> CleanSeries:
        """
        将原始时间戳 / 价格数组标准化为 CleanSeries

        全空或空输入返回空序列，由下游视为“无图表 / 无分析”
        """
        n = min(len(timestamps or []), len(prices or []))
        if n == 0:
            return CleanSeries()

        df = pd.DataFrame({
            "time": pd.to_numeric(pd.Series(list(timestamps[:n]), dtype="object"), errors="coerce"),
            "value": pd.to_numeric(pd.Series(list(prices[:n]), dtype="object"), errors="coerce"),
        })

        # 去掉空价格 / 空时间戳
        df = df[df["time"].notna() & np.isfinite(df["value"].astype(float))]
        if df.empty:
            return CleanSeries()

        # 重复时间戳保留第一次出现的值，之后再排序
        df = df.drop_duplicates(subset=["time"], keep="first")
        df = df.sort_values("time", kind="stable")

        dropped = n - len(df)
        if dropped:
            logger.debug(f"序列清洗移除 {dropped} 个点（空值或重复）")

        return CleanSeries(
            timestamps=tuple(int(t) for t in df["time"]),
            prices=tuple(float(v) for v in df["value"]),
        )

    def extract_series(self, result: ChartResult) -> CleanSeries:
        """从图表结果中提取价格序列，优先使用复权收盘价"""
        adjusted = result.adjcloses
        if adjusted is not None and any(p is not None for p in adjusted):
            prices = adjusted
        else:
            prices = result.closes
        return self.normalize_series(result.timestamps, prices)

    def to_frame(self, series: CleanSeries) -> pd.DataFrame:
        """CleanSeries 转换为 DataFrame（time, value）"""
        return pd.DataFrame({
            "time": list(series.timestamps),
            "value": list(series.prices),
        }, columns=["time", "value"])


# ── 模块级别单例 ──────────────────────────────────────────
_processor: Optional[ProcessingLayer] = None


def get_processing_layer() -> ProcessingLayer:
    global _processor
    if _processor is None:
        _processor = ProcessingLayer()
    return _processor
