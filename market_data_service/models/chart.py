"""图表视图模型：由 build_chart_view 生成，交给前端图表组件渲染"""

from typing import List, Optional

from pydantic import BaseModel, Field


class ChartViewConfig(BaseModel):
    range: str = "1y"
    currency: Optional[str] = None
    show_sma50: bool = True
    show_sma200: bool = True


class ChartPoint(BaseModel):
    time: int
    value: float


class ChartView(BaseModel):
    symbol: str
    range: str
    currency: Optional[str] = None
    points: List[ChartPoint] = Field(default_factory=list)
    sma50: List[ChartPoint] = Field(default_factory=list)
    sma200: List[ChartPoint] = Field(default_factory=list)
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    performance_percent: Optional[float] = None
    direction: str = "up"

    @property
    def empty(self) -> bool:
        return not self.points
