"""组合估值模型"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from market_data_service.models.market import ChartInterval, ChartRange, SymbolQuote, normalize_symbol


class Position(BaseModel):
    symbol: str
    quantity: float = 0.0

    @field_validator("symbol")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return normalize_symbol(value)


class PortfolioRequest(BaseModel):
    positions: List[Position] = Field(default_factory=list)
    range: ChartRange = ChartRange.ONE_YEAR
    interval: ChartInterval = ChartInterval.ONE_DAY


class PositionValuation(BaseModel):
    symbol: str
    quantity: float
    quote: SymbolQuote
    value_native: Optional[float] = None
    value_eur: Optional[float] = None
    weight_percent: Optional[float] = None


class PortfolioSnapshot(BaseModel):
    positions: List[PositionValuation] = Field(default_factory=list)
    total_eur: float = 0.0
    total_usd: float = 0.0
    eur_usd_rate: float
    fx_fallback: bool = False
    available_count: int = 0
    unavailable_count: int = 0
