"""
行情数据模型
  - 请求参数：Symbol / ChartRange / ChartInterval / RangeSpec
  - 上游响应结构：ChartEnvelope → ChartResult（在接入边界一次性校验）
  - 内部结构：CleanSeries / InstrumentMeta / AnalysisResult / SymbolQuote
  - 显式结果值：Result / ErrorKind
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, List, Optional, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


# ── 枚举 ──────────────────────────────────────────────────

class ErrorKind(str, Enum):
    RELAY_TRANSPORT = "relay_transport"
    NO_RELAY_AVAILABLE = "no_relay_available"
    NO_PRICE_DATA = "no_price_data"
    INSUFFICIENT_SERIES = "insufficient_series"
    UNEXPECTED = "unexpected"


class ChartRange(str, Enum):
    ONE_DAY = "1d"
    FIVE_DAYS = "5d"
    ONE_MONTH = "1mo"
    THREE_MONTHS = "3mo"
    SIX_MONTHS = "6mo"
    ONE_YEAR = "1y"
    TWO_YEARS = "2y"
    FIVE_YEARS = "5y"
    TEN_YEARS = "10y"
    YEAR_TO_DATE = "ytd"
    MAX = "max"


class ChartInterval(str, Enum):
    ONE_MINUTE = "1m"
    TWO_MINUTES = "2m"
    FIVE_MINUTES = "5m"
    FIFTEEN_MINUTES = "15m"
    THIRTY_MINUTES = "30m"
    SIXTY_MINUTES = "60m"
    NINETY_MINUTES = "90m"
    ONE_HOUR = "1h"
    ONE_DAY = "1d"
    FIVE_DAYS = "5d"
    ONE_WEEK = "1wk"
    ONE_MONTH = "1mo"
    THREE_MONTHS = "3mo"


# 不会触发降级阶梯的粗粒度采样间隔
COARSE_INTERVALS = frozenset({ChartInterval.ONE_DAY, ChartInterval.ONE_WEEK, ChartInterval.ONE_MONTH})


class InstrumentType(str, Enum):
    EQUITY = "EQUITY"
    ETF = "ETF"
    MUTUALFUND = "MUTUALFUND"
    INDEX = "INDEX"
    CRYPTOCURRENCY = "CRYPTOCURRENCY"
    CURRENCY = "CURRENCY"
    FUTURE = "FUTURE"
    OPTION = "OPTION"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Optional[str]) -> "InstrumentType":
        if not value:
            return cls.UNKNOWN
        try:
            return cls(value.upper())
        except ValueError:
            return cls.UNKNOWN


class Trend(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


def normalize_symbol(symbol: str) -> str:
    """代码统一去空格并转大写"""
    cleaned = (symbol or "").strip().upper()
    if not cleaned:
        raise ValueError("symbol 不能为空")
    return cleaned


# ── 请求参数 ──────────────────────────────────────────────

@dataclass(frozen=True)
class RangeSpec:
    """(range, interval) 组合"""

    range: ChartRange
    interval: ChartInterval

    @classmethod
    def of(cls, range_: str, interval: str) -> "RangeSpec":
        return cls(ChartRange(range_), ChartInterval(interval))

    @property
    def is_coarse(self) -> bool:
        return self.interval in COARSE_INTERVALS

    def __str__(self) -> str:
        return f"{self.range.value}/{self.interval.value}"


# ── 显式结果值 ────────────────────────────────────────────

@dataclass(frozen=True)
class Result(Generic[T]):
    """成功时携带 value，失败时携带 error 与诊断信息"""

    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str = "") -> "Result[T]":
        return cls(error=kind, message=message)


# ── 上游响应结构 ──────────────────────────────────────────

class _UpstreamModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ChartMeta(_UpstreamModel):
    symbol: Optional[str] = None
    currency: Optional[str] = None
    instrument_type: Optional[str] = Field(default=None, alias="instrumentType")
    exchange_name: Optional[str] = Field(default=None, alias="exchangeName")
    short_name: Optional[str] = Field(default=None, alias="shortName")
    long_name: Optional[str] = Field(default=None, alias="longName")
    regular_market_price: Optional[float] = Field(default=None, alias="regularMarketPrice")
    chart_previous_close: Optional[float] = Field(default=None, alias="chartPreviousClose")
    previous_close: Optional[float] = Field(default=None, alias="previousClose")
    range: Optional[str] = None
    data_granularity: Optional[str] = Field(default=None, alias="dataGranularity")


class QuoteBlock(_UpstreamModel):
    close: Optional[List[Optional[float]]] = None


class AdjCloseBlock(_UpstreamModel):
    adjclose: Optional[List[Optional[float]]] = None


class Indicators(_UpstreamModel):
    quote: List[QuoteBlock] = Field(default_factory=list)
    adjclose: Optional[List[AdjCloseBlock]] = None


class ChartResult(_UpstreamModel):
    """chart.result[0]"""

    meta: ChartMeta = Field(default_factory=ChartMeta)
    timestamp: Optional[List[Optional[int]]] = None
    indicators: Indicators = Field(default_factory=Indicators)

    @property
    def timestamps(self) -> List[Optional[int]]:
        return list(self.timestamp or [])

    @property
    def closes(self) -> List[Optional[float]]:
        if not self.indicators.quote:
            return []
        return list(self.indicators.quote[0].close or [])

    @property
    def adjcloses(self) -> Optional[List[Optional[float]]]:
        blocks = self.indicators.adjclose
        if not blocks or not blocks[0].adjclose:
            return None
        return list(blocks[0].adjclose)

    def has_close_prices(self) -> bool:
        return any(p is not None for p in self.closes)

    def has_meta_price(self) -> bool:
        meta = self.meta
        return (
            meta.regular_market_price is not None
            or meta.chart_previous_close is not None
            or meta.previous_close is not None
        )


class ChartBody(_UpstreamModel):
    result: Optional[List[ChartResult]] = None
    error: Optional[Any] = None


class ChartEnvelope(_UpstreamModel):
    chart: ChartBody


class SearchQuote(_UpstreamModel):
    symbol: Optional[str] = None
    shortname: Optional[str] = None
    longname: Optional[str] = None
    quote_type: Optional[str] = Field(default=None, alias="quoteType")
    exchange: Optional[str] = None
    is_yahoo_finance: bool = Field(default=False, alias="isYahooFinance")


class SearchEnvelope(_UpstreamModel):
    quotes: Optional[List[SearchQuote]] = None


# ── 内部结构 ──────────────────────────────────────────────

@dataclass(frozen=True)
class CleanSeries:
    """时间严格递增、无空值、无重复的价格序列"""

    timestamps: Tuple[int, ...] = ()
    prices: Tuple[float, ...] = ()

    def __len__(self) -> int:
        return len(self.prices)

    @property
    def empty(self) -> bool:
        return not self.prices

    @property
    def first_price(self) -> Optional[float]:
        return self.prices[0] if self.prices else None

    @property
    def last_price(self) -> Optional[float]:
        return self.prices[-1] if self.prices else None


class InstrumentMeta(BaseModel):
    symbol: str
    name: str
    currency: Optional[str] = None
    instrument_type: InstrumentType = InstrumentType.UNKNOWN
    exchange: Optional[str] = None
    previous_close: Optional[float] = None
    regular_market_price: Optional[float] = None
    range: Optional[str] = None
    data_granularity: Optional[str] = None

    @classmethod
    def from_chart_meta(cls, meta: ChartMeta, symbol: str) -> "InstrumentMeta":
        sym = meta.symbol or symbol
        return cls(
            symbol=sym,
            name=meta.short_name or meta.long_name or sym,
            currency=meta.currency,
            instrument_type=InstrumentType.parse(meta.instrument_type),
            exchange=meta.exchange_name,
            previous_close=(
                meta.chart_previous_close
                if meta.chart_previous_close is not None
                else meta.previous_close
            ),
            regular_market_price=meta.regular_market_price,
            range=meta.range,
            data_granularity=meta.data_granularity,
        )


class AnalysisResult(BaseModel):
    symbol: str
    name: str
    instrument_type: InstrumentType = InstrumentType.UNKNOWN
    currency: Optional[str] = None
    price: float
    reference_price: float
    change: float
    change_percent: float
    sma50: Optional[float] = None
    sma200: Optional[float] = None
    trend: Trend = Trend.NEUTRAL
    volatility: float = 0.0


@dataclass
class FetchOutcome:
    """编排器的单次请求结果：要么有可用行情，要么是显式的不可用标记"""

    symbol: str
    requested: RangeSpec
    result: Optional[ChartResult] = None
    served: Optional[RangeSpec] = None
    error: Optional[ErrorKind] = None
    error_message: str = ""
    cache_hit: bool = False
    attempts: List[str] = field(default_factory=list)

    @property
    def available(self) -> bool:
        return self.result is not None


class SymbolQuote(BaseModel):
    """单个代码的完整流水线输出（获取 → 清洗 → 分析）"""

    symbol: str
    available: bool
    analysis: Optional[AnalysisResult] = None
    meta: Optional[InstrumentMeta] = None
    error: Optional[ErrorKind] = None
    message: str = ""
    range: Optional[str] = None
    interval: Optional[str] = None
    cache_hit: bool = False


class SearchMatch(BaseModel):
    symbol: str
    name: str
    type: str = InstrumentType.UNKNOWN.value
    exchange: Optional[str] = None
