"""
行情数据服务配置模块
支持从环境变量 / .env 读取配置：转发节点（relay）列表、单次请求超时、缓存 TTL、降级阶梯等
"""

from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_relay_urls() -> List[str]:
    """默认 CORS 转发节点，按优先级排列"""
    return [
        "https://corsproxy.io/?",
        "https://api.allorigins.win/raw?url=",
        "https://api.codetabs.com/v1/proxy?quest=",
    ]


def _default_fallback_ladder() -> List[List[str]]:
    """日内数据不可用时的降级请求：先 5 天日线，再 1 个月日线"""
    return [["5d", "1d"], ["1mo", "1d"]]


class MarketDataSettings(BaseSettings):
    """行情数据服务配置"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── 基础配置 ──────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8001)
    DEBUG: bool = Field(default=False)
    ALLOWED_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"]
    )

    # ── 上游接口 ──────────────────────────────────────────
    CHART_URL: str = Field(default="https://query1.finance.yahoo.com/v8/finance/chart")
    SEARCH_URL: str = Field(default="https://query1.finance.yahoo.com/v1/finance/search")
    SEARCH_QUOTES_COUNT: int = Field(default=10)
    USER_AGENT: str = Field(default="Mozilla/5.0 (compatible; market-data-service)")

    # ── 转发节点配置 ───────────────────────────────────────
    RELAY_URLS: List[str] = Field(default_factory=_default_relay_urls)
    RELAY_TIMEOUT: float = Field(default=8.0)       # 单次尝试超时（秒）
    RELAY_SWEEPS: int = Field(default=1)            # 全部节点轮询次数
    RELAY_RETRY_BACKOFF: float = Field(default=1.0)  # 轮询间隔基数（秒）

    # ── 请求默认值 / 降级阶梯 ──────────────────────────────
    DEFAULT_RANGE: str = Field(default="1y")
    DEFAULT_INTERVAL: str = Field(default="1d")
    FALLBACK_LADDER: List[List[str]] = Field(default_factory=_default_fallback_ladder)

    # ── 缓存配置 ──────────────────────────────────────────
    CACHE_TTL: int = Field(default=300)  # 行情缓存 TTL（秒）

    # ── 汇率配置 ──────────────────────────────────────────
    FX_SYMBOL: str = Field(default="EURUSD=X")
    FX_FALLBACK_RATE: float = Field(default=1.08)

    # ── 日志配置 ──────────────────────────────────────────
    LOG_LEVEL: str = Field(default="INFO")

    @field_validator("RELAY_TIMEOUT")
    @classmethod
    def _check_timeout(cls, value: float) -> float:
        if not 5.0 <= value <= 10.0:
            raise ValueError("RELAY_TIMEOUT 必须在 5 到 10 秒之间")
        return value

    @field_validator("RELAY_SWEEPS")
    @classmethod
    def _check_sweeps(cls, value: int) -> int:
        if value < 1:
            raise ValueError("RELAY_SWEEPS 至少为 1")
        return value

    @field_validator("FALLBACK_LADDER")
    @classmethod
    def _check_ladder(cls, value: List[List[str]]) -> List[List[str]]:
        for rung in value:
            if len(rung) != 2:
                raise ValueError(f"降级阶梯的每一级必须是 [range, interval]: {rung}")
        return value


@lru_cache
def get_settings() -> MarketDataSettings:
    """获取全局配置（单例）"""
    return MarketDataSettings()


settings = get_settings()
