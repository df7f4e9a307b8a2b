"""
行情数据异常体系
每个异常携带一个 ErrorKind，便于在降级阶梯中作为显式结果值传递
"""

from market_data_service.models.market import ErrorKind


class MarketDataError(Exception):
    """行情数据基础异常"""

    kind: ErrorKind = ErrorKind.UNEXPECTED


class RelayTransportError(MarketDataError):
    """单个转发节点失败：网络错误、超时、非 2xx、空响应或非 JSON"""

    kind = ErrorKind.RELAY_TRANSPORT

    def __init__(self, relay: str, reason: str):
        self.relay = relay
        self.reason = reason
        super().__init__(f"{relay}: {reason}")


class NoRelayAvailable(MarketDataError):
    """所有转发节点均失败，消息为最后一次观察到的错误"""

    kind = ErrorKind.NO_RELAY_AVAILABLE

    def __init__(self, last_error: str = "所有转发节点均不可用"):
        self.last_error = last_error
        super().__init__(last_error)


class NoPriceData(MarketDataError):
    """响应结构有效，但既没有收盘价也没有元数据价格"""

    kind = ErrorKind.NO_PRICE_DATA


class InsufficientSeriesError(MarketDataError):
    """清洗后的序列少于 2 个点，无法分析"""

    kind = ErrorKind.INSUFFICIENT_SERIES
