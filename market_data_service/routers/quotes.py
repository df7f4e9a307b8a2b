"""
行情路由
GET /api/quotes/{symbol}         - 单个代码的行情与分析
GET /api/quotes/{symbol}/chart   - 行情 + 图表视图
"""

from fastapi import APIRouter, HTTPException, Query, status

from market_data_service.config import settings
from market_data_service.models.market import ChartInterval, ChartRange
from market_data_service.models.response import ApiResponse
from market_data_service.services.quote_service import get_quote_service

router = APIRouter(prefix="/api/quotes", tags=["行情"])


@router.get("/{symbol}", response_model=ApiResponse)
async def get_quote(
    symbol: str,
    range_: ChartRange = Query(default=ChartRange(settings.DEFAULT_RANGE), alias="range"),
    interval: ChartInterval = Query(default=ChartInterval(settings.DEFAULT_INTERVAL)),
):
    """获取行情与技术指标；数据不可用时 available=false，而不是报错"""
    try:
        quote = await get_quote_service().get_quote(symbol, range_.value, interval.value)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if not quote.available:
        return ApiResponse.degraded(
            data=quote,
            error=quote.error.value if quote.error else None,
            message=quote.message or "行情暂不可用",
        )
    return ApiResponse.ok(data=quote)


@router.get("/{symbol}/chart", response_model=ApiResponse)
async def get_chart(
    symbol: str,
    range_: ChartRange = Query(default=ChartRange(settings.DEFAULT_RANGE), alias="range"),
    interval: ChartInterval = Query(default=ChartInterval(settings.DEFAULT_INTERVAL)),
    sma: bool = Query(default=True, description="是否附带 SMA50 / SMA200 曲线"),
):
    """获取行情与图表视图"""
    try:
        result = await get_quote_service().get_chart(symbol, range_.value, interval.value, show_sma=sma)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return ApiResponse.ok(data=result)
