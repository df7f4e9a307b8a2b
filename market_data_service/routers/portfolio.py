"""
组合路由
POST /api/portfolio/refresh   - 批量刷新持仓行情并估值
"""

from fastapi import APIRouter

from market_data_service.models.portfolio import PortfolioRequest
from market_data_service.models.response import ApiResponse
from market_data_service.services.portfolio_service import get_portfolio_service

router = APIRouter(prefix="/api/portfolio", tags=["组合"])


@router.post("/refresh", response_model=ApiResponse)
async def refresh_portfolio(body: PortfolioRequest):
    """并发刷新全部持仓；单个代码失败只会标记为不可用"""
    snapshot = await get_portfolio_service().refresh(
        body.positions, body.range.value, body.interval.value
    )
    return ApiResponse.ok(
        data=snapshot,
        message=f"{snapshot.available_count} 个可用，{snapshot.unavailable_count} 个不可用",
    )
