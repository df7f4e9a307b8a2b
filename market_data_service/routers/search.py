"""
代码搜索路由
GET /api/search?q=   - 按关键词搜索代码
"""

from fastapi import APIRouter, Query

from market_data_service.models.response import ApiResponse
from market_data_service.services.search_service import get_search_service

router = APIRouter(prefix="/api/search", tags=["代码搜索"])


@router.get("", response_model=ApiResponse)
async def search_symbols(q: str = Query(..., description="搜索关键词（代码或名称）")):
    """搜索代码"""
    matches = await get_search_service().search(q)
    return ApiResponse.ok(data={"keyword": q, "count": len(matches), "matches": matches})
