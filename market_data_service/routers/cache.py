"""
缓存管理路由
GET  /api/cache/stats     - 缓存统计
POST /api/cache/clear     - 清理缓存
"""

from typing import List, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from market_data_service.layers.cache import get_cache_layer
from market_data_service.models.response import ApiResponse

router = APIRouter(prefix="/api/cache", tags=["缓存管理"])


class ClearRequest(BaseModel):
    namespace: Optional[str] = None
    key_parts: Optional[List[str]] = None


@router.get("/stats", response_model=ApiResponse)
async def cache_stats():
    """获取缓存统计信息"""
    stats = await get_cache_layer().stats()
    return ApiResponse.ok(data=stats)


@router.post("/clear", response_model=ApiResponse)
async def clear_cache(body: ClearRequest):
    """清理指定键、指定命名空间或全部缓存"""
    cache = get_cache_layer()
    if body.namespace and body.key_parts:
        removed = int(await cache.delete(body.namespace, *body.key_parts))
    else:
        removed = await cache.clear(body.namespace)
    return ApiResponse.ok(data={"removed": removed}, message="缓存已清理")
