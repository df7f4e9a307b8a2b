"""
健康检查路由
GET /health    - 服务状态、转发节点与缓存概况
GET /healthz   - 存活探针
GET /readyz    - 就绪探针（未配置转发节点时返回 503）
"""

import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from market_data_service import __version__
from market_data_service.config import settings
from market_data_service.layers.cache import get_cache_layer

router = APIRouter(tags=["健康检查"])


@router.get("/health")
async def health():
    """服务健康检查"""
    return {
        "success": True,
        "data": {
            "status": "ok",
            "version": __version__,
            "timestamp": int(time.time()),
            "service": "Market Data Service",
            "relays": {
                "count": len(settings.RELAY_URLS),
                "timeout": settings.RELAY_TIMEOUT,
                "sweeps": settings.RELAY_SWEEPS,
            },
            "fallback_ladder": ["/".join(rung) for rung in settings.FALLBACK_LADDER],
            "cache": await get_cache_layer().stats(),
        },
        "message": "服务运行正常",
    }


@router.get("/healthz")
async def healthz():
    return {"status": "ok"}


@router.get("/readyz")
async def readyz():
    if not settings.RELAY_URLS:
        return JSONResponse(status_code=503, content={"ready": False, "reason": "未配置转发节点"})
    return {"ready": True}
