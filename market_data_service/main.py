"""
行情数据服务
独立 FastAPI 应用程序入口

启动方式:
    uvicorn market_data_service.main:app --host 0.0.0.0 --port 8001
    python -m market_data_service.main
"""

import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from market_data_service import __version__
from market_data_service.config import settings
from market_data_service.exceptions import MarketDataError
from market_data_service.layers.relay import close_relay_selector
from market_data_service.models.response import ApiResponse
from market_data_service.routers import cache, health, portfolio, quotes, search

# ── 日志配置 ──────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ── 生命周期管理 ──────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用启动/关闭生命周期钩子"""
    logger.info("=" * 60)
    logger.info(f"🚀 Market Data Service v{__version__} 启动中")
    logger.info(f"   转发节点  : {len(settings.RELAY_URLS)} 个，单次超时 {settings.RELAY_TIMEOUT}s")
    logger.info(f"   缓存 TTL  : {settings.CACHE_TTL}s")
    logger.info(f"   降级阶梯  : {settings.FALLBACK_LADDER}")
    logger.info("=" * 60)

    if not settings.RELAY_URLS:
        logger.warning("⚠️ 未配置转发节点，所有行情请求都将返回不可用")

    yield

    logger.info("🔄 行情数据服务正在关闭...")
    await close_relay_selector()
    logger.info("✅ 行情数据服务已关闭")


# ── 应用实例 ──────────────────────────────────────────────
app = FastAPI(
    title="行情数据服务",
    description=(
        "组合看板的行情数据微服务，提供以下功能：\n"
        "- 📊 单代码行情与技术指标（涨跌幅 / SMA50 / SMA200 / 趋势 / 年化波动率）\n"
        "- 💼 组合批量刷新与 EUR / USD 估值\n"
        "- 🔎 代码搜索\n"
        "- 🌐 多转发节点轮询 + 日内数据降级阶梯\n"
        "- 🗄️ 短 TTL 内存缓存\n\n"
        "**分层架构**\n"
        "```\n"
        "Relay Layer        ← 转发节点轮询\n"
        "Acquisition Layer  ← 精确请求 + 降级阶梯\n"
        "Cache Layer        ← 内存缓存\n"
        "Processing Layer   ← 序列清洗\n"
        "Analysis Layer     ← 技术指标计算\n"
        "```"
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS 中间件 ───────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── 请求计时中间件 ─────────────────────────────────────────
_SLOW_REQUEST_MS = 3000


@app.middleware("http")
async def add_process_time(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    response.headers["X-Process-Time"] = f"{elapsed_ms:.1f}ms"
    # 转发节点全部超时时单个请求可能耗时很长
    if elapsed_ms > _SLOW_REQUEST_MS:
        logger.warning(f"慢请求 {request.method} {request.url.path}: {elapsed_ms:.0f}ms")
    return response


# ── 全局异常处理 ──────────────────────────────────────────
@app.exception_handler(MarketDataError)
async def market_data_error_handler(request: Request, exc: MarketDataError):
    logger.error(f"{request.url.path}: {exc.kind.value} - {exc}")
    return JSONResponse(
        status_code=502,
        content=ApiResponse.fail(error=exc.kind.value, message=str(exc)).model_dump(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"未处理的异常: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=ApiResponse.fail(error="内部服务错误", message=str(exc)).model_dump(),
    )


# ── 注册路由 ──────────────────────────────────────────────
app.include_router(health.router)
app.include_router(quotes.router)
app.include_router(portfolio.router)
app.include_router(search.router)
app.include_router(cache.router)


# ── 根路由 ───────────────────────────────────────────────
@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "Market Data Service",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


# ── 直接运行入口 ──────────────────────────────────────────
if __name__ == "__main__":
    uvicorn.run(
        "market_data_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
