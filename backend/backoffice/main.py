"""
酒店后台 API 主应用入口
"""
import logging
import time
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from backoffice.config import settings
from backoffice.database import init_db
from backoffice.routers import analytics, resources, upload, webhooks
from backoffice_core.envelope import build_error_response
from backoffice_core.errors import ErrorCode
from backoffice_core.handlers import install_exception_handlers

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # 初始化数据库
    init_db()
    logger.info(f"{settings.APP_NAME} started")

    yield


# 创建应用
app = FastAPI(
    title=settings.APP_NAME,
    description="酒店后台资源管理 API",
    version="1.0.0",
    lifespan=lifespan
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.APP_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def envelope_boundary(request: Request, call_next):
    """记录请求起始时间；未捕获异常统一返回 500 信封"""
    request.state.started_at = time.perf_counter()
    try:
        return await call_next(request)
    except Exception:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return build_error_response(
            code=500,
            message="Internal server error",
            errors=[ErrorCode.INTERNAL_ERROR.value],
            started_at=request.state.started_at,
        )


install_exception_handlers(app)

# 注册路由
for router in resources.routers:
    app.include_router(router)
app.include_router(analytics.router)
app.include_router(upload.router)
app.include_router(webhooks.router)


@app.get("/")
def root():
    """根路径"""
    return {"name": settings.APP_NAME, "version": "1.0.0"}


@app.get("/health")
def health_check():
    """健康检查"""
    return {"status": "healthy"}
