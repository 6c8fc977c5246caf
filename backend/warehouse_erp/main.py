from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import os

from warehouse_erp.api.api_v1.api import api_router
from warehouse_erp.core.config import settings
from warehouse_erp.core.logging_config import setup_logging, get_logger
from warehouse_erp.db.init_db import ensure_tables_exist
from warehouse_erp.services.scheduler import init_scheduler, shutdown_scheduler

# 初始化日志系统
log_level = os.getenv("LOG_LEVEL", "INFO")
setup_logging(log_level)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logger.info("🚀 应用启动中...")

    # 确保数据库表和默认操作人存在
    try:
        await ensure_tables_exist()
        logger.info("📊 数据库表已就绪")
    except Exception as e:
        logger.warning(f"数据库表初始化警告: {e}")

    init_scheduler()
    yield
    logger.info("🛑 应用关闭中...")
    shutdown_scheduler()


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    description="仓储与财务管理系统 - 单机版",
    lifespan=lifespan
)

# CORS配置
if settings.BACKEND_CORS_ORIGINS:
    logger.info(f"配置CORS，允许的源: {settings.BACKEND_CORS_ORIGINS}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

logger.info(f"注册API路由，前缀: {settings.API_V1_STR}")
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/")
async def root():
    return {"message": settings.PROJECT_NAME}


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000, log_level="info")
