import os
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from warehouse_erp.core.config import settings


def build_database_url(uri: str) -> str:
    """sqlite:/// 地址转换为 aiosqlite 驱动"""
    if uri.startswith("sqlite:///"):
        return uri.replace("sqlite:///", "sqlite+aiosqlite:///")
    return uri


# 仅在开发环境打印SQL（通过环境变量控制）
engine = create_async_engine(
    build_database_url(settings.SQLITE_DATABASE_URI),
    echo=os.getenv("SQL_DEBUG", "false").lower() == "true",
    future=True,
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)
