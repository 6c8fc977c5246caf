import asyncio
import logging

from sqlalchemy import select

from warehouse_erp.core.config import settings
from warehouse_erp.db.base import Base
from warehouse_erp.db.session import engine, SessionLocal

# 导入所有模型，确保表能被创建
from warehouse_erp.models import User  # noqa: F401

logger = logging.getLogger(__name__)


async def ensure_default_operator(db) -> None:
    """单机版：保证默认操作人存在"""
    user = await db.get(User, settings.DEFAULT_OPERATOR_ID)
    if user:
        return
    exists = await db.execute(select(User).where(User.username == "admin"))
    if exists.scalar_one_or_none():
        return
    db.add(User(
        id=settings.DEFAULT_OPERATOR_ID,
        username="admin",
        display_name="管理员",
        role="admin",
        status=True,
    ))
    await db.commit()
    logger.info("👤 已创建默认操作人 admin")


async def ensure_tables_exist() -> None:
    """
    确保数据库表存在（应用启动时调用）
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with SessionLocal() as db:
        await ensure_default_operator(db)


if __name__ == "__main__":
    asyncio.run(ensure_tables_exist())
