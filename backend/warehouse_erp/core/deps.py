"""依赖注入 - 单机版（无认证）"""
from typing import AsyncGenerator, Optional

from fastapi import Header
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse_erp.core.config import settings
from warehouse_erp.db.session import SessionLocal


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    获取数据库会话依赖
    """
    async with SessionLocal() as session:
        yield session


async def get_operator_id(x_operator_id: Optional[int] = Header(None)) -> int:
    """当前操作人：读取 X-Operator-Id 请求头，缺省为系统默认操作人"""
    return x_operator_id or settings.DEFAULT_OPERATOR_ID
