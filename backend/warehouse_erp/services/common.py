"""
服务层通用工具：单号生成、实体校验
"""

from datetime import datetime
from typing import Type

from fastapi import HTTPException
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse_erp.models.entity import Entity
from warehouse_erp.models.product import Product


async def generate_code(db: AsyncSession, column, prefix: str, width: int = 4) -> str:
    """生成单号：前缀 + 年月日 + 当日序号，如 PR2410160001

    取当日最大单号加一（删除草稿后不会复用已有单号）
    """
    code_prefix = f"{prefix}{datetime.now().strftime('%y%m%d')}"
    result = await db.execute(
        select(func.max(column)).where(column.like(f"{code_prefix}%"))
    )
    last_code = result.scalar()
    seq = 1
    if last_code:
        try:
            seq = int(last_code[len(code_prefix):]) + 1
        except ValueError:
            seq = 1
    return f"{code_prefix}{seq:0{width}d}"


async def get_or_404(db: AsyncSession, model: Type, obj_id: int, name: str = "记录"):
    obj = await db.get(model, obj_id)
    if not obj:
        raise HTTPException(status_code=404, detail=f"{name}不存在")
    return obj


async def get_entity_with_role(db: AsyncSession, entity_id: int, role: str) -> Entity:
    """获取指定角色的启用实体（仓库/供应商/客户）"""
    names = {"warehouse": "仓库", "supplier": "供应商", "customer": "客户"}
    entity = await db.get(Entity, entity_id)
    if not entity:
        raise HTTPException(status_code=404, detail=f"{names.get(role, role)}不存在")
    if role not in (entity.entity_type or ""):
        raise HTTPException(status_code=400, detail=f"{entity.name} 不是{names.get(role, role)}")
    if not entity.is_active:
        raise HTTPException(status_code=400, detail=f"{names.get(role, role)} {entity.name} 已停用")
    return entity


async def get_warehouse(db: AsyncSession, warehouse_id: int) -> Entity:
    return await get_entity_with_role(db, warehouse_id, "warehouse")


async def get_product(db: AsyncSession, product_id: int, active_only: bool = True) -> Product:
    """获取商品；新建单据只能用启用中的商品，已停用商品的存量仍可出库、调整、调拨"""
    product = await db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="商品不存在")
    if active_only and not product.is_active:
        raise HTTPException(status_code=400, detail=f"商品 {product.name} 已停用")
    return product
