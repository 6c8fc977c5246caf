"""
库存批次服务 - 批次查询、FEFO 分配、过期处理

FEFO：先到期先出。按到期日升序（无到期日的排最后），同到期日按入库时间、ID 排序
"""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from fastapi import HTTPException
from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse_erp.models.batch import Batch, BatchAllocation
from warehouse_erp.models.product import Product
from warehouse_erp.services.common import generate_code

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

# FEFO 排序
FEFO_ORDER = (
    Batch.expiry_date.is_(None),
    Batch.expiry_date.asc(),
    Batch.created_at.asc(),
    Batch.id.asc(),
)


def allocatable_conditions(today: Optional[date] = None) -> list:
    """可分配批次条件：可用、有剩余、未过期、未删除"""
    today = today or date.today()
    return [
        Batch.deleted_at.is_(None),
        Batch.status == "available",
        Batch.remaining_quantity > 0,
        or_(Batch.expiry_date.is_(None), Batch.expiry_date >= today),
    ]


async def generate_batch_code(db: AsyncSession) -> str:
    return await generate_code(db, Batch.batch_code, "LOT")


async def get_batch(db: AsyncSession, batch_id: int, for_update: bool = False) -> Batch:
    query = select(Batch).where(Batch.id == batch_id, Batch.deleted_at.is_(None))
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    batch = result.scalar_one_or_none()
    if not batch:
        raise HTTPException(status_code=404, detail="批次不存在")
    return batch


async def create_batch(
    db: AsyncSession,
    *,
    product_id: int,
    warehouse_id: int,
    quantity: Decimal,
    unit_cost: Decimal,
    operator_id: int,
    supplier_id: Optional[int] = None,
    inbound_batch_id: Optional[int] = None,
    quality_check_id: Optional[int] = None,
    parent_batch_id: Optional[int] = None,
    manufacturing_date: Optional[date] = None,
    expiry_date: Optional[date] = None,
    is_opening: bool = False,
    notes: Optional[str] = None,
) -> Batch:
    """新建批次记录（只建批次，不动库存）"""
    if quantity <= 0:
        raise HTTPException(status_code=400, detail="批次数量必须大于0")
    if manufacturing_date and expiry_date and expiry_date < manufacturing_date:
        raise HTTPException(status_code=400, detail="到期日期不能早于生产日期")

    now = datetime.utcnow()
    batch = Batch(
        batch_code=await generate_batch_code(db),
        product_id=product_id,
        warehouse_id=warehouse_id,
        supplier_id=supplier_id,
        inbound_batch_id=inbound_batch_id,
        quality_check_id=quality_check_id,
        parent_batch_id=parent_batch_id,
        quantity=quantity,
        remaining_quantity=quantity,
        unit_cost=unit_cost or ZERO,
        manufacturing_date=manufacturing_date,
        expiry_date=expiry_date,
        status="expired" if expiry_date and expiry_date < date.today() else "available",
        is_opening=is_opening,
        notes=notes,
        created_by=operator_id,
        created_at=now,
        updated_at=now,
    )
    db.add(batch)
    await db.flush()
    return batch


async def get_available_batches(
    db: AsyncSession,
    product_id: int,
    warehouse_id: Optional[int] = None,
    for_update: bool = False,
) -> List[Batch]:
    """可出库批次（FEFO 顺序）"""
    # 先写入未提交的批次扣减，保证查询到的剩余数量是最新的
    await db.flush()
    conditions = [Batch.product_id == product_id] + allocatable_conditions()
    if warehouse_id:
        conditions.append(Batch.warehouse_id == warehouse_id)
    query = select(Batch).where(and_(*conditions)).order_by(*FEFO_ORDER)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_batches_with_remaining(
    db: AsyncSession, product_id: int, warehouse_id: int
) -> List[Batch]:
    """所有有剩余的批次（含过期、冻结），用于盘亏和调整扣减"""
    await db.flush()
    query = (
        select(Batch)
        .where(
            Batch.product_id == product_id,
            Batch.warehouse_id == warehouse_id,
            Batch.deleted_at.is_(None),
            Batch.remaining_quantity > 0,
        )
        .order_by(*FEFO_ORDER)
        .with_for_update()
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_available_quantity(
    db: AsyncSession, product_id: int, warehouse_id: Optional[int] = None
) -> Decimal:
    await db.flush()
    conditions = [Batch.product_id == product_id] + allocatable_conditions()
    if warehouse_id:
        conditions.append(Batch.warehouse_id == warehouse_id)
    result = await db.execute(
        select(func.coalesce(func.sum(Batch.remaining_quantity), 0)).where(and_(*conditions))
    )
    return Decimal(str(result.scalar() or 0))


async def plan_allocation(
    db: AsyncSession,
    product_id: int,
    quantity: Decimal,
    warehouse_id: Optional[int] = None,
) -> List[Tuple[Batch, Decimal]]:
    """按 FEFO 计算出库方案 [(批次, 数量)]，可用数量不足时报错"""
    if quantity <= 0:
        raise HTTPException(status_code=400, detail="出库数量必须大于0")

    batches = await get_available_batches(db, product_id, warehouse_id, for_update=True)
    plan: List[Tuple[Batch, Decimal]] = []
    remaining = quantity
    for batch in batches:
        if remaining <= 0:
            break
        take = min(remaining, batch.remaining_quantity)
        plan.append((batch, take))
        remaining -= take

    if remaining > 0:
        product = await db.get(Product, product_id)
        name = product.name if product else product_id
        raise HTTPException(
            status_code=400,
            detail=f"{name} 可用批次库存不足：可用 {quantity - remaining}，需要 {quantity}，缺少 {remaining}",
        )
    return plan


def deduct_from_batch(
    db: AsyncSession,
    batch: Batch,
    quantity: Decimal,
    reference_type: str,
    reference_id: int,
    allow_unavailable: bool = False,
) -> BatchAllocation:
    """从指定批次扣减，并记录扣减明细"""
    if quantity <= 0:
        raise HTTPException(status_code=400, detail="扣减数量必须大于0")
    if not allow_unavailable and not batch.is_allocatable:
        raise HTTPException(status_code=400, detail=f"批次 {batch.batch_code} 当前不可出库（{batch.status_display}）")
    if quantity > batch.remaining_quantity:
        raise HTTPException(
            status_code=400,
            detail=f"批次 {batch.batch_code} 剩余不足：剩余 {batch.remaining_quantity}，需要 {quantity}",
        )

    batch.remaining_quantity = batch.remaining_quantity - quantity
    batch.update_status()

    allocation = BatchAllocation(
        batch_id=batch.id,
        reference_type=reference_type,
        reference_id=reference_id,
        quantity=quantity,
        unit_cost=batch.unit_cost,
        restored=False,
        created_at=datetime.utcnow(),
    )
    db.add(allocation)
    return allocation


async def consume_fefo(
    db: AsyncSession,
    product_id: int,
    quantity: Decimal,
    warehouse_id: int,
    reference_type: str,
    reference_id: int,
) -> List[Tuple[Batch, BatchAllocation]]:
    """按 FEFO 方案扣减批次（不动库存汇总）"""
    plan = await plan_allocation(db, product_id, quantity, warehouse_id)
    return [
        (batch, deduct_from_batch(db, batch, qty, reference_type, reference_id))
        for batch, qty in plan
    ]


async def update_batch(db: AsyncSession, batch_id: int, data) -> Batch:
    """只允许修改供应商、日期、备注"""
    batch = await get_batch(db, batch_id, for_update=True)
    update_data = data.model_dump(exclude_unset=True)
    manufacturing_date = update_data.get("manufacturing_date", batch.manufacturing_date)
    expiry_date = update_data.get("expiry_date", batch.expiry_date)
    if manufacturing_date and expiry_date and expiry_date < manufacturing_date:
        raise HTTPException(status_code=400, detail="到期日期不能早于生产日期")

    for field, value in update_data.items():
        setattr(batch, field, value)

    # 改了有效期要重新判断过期状态
    if "expiry_date" in update_data and batch.status in ("available", "expired"):
        batch.status = "expired" if batch.is_expired else "available"
    return batch


async def get_allocations(
    db: AsyncSession, reference_type: str, reference_ids: List[int], include_restored: bool = False
) -> List[BatchAllocation]:
    if not reference_ids:
        return []
    await db.flush()
    conditions = [
        BatchAllocation.reference_type == reference_type,
        BatchAllocation.reference_id.in_(reference_ids),
    ]
    if not include_restored:
        conditions.append(BatchAllocation.restored.is_(False))
    result = await db.execute(
        select(BatchAllocation).where(and_(*conditions)).order_by(BatchAllocation.id)
    )
    return list(result.scalars().all())


async def mark_expired_batches(db: AsyncSession) -> int:
    """将已过到期日的批次标记为过期，返回处理数量"""
    today = date.today()
    result = await db.execute(
        select(Batch).where(
            Batch.deleted_at.is_(None),
            Batch.expiry_date.is_not(None),
            Batch.expiry_date < today,
            Batch.status.notin_(["expired", "depleted"]),
        )
    )
    batches = result.scalars().all()
    for batch in batches:
        batch.status = "expired"
    if batches:
        logger.info(f"⏳ 标记过期批次 {len(batches)} 个")
    return len(batches)


async def get_expiring_soon_summary(db: AsyncSession, days: int = 30) -> List[dict]:
    """临期汇总（按商品）"""
    today = date.today()
    limit_date = today + timedelta(days=days)
    result = await db.execute(
        select(
            Batch.product_id,
            Product.name,
            Product.sku,
            func.sum(Batch.remaining_quantity),
            func.count(Batch.id),
            func.min(Batch.expiry_date),
        )
        .join(Product, Batch.product_id == Product.id)
        .where(
            Batch.deleted_at.is_(None),
            Batch.status == "available",
            Batch.remaining_quantity > 0,
            Batch.expiry_date.is_not(None),
            Batch.expiry_date >= today,
            Batch.expiry_date <= limit_date,
        )
        .group_by(Batch.product_id, Product.name, Product.sku)
        .order_by(func.min(Batch.expiry_date))
    )
    return [
        {
            "product_id": row[0],
            "product_name": row[1],
            "product_sku": row[2],
            "total_quantity": Decimal(str(row[3] or 0)),
            "batch_count": row[4],
            "earliest_expiry": row[5],
        }
        for row in result.all()
    ]
