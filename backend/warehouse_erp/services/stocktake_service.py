"""
盘点服务

开始盘点锁定仓库，审核通过后按实盘数量调整库存和批次，再解锁
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse_erp.models.stock import Stock
from warehouse_erp.models.stocktake import Stocktake, StocktakeItem
from warehouse_erp.schemas.stocktake import StocktakeCreate, StocktakeItemsUpdate
from warehouse_erp.services import stock_ops
from warehouse_erp.services.audit import add_log
from warehouse_erp.services.common import generate_code, get_warehouse

logger = logging.getLogger(__name__)


async def get_stocktake(db: AsyncSession, stocktake_id: int) -> Stocktake:
    result = await db.execute(select(Stocktake).where(Stocktake.id == stocktake_id).with_for_update())
    stocktake = result.scalar_one_or_none()
    if not stocktake:
        raise HTTPException(status_code=404, detail="盘点单不存在")
    return stocktake


async def get_items(db: AsyncSession, stocktake_id: int) -> List[StocktakeItem]:
    result = await db.execute(
        select(StocktakeItem).where(StocktakeItem.stocktake_id == stocktake_id).order_by(StocktakeItem.id)
    )
    return list(result.scalars().all())


async def create_stocktake(db: AsyncSession, data: StocktakeCreate, operator_id: int) -> Stocktake:
    """新建盘点单，快照仓库当前有库存的商品"""
    await get_warehouse(db, data.warehouse_id)

    now = datetime.utcnow()
    stocktake = Stocktake(
        stocktake_code=await generate_code(db, Stocktake.stocktake_code, "STK"),
        warehouse_id=data.warehouse_id,
        status="draft",
        is_locked=False,
        notes=data.notes,
        created_by=operator_id,
        created_at=now,
        updated_at=now,
    )
    db.add(stocktake)
    await db.flush()

    result = await db.execute(
        select(Stock).where(Stock.warehouse_id == data.warehouse_id, Stock.quantity > 0).order_by(Stock.product_id)
    )
    stocks = result.scalars().all()
    for stock in stocks:
        db.add(StocktakeItem(
            stocktake_id=stocktake.id,
            product_id=stock.product_id,
            system_quantity=stock.quantity,
            actual_quantity=None,
            difference=None,
            reason=None,
        ))
    await db.flush()

    await add_log(db, operator_id, "create", "stocktake", stocktake.id, stocktake.stocktake_code,
                  description=f"新建盘点单，{len(stocks)} 个商品")
    return stocktake


async def start_stocktake(db: AsyncSession, stocktake_id: int, operator_id: int) -> Stocktake:
    stocktake = await get_stocktake(db, stocktake_id)
    if stocktake.status != "draft":
        raise HTTPException(status_code=400, detail="只有草稿状态的盘点单可以开始")

    locked = await db.execute(
        select(Stocktake.id).where(
            Stocktake.warehouse_id == stocktake.warehouse_id,
            Stocktake.is_locked.is_(True),
            Stocktake.id != stocktake.id,
        ).limit(1)
    )
    if locked.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="该仓库已有进行中的盘点")

    stocktake.status = "in_progress"
    stocktake.is_locked = True
    stocktake.started_at = datetime.utcnow()
    await add_log(db, operator_id, "update", "stocktake", stocktake.id, stocktake.stocktake_code,
                  description="开始盘点，仓库已锁定")
    logger.info(f"🔒 盘点 {stocktake.stocktake_code} 开始，锁定仓库 {stocktake.warehouse_id}")
    return stocktake


async def update_items(
    db: AsyncSession, stocktake_id: int, data: StocktakeItemsUpdate, operator_id: int
) -> Stocktake:
    """录入实盘数量"""
    stocktake = await get_stocktake(db, stocktake_id)
    if stocktake.status != "in_progress":
        raise HTTPException(status_code=400, detail="只有盘点中的盘点单可以录入")

    items = {item.id: item for item in await get_items(db, stocktake.id)}
    for row in data.items:
        item = items.get(row.item_id)
        if not item:
            raise HTTPException(status_code=400, detail=f"盘点明细 {row.item_id} 不属于该盘点单")
        item.actual_quantity = row.actual_quantity
        item.difference = row.actual_quantity - item.system_quantity
        if row.reason is not None:
            item.reason = row.reason
    return stocktake


async def complete_stocktake(db: AsyncSession, stocktake_id: int, operator_id: int) -> Stocktake:
    stocktake = await get_stocktake(db, stocktake_id)
    if stocktake.status != "in_progress":
        raise HTTPException(status_code=400, detail="只有盘点中的盘点单可以提交")
    uncounted = [item for item in await get_items(db, stocktake.id) if not item.is_counted]
    if uncounted:
        raise HTTPException(status_code=400, detail=f"还有 {len(uncounted)} 个商品未盘点")

    stocktake.status = "pending_approval"
    stocktake.completed_at = datetime.utcnow()
    await add_log(db, operator_id, "submit", "stocktake", stocktake.id, stocktake.stocktake_code)
    return stocktake


async def approve_stocktake(db: AsyncSession, stocktake_id: int, operator_id: int) -> Stocktake:
    """审核盘点：有差异的商品库存调整为实盘数量"""
    stocktake = await get_stocktake(db, stocktake_id)
    if stocktake.status != "pending_approval":
        raise HTTPException(status_code=400, detail="只有待审核的盘点单可以审核")

    adjusted = 0
    for item in await get_items(db, stocktake.id):
        if not item.difference:
            continue
        await stock_ops.set_stock_quantity(
            db,
            warehouse_id=stocktake.warehouse_id,
            product_id=item.product_id,
            new_quantity=item.actual_quantity,
            movement_type="stocktake",
            reference_type="stocktake",
            reference_id=stocktake.id,
            operator_id=operator_id,
            reason=item.reason or f"盘点 {stocktake.stocktake_code}",
            check_lock=False,
        )
        adjusted += 1

    stocktake.status = "approved"
    stocktake.is_locked = False
    stocktake.approved_at = datetime.utcnow()
    stocktake.approved_by = operator_id
    await add_log(db, operator_id, "approve", "stocktake", stocktake.id, stocktake.stocktake_code,
                  description=f"审核通过，调整 {adjusted} 个商品")
    logger.info(f"✅ 盘点 {stocktake.stocktake_code} 审核通过，调整 {adjusted} 项，仓库解锁")
    return stocktake


async def cancel_stocktake(db: AsyncSession, stocktake_id: int, operator_id: int) -> Stocktake:
    stocktake = await get_stocktake(db, stocktake_id)
    if stocktake.status in ("approved", "cancelled"):
        raise HTTPException(status_code=400, detail=f"盘点单{stocktake.status_display}，不能取消")
    stocktake.status = "cancelled"
    stocktake.is_locked = False
    await add_log(db, operator_id, "cancel", "stocktake", stocktake.id, stocktake.stocktake_code)
    return stocktake


async def delete_stocktake(db: AsyncSession, stocktake_id: int, operator_id: int) -> None:
    stocktake = await get_stocktake(db, stocktake_id)
    if stocktake.status != "draft":
        raise HTTPException(status_code=400, detail="只有草稿状态的盘点单可以删除")
    for item in await get_items(db, stocktake.id):
        await db.delete(item)
    await db.delete(stocktake)
    await add_log(db, operator_id, "delete", "stocktake", stocktake.id, stocktake.stocktake_code)


def count_summary(items: List[StocktakeItem]) -> dict:
    return {
        "total_items": len(items),
        "counted_items": sum(1 for i in items if i.is_counted),
        "discrepancy_items": sum(1 for i in items if i.difference not in (None, Decimal("0"))),
    }
