"""
库存操作 - 所有库存数量变动的唯一入口

库存变动 = 批次变动 + 库存汇总变动 + 库存流水 + 成本重算
- take_stock: 出库（指定批次或 FEFO），写 BatchAllocation
- put_stock: 入库，生成新批次
- restore_allocations: 单据取消时按扣减明细回滚批次
- set_stock_quantity: 调整/盘点，盘亏按 FEFO 扣批次，盘盈生成调整批次
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse_erp.models.batch import Batch, BatchAllocation
from warehouse_erp.models.stock import Stock, InventoryLog
from warehouse_erp.models.stocktake import Stocktake
from warehouse_erp.models.user import User
from warehouse_erp.services import batch_service, cost_service
from warehouse_erp.services.audit import add_log
from warehouse_erp.services.common import get_product, get_warehouse

logger = logging.getLogger(__name__)
# 库存流水单独落盘，见 core/logging_config.MOVEMENT_LOGGER
movement_logger = logging.getLogger("warehouse_erp.movements")

ZERO = Decimal("0.00")


# ===== 库存汇总与流水 =====

async def get_stock(db: AsyncSession, warehouse_id: int, product_id: int) -> Optional[Stock]:
    result = await db.execute(
        select(Stock).where(
            Stock.warehouse_id == warehouse_id,
            Stock.product_id == product_id,
        ).with_for_update()
    )
    return result.scalar_one_or_none()


async def get_or_create_stock(db: AsyncSession, warehouse_id: int, product_id: int) -> Stock:
    stock = await get_stock(db, warehouse_id, product_id)
    if not stock:
        now = datetime.utcnow()
        stock = Stock(
            warehouse_id=warehouse_id,
            product_id=product_id,
            quantity=ZERO,
            safety_stock=ZERO,
            created_at=now,
            updated_at=now,
        )
        db.add(stock)
        await db.flush()
    return stock


async def ensure_warehouse_unlocked(db: AsyncSession, warehouse_id: int):
    """盘点中的仓库禁止库存变动"""
    result = await db.execute(
        select(Stocktake.stocktake_code).where(
            Stocktake.warehouse_id == warehouse_id,
            Stocktake.is_locked.is_(True),
        ).limit(1)
    )
    code = result.scalar_one_or_none()
    if code:
        raise HTTPException(status_code=400, detail=f"仓库正在盘点（{code}），暂不能变动库存")


async def change_stock(
    db: AsyncSession,
    warehouse_id: int,
    product_id: int,
    change: Decimal,
    movement_type: str,
    operator_id: int,
    *,
    batch_id: Optional[int] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
    inbound_batch_id: Optional[int] = None,
    quality_check_id: Optional[int] = None,
    reason: Optional[str] = None,
    note: Optional[str] = None,
) -> Stock:
    """变动库存汇总并记录流水"""
    stock = await get_or_create_stock(db, warehouse_id, product_id)
    before = stock.quantity or ZERO
    after = before + change
    if after < 0:
        raise HTTPException(status_code=400, detail=f"库存不足：当前库存 {before}，需要 {-change}")

    stock.quantity = after
    stock.updated_at = datetime.utcnow()
    if change > 0 and inbound_batch_id and not stock.inbound_batch_id:
        stock.inbound_batch_id = inbound_batch_id
        stock.quality_check_id = quality_check_id

    db.add(InventoryLog(
        stock_id=stock.id,
        warehouse_id=warehouse_id,
        product_id=product_id,
        batch_id=batch_id,
        movement_type=movement_type,
        quantity_change=change,
        quantity_before=before,
        quantity_after=after,
        reference_type=reference_type,
        reference_id=reference_id,
        inbound_batch_id=inbound_batch_id,
        quality_check_id=quality_check_id,
        reason=reason,
        note=note,
        operator_id=operator_id,
        created_at=datetime.utcnow(),
    ))
    movement_logger.info(
        f"{movement_type} 仓库{warehouse_id} 商品{product_id} 批次{batch_id or '-'} "
        f"{before} → {after} ({reference_type or '-'}:{reference_id or '-'})"
    )
    return stock


# ===== 出入库原语 =====

async def take_stock(
    db: AsyncSession,
    *,
    warehouse_id: int,
    product_id: int,
    quantity: Decimal,
    movement_type: str,
    reference_type: str,
    reference_id: int,
    operator_id: int,
    batch_id: Optional[int] = None,
    reason: Optional[str] = None,
    apply_cost: bool = True,
    allow_unavailable: bool = False,
    check_lock: bool = True,
) -> Tuple[List[BatchAllocation], Optional[Decimal]]:
    """出库：扣批次、扣库存、记流水、按均价出库

    Returns:
        (批次扣减明细, 出库成本单价；apply_cost=False 时为 None)
    """
    if quantity <= 0:
        raise HTTPException(status_code=400, detail="出库数量必须大于0")
    if check_lock:
        await ensure_warehouse_unlocked(db, warehouse_id)

    if batch_id:
        batch = await batch_service.get_batch(db, batch_id, for_update=True)
        if batch.product_id != product_id or batch.warehouse_id != warehouse_id:
            raise HTTPException(status_code=400, detail=f"批次 {batch.batch_code} 不属于该仓库或商品")
        consumed = [(batch, batch_service.deduct_from_batch(
            db, batch, quantity, reference_type, reference_id, allow_unavailable=allow_unavailable
        ))]
    else:
        consumed = await batch_service.consume_fefo(
            db, product_id, quantity, warehouse_id, reference_type, reference_id
        )

    allocations = []
    for batch, allocation in consumed:
        allocations.append(allocation)
        await change_stock(
            db, warehouse_id, product_id, -allocation.quantity, movement_type, operator_id,
            batch_id=batch.id,
            reference_type=reference_type,
            reference_id=reference_id,
            reason=reason,
        )

    unit_cost = None
    if apply_cost:
        unit_cost = await cost_service.apply_outbound_cost(
            db, product_id, quantity, operator_id, reference_type, reference_id
        )
    return allocations, unit_cost


async def put_stock(
    db: AsyncSession,
    *,
    warehouse_id: int,
    product_id: int,
    quantity: Decimal,
    unit_cost: Decimal,
    movement_type: str,
    operator_id: int,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
    supplier_id: Optional[int] = None,
    inbound_batch_id: Optional[int] = None,
    quality_check_id: Optional[int] = None,
    parent_batch_id: Optional[int] = None,
    manufacturing_date: Optional[date] = None,
    expiry_date: Optional[date] = None,
    is_opening: bool = False,
    notes: Optional[str] = None,
    reason: Optional[str] = None,
    apply_cost: bool = True,
    check_lock: bool = True,
) -> Batch:
    """入库：生成批次、加库存、记流水、重算均价"""
    if quantity <= 0:
        raise HTTPException(status_code=400, detail="入库数量必须大于0")
    if check_lock:
        await ensure_warehouse_unlocked(db, warehouse_id)

    batch = await batch_service.create_batch(
        db,
        product_id=product_id,
        warehouse_id=warehouse_id,
        quantity=quantity,
        unit_cost=unit_cost,
        operator_id=operator_id,
        supplier_id=supplier_id,
        inbound_batch_id=inbound_batch_id,
        quality_check_id=quality_check_id,
        parent_batch_id=parent_batch_id,
        manufacturing_date=manufacturing_date,
        expiry_date=expiry_date,
        is_opening=is_opening,
        notes=notes,
    )
    await change_stock(
        db, warehouse_id, product_id, quantity, movement_type, operator_id,
        batch_id=batch.id,
        reference_type=reference_type,
        reference_id=reference_id,
        inbound_batch_id=inbound_batch_id,
        quality_check_id=quality_check_id,
        reason=reason,
    )
    if apply_cost:
        await cost_service.apply_inbound_cost(
            db, product_id, quantity, unit_cost, operator_id,
            batch_id=batch.id, reference_type=reference_type, reference_id=reference_id,
        )
    return batch


async def restore_allocations(
    db: AsyncSession,
    *,
    reference_type: str,
    reference_ids: List[int],
    movement_type: str,
    operator_id: int,
    apply_cost: bool = True,
    check_lock: bool = True,
    reason: Optional[str] = None,
) -> Decimal:
    """按扣减明细把数量退回原批次，返回回滚总数量"""
    allocations = await batch_service.get_allocations(db, reference_type, reference_ids)
    checked = set()
    total = ZERO
    for allocation in allocations:
        batch = await db.get(Batch, allocation.batch_id)
        if check_lock and batch.warehouse_id not in checked:
            await ensure_warehouse_unlocked(db, batch.warehouse_id)
            checked.add(batch.warehouse_id)

        batch.remaining_quantity = batch.remaining_quantity + allocation.quantity
        batch.update_status()
        allocation.restored = True

        await change_stock(
            db, batch.warehouse_id, batch.product_id, allocation.quantity, movement_type, operator_id,
            batch_id=batch.id,
            reference_type=reference_type,
            reference_id=allocation.reference_id,
            reason=reason,
        )
        if apply_cost:
            # 按当前均价回库，不改变均价
            average = await cost_service.get_average_cost(db, batch.product_id)
            await cost_service.apply_inbound_cost(
                db, batch.product_id, allocation.quantity, average, operator_id,
                batch_id=batch.id, reference_type=reference_type, reference_id=allocation.reference_id,
            )
        total += allocation.quantity
    return total


async def set_stock_quantity(
    db: AsyncSession,
    *,
    warehouse_id: int,
    product_id: int,
    new_quantity: Decimal,
    movement_type: str,
    reference_type: str,
    reference_id: int,
    operator_id: int,
    reason: Optional[str] = None,
    check_lock: bool = True,
) -> Decimal:
    """把库存调整到指定数量，返回差异（新 - 旧）"""
    if new_quantity < 0:
        raise HTTPException(status_code=400, detail="库存数量不能为负数")
    if check_lock:
        await ensure_warehouse_unlocked(db, warehouse_id)

    stock = await get_or_create_stock(db, warehouse_id, product_id)
    difference = new_quantity - (stock.quantity or ZERO)

    if difference < 0:
        need = -difference
        # 盘亏：按 FEFO 扣减批次（过期批次优先被扣）
        for batch in await batch_service.get_batches_with_remaining(db, product_id, warehouse_id):
            if need <= 0:
                break
            take = min(need, batch.remaining_quantity)
            batch_service.deduct_from_batch(
                db, batch, take, reference_type, reference_id, allow_unavailable=True
            )
            await change_stock(
                db, warehouse_id, product_id, -take, movement_type, operator_id,
                batch_id=batch.id, reference_type=reference_type, reference_id=reference_id, reason=reason,
            )
            need -= take
        if need > 0:
            # 没有批次记录的库存（历史数据）
            await change_stock(
                db, warehouse_id, product_id, -need, movement_type, operator_id,
                reference_type=reference_type, reference_id=reference_id, reason=reason,
            )
        await cost_service.apply_outbound_cost(
            db, product_id, -difference, operator_id, reference_type, reference_id
        )
    elif difference > 0:
        # 盘盈：按当前均价生成调整批次
        average = await cost_service.get_average_cost(db, product_id)
        await put_stock(
            db,
            warehouse_id=warehouse_id,
            product_id=product_id,
            quantity=difference,
            unit_cost=average,
            movement_type=movement_type,
            operator_id=operator_id,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=reason,
            reason=reason,
            check_lock=False,
        )
    return difference


# ===== 库存业务操作 =====

async def ensure_manager(db: AsyncSession, operator_id: int) -> User:
    user = await db.get(User, operator_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=403, detail="操作人不存在或已停用")
    if not user.is_manager:
        raise HTTPException(status_code=403, detail="只有仓库主管可以调整库存")
    return user


async def adjust_stock(
    db: AsyncSession,
    warehouse_id: int,
    product_id: int,
    new_quantity: Decimal,
    reason: str,
    operator_id: int,
) -> Stock:
    """手动调整库存（仅主管，必须填写原因）"""
    if not reason or not reason.strip():
        raise HTTPException(status_code=400, detail="调整库存必须填写原因")
    await ensure_manager(db, operator_id)
    await get_warehouse(db, warehouse_id)
    await get_product(db, product_id, active_only=False)

    stock = await get_or_create_stock(db, warehouse_id, product_id)
    old_quantity = stock.quantity
    if new_quantity == old_quantity:
        raise HTTPException(status_code=400, detail="库存数量未发生变化")

    difference = await set_stock_quantity(
        db,
        warehouse_id=warehouse_id,
        product_id=product_id,
        new_quantity=new_quantity,
        movement_type="adjust",
        reference_type="adjustment",
        reference_id=stock.id,
        operator_id=operator_id,
        reason=reason,
    )
    stock.last_check_at = datetime.utcnow()

    await add_log(
        db, operator_id, "adjust", "stock", stock.id,
        description=f"调整库存 {old_quantity} → {new_quantity}（{reason}）",
        old_value={"quantity": old_quantity},
        new_value={"quantity": new_quantity, "difference": difference},
    )
    logger.info(f"📦 库存调整: 仓库{warehouse_id} 商品{product_id} {old_quantity} → {new_quantity}")
    return stock


async def outbound_stock(
    db: AsyncSession,
    warehouse_id: int,
    product_id: int,
    quantity: Decimal,
    operator_id: int,
    batch_id: Optional[int] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
    reason: Optional[str] = None,
) -> Tuple[Stock, List[BatchAllocation]]:
    """直接出库（领用、报损以外的其他出库），只能出可用批次"""
    await get_warehouse(db, warehouse_id)
    await get_product(db, product_id, active_only=False)

    available = await batch_service.get_available_quantity(db, product_id, warehouse_id)
    if quantity > available:
        raise HTTPException(status_code=400, detail=f"可用库存不足：可用 {available}，需要 {quantity}")

    stock = await get_or_create_stock(db, warehouse_id, product_id)
    allocations, unit_cost = await take_stock(
        db,
        warehouse_id=warehouse_id,
        product_id=product_id,
        quantity=quantity,
        movement_type="outbound",
        reference_type=reference_type or "outbound",
        reference_id=reference_id or stock.id,
        operator_id=operator_id,
        batch_id=batch_id,
        reason=reason,
    )
    await add_log(
        db, operator_id, "update", "stock", stock.id,
        description=f"出库 {quantity}，成本单价 {unit_cost}",
        new_value={"quantity": quantity, "batches": [a.batch_id for a in allocations]},
    )
    return stock, allocations


async def create_opening_batch(
    db: AsyncSession,
    *,
    warehouse_id: int,
    product_id: int,
    quantity: Decimal,
    unit_cost: Decimal,
    operator_id: int,
    supplier_id: Optional[int] = None,
    manufacturing_date: Optional[date] = None,
    expiry_date: Optional[date] = None,
    notes: Optional[str] = None,
) -> Batch:
    """期初批次：直接入库，不经过质检"""
    await get_warehouse(db, warehouse_id)
    await get_product(db, product_id)
    batch = await put_stock(
        db,
        warehouse_id=warehouse_id,
        product_id=product_id,
        quantity=quantity,
        unit_cost=unit_cost,
        movement_type="opening",
        operator_id=operator_id,
        reference_type="batch",
        supplier_id=supplier_id,
        manufacturing_date=manufacturing_date,
        expiry_date=expiry_date,
        is_opening=True,
        notes=notes,
        reason="期初入库",
    )
    await add_log(
        db, operator_id, "create", "batch", batch.id, batch.batch_code,
        description=f"期初批次 {batch.batch_code} 数量 {quantity} 单价 {unit_cost}",
    )
    return batch


async def delete_batch(db: AsyncSession, batch_id: int, operator_id: int) -> Batch:
    """删除未出过库的批次（软删除），同时扣回其库存"""
    batch = await batch_service.get_batch(db, batch_id, for_update=True)
    if batch.remaining_quantity != batch.quantity:
        raise HTTPException(status_code=400, detail="批次已部分出库，不能删除")
    result = await db.execute(
        select(BatchAllocation.id).where(BatchAllocation.batch_id == batch.id).limit(1)
    )
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="批次已有出库记录，不能删除")
    await ensure_warehouse_unlocked(db, batch.warehouse_id)

    await change_stock(
        db, batch.warehouse_id, batch.product_id, -batch.remaining_quantity, "batch_delete", operator_id,
        batch_id=batch.id, reference_type="batch", reference_id=batch.id,
        reason=f"删除批次 {batch.batch_code}",
    )
    await cost_service.apply_outbound_cost(
        db, batch.product_id, batch.remaining_quantity, operator_id, "batch", batch.id
    )
    batch.remaining_quantity = ZERO
    batch.status = "depleted"
    batch.deleted_at = datetime.utcnow()

    await add_log(db, operator_id, "delete", "batch", batch.id, batch.batch_code, description="删除批次")
    return batch


async def dispose_batch(
    db: AsyncSession,
    batch_id: int,
    reason: str,
    operator_id: int,
    quantity: Optional[Decimal] = None,
) -> Batch:
    """报废批次（过期、破损），可部分报废"""
    if not reason or not reason.strip():
        raise HTTPException(status_code=400, detail="报废必须填写原因")
    batch = await batch_service.get_batch(db, batch_id, for_update=True)
    if batch.remaining_quantity <= 0:
        raise HTTPException(status_code=400, detail="批次已无剩余数量")
    quantity = quantity if quantity is not None else batch.remaining_quantity

    await take_stock(
        db,
        warehouse_id=batch.warehouse_id,
        product_id=batch.product_id,
        quantity=quantity,
        movement_type="disposal",
        reference_type="disposal",
        reference_id=batch.id,
        operator_id=operator_id,
        batch_id=batch.id,
        reason=reason,
        allow_unavailable=True,
    )
    await add_log(
        db, operator_id, "adjust", "batch", batch.id, batch.batch_code,
        description=f"报废 {quantity}（{reason}）",
    )
    logger.info(f"🗑️ 批次报废: {batch.batch_code} 数量 {quantity}")
    return batch
