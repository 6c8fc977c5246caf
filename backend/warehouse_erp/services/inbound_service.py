"""
入库批次与质检服务

收货只登记数量；质检合格（pass / partial）后才生成批次和库存
"""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse_erp.core.config import settings
from warehouse_erp.models.inbound_batch import InboundBatch, InboundBatchItem, QualityCheck
from warehouse_erp.schemas.inbound_batch import (
    InboundBatchCreate, InboundBatchUpdate, InboundReceive, QualityCheckCreate,
)
from warehouse_erp.services import stock_ops
from warehouse_erp.services.audit import add_log
from warehouse_erp.services.common import (
    generate_code, get_entity_with_role, get_product, get_warehouse,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


async def get_inbound_batch(db: AsyncSession, inbound_batch_id: int, for_update: bool = False) -> InboundBatch:
    query = select(InboundBatch).where(InboundBatch.id == inbound_batch_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    inbound = result.scalar_one_or_none()
    if not inbound:
        raise HTTPException(status_code=404, detail="入库批次不存在")
    return inbound


async def get_items(db: AsyncSession, inbound_batch_id: int) -> List[InboundBatchItem]:
    result = await db.execute(
        select(InboundBatchItem)
        .where(InboundBatchItem.inbound_batch_id == inbound_batch_id)
        .order_by(InboundBatchItem.id)
    )
    return list(result.scalars().all())


async def _add_items(db: AsyncSession, inbound_batch_id: int, items) -> None:
    for item_in in items:
        await get_product(db, item_in.product_id)
        if item_in.manufacturing_date and item_in.expiry_date and item_in.expiry_date < item_in.manufacturing_date:
            raise HTTPException(status_code=400, detail="到期日期不能早于生产日期")
        db.add(InboundBatchItem(
            inbound_batch_id=inbound_batch_id,
            product_id=item_in.product_id,
            quantity_expected=item_in.quantity_expected,
            quantity_received=ZERO,
            unit_cost=item_in.unit_cost,
            manufacturing_date=item_in.manufacturing_date,
            expiry_date=item_in.expiry_date,
            supplier_lot=item_in.supplier_lot,
        ))


async def create_inbound_batch(db: AsyncSession, data: InboundBatchCreate, operator_id: int) -> InboundBatch:
    await get_warehouse(db, data.warehouse_id)
    if data.supplier_id:
        await get_entity_with_role(db, data.supplier_id, "supplier")
    if not data.items:
        raise HTTPException(status_code=400, detail="入库明细不能为空")

    now = datetime.utcnow()
    inbound = InboundBatch(
        batch_number=await generate_code(db, InboundBatch.batch_number, "IB"),
        warehouse_id=data.warehouse_id,
        supplier_id=data.supplier_id,
        status="pending",
        notes=data.notes,
        created_by=operator_id,
        created_at=now,
        updated_at=now,
    )
    db.add(inbound)
    await db.flush()
    await _add_items(db, inbound.id, data.items)
    await db.flush()

    await add_log(db, operator_id, "create", "inbound_batch", inbound.id, inbound.batch_number,
                  description=f"创建入库批次，明细 {len(data.items)} 行")
    logger.info(f"📥 创建入库批次 {inbound.batch_number}")
    return inbound


async def update_inbound_batch(
    db: AsyncSession, inbound_batch_id: int, data: InboundBatchUpdate, operator_id: int
) -> InboundBatch:
    inbound = await get_inbound_batch(db, inbound_batch_id, for_update=True)
    if not inbound.can_be_edited:
        raise HTTPException(status_code=400, detail=f"入库批次{inbound.status_display}，不能修改")

    if data.supplier_id is not None:
        await get_entity_with_role(db, data.supplier_id, "supplier")
        inbound.supplier_id = data.supplier_id
    if data.notes is not None:
        inbound.notes = data.notes
    if data.received_date is not None:
        inbound.received_date = data.received_date

    if data.items is not None:
        if inbound.status != "pending":
            raise HTTPException(status_code=400, detail="已收货的入库批次不能修改明细")
        if not data.items:
            raise HTTPException(status_code=400, detail="入库明细不能为空")
        for item in await get_items(db, inbound.id):
            await db.delete(item)
        await db.flush()
        await _add_items(db, inbound.id, data.items)
        await db.flush()

    await add_log(db, operator_id, "update", "inbound_batch", inbound.id, inbound.batch_number)
    return inbound


async def receive_inbound_batch(
    db: AsyncSession, inbound_batch_id: int, data: InboundReceive, operator_id: int
) -> InboundBatch:
    """收货：登记实收数量（不动库存）"""
    inbound = await get_inbound_batch(db, inbound_batch_id, for_update=True)
    if inbound.status != "pending":
        raise HTTPException(status_code=400, detail="只有待收货的入库批次可以收货")

    items = {item.id: item for item in await get_items(db, inbound.id)}
    received = {r.item_id: r.quantity_received for r in (data.items or [])}
    for item_id in received:
        if item_id not in items:
            raise HTTPException(status_code=400, detail=f"明细 {item_id} 不属于该入库批次")

    # 未填写的明细按应收数量收货
    for item in items.values():
        item.quantity_received = received.get(item.id, item.quantity_expected)

    if sum((item.quantity_received for item in items.values()), ZERO) <= 0:
        raise HTTPException(status_code=400, detail="实收数量合计必须大于0")

    inbound.status = "received"
    inbound.received_date = data.received_date or date.today()

    await add_log(db, operator_id, "receive", "inbound_batch", inbound.id, inbound.batch_number,
                  new_value={str(k): v.quantity_received for k, v in items.items()})
    return inbound


def _resolve_passed_quantities(status: str, items: List[InboundBatchItem], data: QualityCheckCreate) -> dict:
    """计算每行合格数量"""
    if status == "pass":
        return {item.id: item.quantity_received for item in items}
    if status == "fail":
        return {item.id: ZERO for item in items}

    # partial：需要逐行填写合格数量（单行明细时可只填总数）
    given = {r.item_id: r.quantity_passed for r in (data.items or [])}
    if not given and data.quantity_passed is not None and len(items) == 1:
        given = {items[0].id: data.quantity_passed}
    if not given:
        raise HTTPException(status_code=400, detail="部分合格必须填写每行合格数量")

    by_id = {item.id: item for item in items}
    passed = {}
    for item_id, quantity in given.items():
        if item_id not in by_id:
            raise HTTPException(status_code=400, detail=f"明细 {item_id} 不属于该入库批次")
        if quantity < 0 or quantity > by_id[item_id].quantity_received:
            raise HTTPException(status_code=400, detail="合格数量必须在 0 到实收数量之间")
        passed[item_id] = quantity
    for item in items:
        passed.setdefault(item.id, ZERO)

    total_passed = sum(passed.values(), ZERO)
    total_received = sum((item.quantity_received for item in items), ZERO)
    if total_passed <= 0 or total_passed >= total_received:
        raise HTTPException(status_code=400, detail="部分合格的合格数量必须大于0且小于实收数量")
    return passed


async def create_quality_check(
    db: AsyncSession, inbound_batch_id: int, data: QualityCheckCreate, operator_id: int
) -> QualityCheck:
    """提交质检（每个入库批次只能有一张正式质检单）"""
    inbound = await get_inbound_batch(db, inbound_batch_id, for_update=True)
    if inbound.status != "received":
        raise HTTPException(status_code=400, detail="只有已收货的入库批次可以质检")
    existing = await db.execute(
        select(QualityCheck.id).where(QualityCheck.inbound_batch_id == inbound.id)
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="该入库批次已有质检单")

    inbound.status = "qc_in_progress"
    items = await get_items(db, inbound.id)
    passed = _resolve_passed_quantities(data.status, items, data)

    total_passed = sum(passed.values(), ZERO)
    total_received = sum((item.quantity_received for item in items), ZERO)
    qc = QualityCheck(
        inbound_batch_id=inbound.id,
        warehouse_id=inbound.warehouse_id,
        supplier_id=inbound.supplier_id,
        inspector_id=operator_id,
        check_date=data.check_date or date.today(),
        status=data.status,
        score=data.score,
        quantity_passed=total_passed,
        quantity_failed=total_received - total_passed,
        notes=data.notes,
        issues=data.issues,
        created_at=datetime.utcnow(),
    )
    db.add(qc)
    await db.flush()

    payable_amount = ZERO
    for item in items:
        item.quantity_passed = passed[item.id]
        item.quantity_failed = item.quantity_received - passed[item.id]
        if passed[item.id] <= 0:
            continue
        await stock_ops.put_stock(
            db,
            warehouse_id=inbound.warehouse_id,
            product_id=item.product_id,
            quantity=passed[item.id],
            unit_cost=item.unit_cost,
            movement_type="qc_pass",
            operator_id=operator_id,
            reference_type="quality_check",
            reference_id=qc.id,
            supplier_id=inbound.supplier_id,
            inbound_batch_id=inbound.id,
            quality_check_id=qc.id,
            manufacturing_date=item.manufacturing_date,
            expiry_date=item.expiry_date,
            notes=item.supplier_lot,
            reason=f"质检入库 {inbound.batch_number}",
        )
        payable_amount += passed[item.id] * item.unit_cost

    inbound.status = "qc_completed"

    if inbound.supplier_id and settings.AUTO_CREATE_PAYABLE_ON_QC and payable_amount > 0:
        # 延迟导入避免循环依赖
        from warehouse_erp.services import debt_service
        await debt_service.create_payable(
            db,
            supplier_id=inbound.supplier_id,
            amount=payable_amount,
            operator_id=operator_id,
            reference_type="inbound_batch",
            reference_id=inbound.id,
            due_date=date.today() + timedelta(days=settings.DEFAULT_DEBT_DUE_DAYS),
            notes=f"入库批次 {inbound.batch_number} 质检合格",
        )

    await add_log(
        db, operator_id, "create", "quality_check", qc.id, inbound.batch_number,
        description=f"质检{qc.status_display}：合格 {total_passed}，不合格 {qc.quantity_failed}",
    )
    logger.info(f"🔍 质检完成 {inbound.batch_number}: {data.status} 合格 {total_passed}")
    return qc


async def cancel_inbound_batch(db: AsyncSession, inbound_batch_id: int, operator_id: int) -> InboundBatch:
    inbound = await get_inbound_batch(db, inbound_batch_id, for_update=True)
    if inbound.status not in ("pending", "received"):
        raise HTTPException(status_code=400, detail=f"入库批次{inbound.status_display}，不能取消")
    inbound.status = "cancelled"
    await add_log(db, operator_id, "cancel", "inbound_batch", inbound.id, inbound.batch_number)
    return inbound


async def delete_inbound_batch(db: AsyncSession, inbound_batch_id: int, operator_id: int) -> None:
    inbound = await get_inbound_batch(db, inbound_batch_id, for_update=True)
    if inbound.status != "pending":
        raise HTTPException(status_code=400, detail="只能删除待收货的入库批次")
    for item in await get_items(db, inbound.id):
        await db.delete(item)
    await add_log(db, operator_id, "delete", "inbound_batch", inbound.id, inbound.batch_number)
    await db.delete(inbound)
