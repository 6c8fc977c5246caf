"""
COD 对账服务 - 核对物流商代收货款并入账
"""

import logging
from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse_erp.models.cod_reconciliation import (
    CodReconciliation, CodReconciliationItem, SHIPPING_PARTNERS,
)
from warehouse_erp.models.order import Order
from warehouse_erp.schemas.cod_reconciliation import CodReconciliationCreate, CodItemsUpdate
from warehouse_erp.services import debt_service
from warehouse_erp.services.audit import add_log
from warehouse_erp.services.common import generate_code

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def list_shipping_partners() -> List[dict]:
    return [{"code": code, "name": name} for code, name in SHIPPING_PARTNERS.items()]


async def get_reconciliation(db: AsyncSession, reconciliation_id: int) -> CodReconciliation:
    result = await db.execute(
        select(CodReconciliation).where(CodReconciliation.id == reconciliation_id).with_for_update()
    )
    rec = result.scalar_one_or_none()
    if not rec:
        raise HTTPException(status_code=404, detail="对账单不存在")
    return rec


async def get_items(db: AsyncSession, reconciliation_id: int) -> List[CodReconciliationItem]:
    result = await db.execute(
        select(CodReconciliationItem)
        .where(CodReconciliationItem.reconciliation_id == reconciliation_id)
        .order_by(CodReconciliationItem.id)
    )
    return list(result.scalars().all())


def _recalculate(rec: CodReconciliation, items: List[CodReconciliationItem]):
    rec.total_orders = len(items)
    rec.total_expected = sum((i.expected_amount for i in items), ZERO)
    rec.total_received = sum((i.received_amount or ZERO for i in items), ZERO)
    rec.difference = rec.total_received - rec.total_expected


async def create_reconciliation(
    db: AsyncSession, data: CodReconciliationCreate, operator_id: int
) -> CodReconciliation:
    """按物流商和期间拉取 COD 订单生成对账单"""
    if data.shipping_partner not in SHIPPING_PARTNERS:
        raise HTTPException(status_code=400, detail=f"未知物流商: {data.shipping_partner}")

    start = datetime.combine(data.period_from, time.min)
    end = datetime.combine(data.period_to + timedelta(days=1), time.min)
    result = await db.execute(
        select(Order).where(
            Order.shipping_partner == data.shipping_partner,
            Order.payment_method == "cod",
            Order.status.in_(["delivered", "completed"]),
            Order.created_at >= start,
            Order.created_at < end,
        ).order_by(Order.id)
    )
    orders = result.scalars().all()

    now = datetime.utcnow()
    rec = CodReconciliation(
        reconciliation_code=await generate_code(db, CodReconciliation.reconciliation_code, "COD"),
        shipping_partner=data.shipping_partner,
        period_from=data.period_from,
        period_to=data.period_to,
        total_orders=0,
        total_expected=ZERO,
        total_received=ZERO,
        difference=ZERO,
        status="draft",
        notes=data.notes,
        created_by=operator_id,
        created_at=now,
        updated_at=now,
    )
    db.add(rec)
    await db.flush()

    items = []
    for order in orders:
        item = CodReconciliationItem(
            reconciliation_id=rec.id,
            order_id=order.id,
            tracking_number=order.tracking_number,
            expected_amount=order.total_amount,
            received_amount=ZERO,
            difference=-order.total_amount,
            status="pending",
        )
        db.add(item)
        items.append(item)
    _recalculate(rec, items)
    await db.flush()

    await add_log(db, operator_id, "create", "cod_reconciliation", rec.id, rec.reconciliation_code,
                  description=f"{rec.shipping_partner_name} {len(items)} 单，应收 {rec.total_expected}")
    return rec


async def update_items(
    db: AsyncSession, reconciliation_id: int, data: CodItemsUpdate, operator_id: int
) -> CodReconciliation:
    """登记物流商实际回款"""
    rec = await get_reconciliation(db, reconciliation_id)
    if rec.reconciled_at:
        raise HTTPException(status_code=400, detail="对账单已入账，不能修改")

    items = await get_items(db, rec.id)
    by_id = {item.id: item for item in items}
    for row in data.items:
        item = by_id.get(row.item_id)
        if not item:
            raise HTTPException(status_code=400, detail=f"对账明细 {row.item_id} 不存在")
        item.set_received(row.received_amount)
        if row.notes is not None:
            item.notes = row.notes

    _recalculate(rec, items)
    rec.status = "matched" if rec.difference == 0 else "discrepancy"
    await add_log(db, operator_id, "update", "cod_reconciliation", rec.id, rec.reconciliation_code,
                  description=f"实收 {rec.total_received}，差额 {rec.difference}")
    return rec


async def reconcile(
    db: AsyncSession,
    reconciliation_id: int,
    operator_id: int,
    fund_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> CodReconciliation:
    """确认对账：实收代收款按订单入账"""
    rec = await get_reconciliation(db, reconciliation_id)
    if rec.reconciled_at:
        raise HTTPException(status_code=400, detail="对账单已入账")

    collected = ZERO
    for item in await get_items(db, rec.id):
        if not item.received_amount or item.received_amount <= 0:
            continue
        order = await db.get(Order, item.order_id)
        # 草稿之后被取消的订单不入账，差额保留在对账单上
        if order.status == "cancelled":
            logger.warning(f"⚠️ COD 对账 {rec.reconciliation_code} 跳过已取消订单 {order.order_code}")
            continue
        amount = min(item.received_amount, order.remaining_amount or ZERO)
        if amount <= 0:
            continue
        tx = await debt_service.collect_order_payment(
            db, order.id, amount, operator_id,
            fund_id=fund_id,
            payment_method="cod",
            notes=f"COD 对账 {rec.reconciliation_code}",
        )
        rec.fund_id = tx.fund_id
        collected += amount

    rec.status = "matched" if rec.difference == 0 else "resolved"
    rec.reconciled_at = datetime.utcnow()
    rec.reconciled_by = operator_id
    if notes:
        rec.notes = f"{rec.notes or ''}\n{notes}".strip()
    await add_log(db, operator_id, "reconcile", "cod_reconciliation", rec.id, rec.reconciliation_code,
                  description=f"对账入账 {collected}")
    logger.info(f"🚚 COD 对账 {rec.reconciliation_code} 入账 {collected}")
    return rec


async def delete_reconciliation(db: AsyncSession, reconciliation_id: int, operator_id: int) -> None:
    rec = await get_reconciliation(db, reconciliation_id)
    if rec.status != "draft":
        raise HTTPException(status_code=400, detail="只有草稿状态的对账单可以删除")
    for item in await get_items(db, rec.id):
        await db.delete(item)
    await db.delete(rec)
    await add_log(db, operator_id, "delete", "cod_reconciliation", rec.id, rec.reconciliation_code)
