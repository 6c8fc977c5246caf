"""
退货（RMA）服务

pending → approved → receiving → received → completed
完成时良品按当前移动平均成本回库
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List

from fastapi import HTTPException
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse_erp.models.order import Order, OrderItem
from warehouse_erp.models.return_request import ReturnRequest, ReturnItem
from warehouse_erp.schemas.return_request import (
    ReturnCreate, ReturnApprove, ReturnReceive, ReturnComplete,
)
from warehouse_erp.services import cost_service, stock_ops
from warehouse_erp.services.audit import add_log
from warehouse_erp.services.common import generate_code, get_warehouse

logger = logging.getLogger(__name__)

RETURNABLE_ORDER_STATUSES = ("delivered", "completed")
INACTIVE_RETURN_STATUSES = ("rejected", "cancelled")


async def get_return(db: AsyncSession, return_id: int) -> ReturnRequest:
    result = await db.execute(
        select(ReturnRequest).where(ReturnRequest.id == return_id).with_for_update()
    )
    rma = result.scalar_one_or_none()
    if not rma:
        raise HTTPException(status_code=404, detail="退货单不存在")
    return rma


async def get_items(db: AsyncSession, return_id: int) -> List[ReturnItem]:
    result = await db.execute(
        select(ReturnItem).where(ReturnItem.return_id == return_id).order_by(ReturnItem.id)
    )
    return list(result.scalars().all())


async def _returned_quantity(db: AsyncSession, order_item_id: int) -> Decimal:
    """订单明细已申请退货数量（不含已拒绝/已取消）"""
    result = await db.execute(
        select(func.coalesce(func.sum(ReturnItem.quantity), 0))
        .join(ReturnRequest, ReturnRequest.id == ReturnItem.return_id)
        .where(
            ReturnItem.order_item_id == order_item_id,
            ReturnRequest.status.notin_(INACTIVE_RETURN_STATUSES),
        )
    )
    return Decimal(str(result.scalar() or 0))


async def create_return(db: AsyncSession, data: ReturnCreate, operator_id: int) -> ReturnRequest:
    order = await db.get(Order, data.order_id)
    if not order:
        raise HTTPException(status_code=404, detail="订单不存在")
    if order.status not in RETURNABLE_ORDER_STATUSES:
        raise HTTPException(status_code=400, detail="只有已发货或已完成的订单可以退货")
    if not data.items:
        raise HTTPException(status_code=400, detail="退货明细不能为空")

    now = datetime.utcnow()
    rma = ReturnRequest(
        return_code=await generate_code(db, ReturnRequest.return_code, "RMA"),
        order_id=order.id,
        customer_id=order.customer_id,
        warehouse_id=None,
        type=data.type,
        reason=data.reason,
        status="pending",
        refund_amount=Decimal("0.00"),
        notes=data.notes,
        requested_at=now,
        created_by=operator_id,
        created_at=now,
        updated_at=now,
    )
    db.add(rma)
    await db.flush()

    for item_in in data.items:
        order_item = await db.get(OrderItem, item_in.order_item_id)
        if not order_item or order_item.order_id != order.id:
            raise HTTPException(status_code=400, detail=f"订单明细 {item_in.order_item_id} 不属于该订单")
        returned = await _returned_quantity(db, order_item.id)
        if returned + item_in.quantity > order_item.quantity:
            raise HTTPException(
                status_code=400,
                detail=f"退货数量超出：订购 {order_item.quantity}，已申请 {returned}，本次 {item_in.quantity}",
            )
        db.add(ReturnItem(
            return_id=rma.id,
            order_item_id=order_item.id,
            product_id=order_item.product_id,
            quantity=item_in.quantity,
            received_quantity=None,
            condition=None,
            action=None,
            reason=item_in.reason,
        ))
    await db.flush()

    await add_log(db, operator_id, "create", "return", rma.id, rma.return_code,
                  description=f"订单 {order.order_code} 申请退货")
    return rma


async def approve_return(db: AsyncSession, return_id: int, data: ReturnApprove, operator_id: int) -> ReturnRequest:
    rma = await get_return(db, return_id)
    if rma.status != "pending":
        raise HTTPException(status_code=400, detail="只有待审核的退货单可以批准")
    order = await db.get(Order, rma.order_id)
    if data.refund_amount > order.total_amount:
        raise HTTPException(status_code=400, detail="退款金额不能超过订单金额")

    rma.status = "approved"
    rma.refund_amount = data.refund_amount
    rma.approved_at = datetime.utcnow()
    rma.approved_by = operator_id
    await add_log(db, operator_id, "approve", "return", rma.id, rma.return_code,
                  description=f"批准退货，退款 {data.refund_amount}")
    return rma


async def reject_return(db: AsyncSession, return_id: int, reason: str, operator_id: int) -> ReturnRequest:
    rma = await get_return(db, return_id)
    if rma.status not in ("pending", "approved"):
        raise HTTPException(status_code=400, detail="当前状态不能拒绝")
    rma.status = "rejected"
    rma.notes = f"{rma.notes or ''}\n拒绝原因：{reason}".strip()
    await add_log(db, operator_id, "reject", "return", rma.id, rma.return_code, description=reason)
    return rma


async def receive_items(db: AsyncSession, return_id: int, data: ReturnReceive, operator_id: int) -> ReturnRequest:
    """登记实收数量和品相，全部明细登记后变为已收货"""
    rma = await get_return(db, return_id)
    if rma.status not in ("approved", "receiving"):
        raise HTTPException(status_code=400, detail="只有已批准的退货单可以收货")

    items = {item.id: item for item in await get_items(db, rma.id)}
    for row in data.items:
        item = items.get(row.item_id)
        if not item:
            raise HTTPException(status_code=400, detail=f"退货明细 {row.item_id} 不存在")
        if row.received_quantity > item.quantity:
            raise HTTPException(
                status_code=400,
                detail=f"实收数量不能超过退货数量：{row.received_quantity} > {item.quantity}",
            )
        item.received_quantity = row.received_quantity
        item.condition = row.condition
        # 非良品不回库
        item.action = row.action if row.condition == "good" else "dispose"

    if all(item.received_quantity is not None for item in items.values()):
        rma.status = "received"
        rma.received_at = datetime.utcnow()
    else:
        rma.status = "receiving"
    await add_log(db, operator_id, "update", "return", rma.id, rma.return_code,
                  description=f"退货收货，状态 {rma.status_display}")
    return rma


async def complete_return(db: AsyncSession, return_id: int, data: ReturnComplete, operator_id: int) -> ReturnRequest:
    rma = await get_return(db, return_id)
    if rma.status != "received":
        raise HTTPException(status_code=400, detail="只有已收货的退货单可以完成")

    order = await db.get(Order, rma.order_id)
    warehouse_id = data.warehouse_id or order.warehouse_id
    await get_warehouse(db, warehouse_id)

    restocked = Decimal("0")
    for item in await get_items(db, rma.id):
        if item.action != "restock" or not item.received_quantity:
            continue
        unit_cost = await cost_service.get_average_cost(db, item.product_id)
        await stock_ops.put_stock(
            db,
            warehouse_id=warehouse_id,
            product_id=item.product_id,
            quantity=item.received_quantity,
            unit_cost=unit_cost,
            movement_type="return_in",
            operator_id=operator_id,
            reference_type="return",
            reference_id=rma.id,
            notes=f"退货 {rma.return_code}",
            reason=f"退货 {rma.return_code} 回库",
        )
        restocked += item.received_quantity

    rma.warehouse_id = warehouse_id
    rma.status = "completed"
    rma.completed_at = datetime.utcnow()
    await add_log(db, operator_id, "complete", "return", rma.id, rma.return_code,
                  description=f"退货完成，回库 {restocked}")
    logger.info(f"↩️ 退货完成 {rma.return_code}，回库数量 {restocked}")
    return rma


async def cancel_return(db: AsyncSession, return_id: int, operator_id: int) -> ReturnRequest:
    rma = await get_return(db, return_id)
    if rma.status == "completed":
        raise HTTPException(status_code=400, detail="已完成的退货单不能取消")
    if rma.status == "cancelled":
        raise HTTPException(status_code=400, detail="退货单已取消")
    rma.status = "cancelled"
    await add_log(db, operator_id, "cancel", "return", rma.id, rma.return_code)
    return rma
