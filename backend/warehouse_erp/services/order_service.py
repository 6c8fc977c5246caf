"""
销售订单服务（库存侧）

确认 → FEFO 扣批次和库存；完成 → 未收清生成应收；取消 → 按扣减明细回库
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse_erp.models.order import Order, OrderItem
from warehouse_erp.schemas.order import OrderCreate, OrderDeliver
from warehouse_erp.services import batch_service, debt_service, stock_ops
from warehouse_erp.services.audit import add_log
from warehouse_erp.services.common import (
    generate_code, get_entity_with_role, get_product, get_warehouse,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


async def get_order(db: AsyncSession, order_id: int) -> Order:
    result = await db.execute(select(Order).where(Order.id == order_id).with_for_update())
    order = result.scalar_one_or_none()
    if not order:
        raise HTTPException(status_code=404, detail="订单不存在")
    return order


async def get_items(db: AsyncSession, order_id: int) -> List[OrderItem]:
    result = await db.execute(
        select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
    )
    return list(result.scalars().all())


async def create_order(db: AsyncSession, data: OrderCreate, operator_id: int) -> Order:
    await get_entity_with_role(db, data.customer_id, "customer")
    await get_warehouse(db, data.warehouse_id)
    if not data.items:
        raise HTTPException(status_code=400, detail="订单明细不能为空")
    for item_in in data.items:
        await get_product(db, item_in.product_id)

    now = datetime.utcnow()
    order = Order(
        order_code=await generate_code(db, Order.order_code, "SO"),
        customer_id=data.customer_id,
        warehouse_id=data.warehouse_id,
        status="pending",
        payment_method=data.payment_method,
        shipping_partner=data.shipping_partner,
        tracking_number=data.tracking_number,
        total_amount=ZERO,
        paid_amount=ZERO,
        remaining_amount=ZERO,
        cost_amount=ZERO,
        notes=data.notes,
        created_by=operator_id,
        created_at=now,
        updated_at=now,
    )
    db.add(order)
    await db.flush()

    total = ZERO
    for item_in in data.items:
        subtotal = item_in.quantity * item_in.unit_price
        db.add(OrderItem(
            order_id=order.id,
            product_id=item_in.product_id,
            quantity=item_in.quantity,
            unit_price=item_in.unit_price,
            subtotal=subtotal,
            cost_amount=ZERO,
        ))
        total += subtotal
    order.total_amount = total
    order.remaining_amount = total
    await db.flush()

    await add_log(db, operator_id, "create", "order", order.id, order.order_code,
                  description=f"新建订单，金额 {total}")
    return order


async def check_stock_availability(db: AsyncSession, order_id: int) -> dict:
    """检查订单各商品在发货仓的可用批次库存"""
    order = await get_order(db, order_id)
    required = {}
    for item in await get_items(db, order.id):
        required[item.product_id] = required.get(item.product_id, ZERO) + item.quantity

    rows = []
    for product_id, quantity in required.items():
        product = await get_product(db, product_id, active_only=False)
        available = await batch_service.get_available_quantity(db, product_id, order.warehouse_id)
        rows.append({
            "product_id": product_id,
            "product_name": product.name,
            "required": quantity,
            "available": available,
            "sufficient": available >= quantity,
        })
    return {"available": all(r["sufficient"] for r in rows), "items": rows}


async def confirm_order(db: AsyncSession, order_id: int, operator_id: int) -> Order:
    """确认订单：按 FEFO 扣减发货仓库存，任一商品不足则整单失败"""
    order = await get_order(db, order_id)
    if order.status != "pending":
        raise HTTPException(status_code=400, detail="只有待确认的订单可以确认")

    cost_total = ZERO
    for item in await get_items(db, order.id):
        _, unit_cost = await stock_ops.take_stock(
            db,
            warehouse_id=order.warehouse_id,
            product_id=item.product_id,
            quantity=item.quantity,
            movement_type="order_out",
            reference_type="order_item",
            reference_id=item.id,
            operator_id=operator_id,
            reason=f"订单 {order.order_code} 出库",
        )
        item.cost_amount = (item.quantity * unit_cost).quantize(Decimal("0.01"))
        cost_total += item.cost_amount

    order.cost_amount = cost_total
    order.status = "confirmed"
    order.confirmed_at = datetime.utcnow()
    await add_log(db, operator_id, "confirm", "order", order.id, order.order_code,
                  description=f"确认订单，出库成本 {cost_total}")
    logger.info(f"🧾 订单确认 {order.order_code}，成本 {cost_total}")
    return order


async def deliver_order(db: AsyncSession, order_id: int, data: OrderDeliver, operator_id: int) -> Order:
    order = await get_order(db, order_id)
    if order.status != "confirmed":
        raise HTTPException(status_code=400, detail="只有已确认的订单可以发货")
    if data.tracking_number:
        order.tracking_number = data.tracking_number
    if data.shipping_partner:
        order.shipping_partner = data.shipping_partner
    order.status = "delivered"
    order.delivered_at = datetime.utcnow()
    await add_log(db, operator_id, "ship", "order", order.id, order.order_code)
    return order


async def complete_order(db: AsyncSession, order_id: int, operator_id: int) -> Order:
    """完成订单：未收清的部分生成应收账款"""
    order = await get_order(db, order_id)
    if order.status not in ("confirmed", "delivered"):
        raise HTTPException(status_code=400, detail="只有已确认或已发货的订单可以完成")
    order.status = "completed"
    order.completed_at = datetime.utcnow()
    await debt_service.create_receivable_from_order(db, order, operator_id)
    await add_log(db, operator_id, "complete", "order", order.id, order.order_code)
    return order


async def cancel_order(db: AsyncSession, order_id: int, operator_id: int) -> Order:
    """取消订单：已出库的按原批次回库"""
    order = await get_order(db, order_id)
    if order.status == "completed":
        raise HTTPException(status_code=400, detail="已完成的订单不能取消")
    if order.status == "cancelled":
        raise HTTPException(status_code=400, detail="订单已取消")
    if order.paid_amount and order.paid_amount > 0:
        raise HTTPException(status_code=400, detail="订单已有收款，请先处理退款")

    if order.status in ("confirmed", "delivered"):
        items = await get_items(db, order.id)
        await stock_ops.restore_allocations(
            db,
            reference_type="order_item",
            reference_ids=[item.id for item in items],
            movement_type="order_cancel",
            operator_id=operator_id,
            reason=f"订单 {order.order_code} 取消回库",
        )
        for item in items:
            item.cost_amount = ZERO
        order.cost_amount = ZERO

    order.status = "cancelled"
    order.cancelled_at = datetime.utcnow()
    await add_log(db, operator_id, "cancel", "order", order.id, order.order_code)
    return order
