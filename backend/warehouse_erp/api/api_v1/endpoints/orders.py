"""销售订单API"""

from datetime import date, datetime, timedelta
from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse_erp.core.deps import get_db, get_operator_id
from warehouse_erp.models.order import Order, OrderItem
from warehouse_erp.schemas.order import (
    OrderCreate, OrderDeliver, OrderPayment,
    OrderItemResponse, OrderResponse, OrderListResponse,
    StockAvailabilityResponse,
)
from warehouse_erp.services import debt_service, order_service

router = APIRouter()


def build_order_response(order: Order) -> OrderResponse:
    items = []
    for item in order.items:
        resp = OrderItemResponse.model_validate(item)
        resp.product_name = item.product.name if item.product else ""
        items.append(resp)

    return OrderResponse(
        id=order.id,
        order_code=order.order_code,
        customer_id=order.customer_id,
        customer_name=order.customer.name if order.customer else "",
        warehouse_id=order.warehouse_id,
        warehouse_name=order.warehouse.name if order.warehouse else "",
        status=order.status,
        status_display=order.status_display,
        payment_method=order.payment_method,
        shipping_partner=order.shipping_partner,
        tracking_number=order.tracking_number,
        total_amount=order.total_amount,
        paid_amount=order.paid_amount,
        remaining_amount=order.remaining_amount,
        cost_amount=order.cost_amount,
        notes=order.notes,
        confirmed_at=order.confirmed_at,
        delivered_at=order.delivered_at,
        completed_at=order.completed_at,
        cancelled_at=order.cancelled_at,
        created_at=order.created_at,
        items=items,
    )


def _load_options():
    return (
        selectinload(Order.items).selectinload(OrderItem.product),
        selectinload(Order.customer),
        selectinload(Order.warehouse),
    )


async def load_order(db: AsyncSession, order_id: int) -> Order:
    result = await db.execute(
        select(Order)
        .options(*_load_options())
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    order = result.scalar_one_or_none()
    if not order:
        raise HTTPException(status_code=404, detail="订单不存在")
    return order


@router.get("/", response_model=OrderListResponse)
async def list_orders(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    customer_id: Optional[int] = Query(None),
    warehouse_id: Optional[int] = Query(None),
    payment_method: Optional[str] = Query(None),
    shipping_partner: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="搜索订单号/运单号"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
) -> Any:
    """获取订单列表"""
    conditions = []
    if status:
        conditions.append(Order.status == status)
    if customer_id:
        conditions.append(Order.customer_id == customer_id)
    if warehouse_id:
        conditions.append(Order.warehouse_id == warehouse_id)
    if payment_method:
        conditions.append(Order.payment_method == payment_method)
    if shipping_partner:
        conditions.append(Order.shipping_partner == shipping_partner)
    if search:
        conditions.append(Order.order_code.contains(search) | Order.tracking_number.contains(search))
    if start_date:
        conditions.append(Order.created_at >= datetime.combine(start_date, datetime.min.time()))
    if end_date:
        conditions.append(Order.created_at < datetime.combine(end_date + timedelta(days=1), datetime.min.time()))

    query = select(Order).options(*_load_options())
    count_query = select(func.count(Order.id))
    if conditions:
        query = query.where(and_(*conditions))
        count_query = count_query.where(and_(*conditions))

    total = (await db.execute(count_query)).scalar() or 0
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    orders = (await db.execute(query)).scalars().all()

    return OrderListResponse(
        data=[build_order_response(o) for o in orders],
        total=total, page=page, limit=limit
    )


@router.post("/", response_model=OrderResponse)
async def create_order(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    data: OrderCreate,
) -> Any:
    """创建订单（待确认，不扣库存）"""
    order = await order_service.create_order(db, data, operator_id)
    await db.commit()
    return build_order_response(await load_order(db, order.id))


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    *,
    db: AsyncSession = Depends(get_db),
    order_id: int,
) -> Any:
    return build_order_response(await load_order(db, order_id))


@router.get("/{order_id}/check-stock", response_model=StockAvailabilityResponse)
async def check_order_stock(
    *,
    db: AsyncSession = Depends(get_db),
    order_id: int,
) -> Any:
    """检查订单各商品可用库存"""
    return await order_service.check_stock_availability(db, order_id)


@router.post("/{order_id}/confirm", response_model=OrderResponse)
async def confirm_order(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    order_id: int,
) -> Any:
    """确认订单：按 FEFO 扣减库存并计算销售成本"""
    await order_service.confirm_order(db, order_id, operator_id)
    await db.commit()
    return build_order_response(await load_order(db, order_id))


@router.post("/{order_id}/deliver", response_model=OrderResponse)
async def deliver_order(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    order_id: int,
    data: OrderDeliver,
) -> Any:
    await order_service.deliver_order(db, order_id, data, operator_id)
    await db.commit()
    return build_order_response(await load_order(db, order_id))


@router.post("/{order_id}/complete", response_model=OrderResponse)
async def complete_order(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    order_id: int,
) -> Any:
    """完成订单：未收清的生成应收账款"""
    await order_service.complete_order(db, order_id, operator_id)
    await db.commit()
    return build_order_response(await load_order(db, order_id))


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    order_id: int,
) -> Any:
    """取消订单：已扣减的库存按原批次退回"""
    await order_service.cancel_order(db, order_id, operator_id)
    await db.commit()
    return build_order_response(await load_order(db, order_id))


@router.post("/{order_id}/payment", response_model=OrderResponse)
async def record_order_payment(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    order_id: int,
    data: OrderPayment,
) -> Any:
    """订单收款（同步核销应收）"""
    await debt_service.collect_order_payment(
        db, order_id, data.amount, operator_id,
        fund_id=data.fund_id,
        payment_method=data.payment_method,
        notes=data.notes,
    )
    await db.commit()
    return build_order_response(await load_order(db, order_id))
