"""销售订单：确认出库、取消回库、完成生成应收、收款"""

from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from warehouse_erp.models import AccountReceivable
from warehouse_erp.schemas.order import OrderCreate, OrderDeliver, OrderItemCreate
from warehouse_erp.services import debt_service, order_service, stock_ops


async def _create_order(db, customer, warehouse, product, quantity="6", unit_price="20", payment_method="cash"):
    data = OrderCreate(
        customer_id=customer.id,
        warehouse_id=warehouse.id,
        payment_method=payment_method,
        items=[OrderItemCreate(product_id=product.id, quantity=Decimal(quantity), unit_price=Decimal(unit_price))],
    )
    order = await order_service.create_order(db, data, 1)
    await db.commit()
    return order


async def test_create_computes_totals(db, customer, warehouse, product):
    order = await _create_order(db, customer, warehouse, product)
    assert order.order_code.startswith("SO")
    assert order.status == "pending"
    assert order.total_amount == Decimal("120")
    assert order.remaining_amount == Decimal("120")


async def test_check_stock_reports_shortage(db, customer, warehouse, product, make_batch):
    await make_batch(warehouse, product, 4)
    order = await _create_order(db, customer, warehouse, product)

    result = await order_service.check_stock_availability(db, order.id)
    assert result["available"] is False
    assert result["items"][0]["available"] == Decimal("4")


async def test_confirm_deducts_fefo_and_records_cost(db, customer, warehouse, product, make_batch):
    early = await make_batch(warehouse, product, 4, unit_cost="5", expiry_days=3)
    late = await make_batch(warehouse, product, 10, unit_cost="12", expiry_days=30)
    order = await _create_order(db, customer, warehouse, product)

    await order_service.confirm_order(db, order.id, 1)
    await db.commit()

    items = await order_service.get_items(db, order.id)
    stock = await stock_ops.get_stock(db, warehouse.id, product.id)
    assert order.status == "confirmed"
    assert early.remaining_quantity == Decimal("0")
    assert late.remaining_quantity == Decimal("8")
    assert stock.quantity == Decimal("8")
    # 均价 (4*5 + 10*12) / 14 = 10.00
    assert items[0].cost_amount == Decimal("60.00")
    assert order.cost_amount == Decimal("60.00")


async def test_confirm_fails_when_short(db, customer, warehouse, product, make_batch):
    await make_batch(warehouse, product, 2)
    order = await _create_order(db, customer, warehouse, product)
    with pytest.raises(HTTPException) as exc:
        await order_service.confirm_order(db, order.id, 1)
    assert exc.value.status_code == 400


async def test_cancel_confirmed_order_restores_batches(db, customer, warehouse, product, make_batch):
    batch = await make_batch(warehouse, product, 10)
    order = await _create_order(db, customer, warehouse, product)
    await order_service.confirm_order(db, order.id, 1)
    await db.commit()

    await order_service.cancel_order(db, order.id, 1)
    await db.commit()

    stock = await stock_ops.get_stock(db, warehouse.id, product.id)
    assert order.status == "cancelled"
    assert order.cost_amount == Decimal("0")
    assert batch.remaining_quantity == Decimal("10")
    assert stock.quantity == Decimal("10")


async def test_cancel_rejected_after_payment(db, customer, warehouse, product, make_batch, fund):
    await make_batch(warehouse, product, 10)
    order = await _create_order(db, customer, warehouse, product)
    await order_service.confirm_order(db, order.id, 1)
    await debt_service.collect_order_payment(db, order.id, Decimal("50"), 1)
    await db.commit()

    with pytest.raises(HTTPException) as exc:
        await order_service.cancel_order(db, order.id, 1)
    assert exc.value.status_code == 400


async def test_complete_creates_receivable_for_unpaid(db, customer, warehouse, product, make_batch, fund):
    await make_batch(warehouse, product, 10)
    order = await _create_order(db, customer, warehouse, product)
    await order_service.confirm_order(db, order.id, 1)
    await order_service.deliver_order(db, order.id, OrderDeliver(tracking_number="SF123"), 1)
    await debt_service.collect_order_payment(db, order.id, Decimal("20"), 1)
    await order_service.complete_order(db, order.id, 1)
    await db.commit()

    ar = (await db.execute(select(AccountReceivable))).scalar_one()
    assert order.status == "completed"
    assert order.tracking_number == "SF123"
    assert ar.order_id == order.id
    assert ar.total_amount == Decimal("120")
    assert ar.remaining_amount == Decimal("100")
    assert ar.status == "partial"

    # 之后的订单收款同步核销应收
    await debt_service.collect_order_payment(db, order.id, Decimal("100"), 1)
    await db.commit()
    assert order.remaining_amount == Decimal("0")
    assert ar.status == "paid"
    assert fund.balance == Decimal("1120.00")


async def test_complete_fully_paid_creates_no_receivable(db, customer, warehouse, product, make_batch, fund):
    await make_batch(warehouse, product, 10)
    order = await _create_order(db, customer, warehouse, product)
    await order_service.confirm_order(db, order.id, 1)
    await debt_service.collect_order_payment(db, order.id, Decimal("120"), 1)
    await order_service.complete_order(db, order.id, 1)
    await db.commit()

    assert (await db.execute(select(AccountReceivable))).first() is None


async def test_payment_cannot_exceed_remaining(db, customer, warehouse, product, fund):
    order = await _create_order(db, customer, warehouse, product)
    with pytest.raises(HTTPException) as exc:
        await debt_service.collect_order_payment(db, order.id, Decimal("121"), 1)
    assert exc.value.status_code == 400


async def test_deliver_requires_confirmed(db, customer, warehouse, product):
    order = await _create_order(db, customer, warehouse, product)
    with pytest.raises(HTTPException):
        await order_service.deliver_order(db, order.id, OrderDeliver(), 1)


async def test_inactive_product_rejected_for_new_orders(db, customer, warehouse, product, make_batch):
    await make_batch(warehouse, product, 10)
    product.is_active = False
    await db.commit()

    with pytest.raises(HTTPException) as exc:
        await _create_order(db, customer, warehouse, product)
    assert exc.value.status_code == 400

    # 停用商品的存量仍可出库清理
    stock, _ = await stock_ops.outbound_stock(db, warehouse.id, product.id, Decimal("4"), 1)
    await db.commit()
    assert stock.quantity == Decimal("6")
