"""退货流程"""

from decimal import Decimal

import pytest
from fastapi import HTTPException

from warehouse_erp.schemas.order import OrderCreate, OrderDeliver, OrderItemCreate
from warehouse_erp.schemas.return_request import (
    ReturnApprove, ReturnComplete, ReturnCreate, ReturnItemCreate, ReturnReceive, ReturnReceiveItem,
)
from warehouse_erp.services import order_service, return_service, stock_ops


@pytest.fixture
async def delivered_order(db, customer, warehouse, product, make_batch):
    await make_batch(warehouse, product, 10, unit_cost="8")
    data = OrderCreate(
        customer_id=customer.id,
        warehouse_id=warehouse.id,
        items=[OrderItemCreate(product_id=product.id, quantity=Decimal("5"), unit_price=Decimal("20"))],
    )
    order = await order_service.create_order(db, data, 1)
    await order_service.confirm_order(db, order.id, 1)
    await order_service.deliver_order(db, order.id, OrderDeliver(), 1)
    await db.commit()
    return order


async def _create_return(db, order, quantity):
    items = await order_service.get_items(db, order.id)
    data = ReturnCreate(
        order_id=order.id,
        reason="包装破损",
        items=[ReturnItemCreate(order_item_id=items[0].id, quantity=Decimal(quantity))],
    )
    rma = await return_service.create_return(db, data, 1)
    await db.commit()
    return rma


async def test_pending_order_cannot_be_returned(db, customer, warehouse, product):
    data = OrderCreate(
        customer_id=customer.id,
        warehouse_id=warehouse.id,
        items=[OrderItemCreate(product_id=product.id, quantity=Decimal("1"), unit_price=Decimal("20"))],
    )
    order = await order_service.create_order(db, data, 1)
    await db.commit()
    with pytest.raises(HTTPException) as exc:
        await _create_return(db, order, "1")
    assert exc.value.status_code == 400


async def test_return_quantity_limited_by_order(db, delivered_order):
    await _create_return(db, delivered_order, "3")
    with pytest.raises(HTTPException) as exc:
        await _create_return(db, delivered_order, "3")
    assert exc.value.status_code == 400


async def test_full_flow_restocks_good_items(db, delivered_order, warehouse, product):
    rma = await _create_return(db, delivered_order, "3")
    assert rma.return_code.startswith("RMA")

    await return_service.approve_return(db, rma.id, ReturnApprove(refund_amount=Decimal("60")), 1)
    items = await return_service.get_items(db, rma.id)
    await return_service.receive_items(
        db, rma.id,
        ReturnReceive(items=[ReturnReceiveItem(item_id=items[0].id, received_quantity=Decimal("3"))]),
        1,
    )
    await db.commit()
    assert rma.status == "received"

    await return_service.complete_return(db, rma.id, ReturnComplete(), 1)
    await db.commit()

    stock = await stock_ops.get_stock(db, warehouse.id, product.id)
    assert rma.status == "completed"
    assert rma.warehouse_id == warehouse.id
    assert stock.quantity == Decimal("8")


async def test_damaged_items_are_disposed(db, delivered_order, warehouse, product):
    rma = await _create_return(db, delivered_order, "2")
    await return_service.approve_return(db, rma.id, ReturnApprove(), 1)
    items = await return_service.get_items(db, rma.id)
    await return_service.receive_items(
        db, rma.id,
        ReturnReceive(items=[ReturnReceiveItem(
            item_id=items[0].id, received_quantity=Decimal("2"), condition="damaged", action="restock",
        )]),
        1,
    )
    await return_service.complete_return(db, rma.id, ReturnComplete(), 1)
    await db.commit()

    stock = await stock_ops.get_stock(db, warehouse.id, product.id)
    assert items[0].action == "dispose"
    assert stock.quantity == Decimal("5")


async def test_refund_cannot_exceed_order_total(db, delivered_order):
    rma = await _create_return(db, delivered_order, "1")
    with pytest.raises(HTTPException) as exc:
        await return_service.approve_return(db, rma.id, ReturnApprove(refund_amount=Decimal("101")), 1)
    assert exc.value.status_code == 400


async def test_rejected_return_frees_quantity(db, delivered_order):
    rma = await _create_return(db, delivered_order, "5")
    await return_service.reject_return(db, rma.id, "超出退货期", 1)
    await db.commit()
    assert rma.status == "rejected"

    again = await _create_return(db, delivered_order, "5")
    assert again.status == "pending"


async def test_complete_requires_received(db, delivered_order):
    rma = await _create_return(db, delivered_order, "1")
    with pytest.raises(HTTPException):
        await return_service.complete_return(db, rma.id, ReturnComplete(), 1)
