"""内部调拨：发货、收货、短收、取消"""

from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from warehouse_erp.models import Batch
from warehouse_erp.schemas.internal_transfer import (
    TransferCreate, TransferItemCreate, TransferReceive, TransferReceiveItem,
)
from warehouse_erp.services import cost_service, stock_ops, transfer_service


async def _shipped_transfer(db, source, target, product, quantity):
    data = TransferCreate(
        from_warehouse_id=source.id,
        to_warehouse_id=target.id,
        items=[TransferItemCreate(product_id=product.id, quantity=Decimal(quantity))],
    )
    transfer = await transfer_service.create_transfer(db, data, 1)
    await transfer_service.ship_transfer(db, transfer.id, 1)
    await db.commit()
    return transfer


async def test_same_warehouse_rejected(db, warehouse, product):
    data = TransferCreate(
        from_warehouse_id=warehouse.id,
        to_warehouse_id=warehouse.id,
        items=[TransferItemCreate(product_id=product.id, quantity=Decimal("1"))],
    )
    with pytest.raises(HTTPException) as exc:
        await transfer_service.create_transfer(db, data, 1)
    assert exc.value.status_code == 400


async def test_ship_and_receive_inherit_expiry_and_cost(db, warehouse, warehouse2, product, make_batch):
    early = await make_batch(warehouse, product, 5, unit_cost="4", expiry_days=10)
    late = await make_batch(warehouse, product, 10, unit_cost="6", expiry_days=40)
    average_before = await cost_service.get_average_cost(db, product.id)

    transfer = await _shipped_transfer(db, warehouse, warehouse2, product, "8")
    assert transfer.status == "in_transit"
    assert early.remaining_quantity == Decimal("0")
    assert late.remaining_quantity == Decimal("7")

    await transfer_service.receive_transfer(db, transfer.id, TransferReceive(), 1)
    await db.commit()

    assert transfer.status == "received"
    result = await db.execute(
        select(Batch).where(Batch.warehouse_id == warehouse2.id).order_by(Batch.expiry_date)
    )
    received = result.scalars().all()
    assert [(b.parent_batch_id, b.quantity, b.expiry_date, b.unit_cost) for b in received] == [
        (early.id, Decimal("5"), early.expiry_date, early.unit_cost),
        (late.id, Decimal("3"), late.expiry_date, late.unit_cost),
    ]

    source_stock = await stock_ops.get_stock(db, warehouse.id, product.id)
    target_stock = await stock_ops.get_stock(db, warehouse2.id, product.id)
    assert source_stock.quantity == Decimal("7")
    assert target_stock.quantity == Decimal("8")
    # 调拨不影响均价
    assert await cost_service.get_average_cost(db, product.id) == average_before


async def test_short_receive_books_transit_loss(db, warehouse, warehouse2, product, make_batch):
    await make_batch(warehouse, product, 10, unit_cost="5")
    transfer = await _shipped_transfer(db, warehouse, warehouse2, product, "10")
    items = await transfer_service.get_items(db, transfer.id)

    await transfer_service.receive_transfer(
        db, transfer.id,
        TransferReceive(items=[TransferReceiveItem(item_id=items[0].id, received_quantity=Decimal("9"))]),
        1,
    )
    await db.commit()

    target_stock = await stock_ops.get_stock(db, warehouse2.id, product.id)
    cost = await cost_service.get_or_create_product_cost(db, product.id)
    assert items[0].received_quantity == Decimal("9")
    assert target_stock.quantity == Decimal("9")
    assert cost.total_quantity == Decimal("9")
    assert cost.average_cost == Decimal("5.00")


async def test_receive_more_than_shipped_rejected(db, warehouse, warehouse2, product, make_batch):
    await make_batch(warehouse, product, 10)
    transfer = await _shipped_transfer(db, warehouse, warehouse2, product, "4")
    items = await transfer_service.get_items(db, transfer.id)

    data = TransferReceive(items=[TransferReceiveItem(item_id=items[0].id, received_quantity=Decimal("5"))])
    with pytest.raises(HTTPException) as exc:
        await transfer_service.receive_transfer(db, transfer.id, data, 1)
    assert exc.value.status_code == 400


async def test_cancel_in_transit_restores_source(db, warehouse, warehouse2, product, make_batch):
    batch = await make_batch(warehouse, product, 10)
    transfer = await _shipped_transfer(db, warehouse, warehouse2, product, "6")
    assert batch.remaining_quantity == Decimal("4")

    await transfer_service.cancel_transfer(db, transfer.id, 1)
    await db.commit()

    stock = await stock_ops.get_stock(db, warehouse.id, product.id)
    assert transfer.status == "cancelled"
    assert batch.remaining_quantity == Decimal("10")
    assert stock.quantity == Decimal("10")

    with pytest.raises(HTTPException):
        await transfer_service.receive_transfer(db, transfer.id, TransferReceive(), 1)


async def test_ship_fails_when_stock_short(db, warehouse, warehouse2, product, make_batch):
    await make_batch(warehouse, product, 3)
    data = TransferCreate(
        from_warehouse_id=warehouse.id,
        to_warehouse_id=warehouse2.id,
        items=[TransferItemCreate(product_id=product.id, quantity=Decimal("5"))],
    )
    transfer = await transfer_service.create_transfer(db, data, 1)
    await db.commit()

    with pytest.raises(HTTPException) as exc:
        await transfer_service.ship_transfer(db, transfer.id, 1)
    assert exc.value.status_code == 400
