"""批次：FEFO 分配、过期、报废、删除"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy import select, func

from warehouse_erp.models import Batch, Product
from warehouse_erp.schemas.inbound_batch import InboundBatchCreate, InboundItemCreate, InboundReceive, QualityCheckCreate
from warehouse_erp.schemas.internal_transfer import (
    TransferCreate, TransferItemCreate, TransferReceive, TransferReceiveItem,
)
from warehouse_erp.schemas.order import OrderCreate, OrderItemCreate
from warehouse_erp.schemas.stocktake import StocktakeCreate, StocktakeItemCount, StocktakeItemsUpdate
from warehouse_erp.services import (
    batch_service, inbound_service, order_service, stock_ops, stocktake_service, transfer_service,
)


async def test_fefo_consumes_earliest_expiry_first(db, warehouse, product, make_batch):
    no_expiry = await make_batch(warehouse, product, 10)
    late = await make_batch(warehouse, product, 10, expiry_days=60)
    early = await make_batch(warehouse, product, 10, expiry_days=5)

    stock, allocations = await stock_ops.outbound_stock(db, warehouse.id, product.id, Decimal("15"), 1)
    await db.commit()

    assert [a.batch_id for a in allocations] == [early.id, late.id]
    assert early.remaining_quantity == Decimal("0")
    assert early.status == "depleted"
    assert late.remaining_quantity == Decimal("5")
    assert no_expiry.remaining_quantity == Decimal("10")
    assert stock.quantity == Decimal("15")


async def test_expired_batch_is_not_allocatable(db, warehouse, product, make_batch):
    expired = await make_batch(warehouse, product, 10, expiry_days=-1)
    fresh = await make_batch(warehouse, product, 4, expiry_days=10)

    assert expired.status == "expired"
    assert await batch_service.get_available_quantity(db, product.id, warehouse.id) == Decimal("4")

    with pytest.raises(HTTPException) as exc:
        await batch_service.plan_allocation(db, product.id, Decimal("5"), warehouse.id)
    assert exc.value.status_code == 400

    plan = await batch_service.plan_allocation(db, product.id, Decimal("4"), warehouse.id)
    assert [(b.id, q) for b, q in plan] == [(fresh.id, Decimal("4"))]


async def test_outbound_with_explicit_batch(db, warehouse, product, make_batch):
    await make_batch(warehouse, product, 10, expiry_days=5)
    later = await make_batch(warehouse, product, 10, expiry_days=30)

    _, allocations = await stock_ops.outbound_stock(
        db, warehouse.id, product.id, Decimal("3"), 1, batch_id=later.id
    )
    assert len(allocations) == 1
    assert later.remaining_quantity == Decimal("7")


async def test_mark_expired_batches(db, warehouse, product, make_batch):
    batch = await make_batch(warehouse, product, 10, expiry_days=3)
    batch.expiry_date = date.today() - timedelta(days=1)
    await db.commit()

    assert await batch_service.mark_expired_batches(db) == 1
    await db.commit()
    assert batch.status == "expired"
    assert await batch_service.mark_expired_batches(db) == 0


async def test_dispose_expired_batch(db, warehouse, product, make_batch):
    batch = await make_batch(warehouse, product, 10, expiry_days=-2)

    await stock_ops.dispose_batch(db, batch.id, "过期报废", 1, Decimal("4"))
    await db.commit()

    stock = await stock_ops.get_stock(db, warehouse.id, product.id)
    assert batch.remaining_quantity == Decimal("6")
    assert stock.quantity == Decimal("6")


async def test_dispose_requires_reason(db, warehouse, product, make_batch):
    batch = await make_batch(warehouse, product, 10)
    with pytest.raises(HTTPException):
        await stock_ops.dispose_batch(db, batch.id, " ", 1)


async def test_delete_batch_only_when_untouched(db, warehouse, product, make_batch):
    used = await make_batch(warehouse, product, 10, expiry_days=5)
    untouched = await make_batch(warehouse, product, 5, expiry_days=50)
    await stock_ops.outbound_stock(db, warehouse.id, product.id, Decimal("2"), 1)
    await db.commit()

    with pytest.raises(HTTPException) as exc:
        await stock_ops.delete_batch(db, used.id, 1)
    assert exc.value.status_code == 400

    await stock_ops.delete_batch(db, untouched.id, 1)
    await db.commit()
    stock = await stock_ops.get_stock(db, warehouse.id, product.id)
    assert untouched.deleted_at is not None
    assert stock.quantity == Decimal("8")

    with pytest.raises(HTTPException) as exc:
        await batch_service.get_batch(db, untouched.id)
    assert exc.value.status_code == 404


async def test_update_batch_rejects_expiry_before_manufacturing(db, warehouse, product, make_batch):
    from warehouse_erp.schemas.batch import BatchUpdate

    batch = await make_batch(warehouse, product, 10, expiry_days=5)
    data = BatchUpdate(manufacturing_date=batch.expiry_date + timedelta(days=30))
    with pytest.raises(HTTPException):
        await batch_service.update_batch(db, batch.id, data)


async def test_expiring_soon_summary_groups_by_product(db, warehouse, warehouse2, product, make_batch):
    banana = Product(name="香蕉", sku="BANANA-01", unit="箱", is_active=True, created_by=1)
    db.add(banana)
    await db.commit()

    await make_batch(warehouse, product, 4, expiry_days=5)
    await make_batch(warehouse2, product, 6, expiry_days=20)
    await make_batch(warehouse, product, 10)
    await make_batch(warehouse, product, 8, expiry_days=90)
    await make_batch(warehouse, product, 7, expiry_days=-1)
    used_up = await make_batch(warehouse, product, 3, expiry_days=10)
    await stock_ops.outbound_stock(db, warehouse.id, product.id, Decimal("3"), 1, batch_id=used_up.id)
    await db.commit()
    await make_batch(warehouse, banana, 2, expiry_days=2)

    summary = await batch_service.get_expiring_soon_summary(db, days=30)

    assert [row["product_id"] for row in summary] == [banana.id, product.id]
    apple = summary[1]
    assert apple["total_quantity"] == Decimal("10")
    assert apple["batch_count"] == 2
    assert apple["earliest_expiry"] == date.today() + timedelta(days=5)
    assert summary[0]["total_quantity"] == Decimal("2")


async def _lot_total(db, warehouse, product):
    result = await db.execute(
        select(func.coalesce(func.sum(Batch.remaining_quantity), 0)).where(
            Batch.warehouse_id == warehouse.id,
            Batch.product_id == product.id,
            Batch.deleted_at.is_(None),
        )
    )
    return Decimal(str(result.scalar()))


async def test_lot_remaining_matches_stock_after_mixed_movements(
    db, warehouse, warehouse2, customer, product, make_batch
):
    # 质检入库 30，期初 10（20 天后过期）
    inbound = await inbound_service.create_inbound_batch(
        db,
        InboundBatchCreate(
            warehouse_id=warehouse.id,
            items=[InboundItemCreate(product_id=product.id, quantity_expected=Decimal("30"), unit_cost=Decimal("3"))],
        ),
        1,
    )
    await inbound_service.receive_inbound_batch(db, inbound.id, InboundReceive(), 1)
    await inbound_service.create_quality_check(db, inbound.id, QualityCheckCreate(status="pass"), 1)
    await db.commit()
    await make_batch(warehouse, product, 10, expiry_days=20)

    # 确认后取消，再确认一单
    for quantity, cancel in (("6", True), ("5", False)):
        order = await order_service.create_order(
            db,
            OrderCreate(
                customer_id=customer.id,
                warehouse_id=warehouse.id,
                items=[OrderItemCreate(product_id=product.id, quantity=Decimal(quantity), unit_price=Decimal("20"))],
            ),
            1,
        )
        await order_service.confirm_order(db, order.id, 1)
        await db.commit()
        if cancel:
            await order_service.cancel_order(db, order.id, 1)
        await db.commit()

    # 调拨 12，到货 11
    transfer = await transfer_service.create_transfer(
        db,
        TransferCreate(
            from_warehouse_id=warehouse.id,
            to_warehouse_id=warehouse2.id,
            items=[TransferItemCreate(product_id=product.id, quantity=Decimal("12"))],
        ),
        1,
    )
    await transfer_service.ship_transfer(db, transfer.id, 1)
    await db.commit()
    items = await transfer_service.get_items(db, transfer.id)
    await transfer_service.receive_transfer(
        db, transfer.id,
        TransferReceive(items=[TransferReceiveItem(item_id=items[0].id, received_quantity=Decimal("11"))]),
        1,
    )
    await db.commit()

    # 盘亏 2
    stocktake = await stocktake_service.create_stocktake(db, StocktakeCreate(warehouse_id=warehouse.id), 1)
    await stocktake_service.start_stocktake(db, stocktake.id, 1)
    await db.commit()
    counted = await stocktake_service.get_items(db, stocktake.id)
    await stocktake_service.update_items(
        db, stocktake.id,
        StocktakeItemsUpdate(items=[
            StocktakeItemCount(item_id=counted[0].id, actual_quantity=counted[0].system_quantity - 2, reason="损耗"),
        ]),
        1,
    )
    await stocktake_service.complete_stocktake(db, stocktake.id, 1)
    await db.commit()
    await stocktake_service.approve_stocktake(db, stocktake.id, 1)
    await db.commit()

    source = await stock_ops.get_stock(db, warehouse.id, product.id)
    target = await stock_ops.get_stock(db, warehouse2.id, product.id)
    assert source.quantity == Decimal("21")
    assert target.quantity == Decimal("11")
    assert await _lot_total(db, warehouse, product) == source.quantity
    assert await _lot_total(db, warehouse2, product) == target.quantity
