"""盘点：锁仓、录入、审核调整"""

from decimal import Decimal

import pytest
from fastapi import HTTPException

from warehouse_erp.schemas.stocktake import StocktakeCreate, StocktakeItemCount, StocktakeItemsUpdate
from warehouse_erp.services import cost_service, stock_ops, stocktake_service


async def _started_stocktake(db, warehouse):
    stocktake = await stocktake_service.create_stocktake(db, StocktakeCreate(warehouse_id=warehouse.id), 1)
    await stocktake_service.start_stocktake(db, stocktake.id, 1)
    await db.commit()
    return stocktake


async def test_create_snapshots_stock(db, warehouse, product, make_batch):
    await make_batch(warehouse, product, 12)
    stocktake = await stocktake_service.create_stocktake(db, StocktakeCreate(warehouse_id=warehouse.id), 1)
    await db.commit()

    items = await stocktake_service.get_items(db, stocktake.id)
    assert stocktake.status == "draft"
    assert not stocktake.is_locked
    assert [(i.product_id, i.system_quantity) for i in items] == [(product.id, Decimal("12"))]


async def test_locked_warehouse_rejects_stock_changes(db, warehouse, product, make_batch):
    await make_batch(warehouse, product, 10)
    stocktake = await _started_stocktake(db, warehouse)
    assert stocktake.is_locked

    with pytest.raises(HTTPException) as exc:
        await stock_ops.outbound_stock(db, warehouse.id, product.id, Decimal("1"), 1)
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException):
        await make_batch(warehouse, product, 5)


async def test_only_one_locked_stocktake_per_warehouse(db, warehouse, product, make_batch):
    await make_batch(warehouse, product, 10)
    await _started_stocktake(db, warehouse)

    second = await stocktake_service.create_stocktake(db, StocktakeCreate(warehouse_id=warehouse.id), 1)
    await db.commit()
    with pytest.raises(HTTPException) as exc:
        await stocktake_service.start_stocktake(db, second.id, 1)
    assert exc.value.status_code == 400


async def test_complete_requires_every_item_counted(db, warehouse, product, make_batch):
    from warehouse_erp.models import Product

    other = Product(name="香蕉", sku="BANANA-01", unit="箱", is_active=True, created_by=1)
    db.add(other)
    await db.commit()
    await make_batch(warehouse, product, 10)
    await make_batch(warehouse, other, 6)

    stocktake = await _started_stocktake(db, warehouse)
    items = await stocktake_service.get_items(db, stocktake.id)
    await stocktake_service.update_items(
        db, stocktake.id,
        StocktakeItemsUpdate(items=[StocktakeItemCount(item_id=items[0].id, actual_quantity=Decimal("9"))]),
        1,
    )
    await db.commit()

    with pytest.raises(HTTPException) as exc:
        await stocktake_service.complete_stocktake(db, stocktake.id, 1)
    assert exc.value.status_code == 400


async def test_approve_adjusts_stock_and_unlocks(db, warehouse, product, make_batch):
    batch = await make_batch(warehouse, product, 10, unit_cost="4")
    stocktake = await _started_stocktake(db, warehouse)
    items = await stocktake_service.get_items(db, stocktake.id)

    await stocktake_service.update_items(
        db, stocktake.id,
        StocktakeItemsUpdate(items=[
            StocktakeItemCount(item_id=items[0].id, actual_quantity=Decimal("7"), reason="损耗"),
        ]),
        1,
    )
    await stocktake_service.complete_stocktake(db, stocktake.id, 1)
    await db.commit()
    assert stocktake.status == "pending_approval"
    assert items[0].difference == Decimal("-3")
    assert stocktake_service.count_summary(items)["discrepancy_items"] == 1

    await stocktake_service.approve_stocktake(db, stocktake.id, 1)
    await db.commit()

    stock = await stock_ops.get_stock(db, warehouse.id, product.id)
    assert stocktake.status == "approved"
    assert not stocktake.is_locked
    assert stock.quantity == Decimal("7")
    assert batch.remaining_quantity == Decimal("7")
    assert await cost_service.get_average_cost(db, product.id) == Decimal("4.00")

    # 解锁后可以正常出库
    await stock_ops.outbound_stock(db, warehouse.id, product.id, Decimal("2"), 1)


async def test_cancel_unlocks_warehouse(db, warehouse, product, make_batch):
    await make_batch(warehouse, product, 10)
    stocktake = await _started_stocktake(db, warehouse)

    await stocktake_service.cancel_stocktake(db, stocktake.id, 1)
    await db.commit()
    assert stocktake.status == "cancelled"
    assert not stocktake.is_locked

    with pytest.raises(HTTPException):
        await stocktake_service.cancel_stocktake(db, stocktake.id, 1)


async def test_delete_only_draft(db, warehouse, product, make_batch):
    await make_batch(warehouse, product, 10)
    stocktake = await _started_stocktake(db, warehouse)
    with pytest.raises(HTTPException):
        await stocktake_service.delete_stocktake(db, stocktake.id, 1)
