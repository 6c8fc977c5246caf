"""移动加权平均成本与库存调整"""

from decimal import Decimal

import pytest
from fastapi import HTTPException

from warehouse_erp.services import cost_service, stock_ops


async def test_moving_average_on_inbound(db, warehouse, product, make_batch):
    await make_batch(warehouse, product, 10, unit_cost="5")
    await make_batch(warehouse, product, 10, unit_cost="7")

    cost = await cost_service.get_or_create_product_cost(db, product.id)
    assert cost.average_cost == Decimal("6.00")
    assert cost.total_quantity == Decimal("20")
    assert product.cost_price == Decimal("6.00")


async def test_outbound_keeps_average(db, warehouse, product, make_batch):
    await make_batch(warehouse, product, 10, unit_cost="5")
    await make_batch(warehouse, product, 10, unit_cost="7")

    await stock_ops.outbound_stock(db, warehouse.id, product.id, Decimal("12"), 1)
    await db.commit()

    cost = await cost_service.get_or_create_product_cost(db, product.id)
    assert cost.average_cost == Decimal("6.00")
    assert cost.total_quantity == Decimal("8")
    assert cost.total_value == Decimal("48.00")


async def test_average_rounds_to_two_places(db, warehouse, product, make_batch):
    await make_batch(warehouse, product, 3, unit_cost="1")
    await make_batch(warehouse, product, 3, unit_cost="2")
    await make_batch(warehouse, product, 3, unit_cost="2")

    assert await cost_service.get_average_cost(db, product.id) == Decimal("1.67")


async def test_adjust_stock_up_creates_batch_at_average(db, warehouse, product, make_batch):
    await make_batch(warehouse, product, 10, unit_cost="8")

    stock = await stock_ops.adjust_stock(db, warehouse.id, product.id, Decimal("15"), "盘盈", 1)
    await db.commit()

    assert stock.quantity == Decimal("15")
    assert await cost_service.get_average_cost(db, product.id) == Decimal("8.00")


async def test_adjust_stock_down_consumes_batches(db, warehouse, product, make_batch):
    batch = await make_batch(warehouse, product, 10)

    stock = await stock_ops.adjust_stock(db, warehouse.id, product.id, Decimal("4"), "破损", 1)
    await db.commit()

    assert stock.quantity == Decimal("4")
    assert batch.remaining_quantity == Decimal("4")


async def test_adjust_stock_requires_manager(db, warehouse, product, make_batch):
    await make_batch(warehouse, product, 10)
    with pytest.raises(HTTPException) as exc:
        await stock_ops.adjust_stock(db, warehouse.id, product.id, Decimal("5"), "盘亏", 2)
    assert exc.value.status_code == 403


async def test_adjust_stock_rejects_same_quantity_and_blank_reason(db, warehouse, product, make_batch):
    await make_batch(warehouse, product, 10)
    with pytest.raises(HTTPException) as exc:
        await stock_ops.adjust_stock(db, warehouse.id, product.id, Decimal("10"), "核对", 1)
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        await stock_ops.adjust_stock(db, warehouse.id, product.id, Decimal("3"), "", 1)
    assert exc.value.status_code == 400
