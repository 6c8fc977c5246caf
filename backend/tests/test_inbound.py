"""入库收货与质检"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from warehouse_erp.models import AccountPayable, Batch
from warehouse_erp.schemas.inbound_batch import (
    InboundBatchCreate, InboundItemCreate, InboundReceive, InboundReceiveItem,
    QualityCheckCreate, QualityCheckItemResult,
)
from warehouse_erp.services import inbound_service, stock_ops


async def _create_inbound(db, warehouse, product, supplier=None, quantity="100", unit_cost="3", **item_kwargs):
    data = InboundBatchCreate(
        warehouse_id=warehouse.id,
        supplier_id=supplier.id if supplier else None,
        items=[InboundItemCreate(
            product_id=product.id,
            quantity_expected=Decimal(quantity),
            unit_cost=Decimal(unit_cost),
            **item_kwargs,
        )],
    )
    inbound = await inbound_service.create_inbound_batch(db, data, 1)
    await db.commit()
    return inbound


async def test_receive_defaults_to_expected_quantity(db, warehouse, product):
    inbound = await _create_inbound(db, warehouse, product)
    assert inbound.status == "pending"
    assert inbound.batch_number.startswith("IB")

    await inbound_service.receive_inbound_batch(db, inbound.id, InboundReceive(), 1)
    await db.commit()

    items = await inbound_service.get_items(db, inbound.id)
    assert inbound.status == "received"
    assert items[0].quantity_received == Decimal("100")
    # 收货不产生库存
    assert await stock_ops.get_stock(db, warehouse.id, product.id) is None


async def test_qc_pass_creates_batch_stock_and_payable(db, warehouse, product, supplier):
    expiry = date.today() + timedelta(days=90)
    inbound = await _create_inbound(db, warehouse, product, supplier, expiry_date=expiry)
    items = await inbound_service.get_items(db, inbound.id)
    await inbound_service.receive_inbound_batch(
        db, inbound.id,
        InboundReceive(items=[InboundReceiveItem(item_id=items[0].id, quantity_received=Decimal("80"))]),
        1,
    )
    await db.commit()

    qc = await inbound_service.create_quality_check(db, inbound.id, QualityCheckCreate(status="pass"), 1)
    await db.commit()

    assert inbound.status == "qc_completed"
    assert qc.quantity_passed == Decimal("80")
    assert qc.quantity_failed == Decimal("0")

    stock = await stock_ops.get_stock(db, warehouse.id, product.id)
    assert stock.quantity == Decimal("80")
    assert stock.inbound_batch_id == inbound.id

    batch = (await db.execute(select(Batch).where(Batch.inbound_batch_id == inbound.id))).scalar_one()
    assert batch.expiry_date == expiry
    assert batch.quality_check_id == qc.id
    assert batch.supplier_id == supplier.id

    payable = (await db.execute(select(AccountPayable))).scalar_one()
    assert payable.total_amount == Decimal("240.00")
    assert payable.reference_type == "inbound_batch"
    assert payable.reference_id == inbound.id


async def test_qc_partial_with_single_item_total(db, warehouse, product):
    inbound = await _create_inbound(db, warehouse, product, quantity="50")
    await inbound_service.receive_inbound_batch(db, inbound.id, InboundReceive(), 1)

    qc = await inbound_service.create_quality_check(
        db, inbound.id, QualityCheckCreate(status="partial", quantity_passed=Decimal("45")), 1
    )
    await db.commit()

    items = await inbound_service.get_items(db, inbound.id)
    assert qc.quantity_passed == Decimal("45")
    assert qc.quantity_failed == Decimal("5")
    assert items[0].quantity_failed == Decimal("5")
    stock = await stock_ops.get_stock(db, warehouse.id, product.id)
    assert stock.quantity == Decimal("45")


async def test_qc_partial_requires_quantities_strictly_between(db, warehouse, product):
    inbound = await _create_inbound(db, warehouse, product, quantity="50")
    await inbound_service.receive_inbound_batch(db, inbound.id, InboundReceive(), 1)
    await db.commit()
    inbound_id = inbound.id
    item_id = (await inbound_service.get_items(db, inbound_id))[0].id

    for passed in ("50", "0"):
        data = QualityCheckCreate(
            status="partial",
            items=[QualityCheckItemResult(item_id=item_id, quantity_passed=Decimal(passed))],
        )
        with pytest.raises(HTTPException) as exc:
            await inbound_service.create_quality_check(db, inbound_id, data, 1)
        assert exc.value.status_code == 400
        await db.rollback()

    with pytest.raises(HTTPException):
        await inbound_service.create_quality_check(db, inbound_id, QualityCheckCreate(status="partial"), 1)


async def test_qc_fail_creates_no_stock(db, warehouse, product, supplier):
    inbound = await _create_inbound(db, warehouse, product, supplier)
    await inbound_service.receive_inbound_batch(db, inbound.id, InboundReceive(), 1)

    qc = await inbound_service.create_quality_check(db, inbound.id, QualityCheckCreate(status="fail"), 1)
    await db.commit()

    assert qc.quantity_passed == Decimal("0")
    assert inbound.status == "qc_completed"
    assert await stock_ops.get_stock(db, warehouse.id, product.id) is None
    assert (await db.execute(select(AccountPayable))).first() is None


async def test_second_quality_check_rejected(db, warehouse, product):
    inbound = await _create_inbound(db, warehouse, product)
    await inbound_service.receive_inbound_batch(db, inbound.id, InboundReceive(), 1)
    await inbound_service.create_quality_check(db, inbound.id, QualityCheckCreate(status="pass"), 1)
    await db.commit()

    with pytest.raises(HTTPException) as exc:
        await inbound_service.create_quality_check(db, inbound.id, QualityCheckCreate(status="pass"), 1)
    assert exc.value.status_code == 400


async def test_qc_requires_received_status(db, warehouse, product):
    inbound = await _create_inbound(db, warehouse, product)
    with pytest.raises(HTTPException):
        await inbound_service.create_quality_check(db, inbound.id, QualityCheckCreate(status="pass"), 1)


async def test_cancel_rules(db, warehouse, product):
    pending = await _create_inbound(db, warehouse, product)
    await inbound_service.cancel_inbound_batch(db, pending.id, 1)
    await db.commit()
    assert pending.status == "cancelled"

    done = await _create_inbound(db, warehouse, product)
    await inbound_service.receive_inbound_batch(db, done.id, InboundReceive(), 1)
    await inbound_service.create_quality_check(db, done.id, QualityCheckCreate(status="pass"), 1)
    await db.commit()
    with pytest.raises(HTTPException) as exc:
        await inbound_service.cancel_inbound_batch(db, done.id, 1)
    assert exc.value.status_code == 400


async def test_create_rejects_non_supplier(db, warehouse, product, customer):
    with pytest.raises(HTTPException) as exc:
        await _create_inbound(db, warehouse, product, supplier=customer)
    assert exc.value.status_code == 400


async def test_inactive_product_rejected(db, warehouse, product):
    product.is_active = False
    await db.commit()
    with pytest.raises(HTTPException) as exc:
        await _create_inbound(db, warehouse, product)
    assert exc.value.status_code == 400
