"""COD 对账"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from warehouse_erp.schemas.cod_reconciliation import CodItemsUpdate, CodItemUpdate, CodReconciliationCreate
from warehouse_erp.schemas.order import OrderCreate, OrderDeliver, OrderItemCreate
from warehouse_erp.services import cod_reconciliation_service as cod_service
from warehouse_erp.services import order_service


async def _cod_order(db, customer, warehouse, product, quantity, partner="ghn"):
    data = OrderCreate(
        customer_id=customer.id,
        warehouse_id=warehouse.id,
        payment_method="cod",
        shipping_partner=partner,
        items=[OrderItemCreate(product_id=product.id, quantity=Decimal(quantity), unit_price=Decimal("20"))],
    )
    order = await order_service.create_order(db, data, 1)
    await order_service.confirm_order(db, order.id, 1)
    await order_service.deliver_order(db, order.id, OrderDeliver(tracking_number=f"T{order.id}"), 1)
    await db.commit()
    return order


def _period(partner="ghn"):
    today = date.today()
    return CodReconciliationCreate(
        shipping_partner=partner,
        period_from=today - timedelta(days=1),
        period_to=today + timedelta(days=1),
    )


def test_period_must_be_ordered():
    with pytest.raises(ValidationError):
        CodReconciliationCreate(
            shipping_partner="ghn", period_from=date(2024, 5, 2), period_to=date(2024, 5, 1),
        )


async def test_unknown_partner_rejected(db):
    with pytest.raises(HTTPException) as exc:
        await cod_service.create_reconciliation(db, _period("pigeon"), 1)
    assert exc.value.status_code == 400


async def test_reconcile_collects_received_amounts(db, customer, warehouse, product, make_batch, fund):
    await make_batch(warehouse, product, 20)
    first = await _cod_order(db, customer, warehouse, product, "2")
    second = await _cod_order(db, customer, warehouse, product, "3")
    await _cod_order(db, customer, warehouse, product, "1", partner="ghtk")

    rec = await cod_service.create_reconciliation(db, _period(), 1)
    await db.commit()
    assert rec.total_orders == 2
    assert rec.total_expected == Decimal("100")

    items = await cod_service.get_items(db, rec.id)
    by_order = {item.order_id: item for item in items}
    await cod_service.update_items(
        db, rec.id,
        CodItemsUpdate(items=[
            CodItemUpdate(item_id=by_order[first.id].id, received_amount=Decimal("40")),
            CodItemUpdate(item_id=by_order[second.id].id, received_amount=Decimal("50")),
        ]),
        1,
    )
    await db.commit()

    assert by_order[first.id].status == "matched"
    assert by_order[second.id].status == "short"
    assert rec.difference == Decimal("-10")
    assert rec.status == "discrepancy"

    await cod_service.reconcile(db, rec.id, 1)
    await db.commit()

    assert rec.status == "resolved"
    assert rec.reconciled_at is not None
    assert rec.fund_id == fund.id
    assert first.paid_amount == Decimal("40")
    assert second.remaining_amount == Decimal("10")
    assert fund.balance == Decimal("1090.00")

    with pytest.raises(HTTPException):
        await cod_service.reconcile(db, rec.id, 1)


async def test_missing_and_over_statuses(db, customer, warehouse, product, make_batch):
    await make_batch(warehouse, product, 10)
    first = await _cod_order(db, customer, warehouse, product, "1")
    second = await _cod_order(db, customer, warehouse, product, "1")

    rec = await cod_service.create_reconciliation(db, _period(), 1)
    items = await cod_service.get_items(db, rec.id)
    by_order = {item.order_id: item for item in items}
    await cod_service.update_items(
        db, rec.id,
        CodItemsUpdate(items=[
            CodItemUpdate(item_id=by_order[first.id].id, received_amount=Decimal("0")),
            CodItemUpdate(item_id=by_order[second.id].id, received_amount=Decimal("25")),
        ]),
        1,
    )
    assert by_order[first.id].status == "missing"
    assert by_order[second.id].status == "over"


async def test_delete_only_draft(db, customer, warehouse, product, make_batch):
    await make_batch(warehouse, product, 10)
    order = await _cod_order(db, customer, warehouse, product, "1")

    rec = await cod_service.create_reconciliation(db, _period(), 1)
    items = await cod_service.get_items(db, rec.id)
    await cod_service.update_items(
        db, rec.id, CodItemsUpdate(items=[CodItemUpdate(item_id=items[0].id, received_amount=Decimal("20"))]), 1,
    )
    await db.commit()
    assert rec.status == "matched"
    assert items[0].order_id == order.id

    with pytest.raises(HTTPException):
        await cod_service.delete_reconciliation(db, rec.id, 1)


async def test_reconcile_skips_orders_cancelled_after_draft(db, customer, warehouse, product, make_batch, fund):
    await make_batch(warehouse, product, 10)
    kept = await _cod_order(db, customer, warehouse, product, "1")
    dropped = await _cod_order(db, customer, warehouse, product, "1")

    rec = await cod_service.create_reconciliation(db, _period(), 1)
    items = await cod_service.get_items(db, rec.id)
    await cod_service.update_items(
        db, rec.id,
        CodItemsUpdate(items=[CodItemUpdate(item_id=item.id, received_amount=Decimal("20")) for item in items]),
        1,
    )
    await db.commit()

    await order_service.cancel_order(db, dropped.id, 1)
    await db.commit()

    await cod_service.reconcile(db, rec.id, 1)
    await db.commit()

    assert rec.reconciled_at is not None
    assert kept.paid_amount == Decimal("20")
    assert dropped.status == "cancelled"
    assert not dropped.paid_amount
    assert fund.balance == Decimal("1020.00")
