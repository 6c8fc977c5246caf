"""库存预警与采购申请"""

from decimal import Decimal

import pytest
from fastapi import HTTPException

from warehouse_erp.schemas.purchase_request import InventorySettingSave, PurchaseRequestCreate
from warehouse_erp.services import inventory_alert_service, purchase_request_service


async def _save_setting(db, product, warehouse=None, **values):
    data = InventorySettingSave(
        product_id=product.id,
        warehouse_id=warehouse.id if warehouse else None,
        **values,
    )
    setting = await inventory_alert_service.save_setting(db, data, 1)
    await db.commit()
    return setting


async def test_save_setting_upserts(db, product, warehouse):
    first = await _save_setting(db, product, warehouse, min_quantity=Decimal("5"))
    second = await _save_setting(db, product, warehouse, min_quantity=Decimal("8"))
    assert first.id == second.id
    assert second.min_quantity == Decimal("8")

    # 全部仓库的设置是另一条
    overall = await _save_setting(db, product, min_quantity=Decimal("3"))
    assert overall.id != first.id
    assert len(await inventory_alert_service.list_settings(db, product.id)) == 2


async def test_min_above_max_rejected(db, product):
    data = InventorySettingSave(product_id=product.id, min_quantity=Decimal("10"), max_quantity=Decimal("5"))
    with pytest.raises(HTTPException) as exc:
        await inventory_alert_service.save_setting(db, data, 1)
    assert exc.value.status_code == 400


async def test_alerts_low_over_and_expiring(db, product, warehouse, warehouse2, make_batch):
    await make_batch(warehouse, product, 3, expiry_days=5)
    await make_batch(warehouse2, product, 50)
    await _save_setting(db, product, warehouse, min_quantity=Decimal("10"), max_quantity=Decimal("30"))
    await _save_setting(db, product, warehouse2, max_quantity=Decimal("40"))

    alerts = await inventory_alert_service.get_alerts(db, days=30)
    by_type = {}
    for alert in alerts:
        by_type.setdefault(alert["type"], []).append(alert)

    low = by_type["low_stock"][0]
    assert low["warehouse_id"] == warehouse.id
    assert low["current_stock"] == Decimal("3")
    assert low["recommended_quantity"] == Decimal("27")
    assert by_type["over_stock"][0]["warehouse_id"] == warehouse2.id
    assert len(by_type["expiring_soon"]) == 1

    summary = await inventory_alert_service.get_alert_summary(db)
    assert summary == {"low_stock": 1, "over_stock": 1, "expiring_soon": 1, "total": 3}


async def test_auto_create_skips_open_requests(db, product, warehouse, make_batch):
    await make_batch(warehouse, product, 2)
    await _save_setting(
        db, product, warehouse,
        min_quantity=Decimal("10"), reorder_quantity=Decimal("25"), auto_create_purchase_request=True,
    )

    result = await inventory_alert_service.check_and_create_purchase_requests(db)
    await db.commit()
    assert result["created"] == 1
    assert result["request_codes"][0].startswith("PR")

    again = await inventory_alert_service.check_and_create_purchase_requests(db)
    await db.commit()
    assert again == {"created": 0, "skipped": 1, "request_codes": []}
    assert await purchase_request_service.get_pending_count(db) == 1


async def test_request_lifecycle(db, product, warehouse, supplier):
    request = await purchase_request_service.create_manual_request(
        db,
        PurchaseRequestCreate(
            product_id=product.id, warehouse_id=warehouse.id, supplier_id=supplier.id,
            requested_quantity=Decimal("30"),
        ),
        2,
    )
    await db.commit()
    assert request.status == "pending"
    assert request.source == "manual"

    await purchase_request_service.approve_request(db, request.id, 1)
    assert request.approved_by == 1
    await purchase_request_service.mark_ordered(db, request.id, 1)
    await purchase_request_service.complete_request(db, request.id, 1)
    await db.commit()
    assert request.status == "completed"

    with pytest.raises(HTTPException):
        await purchase_request_service.cancel_request(db, request.id, 1)


async def test_reject_appends_reason(db, product):
    request = await purchase_request_service.create_manual_request(
        db, PurchaseRequestCreate(product_id=product.id, requested_quantity=Decimal("5")), 1,
    )
    await purchase_request_service.reject_request(db, request.id, "预算不足", 1)
    await db.commit()
    assert request.status == "rejected"
    assert "预算不足" in request.notes

    summary = await purchase_request_service.get_summary(db)
    assert summary["by_status"] == {"rejected": 1}
