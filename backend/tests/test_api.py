"""HTTP 接口：从建档到入库、销售、收款的完整流程"""

from decimal import Decimal

API = "/api/v1"


async def _post(client, path, json=None, operator_id=None, expected=200):
    headers = {"X-Operator-Id": str(operator_id)} if operator_id else None
    resp = await client.post(f"{API}{path}", json=json if json is not None else {}, headers=headers)
    assert resp.status_code == expected, resp.text
    return resp.json()


async def test_health_and_root(client):
    resp = await client.get("/health")
    assert resp.json() == {"status": "ok"}
    resp = await client.get("/")
    assert resp.status_code == 200


async def test_entity_create_and_filter(client):
    warehouse = await _post(client, "/entities/", {"name": "一号仓", "entity_type": "warehouse"})
    both = await _post(client, "/entities/", {"name": "批发商", "entity_type": "supplier, customer"})
    assert warehouse["code"]
    assert both["entity_type"] == "supplier,customer"

    resp = await client.get(f"{API}/entities/", params={"entity_type": "customer"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 1
    assert body["data"][0]["id"] == both["id"]

    resp = await client.post(f"{API}/entities/", json={"name": "错误", "entity_type": "factory"})
    assert resp.status_code == 422


async def test_missing_resources_return_404(client):
    assert (await client.get(f"{API}/entities/999")).status_code == 404
    assert (await client.get(f"{API}/orders/999")).status_code == 404
    assert (await client.get(f"{API}/batches/999")).status_code == 404


async def test_inbound_to_sale_flow(client):
    warehouse = await _post(client, "/entities/", {"name": "一号仓", "entity_type": "warehouse"})
    supplier = await _post(client, "/entities/", {"name": "果园", "entity_type": "supplier"})
    customer = await _post(client, "/entities/", {"name": "超市", "entity_type": "customer"})
    product = await _post(client, "/products/", {"name": "橙子", "sku": "ORANGE-01", "sale_price": "15"})
    fund = await _post(client, "/finance/funds", {"name": "现金", "initial_balance": "500"})
    assert fund["is_default"] is True

    # 入库：收货 → 质检合格
    inbound = await _post(client, "/inbound-batches/", {
        "warehouse_id": warehouse["id"],
        "supplier_id": supplier["id"],
        "items": [{"product_id": product["id"], "quantity_expected": "40", "unit_cost": "6"}],
    })
    assert inbound["status"] == "pending"
    await _post(client, f"/inbound-batches/{inbound['id']}/receive")
    checked = await _post(client, f"/inbound-batches/{inbound['id']}/quality-check", {"status": "pass"})
    assert checked["status"] == "qc_completed"
    await _post(client, f"/inbound-batches/{inbound['id']}/quality-check", {"status": "pass"}, expected=400)

    resp = await client.get(f"{API}/stocks/", params={"warehouse_id": warehouse["id"]})
    stock = resp.json()["data"][0]
    assert Decimal(stock["quantity"]) == Decimal("40")
    assert Decimal(stock["available_quantity"]) == Decimal("40")

    payables = (await client.get(f"{API}/debts/payables")).json()
    assert Decimal(payables["data"][0]["total_amount"]) == Decimal("240")

    # 普通员工不能调整库存
    await _post(client, "/stocks/adjust", {
        "warehouse_id": warehouse["id"], "product_id": product["id"], "new_quantity": "30", "reason": "盘亏",
    }, operator_id=2, expected=403)

    # 销售：确认 → 收款 → 完成
    order = await _post(client, "/orders/", {
        "customer_id": customer["id"],
        "warehouse_id": warehouse["id"],
        "items": [{"product_id": product["id"], "quantity": "10", "unit_price": "15"}],
    })
    assert Decimal(order["total_amount"]) == Decimal("150")
    confirmed = await _post(client, f"/orders/{order['id']}/confirm")
    assert Decimal(confirmed["cost_amount"]) == Decimal("60")
    paid = await _post(client, f"/orders/{order['id']}/payment", {"amount": "50"})
    assert Decimal(paid["remaining_amount"]) == Decimal("100")
    completed = await _post(client, f"/orders/{order['id']}/complete")
    assert completed["status"] == "completed"

    receivables = (await client.get(f"{API}/debts/receivables")).json()
    assert receivables["total"] == 1
    assert Decimal(receivables["data"][0]["remaining_amount"]) == Decimal("100")

    funds = (await client.get(f"{API}/finance/funds")).json()
    assert Decimal(funds[0]["balance"]) == Decimal("550")

    logs = (await client.get(f"{API}/stocks/logs", params={"product_id": product["id"]})).json()
    assert {log["movement_type"] for log in logs["data"]} == {"qc_pass", "order_out"}

    audit = (await client.get(f"{API}/audit-logs/", params={"resource_type": "order"})).json()
    assert audit["total"] >= 3
