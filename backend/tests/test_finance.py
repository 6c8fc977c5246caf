"""资金账户、收支流水与往来账"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from warehouse_erp.models import AccountReceivable, DebtPayment, FinanceTransaction
from warehouse_erp.schemas.debt import DebtPaymentCreate
from warehouse_erp.schemas.finance import ExpenseCreate, ExpenseUpdate, FundCreate
from warehouse_erp.schemas.order import OrderCreate, OrderItemCreate
from warehouse_erp.services import debt_service, finance_service, order_service


async def test_first_fund_becomes_default(db):
    cash = await finance_service.create_fund(db, FundCreate(name="现金", initial_balance=Decimal("100")), 1)
    bank = await finance_service.create_fund(db, FundCreate(name="银行", type="bank"), 1)
    await db.commit()

    assert cash.is_default
    assert not bank.is_default
    assert cash.code.startswith("F")
    assert cash.balance == Decimal("100")

    switched = await finance_service.create_fund(db, FundCreate(name="备用金", is_default=True), 1)
    await db.commit()
    assert switched.is_default
    assert (await finance_service.resolve_fund(db)).id == switched.id


async def test_receipt_and_payment_update_balance(db, fund):
    receipt = await finance_service.record_receipt(db, Decimal("200"), 1, description="其他收入")
    payment = await finance_service.record_payment(db, Decimal("150"), 1, category="房租")
    await db.commit()

    assert receipt.transaction_code.startswith("RC")
    assert payment.transaction_code.startswith("PM")
    assert payment.balance_before == Decimal("1200.00")
    assert payment.balance_after == Decimal("1050.00")
    assert fund.balance == Decimal("1050.00")


async def test_overdraft_rejected(db, fund):
    with pytest.raises(HTTPException) as exc:
        await finance_service.record_payment(db, Decimal("1000.01"), 1)
    assert exc.value.status_code == 400
    assert fund.balance == Decimal("1000.00")


async def test_missing_default_fund(db):
    with pytest.raises(HTTPException) as exc:
        await finance_service.record_receipt(db, Decimal("10"), 1)
    assert exc.value.status_code == 400


async def test_void_reverses_balance(db, fund):
    tx = await finance_service.create_expense(
        db, ExpenseCreate(amount=Decimal("80"), category="运费"), 1
    )
    await db.commit()
    assert fund.balance == Decimal("920.00")

    await finance_service.void_transaction(db, tx.id, 1)
    await db.commit()
    assert tx.status == "voided"
    assert fund.balance == Decimal("1000.00")

    with pytest.raises(HTTPException):
        await finance_service.void_transaction(db, tx.id, 1)


async def test_summary_excludes_voided(db, fund):
    await finance_service.create_expense(db, ExpenseCreate(amount=Decimal("30"), category="运费"), 1)
    voided = await finance_service.create_expense(db, ExpenseCreate(amount=Decimal("20"), category="办公"), 1)
    await finance_service.create_expense(
        db, ExpenseCreate(type="income", amount=Decimal("50"), category="废品回收"), 1
    )
    await finance_service.void_transaction(db, voided.id, 1)
    await db.commit()

    summary = await finance_service.get_summary(db)
    assert summary["total_receipts"] == Decimal("50")
    assert summary["total_payments"] == Decimal("30")
    assert summary["net"] == Decimal("20")
    assert summary["total_balance"] == Decimal("1020.00")

    by_category = await finance_service.get_category_summary(db, "payment")
    assert [(row["category"], row["count"]) for row in by_category] == [("运费", 1)]


async def test_payable_payment_and_linked_void(db, supplier, fund):
    ap = await debt_service.create_payable(db, supplier_id=supplier.id, amount=Decimal("300"), operator_id=1)
    await db.commit()
    assert ap.ap_code.startswith("AP")

    await debt_service.pay_payable(db, ap.id, DebtPaymentCreate(amount=Decimal("100")), 1)
    await db.commit()
    assert ap.status == "partial"
    assert ap.remaining_amount == Decimal("200")
    assert fund.balance == Decimal("900.00")

    with pytest.raises(HTTPException) as exc:
        await debt_service.pay_payable(db, ap.id, DebtPaymentCreate(amount=Decimal("250")), 1)
    assert exc.value.status_code == 400

    await debt_service.pay_payable(db, ap.id, DebtPaymentCreate(amount=Decimal("200")), 1)
    await db.commit()
    assert ap.status == "paid"

    # 已核销往来账的流水不能作废
    payment = (await db.execute(select(DebtPayment).limit(1))).scalar_one()
    with pytest.raises(HTTPException) as exc:
        await finance_service.void_transaction(db, payment.finance_transaction_id, 1)
    assert exc.value.status_code == 400


async def test_payable_requires_supplier(db, customer):
    with pytest.raises(HTTPException) as exc:
        await debt_service.create_payable(db, supplier_id=customer.id, amount=Decimal("10"), operator_id=1)
    assert exc.value.status_code == 400


async def test_overdue_update(db, supplier):
    ap = await debt_service.create_payable(
        db, supplier_id=supplier.id, amount=Decimal("50"), operator_id=1,
        due_date=date.today() - timedelta(days=1),
    )
    current = await debt_service.create_payable(db, supplier_id=supplier.id, amount=Decimal("60"), operator_id=1)
    await db.commit()

    assert await debt_service.update_overdue_debts(db) == {"receivables": 0, "payables": 1}
    await db.commit()
    assert ap.status == "overdue"
    assert current.status == "open"

    summary = await debt_service.get_debt_summary(db, type(ap))
    assert summary["overdue_total"] == Decimal("50")
    assert summary["open_total"] == Decimal("110")


async def test_expense_warehouse_must_be_active_warehouse(db, fund, warehouse, customer):
    with pytest.raises(HTTPException) as exc:
        await finance_service.create_expense(
            db, ExpenseCreate(amount=Decimal("10"), category="运费", warehouse_id=customer.id), 1
        )
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        await finance_service.create_expense(
            db, ExpenseCreate(amount=Decimal("10"), category="运费", warehouse_id=9999), 1
        )
    assert exc.value.status_code == 404
    assert fund.balance == Decimal("1000.00")

    tx = await finance_service.create_expense(
        db, ExpenseCreate(amount=Decimal("10"), category="运费", warehouse_id=warehouse.id), 1
    )
    await db.commit()
    assert tx.warehouse_id == warehouse.id


async def test_update_expense_checks_warehouse(db, fund, warehouse, supplier):
    tx = await finance_service.create_expense(db, ExpenseCreate(amount=Decimal("10"), category="运费"), 1)
    await db.commit()

    with pytest.raises(HTTPException) as exc:
        await finance_service.update_expense(db, tx.id, ExpenseUpdate(warehouse_id=supplier.id), 1)
    assert exc.value.status_code == 400
    assert tx.warehouse_id is None

    await finance_service.update_expense(db, tx.id, ExpenseUpdate(warehouse_id=warehouse.id, description="装卸"), 1)
    await db.commit()
    assert tx.warehouse_id == warehouse.id
    assert tx.description == "装卸"


async def _receivable(db, customer, warehouse, product, make_batch):
    """6 箱 × 20 的订单，确认后直接完成，整单挂应收"""
    await make_batch(warehouse, product, 10)
    order = await order_service.create_order(
        db,
        OrderCreate(
            customer_id=customer.id,
            warehouse_id=warehouse.id,
            items=[OrderItemCreate(product_id=product.id, quantity=Decimal("6"), unit_price=Decimal("20"))],
        ),
        1,
    )
    await order_service.confirm_order(db, order.id, 1)
    await order_service.complete_order(db, order.id, 1)
    await db.commit()
    ar = (await db.execute(select(AccountReceivable))).scalar_one()
    return order, ar


async def test_collect_receivable_links_transaction(db, customer, warehouse, product, make_batch, fund):
    order, ar = await _receivable(db, customer, warehouse, product, make_batch)
    assert ar.status == "open"
    assert ar.remaining_amount == Decimal("120")

    await debt_service.collect_receivable(db, ar.id, DebtPaymentCreate(amount=Decimal("70")), 1)
    await db.commit()

    assert ar.status == "partial"
    assert ar.remaining_amount == Decimal("50")
    assert order.paid_amount == Decimal("70")
    assert order.remaining_amount == Decimal("50")
    assert fund.balance == Decimal("1070.00")

    payment = (await db.execute(select(DebtPayment))).scalar_one()
    assert payment.debt_type == "receivable"
    assert payment.debt_id == ar.id
    assert payment.amount == Decimal("70")
    tx = await db.get(FinanceTransaction, payment.finance_transaction_id)
    assert tx.type == "receipt"
    assert tx.reference_type == "receivable"
    assert tx.reference_id == ar.id

    with pytest.raises(HTTPException) as exc:
        await debt_service.collect_receivable(db, ar.id, DebtPaymentCreate(amount=Decimal("60")), 1)
    assert exc.value.status_code == 400
    assert fund.balance == Decimal("1070.00")


async def test_write_off_blocks_collection(db, customer, warehouse, product, make_batch, fund):
    _, ar = await _receivable(db, customer, warehouse, product, make_batch)

    await debt_service.write_off_receivable(db, ar.id, "客户失联", 1)
    await db.commit()
    assert ar.status == "written_off"
    assert "客户失联" in ar.notes

    with pytest.raises(HTTPException) as exc:
        await debt_service.collect_receivable(db, ar.id, DebtPaymentCreate(amount=Decimal("10")), 1)
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException):
        await debt_service.write_off_receivable(db, ar.id, "重复核销", 1)
    assert fund.balance == Decimal("1000.00")
