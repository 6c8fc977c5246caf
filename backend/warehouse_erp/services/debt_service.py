"""
应收/应付账款服务

- 订单完成未收清 → 生成应收
- 质检入库 → 生成应付
- 收付款同时写收支流水和往来账收付记录
"""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse_erp.core.config import settings
from warehouse_erp.models.debt import AccountReceivable, AccountPayable, DebtPayment
from warehouse_erp.models.fund import FinanceTransaction
from warehouse_erp.models.order import Order
from warehouse_erp.schemas.debt import DebtPaymentCreate
from warehouse_erp.services import finance_service
from warehouse_erp.services.audit import add_log
from warehouse_erp.services.common import generate_code, get_entity_with_role

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
OPEN_STATUSES = ("open", "partial", "overdue")


async def get_receivable(db: AsyncSession, ar_id: int) -> AccountReceivable:
    result = await db.execute(
        select(AccountReceivable).where(AccountReceivable.id == ar_id).with_for_update()
    )
    ar = result.scalar_one_or_none()
    if not ar:
        raise HTTPException(status_code=404, detail="应收账款不存在")
    return ar


async def get_payable(db: AsyncSession, ap_id: int) -> AccountPayable:
    result = await db.execute(
        select(AccountPayable).where(AccountPayable.id == ap_id).with_for_update()
    )
    ap = result.scalar_one_or_none()
    if not ap:
        raise HTTPException(status_code=404, detail="应付账款不存在")
    return ap


async def get_receivable_by_order(db: AsyncSession, order_id: int) -> Optional[AccountReceivable]:
    result = await db.execute(
        select(AccountReceivable).where(AccountReceivable.order_id == order_id).with_for_update()
    )
    return result.scalars().first()


async def create_receivable_from_order(
    db: AsyncSession, order: Order, operator_id: int
) -> Optional[AccountReceivable]:
    """订单未收清时生成（或更新）应收账款"""
    if (order.remaining_amount or ZERO) <= 0:
        return None

    ar = await get_receivable_by_order(db, order.id)
    if ar:
        ar.total_amount = order.total_amount
        ar.paid_amount = order.paid_amount
        ar.remaining_amount = order.remaining_amount
        if ar.status not in ("overdue", "written_off"):
            ar.status = "partial" if ar.paid_amount > 0 else "open"
        return ar

    now = datetime.utcnow()
    ar = AccountReceivable(
        ar_code=await generate_code(db, AccountReceivable.ar_code, "AR"),
        order_id=order.id,
        customer_id=order.customer_id,
        total_amount=order.total_amount,
        paid_amount=order.paid_amount or ZERO,
        remaining_amount=order.remaining_amount,
        due_date=date.today() + timedelta(days=settings.DEFAULT_DEBT_DUE_DAYS),
        status="partial" if (order.paid_amount or ZERO) > 0 else "open",
        notes=f"订单 {order.order_code}",
        created_by=operator_id,
        created_at=now,
        updated_at=now,
    )
    db.add(ar)
    await db.flush()
    await add_log(db, operator_id, "create", "receivable", ar.id, ar.ar_code,
                  description=f"订单 {order.order_code} 生成应收 {ar.remaining_amount}")
    return ar


async def create_payable(
    db: AsyncSession,
    *,
    supplier_id: int,
    amount: Decimal,
    operator_id: int,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
    due_date: Optional[date] = None,
    notes: Optional[str] = None,
) -> AccountPayable:
    if amount <= 0:
        raise HTTPException(status_code=400, detail="应付金额必须大于0")
    await get_entity_with_role(db, supplier_id, "supplier")

    now = datetime.utcnow()
    ap = AccountPayable(
        ap_code=await generate_code(db, AccountPayable.ap_code, "AP"),
        supplier_id=supplier_id,
        reference_type=reference_type or "manual",
        reference_id=reference_id,
        total_amount=amount,
        paid_amount=ZERO,
        remaining_amount=amount,
        due_date=due_date or date.today() + timedelta(days=settings.DEFAULT_DEBT_DUE_DAYS),
        status="open",
        notes=notes,
        created_by=operator_id,
        created_at=now,
        updated_at=now,
    )
    db.add(ap)
    await db.flush()
    await add_log(db, operator_id, "create", "payable", ap.id, ap.ap_code, description=f"应付 {amount}")
    return ap


def _add_debt_payment(
    db: AsyncSession, debt_type: str, debt_id: int, tx: FinanceTransaction,
    amount: Decimal, operator_id: int, payment_method: Optional[str] = None, notes: Optional[str] = None,
) -> DebtPayment:
    payment = DebtPayment(
        debt_type=debt_type,
        debt_id=debt_id,
        finance_transaction_id=tx.id,
        amount=amount,
        payment_date=tx.transaction_date,
        payment_method=payment_method,
        notes=notes,
        created_by=operator_id,
        created_at=datetime.utcnow(),
    )
    db.add(payment)
    return payment


def _check_payable_amount(debt, amount: Decimal):
    if debt.status in ("paid", "written_off"):
        raise HTTPException(status_code=400, detail=f"账款{debt.status_display}，不能再收付款")
    if amount > debt.remaining_amount:
        raise HTTPException(
            status_code=400,
            detail=f"金额超过剩余未结金额：剩余 {debt.remaining_amount}，本次 {amount}",
        )


async def collect_receivable(
    db: AsyncSession, ar_id: int, data: DebtPaymentCreate, operator_id: int
) -> AccountReceivable:
    """收回应收账款"""
    ar = await get_receivable(db, ar_id)
    _check_payable_amount(ar, data.amount)

    tx = await finance_service.record_receipt(
        db, data.amount, operator_id,
        fund_id=data.fund_id,
        reference_type="receivable",
        reference_id=ar.id,
        reference_number=ar.ar_code,
        payment_method=data.payment_method,
        description=data.notes or f"收回应收 {ar.ar_code}",
    )
    ar.record_payment(data.amount)
    _add_debt_payment(db, "receivable", ar.id, tx, data.amount, operator_id, data.payment_method, data.notes)

    if ar.order_id:
        order = await db.get(Order, ar.order_id)
        if order:
            order.update_payment(data.amount)
    return ar


async def pay_payable(
    db: AsyncSession, ap_id: int, data: DebtPaymentCreate, operator_id: int
) -> AccountPayable:
    """支付应付账款（账户余额不足时报错）"""
    ap = await get_payable(db, ap_id)
    _check_payable_amount(ap, data.amount)

    tx = await finance_service.record_payment(
        db, data.amount, operator_id,
        fund_id=data.fund_id,
        reference_type="payable",
        reference_id=ap.id,
        reference_number=ap.ap_code,
        payment_method=data.payment_method,
        description=data.notes or f"支付应付 {ap.ap_code}",
    )
    ap.record_payment(data.amount)
    _add_debt_payment(db, "payable", ap.id, tx, data.amount, operator_id, data.payment_method, data.notes)
    return ap


async def collect_order_payment(
    db: AsyncSession,
    order_id: int,
    amount: Decimal,
    operator_id: int,
    fund_id: Optional[int] = None,
    payment_method: Optional[str] = None,
    notes: Optional[str] = None,
) -> FinanceTransaction:
    """订单收款：记收款流水、更新订单已收金额，有应收时同步核销"""
    result = await db.execute(select(Order).where(Order.id == order_id).with_for_update())
    order = result.scalar_one_or_none()
    if not order:
        raise HTTPException(status_code=404, detail="订单不存在")
    if order.status == "cancelled":
        raise HTTPException(status_code=400, detail="已取消的订单不能收款")
    if amount <= 0:
        raise HTTPException(status_code=400, detail="收款金额必须大于0")
    if amount > order.remaining_amount:
        raise HTTPException(
            status_code=400,
            detail=f"收款金额超过订单未收金额：未收 {order.remaining_amount}，本次 {amount}",
        )

    tx = await finance_service.record_receipt(
        db, amount, operator_id,
        fund_id=fund_id,
        reference_type="order",
        reference_id=order.id,
        reference_number=order.order_code,
        warehouse_id=order.warehouse_id,
        payment_method=payment_method or order.payment_method,
        description=notes or f"订单 {order.order_code} 收款",
    )
    order.update_payment(amount)

    ar = await get_receivable_by_order(db, order.id)
    if ar and ar.status not in ("paid", "written_off"):
        ar_amount = min(amount, ar.remaining_amount)
        if ar_amount > 0:
            ar.record_payment(ar_amount)
            _add_debt_payment(db, "receivable", ar.id, tx, ar_amount, operator_id, payment_method, notes)
    return tx


async def write_off_receivable(db: AsyncSession, ar_id: int, reason: str, operator_id: int) -> AccountReceivable:
    """坏账核销"""
    ar = await get_receivable(db, ar_id)
    if ar.status in ("paid", "written_off"):
        raise HTTPException(status_code=400, detail=f"应收账款{ar.status_display}，不能核销")
    old_status = ar.status
    ar.status = "written_off"
    ar.notes = f"{ar.notes or ''}\n核销原因：{reason}".strip()
    await add_log(db, operator_id, "update", "receivable", ar.id, ar.ar_code,
                  description=f"核销 {ar.remaining_amount}：{reason}",
                  old_value={"status": old_status}, new_value={"status": "written_off"})
    return ar


async def get_debt_summary(db: AsyncSession, model) -> dict:
    """往来账汇总（按状态）"""
    result = await db.execute(
        select(model.status, func.count(model.id), func.coalesce(func.sum(model.remaining_amount), 0))
        .group_by(model.status)
    )
    by_status = {
        row[0]: {"count": row[1], "remaining_amount": Decimal(str(row[2]))}
        for row in result.all()
    }
    open_total = sum((by_status[s]["remaining_amount"] for s in OPEN_STATUSES if s in by_status), ZERO)
    overdue_total = by_status.get("overdue", {}).get("remaining_amount", ZERO)
    return {"open_total": open_total, "overdue_total": overdue_total, "by_status": by_status}


async def update_overdue_debts(db: AsyncSession) -> dict:
    """到期未结清的应收/应付标记为逾期"""
    today = date.today()
    counts = {}
    for name, model in (("receivables", AccountReceivable), ("payables", AccountPayable)):
        result = await db.execute(
            select(model).where(
                model.due_date.is_not(None),
                model.due_date < today,
                model.status.notin_(["paid", "overdue", "written_off"]),
            )
        )
        debts = result.scalars().all()
        for debt in debts:
            debt.status = "overdue"
        counts[name] = len(debts)
    if any(counts.values()):
        logger.info(f"📅 逾期账款更新: 应收 {counts['receivables']} 笔, 应付 {counts['payables']} 笔")
    return counts
