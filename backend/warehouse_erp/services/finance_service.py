"""
资金账户与收支流水服务

余额只通过收支流水变动，付款不允许透支
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy import select, func, and_, update
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse_erp.models.debt import DebtPayment
from warehouse_erp.models.fund import Fund, FinanceTransaction
from warehouse_erp.schemas.finance import FundCreate, FundUpdate, ExpenseCreate, ExpenseUpdate
from warehouse_erp.services.audit import add_log
from warehouse_erp.services.common import generate_code, get_warehouse

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


# ===== 资金账户 =====

async def get_fund(db: AsyncSession, fund_id: int) -> Fund:
    result = await db.execute(select(Fund).where(Fund.id == fund_id).with_for_update())
    fund = result.scalar_one_or_none()
    if not fund:
        raise HTTPException(status_code=404, detail="资金账户不存在")
    return fund


async def resolve_fund(db: AsyncSession, fund_id: Optional[int] = None) -> Fund:
    """指定账户优先，否则使用默认账户"""
    if fund_id:
        fund = await get_fund(db, fund_id)
    else:
        result = await db.execute(
            select(Fund).where(Fund.is_default.is_(True), Fund.is_active.is_(True)).with_for_update()
        )
        fund = result.scalars().first()
        if not fund:
            raise HTTPException(status_code=400, detail="未设置默认资金账户")
    if not fund.is_active:
        raise HTTPException(status_code=400, detail=f"资金账户 {fund.name} 已停用")
    return fund


async def _clear_default(db: AsyncSession, except_id: Optional[int] = None):
    query = update(Fund).where(Fund.is_default.is_(True))
    if except_id:
        query = query.where(Fund.id != except_id)
    await db.execute(query.values(is_default=False).execution_options(synchronize_session="fetch"))


async def create_fund(db: AsyncSession, data: FundCreate, operator_id: int) -> Fund:
    if data.code:
        exists = await db.execute(select(Fund.id).where(Fund.code == data.code))
        if exists.scalar_one_or_none():
            raise HTTPException(status_code=400, detail="账户编码已存在")

    # 第一个账户自动设为默认
    count = (await db.execute(select(func.count(Fund.id)))).scalar() or 0
    is_default = data.is_default or count == 0
    if is_default:
        await _clear_default(db)

    now = datetime.utcnow()
    fund = Fund(
        name=data.name,
        code=data.code or await generate_code(db, Fund.code, "F", width=3),
        type=data.type,
        balance=data.initial_balance,
        initial_balance=data.initial_balance,
        bank_name=data.bank_name,
        bank_account=data.bank_account,
        description=data.description,
        is_default=is_default,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(fund)
    await db.flush()
    await add_log(db, operator_id, "create", "fund", fund.id, fund.name,
                  description=f"新建资金账户，期初余额 {fund.initial_balance}")
    return fund


async def update_fund(db: AsyncSession, fund_id: int, data: FundUpdate, operator_id: int) -> Fund:
    fund = await get_fund(db, fund_id)
    update_data = data.model_dump(exclude_unset=True)
    if update_data.get("is_default"):
        await _clear_default(db, except_id=fund.id)
    for field, value in update_data.items():
        setattr(fund, field, value)
    await add_log(db, operator_id, "update", "fund", fund.id, fund.name, new_value=update_data)
    return fund


# ===== 收支流水 =====

async def _record_transaction(
    db: AsyncSession,
    tx_type: str,
    amount: Decimal,
    operator_id: int,
    fund_id: Optional[int] = None,
    transaction_date: Optional[date] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
    reference_number: Optional[str] = None,
    category: Optional[str] = None,
    warehouse_id: Optional[int] = None,
    description: Optional[str] = None,
    payment_method: Optional[str] = None,
) -> FinanceTransaction:
    if amount is None or amount <= 0:
        raise HTTPException(status_code=400, detail="金额必须大于0")
    fund = await resolve_fund(db, fund_id)

    before = fund.balance or ZERO
    if tx_type == "payment":
        if not fund.can_withdraw(amount):
            raise HTTPException(
                status_code=400,
                detail=f"账户 {fund.name} 余额不足：余额 {before}，需要 {amount}",
            )
        after = before - amount
    else:
        after = before + amount
    fund.balance = after

    now = datetime.utcnow()
    tx = FinanceTransaction(
        transaction_code=await generate_code(
            db, FinanceTransaction.transaction_code, "RC" if tx_type == "receipt" else "PM"
        ),
        fund_id=fund.id,
        type=tx_type,
        amount=amount,
        balance_before=before,
        balance_after=after,
        transaction_date=transaction_date or date.today(),
        reference_type=reference_type,
        reference_id=reference_id,
        reference_number=reference_number,
        category=category,
        warehouse_id=warehouse_id,
        description=description,
        payment_method=payment_method,
        status="approved",
        created_by=operator_id,
        created_at=now,
        updated_at=now,
    )
    db.add(tx)
    await db.flush()

    await add_log(
        db, operator_id, "payment", "transaction", tx.id, tx.transaction_code,
        description=f"{tx.type_display} {amount}，账户 {fund.name} 余额 {before} → {after}",
    )
    logger.info(f"💰 {tx.transaction_code} {tx.type_display} {amount} 账户{fund.id} 余额 {after}")
    return tx


async def record_receipt(db: AsyncSession, amount: Decimal, operator_id: int, **kwargs) -> FinanceTransaction:
    """收款"""
    return await _record_transaction(db, "receipt", amount, operator_id, **kwargs)


async def record_payment(db: AsyncSession, amount: Decimal, operator_id: int, **kwargs) -> FinanceTransaction:
    """付款（余额不足报错）"""
    return await _record_transaction(db, "payment", amount, operator_id, **kwargs)


async def get_transaction(db: AsyncSession, transaction_id: int) -> FinanceTransaction:
    tx = await db.get(FinanceTransaction, transaction_id)
    if not tx:
        raise HTTPException(status_code=404, detail="收支记录不存在")
    return tx


async def void_transaction(db: AsyncSession, transaction_id: int, operator_id: int) -> FinanceTransaction:
    """作废流水并冲回账户余额"""
    tx = await get_transaction(db, transaction_id)
    if tx.status != "approved":
        raise HTTPException(status_code=400, detail="该流水已作废")
    linked = await db.execute(
        select(DebtPayment.id).where(DebtPayment.finance_transaction_id == tx.id).limit(1)
    )
    if linked.scalar_one_or_none() or tx.reference_type == "order":
        raise HTTPException(status_code=400, detail="已关联订单或往来账的流水不能作废")

    fund = await get_fund(db, tx.fund_id)
    before = fund.balance
    if tx.type == "receipt":
        if not fund.can_withdraw(tx.amount):
            raise HTTPException(status_code=400, detail="账户余额不足，无法冲回该笔收款")
        fund.balance = before - tx.amount
    else:
        fund.balance = before + tx.amount

    tx.status = "voided"
    tx.voided_at = datetime.utcnow()
    await add_log(
        db, operator_id, "cancel", "transaction", tx.id, tx.transaction_code,
        description=f"作废流水，账户余额 {before} → {fund.balance}",
    )
    return tx


async def create_expense(db: AsyncSession, data: ExpenseCreate, operator_id: int) -> FinanceTransaction:
    """登记费用（付款）或其他收入（收款）"""
    if data.warehouse_id:
        await get_warehouse(db, data.warehouse_id)
    kwargs = dict(
        fund_id=data.fund_id,
        transaction_date=data.transaction_date,
        reference_type="expense",
        category=data.category,
        warehouse_id=data.warehouse_id,
        description=data.description,
        payment_method=data.payment_method,
    )
    if data.type == "income":
        return await record_receipt(db, data.amount, operator_id, **kwargs)
    return await record_payment(db, data.amount, operator_id, **kwargs)


async def update_expense(
    db: AsyncSession, transaction_id: int, data: ExpenseUpdate, operator_id: int
) -> FinanceTransaction:
    tx = await get_transaction(db, transaction_id)
    if tx.reference_type != "expense":
        raise HTTPException(status_code=400, detail="只能修改费用类流水")
    if tx.status != "approved":
        raise HTTPException(status_code=400, detail="已作废的流水不能修改")
    update_data = data.model_dump(exclude_unset=True)
    if update_data.get("warehouse_id"):
        await get_warehouse(db, update_data["warehouse_id"])
    for field, value in update_data.items():
        setattr(tx, field, value)
    await add_log(db, operator_id, "update", "transaction", tx.id, tx.transaction_code, new_value=update_data)
    return tx


# ===== 汇总 =====

def _date_conditions(date_from: Optional[date], date_to: Optional[date]) -> list:
    conditions = [FinanceTransaction.status == "approved"]
    if date_from:
        conditions.append(FinanceTransaction.transaction_date >= date_from)
    if date_to:
        conditions.append(FinanceTransaction.transaction_date <= date_to)
    return conditions


async def get_summary(db: AsyncSession, date_from: Optional[date] = None, date_to: Optional[date] = None) -> dict:
    """收支汇总：收款、付款、净额、各账户余额"""
    conditions = _date_conditions(date_from, date_to)
    result = await db.execute(
        select(FinanceTransaction.type, func.coalesce(func.sum(FinanceTransaction.amount), 0))
        .where(and_(*conditions))
        .group_by(FinanceTransaction.type)
    )
    totals = {row[0]: Decimal(str(row[1])) for row in result.all()}
    receipts = totals.get("receipt", ZERO)
    payments = totals.get("payment", ZERO)

    funds_result = await db.execute(select(Fund).where(Fund.is_active.is_(True)).order_by(Fund.id))
    funds = funds_result.scalars().all()
    return {
        "date_from": date_from,
        "date_to": date_to,
        "total_receipts": receipts,
        "total_payments": payments,
        "net": receipts - payments,
        "total_balance": sum((f.balance for f in funds), ZERO),
        "funds": [{"fund_id": f.id, "name": f.name, "balance": f.balance} for f in funds],
    }


async def get_category_summary(
    db: AsyncSession,
    tx_type: str = "payment",
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> List[dict]:
    """按分类汇总（默认费用支出）"""
    conditions = _date_conditions(date_from, date_to) + [FinanceTransaction.type == tx_type]
    result = await db.execute(
        select(
            func.coalesce(FinanceTransaction.category, "未分类"),
            func.sum(FinanceTransaction.amount),
            func.count(FinanceTransaction.id),
        )
        .where(and_(*conditions))
        .group_by(func.coalesce(FinanceTransaction.category, "未分类"))
        .order_by(func.sum(FinanceTransaction.amount).desc())
    )
    return [
        {"category": row[0], "total_amount": Decimal(str(row[1] or 0)), "count": row[2]}
        for row in result.all()
    ]
