"""财务API - 资金账户、收支流水、费用、汇总"""

from datetime import date
from typing import Any, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse_erp.core.deps import get_db, get_operator_id
from warehouse_erp.models.fund import Fund, FinanceTransaction
from warehouse_erp.schemas.finance import (
    FundCreate, FundUpdate, FundResponse,
    TransactionCreate, TransactionResponse, TransactionListResponse,
    ExpenseCreate, ExpenseUpdate,
    FinanceSummary, CategorySummary,
)
from warehouse_erp.services import finance_service

router = APIRouter()


def build_transaction_response(tx: FinanceTransaction) -> TransactionResponse:
    resp = TransactionResponse.model_validate(tx)
    resp.fund_name = tx.fund.name if tx.fund else ""
    resp.type_display = tx.type_display
    return resp


async def load_transaction(db: AsyncSession, transaction_id: int) -> FinanceTransaction:
    result = await db.execute(
        select(FinanceTransaction)
        .options(selectinload(FinanceTransaction.fund))
        .where(FinanceTransaction.id == transaction_id)
        .execution_options(populate_existing=True)
    )
    tx = result.scalar_one_or_none()
    if not tx:
        raise HTTPException(status_code=404, detail="收支记录不存在")
    return tx


# ===== 资金账户 =====

@router.get("/funds", response_model=List[FundResponse])
async def list_funds(
    *,
    db: AsyncSession = Depends(get_db),
    is_active: Optional[bool] = Query(None),
) -> Any:
    query = select(Fund).order_by(Fund.is_default.desc(), Fund.id)
    if is_active is not None:
        query = query.where(Fund.is_active == is_active)
    result = await db.execute(query)
    return [FundResponse.model_validate(f) for f in result.scalars().all()]


@router.post("/funds", response_model=FundResponse)
async def create_fund(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    data: FundCreate,
) -> Any:
    """创建资金账户（第一个账户自动设为默认）"""
    fund = await finance_service.create_fund(db, data, operator_id)
    await db.commit()
    await db.refresh(fund)
    return FundResponse.model_validate(fund)


@router.get("/funds/{fund_id}", response_model=FundResponse)
async def get_fund(
    *,
    db: AsyncSession = Depends(get_db),
    fund_id: int,
) -> Any:
    fund = await db.get(Fund, fund_id)
    if not fund:
        raise HTTPException(status_code=404, detail="资金账户不存在")
    return FundResponse.model_validate(fund)


@router.put("/funds/{fund_id}", response_model=FundResponse)
async def update_fund(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    fund_id: int,
    data: FundUpdate,
) -> Any:
    """修改账户信息（余额只能通过收支变动）"""
    fund = await finance_service.update_fund(db, fund_id, data, operator_id)
    await db.commit()
    await db.refresh(fund)
    return FundResponse.model_validate(fund)


# ===== 收支流水 =====

@router.get("/transactions", response_model=TransactionListResponse)
async def list_transactions(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    fund_id: Optional[int] = Query(None),
    type: Optional[str] = Query(None, description="receipt/payment"),
    status: Optional[str] = Query(None, description="approved/voided"),
    category: Optional[str] = Query(None),
    reference_type: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
) -> Any:
    conditions = []
    if fund_id:
        conditions.append(FinanceTransaction.fund_id == fund_id)
    if type:
        conditions.append(FinanceTransaction.type == type)
    if status:
        conditions.append(FinanceTransaction.status == status)
    if category:
        conditions.append(FinanceTransaction.category == category)
    if reference_type:
        conditions.append(FinanceTransaction.reference_type == reference_type)
    if date_from:
        conditions.append(FinanceTransaction.transaction_date >= date_from)
    if date_to:
        conditions.append(FinanceTransaction.transaction_date <= date_to)

    query = select(FinanceTransaction).options(selectinload(FinanceTransaction.fund))
    count_query = select(func.count(FinanceTransaction.id))
    if conditions:
        query = query.where(and_(*conditions))
        count_query = count_query.where(and_(*conditions))

    total = (await db.execute(count_query)).scalar() or 0
    query = query.order_by(FinanceTransaction.transaction_date.desc(), FinanceTransaction.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    transactions = (await db.execute(query)).scalars().all()

    return TransactionListResponse(
        data=[build_transaction_response(t) for t in transactions],
        total=total, page=page, limit=limit
    )


@router.post("/transactions/receipt", response_model=TransactionResponse)
async def create_receipt(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    data: TransactionCreate,
) -> Any:
    """手工收款"""
    tx = await finance_service.record_receipt(
        db, data.amount, operator_id, **data.model_dump(exclude={"amount"})
    )
    await db.commit()
    return build_transaction_response(await load_transaction(db, tx.id))


@router.post("/transactions/payment", response_model=TransactionResponse)
async def create_payment(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    data: TransactionCreate,
) -> Any:
    """手工付款（余额不足时拒绝）"""
    tx = await finance_service.record_payment(
        db, data.amount, operator_id, **data.model_dump(exclude={"amount"})
    )
    await db.commit()
    return build_transaction_response(await load_transaction(db, tx.id))


@router.get("/transactions/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    *,
    db: AsyncSession = Depends(get_db),
    transaction_id: int,
) -> Any:
    return build_transaction_response(await load_transaction(db, transaction_id))


@router.post("/transactions/{transaction_id}/void", response_model=TransactionResponse)
async def void_transaction(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    transaction_id: int,
) -> Any:
    """作废流水并冲回余额"""
    await finance_service.void_transaction(db, transaction_id, operator_id)
    await db.commit()
    return build_transaction_response(await load_transaction(db, transaction_id))


# ===== 费用 =====

@router.post("/expenses", response_model=TransactionResponse)
async def create_expense(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    data: ExpenseCreate,
) -> Any:
    tx = await finance_service.create_expense(db, data, operator_id)
    await db.commit()
    return build_transaction_response(await load_transaction(db, tx.id))


@router.put("/expenses/{transaction_id}", response_model=TransactionResponse)
async def update_expense(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    transaction_id: int,
    data: ExpenseUpdate,
) -> Any:
    await finance_service.update_expense(db, transaction_id, data, operator_id)
    await db.commit()
    return build_transaction_response(await load_transaction(db, transaction_id))


# ===== 汇总 =====

@router.get("/summary", response_model=FinanceSummary)
async def get_finance_summary(
    *,
    db: AsyncSession = Depends(get_db),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
) -> Any:
    return await finance_service.get_summary(db, date_from, date_to)


@router.get("/summary/by-category", response_model=List[CategorySummary])
async def get_category_summary(
    *,
    db: AsyncSession = Depends(get_db),
    type: str = Query("payment", pattern="^(receipt|payment)$"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
) -> Any:
    return await finance_service.get_category_summary(db, type, date_from, date_to)
