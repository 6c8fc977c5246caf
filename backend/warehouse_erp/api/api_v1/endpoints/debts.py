"""应收/应付账款API"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse_erp.core.deps import get_db, get_operator_id
from warehouse_erp.models.debt import AccountReceivable, AccountPayable
from warehouse_erp.schemas.debt import (
    PayableCreate, DebtPaymentCreate, ReceivableWriteOff,
    ReceivableResponse, PayableResponse,
    ReceivableListResponse, PayableListResponse, DebtSummary,
)
from warehouse_erp.services import debt_service

router = APIRouter()


def build_receivable_response(ar: AccountReceivable) -> ReceivableResponse:
    resp = ReceivableResponse.model_validate(ar)
    resp.customer_name = ar.customer.name if ar.customer else ""
    resp.status_display = ar.status_display
    return resp


def build_payable_response(ap: AccountPayable) -> PayableResponse:
    resp = PayableResponse.model_validate(ap)
    resp.supplier_name = ap.supplier.name if ap.supplier else ""
    resp.status_display = ap.status_display
    return resp


async def load_receivable(db: AsyncSession, ar_id: int) -> AccountReceivable:
    result = await db.execute(
        select(AccountReceivable)
        .options(selectinload(AccountReceivable.customer))
        .where(AccountReceivable.id == ar_id)
        .execution_options(populate_existing=True)
    )
    ar = result.scalar_one_or_none()
    if not ar:
        raise HTTPException(status_code=404, detail="应收账款不存在")
    return ar


async def load_payable(db: AsyncSession, ap_id: int) -> AccountPayable:
    result = await db.execute(
        select(AccountPayable)
        .options(selectinload(AccountPayable.supplier))
        .where(AccountPayable.id == ap_id)
        .execution_options(populate_existing=True)
    )
    ap = result.scalar_one_or_none()
    if not ap:
        raise HTTPException(status_code=404, detail="应付账款不存在")
    return ap


# ===== 应收 =====

@router.get("/receivables", response_model=ReceivableListResponse)
async def list_receivables(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    customer_id: Optional[int] = Query(None),
    order_id: Optional[int] = Query(None),
) -> Any:
    conditions = []
    if status:
        conditions.append(AccountReceivable.status == status)
    if customer_id:
        conditions.append(AccountReceivable.customer_id == customer_id)
    if order_id:
        conditions.append(AccountReceivable.order_id == order_id)

    query = select(AccountReceivable).options(selectinload(AccountReceivable.customer))
    count_query = select(func.count(AccountReceivable.id))
    if conditions:
        query = query.where(and_(*conditions))
        count_query = count_query.where(and_(*conditions))

    total = (await db.execute(count_query)).scalar() or 0
    query = query.order_by(AccountReceivable.created_at.desc(), AccountReceivable.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    receivables = (await db.execute(query)).scalars().all()

    return ReceivableListResponse(
        data=[build_receivable_response(r) for r in receivables],
        total=total, page=page, limit=limit
    )


@router.get("/receivables/summary", response_model=DebtSummary)
async def get_receivable_summary(
    *,
    db: AsyncSession = Depends(get_db),
) -> Any:
    return await debt_service.get_debt_summary(db, AccountReceivable)


@router.get("/receivables/{ar_id}", response_model=ReceivableResponse)
async def get_receivable(
    *,
    db: AsyncSession = Depends(get_db),
    ar_id: int,
) -> Any:
    return build_receivable_response(await load_receivable(db, ar_id))


@router.post("/receivables/{ar_id}/collect", response_model=ReceivableResponse)
async def collect_receivable(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    ar_id: int,
    data: DebtPaymentCreate,
) -> Any:
    """收回应收（同步更新订单已收金额）"""
    await debt_service.collect_receivable(db, ar_id, data, operator_id)
    await db.commit()
    return build_receivable_response(await load_receivable(db, ar_id))


@router.post("/receivables/{ar_id}/write-off", response_model=ReceivableResponse)
async def write_off_receivable(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    ar_id: int,
    data: ReceivableWriteOff,
) -> Any:
    """坏账核销"""
    await debt_service.write_off_receivable(db, ar_id, data.reason, operator_id)
    await db.commit()
    return build_receivable_response(await load_receivable(db, ar_id))


# ===== 应付 =====

@router.get("/payables", response_model=PayableListResponse)
async def list_payables(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    supplier_id: Optional[int] = Query(None),
    reference_type: Optional[str] = Query(None),
) -> Any:
    conditions = []
    if status:
        conditions.append(AccountPayable.status == status)
    if supplier_id:
        conditions.append(AccountPayable.supplier_id == supplier_id)
    if reference_type:
        conditions.append(AccountPayable.reference_type == reference_type)

    query = select(AccountPayable).options(selectinload(AccountPayable.supplier))
    count_query = select(func.count(AccountPayable.id))
    if conditions:
        query = query.where(and_(*conditions))
        count_query = count_query.where(and_(*conditions))

    total = (await db.execute(count_query)).scalar() or 0
    query = query.order_by(AccountPayable.created_at.desc(), AccountPayable.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    payables = (await db.execute(query)).scalars().all()

    return PayableListResponse(
        data=[build_payable_response(p) for p in payables],
        total=total, page=page, limit=limit
    )


@router.post("/payables", response_model=PayableResponse)
async def create_payable(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    data: PayableCreate,
) -> Any:
    """手工登记应付"""
    ap = await debt_service.create_payable(
        db,
        supplier_id=data.supplier_id,
        amount=data.amount,
        operator_id=operator_id,
        reference_type=data.reference_type,
        reference_id=data.reference_id,
        due_date=data.due_date,
        notes=data.notes,
    )
    await db.commit()
    return build_payable_response(await load_payable(db, ap.id))


@router.get("/payables/summary", response_model=DebtSummary)
async def get_payable_summary(
    *,
    db: AsyncSession = Depends(get_db),
) -> Any:
    return await debt_service.get_debt_summary(db, AccountPayable)


@router.get("/payables/{ap_id}", response_model=PayableResponse)
async def get_payable(
    *,
    db: AsyncSession = Depends(get_db),
    ap_id: int,
) -> Any:
    return build_payable_response(await load_payable(db, ap_id))


@router.post("/payables/{ap_id}/pay", response_model=PayableResponse)
async def pay_payable(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    ap_id: int,
    data: DebtPaymentCreate,
) -> Any:
    """支付应付（账户余额不足时拒绝）"""
    await debt_service.pay_payable(db, ap_id, data, operator_id)
    await db.commit()
    return build_payable_response(await load_payable(db, ap_id))


@router.post("/refresh-overdue")
async def refresh_overdue(
    *,
    db: AsyncSession = Depends(get_db),
) -> Any:
    """手动执行逾期标记"""
    counts = await debt_service.update_overdue_debts(db)
    await db.commit()
    return counts
