"""COD 对账API"""

from typing import Any, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse_erp.core.deps import get_db, get_operator_id
from warehouse_erp.models.cod_reconciliation import CodReconciliation
from warehouse_erp.schemas.cod_reconciliation import (
    CodReconciliationCreate, CodItemsUpdate, CodReconcile,
    CodItemResponse, CodReconciliationResponse, CodReconciliationListResponse,
    ShippingPartner,
)
from warehouse_erp.services import cod_reconciliation_service

router = APIRouter()


def build_reconciliation_response(rec: CodReconciliation, with_items: bool = True) -> CodReconciliationResponse:
    return CodReconciliationResponse(
        id=rec.id,
        reconciliation_code=rec.reconciliation_code,
        shipping_partner=rec.shipping_partner,
        shipping_partner_name=rec.shipping_partner_name,
        period_from=rec.period_from,
        period_to=rec.period_to,
        total_orders=rec.total_orders or 0,
        total_expected=rec.total_expected,
        total_received=rec.total_received,
        difference=rec.difference,
        status=rec.status,
        status_display=rec.status_display,
        notes=rec.notes,
        reconciled_at=rec.reconciled_at,
        reconciled_by=rec.reconciled_by,
        fund_id=rec.fund_id,
        created_at=rec.created_at,
        items=[CodItemResponse.model_validate(i) for i in rec.items] if with_items else [],
    )


async def load_reconciliation(db: AsyncSession, reconciliation_id: int) -> CodReconciliation:
    result = await db.execute(
        select(CodReconciliation)
        .options(selectinload(CodReconciliation.items))
        .where(CodReconciliation.id == reconciliation_id)
        .execution_options(populate_existing=True)
    )
    rec = result.scalar_one_or_none()
    if not rec:
        raise HTTPException(status_code=404, detail="对账单不存在")
    return rec


@router.get("/shipping-partners", response_model=List[ShippingPartner])
async def list_shipping_partners() -> Any:
    """支持的物流商"""
    return cod_reconciliation_service.list_shipping_partners()


@router.get("/", response_model=CodReconciliationListResponse)
async def list_reconciliations(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    shipping_partner: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
) -> Any:
    conditions = []
    if shipping_partner:
        conditions.append(CodReconciliation.shipping_partner == shipping_partner)
    if status:
        conditions.append(CodReconciliation.status == status)

    query = select(CodReconciliation).options(selectinload(CodReconciliation.items))
    count_query = select(func.count(CodReconciliation.id))
    if conditions:
        query = query.where(and_(*conditions))
        count_query = count_query.where(and_(*conditions))

    total = (await db.execute(count_query)).scalar() or 0
    query = query.order_by(CodReconciliation.created_at.desc(), CodReconciliation.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    records = (await db.execute(query)).scalars().all()

    return CodReconciliationListResponse(
        data=[build_reconciliation_response(r, with_items=False) for r in records],
        total=total, page=page, limit=limit
    )


@router.post("/", response_model=CodReconciliationResponse)
async def create_reconciliation(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    data: CodReconciliationCreate,
) -> Any:
    """按物流商和期间生成对账单（货到付款且已发货的订单）"""
    rec = await cod_reconciliation_service.create_reconciliation(db, data, operator_id)
    await db.commit()
    return build_reconciliation_response(await load_reconciliation(db, rec.id))


@router.get("/{reconciliation_id}", response_model=CodReconciliationResponse)
async def get_reconciliation(
    *,
    db: AsyncSession = Depends(get_db),
    reconciliation_id: int,
) -> Any:
    return build_reconciliation_response(await load_reconciliation(db, reconciliation_id))


@router.put("/{reconciliation_id}/items", response_model=CodReconciliationResponse)
async def update_reconciliation_items(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    reconciliation_id: int,
    data: CodItemsUpdate,
) -> Any:
    """登记实际回款金额"""
    await cod_reconciliation_service.update_items(db, reconciliation_id, data, operator_id)
    await db.commit()
    return build_reconciliation_response(await load_reconciliation(db, reconciliation_id))


@router.post("/{reconciliation_id}/reconcile", response_model=CodReconciliationResponse)
async def reconcile(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    reconciliation_id: int,
    data: CodReconcile,
) -> Any:
    """确认对账并入账"""
    await cod_reconciliation_service.reconcile(
        db, reconciliation_id, operator_id, fund_id=data.fund_id, notes=data.notes
    )
    await db.commit()
    return build_reconciliation_response(await load_reconciliation(db, reconciliation_id))


@router.delete("/{reconciliation_id}")
async def delete_reconciliation(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    reconciliation_id: int,
) -> Any:
    await cod_reconciliation_service.delete_reconciliation(db, reconciliation_id, operator_id)
    await db.commit()
    return {"message": "删除成功"}
