"""退货API - 申请、审批、收货、完成"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse_erp.core.deps import get_db, get_operator_id
from warehouse_erp.models.return_request import ReturnRequest, ReturnItem
from warehouse_erp.schemas.return_request import (
    ReturnCreate, ReturnApprove, ReturnReject, ReturnReceive, ReturnComplete,
    ReturnItemResponse, ReturnResponse, ReturnListResponse,
)
from warehouse_erp.services import return_service

router = APIRouter()


def build_return_response(rma: ReturnRequest) -> ReturnResponse:
    items = []
    for item in rma.items:
        resp = ReturnItemResponse.model_validate(item)
        resp.product_name = item.product.name if item.product else ""
        items.append(resp)

    return ReturnResponse(
        id=rma.id,
        return_code=rma.return_code,
        order_id=rma.order_id,
        customer_id=rma.customer_id,
        customer_name=rma.customer.name if rma.customer else "",
        warehouse_id=rma.warehouse_id,
        type=rma.type,
        reason=rma.reason,
        status=rma.status,
        status_display=rma.status_display,
        refund_amount=rma.refund_amount,
        notes=rma.notes,
        requested_at=rma.requested_at,
        approved_at=rma.approved_at,
        received_at=rma.received_at,
        completed_at=rma.completed_at,
        created_at=rma.created_at,
        items=items,
    )


def _load_options():
    return (
        selectinload(ReturnRequest.items).selectinload(ReturnItem.product),
        selectinload(ReturnRequest.customer),
    )


async def load_return(db: AsyncSession, return_id: int) -> ReturnRequest:
    result = await db.execute(
        select(ReturnRequest)
        .options(*_load_options())
        .where(ReturnRequest.id == return_id)
        .execution_options(populate_existing=True)
    )
    rma = result.scalar_one_or_none()
    if not rma:
        raise HTTPException(status_code=404, detail="退货单不存在")
    return rma


@router.get("/", response_model=ReturnListResponse)
async def list_returns(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    order_id: Optional[int] = Query(None),
    customer_id: Optional[int] = Query(None),
) -> Any:
    conditions = []
    if status:
        conditions.append(ReturnRequest.status == status)
    if order_id:
        conditions.append(ReturnRequest.order_id == order_id)
    if customer_id:
        conditions.append(ReturnRequest.customer_id == customer_id)

    query = select(ReturnRequest).options(*_load_options())
    count_query = select(func.count(ReturnRequest.id))
    if conditions:
        query = query.where(and_(*conditions))
        count_query = count_query.where(and_(*conditions))

    total = (await db.execute(count_query)).scalar() or 0
    query = query.order_by(ReturnRequest.created_at.desc(), ReturnRequest.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    returns = (await db.execute(query)).scalars().all()

    return ReturnListResponse(
        data=[build_return_response(r) for r in returns],
        total=total, page=page, limit=limit
    )


@router.post("/", response_model=ReturnResponse)
async def create_return(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    data: ReturnCreate,
) -> Any:
    """创建退货申请（已发货或已完成的订单）"""
    rma = await return_service.create_return(db, data, operator_id)
    await db.commit()
    return build_return_response(await load_return(db, rma.id))


@router.get("/{return_id}", response_model=ReturnResponse)
async def get_return(
    *,
    db: AsyncSession = Depends(get_db),
    return_id: int,
) -> Any:
    return build_return_response(await load_return(db, return_id))


@router.post("/{return_id}/approve", response_model=ReturnResponse)
async def approve_return(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    return_id: int,
    data: ReturnApprove,
) -> Any:
    await return_service.approve_return(db, return_id, data, operator_id)
    await db.commit()
    return build_return_response(await load_return(db, return_id))


@router.post("/{return_id}/reject", response_model=ReturnResponse)
async def reject_return(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    return_id: int,
    data: ReturnReject,
) -> Any:
    await return_service.reject_return(db, return_id, data.reason, operator_id)
    await db.commit()
    return build_return_response(await load_return(db, return_id))


@router.post("/{return_id}/receive", response_model=ReturnResponse)
async def receive_return_items(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    return_id: int,
    data: ReturnReceive,
) -> Any:
    """登记退货实收数量和商品状况"""
    await return_service.receive_items(db, return_id, data, operator_id)
    await db.commit()
    return build_return_response(await load_return(db, return_id))


@router.post("/{return_id}/complete", response_model=ReturnResponse)
async def complete_return(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    return_id: int,
    data: ReturnComplete,
) -> Any:
    """完成退货：完好商品按均价回库"""
    await return_service.complete_return(db, return_id, data, operator_id)
    await db.commit()
    return build_return_response(await load_return(db, return_id))


@router.post("/{return_id}/cancel", response_model=ReturnResponse)
async def cancel_return(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    return_id: int,
) -> Any:
    await return_service.cancel_return(db, return_id, operator_id)
    await db.commit()
    return build_return_response(await load_return(db, return_id))
