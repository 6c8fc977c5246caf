"""采购申请API"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse_erp.core.deps import get_db, get_operator_id
from warehouse_erp.models.purchase_request import PurchaseRequest
from warehouse_erp.schemas.purchase_request import (
    PurchaseRequestCreate, PurchaseRequestUpdate, PurchaseRequestReject,
    PurchaseRequestResponse, PurchaseRequestListResponse, PurchaseRequestSummary,
)
from warehouse_erp.services import purchase_request_service

router = APIRouter()


def build_request_response(request: PurchaseRequest) -> PurchaseRequestResponse:
    resp = PurchaseRequestResponse.model_validate(request)
    resp.product_name = request.product.name if request.product else ""
    resp.warehouse_name = request.warehouse.name if request.warehouse else ""
    resp.status_display = request.status_display
    return resp


def _load_options():
    return (
        selectinload(PurchaseRequest.product),
        selectinload(PurchaseRequest.warehouse),
    )


async def load_request(db: AsyncSession, request_id: int) -> PurchaseRequest:
    result = await db.execute(
        select(PurchaseRequest)
        .options(*_load_options())
        .where(PurchaseRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    request = result.scalar_one_or_none()
    if not request:
        raise HTTPException(status_code=404, detail="采购申请不存在")
    return request


@router.get("/", response_model=PurchaseRequestListResponse)
async def list_purchase_requests(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    source: Optional[str] = Query(None, description="manual/auto"),
    product_id: Optional[int] = Query(None),
    warehouse_id: Optional[int] = Query(None),
) -> Any:
    conditions = []
    if status:
        conditions.append(PurchaseRequest.status == status)
    if source:
        conditions.append(PurchaseRequest.source == source)
    if product_id:
        conditions.append(PurchaseRequest.product_id == product_id)
    if warehouse_id:
        conditions.append(PurchaseRequest.warehouse_id == warehouse_id)

    query = select(PurchaseRequest).options(*_load_options())
    count_query = select(func.count(PurchaseRequest.id))
    if conditions:
        query = query.where(and_(*conditions))
        count_query = count_query.where(and_(*conditions))

    total = (await db.execute(count_query)).scalar() or 0
    query = query.order_by(PurchaseRequest.created_at.desc(), PurchaseRequest.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    requests = (await db.execute(query)).scalars().all()

    return PurchaseRequestListResponse(
        data=[build_request_response(r) for r in requests],
        total=total, page=page, limit=limit
    )


@router.get("/summary", response_model=PurchaseRequestSummary)
async def get_purchase_request_summary(
    *,
    db: AsyncSession = Depends(get_db),
) -> Any:
    """按状态统计"""
    return await purchase_request_service.get_summary(db)


@router.get("/pending-count")
async def get_pending_count(
    *,
    db: AsyncSession = Depends(get_db),
) -> Any:
    return {"count": await purchase_request_service.get_pending_count(db)}


@router.post("/", response_model=PurchaseRequestResponse)
async def create_purchase_request(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    data: PurchaseRequestCreate,
) -> Any:
    """手工创建采购申请"""
    request = await purchase_request_service.create_manual_request(db, data, operator_id)
    await db.commit()
    return build_request_response(await load_request(db, request.id))


@router.get("/{request_id}", response_model=PurchaseRequestResponse)
async def get_purchase_request(
    *,
    db: AsyncSession = Depends(get_db),
    request_id: int,
) -> Any:
    return build_request_response(await load_request(db, request_id))


@router.put("/{request_id}", response_model=PurchaseRequestResponse)
async def update_purchase_request(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    request_id: int,
    data: PurchaseRequestUpdate,
) -> Any:
    await purchase_request_service.update_request(db, request_id, data, operator_id)
    await db.commit()
    return build_request_response(await load_request(db, request_id))


@router.post("/{request_id}/approve", response_model=PurchaseRequestResponse)
async def approve_purchase_request(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    request_id: int,
) -> Any:
    await purchase_request_service.approve_request(db, request_id, operator_id)
    await db.commit()
    return build_request_response(await load_request(db, request_id))


@router.post("/{request_id}/reject", response_model=PurchaseRequestResponse)
async def reject_purchase_request(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    request_id: int,
    data: PurchaseRequestReject,
) -> Any:
    await purchase_request_service.reject_request(db, request_id, data.reason, operator_id)
    await db.commit()
    return build_request_response(await load_request(db, request_id))


@router.post("/{request_id}/order", response_model=PurchaseRequestResponse)
async def mark_purchase_request_ordered(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    request_id: int,
) -> Any:
    """标记已下采购单"""
    await purchase_request_service.mark_ordered(db, request_id, operator_id)
    await db.commit()
    return build_request_response(await load_request(db, request_id))


@router.post("/{request_id}/complete", response_model=PurchaseRequestResponse)
async def complete_purchase_request(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    request_id: int,
) -> Any:
    await purchase_request_service.complete_request(db, request_id, operator_id)
    await db.commit()
    return build_request_response(await load_request(db, request_id))


@router.post("/{request_id}/cancel", response_model=PurchaseRequestResponse)
async def cancel_purchase_request(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    request_id: int,
) -> Any:
    await purchase_request_service.cancel_request(db, request_id, operator_id)
    await db.commit()
    return build_request_response(await load_request(db, request_id))


@router.delete("/{request_id}")
async def delete_purchase_request(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    request_id: int,
) -> Any:
    await purchase_request_service.delete_request(db, request_id, operator_id)
    await db.commit()
    return {"message": "删除成功"}
