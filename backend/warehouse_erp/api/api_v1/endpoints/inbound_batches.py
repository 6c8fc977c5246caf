"""入库批次与质检API

收货只登记数量，质检通过后才生成库存批次
"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse_erp.core.deps import get_db, get_operator_id
from warehouse_erp.models.inbound_batch import InboundBatch, InboundBatchItem, QualityCheck
from warehouse_erp.schemas.inbound_batch import (
    InboundBatchCreate, InboundBatchUpdate, InboundReceive,
    InboundItemResponse, InboundBatchResponse, InboundBatchListResponse,
    QualityCheckCreate, QualityCheckResponse,
)
from warehouse_erp.services import inbound_service

router = APIRouter()


def build_qc_response(qc: QualityCheck) -> QualityCheckResponse:
    resp = QualityCheckResponse.model_validate(qc)
    resp.status_display = qc.status_display
    return resp


def build_inbound_response(inbound: InboundBatch) -> InboundBatchResponse:
    """构建入库批次响应"""
    items = []
    for item in inbound.items:
        resp = InboundItemResponse.model_validate(item)
        resp.product_name = item.product.name if item.product else ""
        resp.product_sku = item.product.sku if item.product else ""
        items.append(resp)

    return InboundBatchResponse(
        id=inbound.id,
        batch_number=inbound.batch_number,
        warehouse_id=inbound.warehouse_id,
        warehouse_name=inbound.warehouse.name if inbound.warehouse else "",
        supplier_id=inbound.supplier_id,
        supplier_name=inbound.supplier.name if inbound.supplier else "",
        status=inbound.status,
        status_display=inbound.status_display,
        can_be_edited=inbound.can_be_edited,
        received_date=inbound.received_date,
        notes=inbound.notes,
        created_by=inbound.created_by,
        created_at=inbound.created_at,
        updated_at=inbound.updated_at,
        items=items,
        quality_check=build_qc_response(inbound.quality_check) if inbound.quality_check else None,
    )


def _load_options():
    return (
        selectinload(InboundBatch.items).selectinload(InboundBatchItem.product),
        selectinload(InboundBatch.warehouse),
        selectinload(InboundBatch.supplier),
        selectinload(InboundBatch.quality_check),
    )


async def load_inbound(db: AsyncSession, inbound_batch_id: int) -> InboundBatch:
    result = await db.execute(
        select(InboundBatch)
        .options(*_load_options())
        .where(InboundBatch.id == inbound_batch_id)
        .execution_options(populate_existing=True)
    )
    inbound = result.scalar_one_or_none()
    if not inbound:
        raise HTTPException(status_code=404, detail="入库批次不存在")
    return inbound


@router.get("/", response_model=InboundBatchListResponse)
async def list_inbound_batches(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    warehouse_id: Optional[int] = Query(None),
    supplier_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None, description="搜索批次号"),
) -> Any:
    """获取入库批次列表"""
    conditions = []
    if status:
        conditions.append(InboundBatch.status == status)
    if warehouse_id:
        conditions.append(InboundBatch.warehouse_id == warehouse_id)
    if supplier_id:
        conditions.append(InboundBatch.supplier_id == supplier_id)
    if search:
        conditions.append(InboundBatch.batch_number.contains(search))

    query = select(InboundBatch).options(*_load_options())
    count_query = select(func.count(InboundBatch.id))
    if conditions:
        query = query.where(and_(*conditions))
        count_query = count_query.where(and_(*conditions))

    total = (await db.execute(count_query)).scalar() or 0
    query = query.order_by(InboundBatch.created_at.desc(), InboundBatch.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    batches = (await db.execute(query)).scalars().all()

    return InboundBatchListResponse(
        data=[build_inbound_response(b) for b in batches],
        total=total, page=page, limit=limit
    )


@router.post("/", response_model=InboundBatchResponse)
async def create_inbound_batch(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    data: InboundBatchCreate,
) -> Any:
    """创建入库批次（待收货）"""
    inbound = await inbound_service.create_inbound_batch(db, data, operator_id)
    await db.commit()
    return build_inbound_response(await load_inbound(db, inbound.id))


@router.get("/{inbound_batch_id}", response_model=InboundBatchResponse)
async def get_inbound_batch(
    *,
    db: AsyncSession = Depends(get_db),
    inbound_batch_id: int,
) -> Any:
    return build_inbound_response(await load_inbound(db, inbound_batch_id))


@router.put("/{inbound_batch_id}", response_model=InboundBatchResponse)
async def update_inbound_batch(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    inbound_batch_id: int,
    data: InboundBatchUpdate,
) -> Any:
    await inbound_service.update_inbound_batch(db, inbound_batch_id, data, operator_id)
    await db.commit()
    return build_inbound_response(await load_inbound(db, inbound_batch_id))


@router.post("/{inbound_batch_id}/receive", response_model=InboundBatchResponse)
async def receive_inbound_batch(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    inbound_batch_id: int,
    data: InboundReceive,
) -> Any:
    """收货：登记实收数量（不入库存）"""
    await inbound_service.receive_inbound_batch(db, inbound_batch_id, data, operator_id)
    await db.commit()
    return build_inbound_response(await load_inbound(db, inbound_batch_id))


@router.post("/{inbound_batch_id}/quality-check", response_model=InboundBatchResponse)
async def create_quality_check(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    inbound_batch_id: int,
    data: QualityCheckCreate,
) -> Any:
    """提交质检，合格数量生成库存批次并入库"""
    await inbound_service.create_quality_check(db, inbound_batch_id, data, operator_id)
    await db.commit()
    return build_inbound_response(await load_inbound(db, inbound_batch_id))


@router.get("/{inbound_batch_id}/quality-check", response_model=QualityCheckResponse)
async def get_quality_check(
    *,
    db: AsyncSession = Depends(get_db),
    inbound_batch_id: int,
) -> Any:
    result = await db.execute(
        select(QualityCheck).where(QualityCheck.inbound_batch_id == inbound_batch_id)
    )
    qc = result.scalar_one_or_none()
    if not qc:
        raise HTTPException(status_code=404, detail="该入库批次还没有质检单")
    return build_qc_response(qc)


@router.post("/{inbound_batch_id}/cancel", response_model=InboundBatchResponse)
async def cancel_inbound_batch(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    inbound_batch_id: int,
) -> Any:
    await inbound_service.cancel_inbound_batch(db, inbound_batch_id, operator_id)
    await db.commit()
    return build_inbound_response(await load_inbound(db, inbound_batch_id))


@router.delete("/{inbound_batch_id}")
async def delete_inbound_batch(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    inbound_batch_id: int,
) -> Any:
    await inbound_service.delete_inbound_batch(db, inbound_batch_id, operator_id)
    await db.commit()
    return {"message": "删除成功"}
