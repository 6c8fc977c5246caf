"""内部调拨API"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse_erp.core.deps import get_db, get_operator_id
from warehouse_erp.models.internal_transfer import InternalTransfer, InternalTransferItem
from warehouse_erp.schemas.internal_transfer import (
    TransferCreate, TransferReceive,
    TransferItemResponse, TransferResponse, TransferListResponse,
)
from warehouse_erp.services import transfer_service

router = APIRouter()


def build_transfer_response(transfer: InternalTransfer) -> TransferResponse:
    items = []
    for item in transfer.items:
        resp = TransferItemResponse.model_validate(item)
        resp.product_name = item.product.name if item.product else ""
        items.append(resp)

    return TransferResponse(
        id=transfer.id,
        transfer_code=transfer.transfer_code,
        from_warehouse_id=transfer.from_warehouse_id,
        from_warehouse_name=transfer.from_warehouse.name if transfer.from_warehouse else "",
        to_warehouse_id=transfer.to_warehouse_id,
        to_warehouse_name=transfer.to_warehouse.name if transfer.to_warehouse else "",
        status=transfer.status,
        status_display=transfer.status_display,
        notes=transfer.notes,
        shipped_at=transfer.shipped_at,
        received_at=transfer.received_at,
        created_by=transfer.created_by,
        created_at=transfer.created_at,
        items=items,
    )


def _load_options():
    return (
        selectinload(InternalTransfer.items).selectinload(InternalTransferItem.product),
        selectinload(InternalTransfer.from_warehouse),
        selectinload(InternalTransfer.to_warehouse),
    )


async def load_transfer(db: AsyncSession, transfer_id: int) -> InternalTransfer:
    result = await db.execute(
        select(InternalTransfer)
        .options(*_load_options())
        .where(InternalTransfer.id == transfer_id)
        .execution_options(populate_existing=True)
    )
    transfer = result.scalar_one_or_none()
    if not transfer:
        raise HTTPException(status_code=404, detail="调拨单不存在")
    return transfer


@router.get("/", response_model=TransferListResponse)
async def list_transfers(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    warehouse_id: Optional[int] = Query(None, description="调出或调入仓"),
) -> Any:
    conditions = []
    if status:
        conditions.append(InternalTransfer.status == status)
    if warehouse_id:
        conditions.append(or_(
            InternalTransfer.from_warehouse_id == warehouse_id,
            InternalTransfer.to_warehouse_id == warehouse_id,
        ))

    query = select(InternalTransfer).options(*_load_options())
    count_query = select(func.count(InternalTransfer.id))
    if conditions:
        query = query.where(and_(*conditions))
        count_query = count_query.where(and_(*conditions))

    total = (await db.execute(count_query)).scalar() or 0
    query = query.order_by(InternalTransfer.created_at.desc(), InternalTransfer.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    transfers = (await db.execute(query)).scalars().all()

    return TransferListResponse(
        data=[build_transfer_response(t) for t in transfers],
        total=total, page=page, limit=limit
    )


@router.post("/", response_model=TransferResponse)
async def create_transfer(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    data: TransferCreate,
) -> Any:
    transfer = await transfer_service.create_transfer(db, data, operator_id)
    await db.commit()
    return build_transfer_response(await load_transfer(db, transfer.id))


@router.get("/{transfer_id}", response_model=TransferResponse)
async def get_transfer(
    *,
    db: AsyncSession = Depends(get_db),
    transfer_id: int,
) -> Any:
    return build_transfer_response(await load_transfer(db, transfer_id))


@router.post("/{transfer_id}/submit", response_model=TransferResponse)
async def submit_transfer(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    transfer_id: int,
) -> Any:
    await transfer_service.submit_transfer(db, transfer_id, operator_id)
    await db.commit()
    return build_transfer_response(await load_transfer(db, transfer_id))


@router.post("/{transfer_id}/ship", response_model=TransferResponse)
async def ship_transfer(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    transfer_id: int,
) -> Any:
    """发货：调出仓扣减库存，状态变为在途"""
    await transfer_service.ship_transfer(db, transfer_id, operator_id)
    await db.commit()
    return build_transfer_response(await load_transfer(db, transfer_id))


@router.post("/{transfer_id}/receive", response_model=TransferResponse)
async def receive_transfer(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    transfer_id: int,
    data: TransferReceive,
) -> Any:
    """收货：调入仓生成继承有效期的新批次"""
    await transfer_service.receive_transfer(db, transfer_id, data, operator_id)
    await db.commit()
    return build_transfer_response(await load_transfer(db, transfer_id))


@router.post("/{transfer_id}/cancel", response_model=TransferResponse)
async def cancel_transfer(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    transfer_id: int,
) -> Any:
    await transfer_service.cancel_transfer(db, transfer_id, operator_id)
    await db.commit()
    return build_transfer_response(await load_transfer(db, transfer_id))


@router.delete("/{transfer_id}")
async def delete_transfer(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    transfer_id: int,
) -> Any:
    await transfer_service.delete_transfer(db, transfer_id, operator_id)
    await db.commit()
    return {"message": "删除成功"}
