"""
采购申请服务
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse_erp.core.config import settings
from warehouse_erp.models.purchase_request import PurchaseRequest
from warehouse_erp.schemas.purchase_request import PurchaseRequestCreate, PurchaseRequestUpdate
from warehouse_erp.services.audit import add_log
from warehouse_erp.services.common import (
    generate_code, get_entity_with_role, get_product, get_warehouse,
)

logger = logging.getLogger(__name__)

OPEN_STATUSES = ("pending", "approved")


async def get_request(db: AsyncSession, request_id: int) -> PurchaseRequest:
    result = await db.execute(
        select(PurchaseRequest).where(PurchaseRequest.id == request_id).with_for_update()
    )
    request = result.scalar_one_or_none()
    if not request:
        raise HTTPException(status_code=404, detail="采购申请不存在")
    return request


async def has_open_request(db: AsyncSession, product_id: int, warehouse_id: Optional[int]) -> bool:
    """同一商品+仓库是否已有待审批/已批准的申请"""
    query = select(PurchaseRequest.id).where(
        PurchaseRequest.product_id == product_id,
        PurchaseRequest.status.in_(OPEN_STATUSES),
    )
    if warehouse_id is None:
        query = query.where(PurchaseRequest.warehouse_id.is_(None))
    else:
        query = query.where(PurchaseRequest.warehouse_id == warehouse_id)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none() is not None


async def create_request(
    db: AsyncSession,
    *,
    product_id: int,
    requested_quantity: Decimal,
    operator_id: Optional[int],
    warehouse_id: Optional[int] = None,
    supplier_id: Optional[int] = None,
    current_stock: Optional[Decimal] = None,
    min_stock: Optional[Decimal] = None,
    source: str = "manual",
    notes: Optional[str] = None,
) -> PurchaseRequest:
    await get_product(db, product_id)
    if warehouse_id:
        await get_warehouse(db, warehouse_id)
    if supplier_id:
        await get_entity_with_role(db, supplier_id, "supplier")
    if requested_quantity <= 0:
        raise HTTPException(status_code=400, detail="申请数量必须大于0")

    now = datetime.utcnow()
    request = PurchaseRequest(
        request_code=await generate_code(db, PurchaseRequest.request_code, "PR"),
        product_id=product_id,
        warehouse_id=warehouse_id,
        supplier_id=supplier_id,
        requested_quantity=requested_quantity,
        current_stock=current_stock,
        min_stock=min_stock,
        status="pending",
        source=source,
        notes=notes,
        requested_by=operator_id,
        created_at=now,
        updated_at=now,
    )
    db.add(request)
    await db.flush()
    await add_log(
        db, operator_id or settings.DEFAULT_OPERATOR_ID, "create", "purchase_request",
        request.id, request.request_code,
        description=f"{'自动' if source == 'auto' else '手动'}申请采购 {requested_quantity}",
    )
    return request


async def create_manual_request(db: AsyncSession, data: PurchaseRequestCreate, operator_id: int) -> PurchaseRequest:
    return await create_request(
        db,
        product_id=data.product_id,
        requested_quantity=data.requested_quantity,
        operator_id=operator_id,
        warehouse_id=data.warehouse_id,
        supplier_id=data.supplier_id,
        notes=data.notes,
    )


async def update_request(
    db: AsyncSession, request_id: int, data: PurchaseRequestUpdate, operator_id: int
) -> PurchaseRequest:
    request = await get_request(db, request_id)
    if request.status != "pending":
        raise HTTPException(status_code=400, detail="只有待审批的申请可以修改")
    update_data = data.model_dump(exclude_unset=True)
    if update_data.get("supplier_id"):
        await get_entity_with_role(db, update_data["supplier_id"], "supplier")
    for field, value in update_data.items():
        setattr(request, field, value)
    await add_log(db, operator_id, "update", "purchase_request", request.id, request.request_code,
                  new_value=update_data)
    return request


async def _transition(
    db: AsyncSession, request_id: int, operator_id: int, allowed: tuple, target: str, action: str
) -> PurchaseRequest:
    request = await get_request(db, request_id)
    if request.status not in allowed:
        raise HTTPException(status_code=400, detail=f"申请{request.status_display}，不能执行该操作")
    old_status = request.status
    request.status = target
    await add_log(db, operator_id, action, "purchase_request", request.id, request.request_code,
                  old_value={"status": old_status}, new_value={"status": target})
    return request


async def approve_request(db: AsyncSession, request_id: int, operator_id: int) -> PurchaseRequest:
    request = await _transition(db, request_id, operator_id, ("pending",), "approved", "approve")
    request.approved_by = operator_id
    request.approved_at = datetime.utcnow()
    return request


async def reject_request(db: AsyncSession, request_id: int, reason: str, operator_id: int) -> PurchaseRequest:
    request = await _transition(db, request_id, operator_id, ("pending",), "rejected", "reject")
    request.notes = f"{request.notes or ''}\n驳回原因：{reason}".strip()
    return request


async def mark_ordered(db: AsyncSession, request_id: int, operator_id: int) -> PurchaseRequest:
    return await _transition(db, request_id, operator_id, ("approved",), "ordered", "update")


async def complete_request(db: AsyncSession, request_id: int, operator_id: int) -> PurchaseRequest:
    return await _transition(db, request_id, operator_id, ("ordered",), "completed", "complete")


async def cancel_request(db: AsyncSession, request_id: int, operator_id: int) -> PurchaseRequest:
    return await _transition(db, request_id, operator_id, OPEN_STATUSES, "cancelled", "cancel")


async def delete_request(db: AsyncSession, request_id: int, operator_id: int) -> None:
    request = await get_request(db, request_id)
    if request.status != "pending":
        raise HTTPException(status_code=400, detail="只有待审批的申请可以删除")
    await db.delete(request)
    await add_log(db, operator_id, "delete", "purchase_request", request.id, request.request_code)


async def get_pending_count(db: AsyncSession) -> int:
    result = await db.execute(
        select(func.count(PurchaseRequest.id)).where(PurchaseRequest.status == "pending")
    )
    return result.scalar() or 0


async def get_summary(db: AsyncSession) -> dict:
    result = await db.execute(
        select(PurchaseRequest.status, func.count(PurchaseRequest.id)).group_by(PurchaseRequest.status)
    )
    by_status = {row[0]: row[1] for row in result.all()}
    return {
        "total": sum(by_status.values()),
        "pending": by_status.get("pending", 0),
        "by_status": by_status,
    }
