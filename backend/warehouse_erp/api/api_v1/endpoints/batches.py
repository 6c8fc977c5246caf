"""库存批次管理API - FEFO 分配、期初批次、报废、成本"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Any, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse_erp.core.config import settings
from warehouse_erp.core.deps import get_db, get_operator_id
from warehouse_erp.models.batch import Batch
from warehouse_erp.models.product import Product
from warehouse_erp.models.product_cost import ProductCostHistory
from warehouse_erp.schemas.batch import (
    BatchCreate, BatchUpdate, BatchDispose,
    BatchResponse, BatchListResponse,
    AllocationPlanItem, AllocationPlanResponse, ExpiringSummaryItem,
    ProductCostResponse, ProductCostHistoryResponse,
)
from warehouse_erp.services import batch_service, cost_service, stock_ops
from warehouse_erp.services.audit import add_log
from warehouse_erp.services.common import get_product

router = APIRouter()


def build_batch_response(batch: Batch) -> BatchResponse:
    """构建批次响应"""
    return BatchResponse(
        id=batch.id,
        batch_code=batch.batch_code,
        product_id=batch.product_id,
        product_name=batch.product.name if batch.product else "",
        product_sku=batch.product.sku if batch.product else "",
        warehouse_id=batch.warehouse_id,
        warehouse_name=batch.warehouse.name if batch.warehouse else "",
        supplier_id=batch.supplier_id,
        supplier_name=batch.supplier.name if batch.supplier else "",
        inbound_batch_id=batch.inbound_batch_id,
        quality_check_id=batch.quality_check_id,
        parent_batch_id=batch.parent_batch_id,
        quantity=batch.quantity,
        remaining_quantity=batch.remaining_quantity,
        unit_cost=batch.unit_cost,
        manufacturing_date=batch.manufacturing_date,
        expiry_date=batch.expiry_date,
        days_until_expiry=batch.days_until_expiry,
        is_expired=batch.is_expired,
        status=batch.status,
        status_display=batch.status_display,
        is_opening=bool(batch.is_opening),
        notes=batch.notes,
        created_at=batch.created_at,
    )


def _load_options():
    return (
        selectinload(Batch.product),
        selectinload(Batch.warehouse),
        selectinload(Batch.supplier),
    )


async def load_batch(db: AsyncSession, batch_id: int, include_deleted: bool = False) -> Batch:
    query = (
        select(Batch)
        .options(*_load_options())
        .where(Batch.id == batch_id)
        .execution_options(populate_existing=True)
    )
    if not include_deleted:
        query = query.where(Batch.deleted_at.is_(None))
    batch = (await db.execute(query)).scalar_one_or_none()
    if not batch:
        raise HTTPException(status_code=404, detail="批次不存在")
    return batch


@router.get("/", response_model=BatchListResponse)
async def list_batches(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    product_id: Optional[int] = Query(None),
    warehouse_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None, description="available/reserved/expired/depleted"),
    expiring_soon: Optional[int] = Query(None, ge=0, description="N 天内到期"),
    include_depleted: bool = Query(False, description="是否包含已用完的批次"),
    search: Optional[str] = Query(None, description="搜索批次号/商品名"),
) -> Any:
    """获取批次列表（FEFO 顺序）"""
    conditions = [Batch.deleted_at.is_(None)]
    if product_id:
        conditions.append(Batch.product_id == product_id)
    if warehouse_id:
        conditions.append(Batch.warehouse_id == warehouse_id)
    if status:
        conditions.append(Batch.status == status)
    elif not include_depleted:
        conditions.append(Batch.status != "depleted")
    if expiring_soon is not None:
        today = date.today()
        conditions.append(Batch.expiry_date.is_not(None))
        conditions.append(Batch.expiry_date >= today)
        conditions.append(Batch.expiry_date <= today + timedelta(days=expiring_soon))
    if search:
        conditions.append(or_(
            Batch.batch_code.contains(search),
            Batch.product.has(Product.name.contains(search)),
        ))

    total = (await db.execute(
        select(func.count(Batch.id)).where(and_(*conditions))
    )).scalar() or 0

    query = (
        select(Batch)
        .options(*_load_options())
        .where(and_(*conditions))
        .order_by(*batch_service.FEFO_ORDER)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    batches = (await db.execute(query)).scalars().all()
    return BatchListResponse(
        data=[build_batch_response(b) for b in batches],
        total=total, page=page, limit=limit
    )


@router.post("/", response_model=BatchResponse)
async def create_opening_batch(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    data: BatchCreate,
) -> Any:
    """创建期初批次（直接入库）"""
    batch = await stock_ops.create_opening_batch(
        db,
        warehouse_id=data.warehouse_id,
        product_id=data.product_id,
        quantity=data.quantity,
        unit_cost=data.unit_cost,
        operator_id=operator_id,
        supplier_id=data.supplier_id,
        manufacturing_date=data.manufacturing_date,
        expiry_date=data.expiry_date,
        notes=data.notes,
    )
    await db.commit()
    return build_batch_response(await load_batch(db, batch.id))


@router.get("/available", response_model=List[BatchResponse])
async def get_available_batches(
    *,
    db: AsyncSession = Depends(get_db),
    product_id: int = Query(...),
    warehouse_id: Optional[int] = Query(None),
) -> Any:
    """可出库批次（FEFO 顺序）"""
    batches = await batch_service.get_available_batches(db, product_id, warehouse_id)
    ids = [b.id for b in batches]
    if not ids:
        return []
    result = await db.execute(
        select(Batch)
        .options(*_load_options())
        .where(Batch.id.in_(ids))
        .order_by(*batch_service.FEFO_ORDER)
        .execution_options(populate_existing=True)
    )
    return [build_batch_response(b) for b in result.scalars().all()]


@router.get("/allocation-plan", response_model=AllocationPlanResponse)
async def get_allocation_plan(
    *,
    db: AsyncSession = Depends(get_db),
    product_id: int = Query(...),
    quantity: Decimal = Query(..., gt=0),
    warehouse_id: Optional[int] = Query(None),
) -> Any:
    """预览 FEFO 分配方案（不扣减）"""
    plan = await batch_service.plan_allocation(db, product_id, quantity, warehouse_id)
    return AllocationPlanResponse(
        product_id=product_id,
        warehouse_id=warehouse_id,
        quantity=quantity,
        allocations=[
            AllocationPlanItem(
                batch_id=batch.id,
                batch_code=batch.batch_code,
                expiry_date=batch.expiry_date,
                remaining_quantity=batch.remaining_quantity,
                allocate_quantity=qty,
                unit_cost=batch.unit_cost,
            )
            for batch, qty in plan
        ],
    )


@router.get("/expiring-summary", response_model=List[ExpiringSummaryItem])
async def get_expiring_summary(
    *,
    db: AsyncSession = Depends(get_db),
    days: int = Query(settings.EXPIRING_SOON_DAYS, ge=0, le=365),
) -> Any:
    """临期批次汇总（按商品）"""
    return await batch_service.get_expiring_soon_summary(db, days)


@router.post("/mark-expired")
async def mark_expired_batches(
    *,
    db: AsyncSession = Depends(get_db),
) -> Any:
    """手动执行过期标记"""
    count = await batch_service.mark_expired_batches(db)
    await db.commit()
    return {"marked": count}


@router.get("/product-cost/{product_id}", response_model=ProductCostResponse)
async def get_product_cost(
    *,
    db: AsyncSession = Depends(get_db),
    product_id: int,
    history_limit: int = Query(20, ge=0, le=200),
) -> Any:
    """商品移动加权平均成本及变动历史"""
    await get_product(db, product_id, active_only=False)
    cost = await cost_service.get_or_create_product_cost(db, product_id)
    await db.commit()

    result = await db.execute(
        select(ProductCostHistory)
        .where(ProductCostHistory.product_id == product_id)
        .order_by(ProductCostHistory.created_at.desc(), ProductCostHistory.id.desc())
        .limit(history_limit)
    )
    return ProductCostResponse(
        product_id=product_id,
        average_cost=cost.average_cost,
        last_cost=cost.last_cost,
        total_quantity=cost.total_quantity,
        total_value=cost.total_value,
        last_updated_at=cost.last_updated_at,
        history=[ProductCostHistoryResponse.model_validate(h) for h in result.scalars().all()],
    )


@router.get("/{batch_id}", response_model=BatchResponse)
async def get_batch(
    *,
    db: AsyncSession = Depends(get_db),
    batch_id: int,
) -> Any:
    return build_batch_response(await load_batch(db, batch_id))


@router.put("/{batch_id}", response_model=BatchResponse)
async def update_batch(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    batch_id: int,
    data: BatchUpdate,
) -> Any:
    """修改批次（供应商、日期、备注）"""
    await batch_service.update_batch(db, batch_id, data)
    await add_log(db, operator_id, "update", "batch", batch_id,
                  new_value=data.model_dump(exclude_unset=True))
    await db.commit()
    return build_batch_response(await load_batch(db, batch_id))


@router.delete("/{batch_id}")
async def delete_batch(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    batch_id: int,
) -> Any:
    """删除未出库的批次"""
    await stock_ops.delete_batch(db, batch_id, operator_id)
    await db.commit()
    return {"message": "删除成功"}


@router.post("/{batch_id}/dispose", response_model=BatchResponse)
async def dispose_batch(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    batch_id: int,
    data: BatchDispose,
) -> Any:
    """报废批次"""
    await stock_ops.dispose_batch(db, batch_id, data.reason, operator_id, data.quantity)
    await db.commit()
    return build_batch_response(await load_batch(db, batch_id))
