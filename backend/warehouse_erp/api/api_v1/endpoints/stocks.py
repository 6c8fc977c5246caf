"""库存管理API - 库存查询、调整、出库、流水、看板"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse_erp.core.config import settings
from warehouse_erp.core.deps import get_db, get_operator_id
from warehouse_erp.models.batch import Batch
from warehouse_erp.models.product import Product
from warehouse_erp.models.product_cost import ProductCost
from warehouse_erp.models.stock import Stock, InventoryLog
from warehouse_erp.models.stocktake import Stocktake
from warehouse_erp.schemas.stock import (
    StockUpdate, StockAdjust, StockOutbound,
    StockResponse, StockListResponse,
    InventoryLogResponse, InventoryLogListResponse,
    StockDashboard,
)
from warehouse_erp.services import batch_service, stock_ops
from warehouse_erp.services.audit import add_log
from warehouse_erp.services.common import get_warehouse

router = APIRouter()


async def build_stock_response(db: AsyncSession, stock: Stock) -> StockResponse:
    """构建库存响应（可用数量 = 可分配批次剩余合计）"""
    available = await batch_service.get_available_quantity(db, stock.product_id, stock.warehouse_id)
    return StockResponse(
        id=stock.id,
        warehouse_id=stock.warehouse_id,
        warehouse_name=stock.warehouse.name if stock.warehouse else "",
        product_id=stock.product_id,
        product_name=stock.product.name if stock.product else "",
        product_sku=stock.product.sku if stock.product else "",
        product_unit=stock.product.unit if stock.product else "",
        quantity=stock.quantity,
        available_quantity=available,
        safety_stock=stock.safety_stock,
        is_low_stock=stock.is_low_stock,
        inbound_batch_id=stock.inbound_batch_id,
        quality_check_id=stock.quality_check_id,
        last_check_at=stock.last_check_at,
        updated_at=stock.updated_at,
    )


def build_log_response(log: InventoryLog) -> InventoryLogResponse:
    return InventoryLogResponse(
        id=log.id,
        stock_id=log.stock_id,
        warehouse_id=log.warehouse_id,
        warehouse_name=log.warehouse.name if log.warehouse else "",
        product_id=log.product_id,
        product_name=log.product.name if log.product else "",
        batch_id=log.batch_id,
        batch_code=log.batch.batch_code if log.batch else None,
        movement_type=log.movement_type,
        type_display=log.type_display,
        quantity_change=log.quantity_change,
        quantity_before=log.quantity_before,
        quantity_after=log.quantity_after,
        reference_type=log.reference_type,
        reference_id=log.reference_id,
        inbound_batch_id=log.inbound_batch_id,
        quality_check_id=log.quality_check_id,
        reason=log.reason,
        note=log.note,
        operator_id=log.operator_id,
        operator_name=(log.operator.display_name or log.operator.username) if log.operator else "",
        created_at=log.created_at,
    )


async def load_stock(db: AsyncSession, stock_id: int) -> Stock:
    result = await db.execute(
        select(Stock)
        .options(selectinload(Stock.warehouse), selectinload(Stock.product))
        .where(Stock.id == stock_id)
        .execution_options(populate_existing=True)
    )
    stock = result.scalar_one_or_none()
    if not stock:
        raise HTTPException(status_code=404, detail="库存记录不存在")
    return stock


async def _query_stocks(
    db: AsyncSession,
    conditions: list,
    page: int,
    limit: int,
) -> StockListResponse:
    count_query = select(func.count(Stock.id))
    query = select(Stock).options(selectinload(Stock.warehouse), selectinload(Stock.product))
    if conditions:
        count_query = count_query.where(and_(*conditions))
        query = query.where(and_(*conditions))

    total = (await db.execute(count_query)).scalar() or 0
    query = query.order_by(Stock.warehouse_id, Stock.product_id).offset((page - 1) * limit).limit(limit)
    stocks = (await db.execute(query)).scalars().all()
    return StockListResponse(
        data=[await build_stock_response(db, s) for s in stocks],
        total=total, page=page, limit=limit
    )


@router.get("/", response_model=StockListResponse)
async def list_stocks(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    warehouse_id: Optional[int] = Query(None),
    product_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None, description="搜索品名/SKU"),
    low_stock_only: bool = Query(False, description="只看低于安全库存的"),
    include_zero: bool = Query(False, description="包含零库存"),
) -> Any:
    """获取库存列表"""
    conditions = []
    if warehouse_id:
        conditions.append(Stock.warehouse_id == warehouse_id)
    if product_id:
        conditions.append(Stock.product_id == product_id)
    if search:
        conditions.append(Stock.product.has(
            or_(Product.name.contains(search), Product.sku.contains(search))
        ))
    if low_stock_only:
        conditions.append(Stock.quantity < Stock.safety_stock)
    if not include_zero:
        conditions.append(Stock.quantity > 0)
    return await _query_stocks(db, conditions, page, limit)


@router.get("/warehouse/{warehouse_id}", response_model=StockListResponse)
async def get_warehouse_stocks(
    *,
    db: AsyncSession = Depends(get_db),
    warehouse_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
) -> Any:
    """获取某仓库的库存"""
    await get_warehouse(db, warehouse_id)
    return await _query_stocks(db, [Stock.warehouse_id == warehouse_id, Stock.quantity > 0], page, limit)


@router.post("/adjust", response_model=StockResponse)
async def adjust_stock(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    data: StockAdjust,
) -> Any:
    """手动调整库存（仅主管，必须填写原因）"""
    stock = await stock_ops.adjust_stock(
        db, data.warehouse_id, data.product_id, data.new_quantity, data.reason, operator_id
    )
    await db.commit()
    return await build_stock_response(db, await load_stock(db, stock.id))


@router.post("/outbound", response_model=StockResponse)
async def outbound_stock(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    data: StockOutbound,
) -> Any:
    """出库（指定批次或按 FEFO）"""
    stock, _ = await stock_ops.outbound_stock(
        db,
        data.warehouse_id,
        data.product_id,
        data.quantity,
        operator_id,
        batch_id=data.batch_id,
        reference_type=data.reference_type,
        reference_id=data.reference_id,
        reason=data.reason,
    )
    await db.commit()
    return await build_stock_response(db, await load_stock(db, stock.id))


@router.get("/logs", response_model=InventoryLogListResponse)
async def list_inventory_logs(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    warehouse_id: Optional[int] = Query(None),
    product_id: Optional[int] = Query(None),
    batch_id: Optional[int] = Query(None),
    movement_type: Optional[str] = Query(None),
    reference_type: Optional[str] = Query(None),
    reference_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
) -> Any:
    """库存流水"""
    conditions = []
    if warehouse_id:
        conditions.append(InventoryLog.warehouse_id == warehouse_id)
    if product_id:
        conditions.append(InventoryLog.product_id == product_id)
    if batch_id:
        conditions.append(InventoryLog.batch_id == batch_id)
    if movement_type:
        conditions.append(InventoryLog.movement_type == movement_type)
    if reference_type:
        conditions.append(InventoryLog.reference_type == reference_type)
    if reference_id:
        conditions.append(InventoryLog.reference_id == reference_id)
    if start_date:
        conditions.append(InventoryLog.created_at >= datetime.combine(start_date, datetime.min.time()))
    if end_date:
        conditions.append(InventoryLog.created_at < datetime.combine(end_date + timedelta(days=1), datetime.min.time()))

    count_query = select(func.count(InventoryLog.id))
    query = select(InventoryLog).options(
        selectinload(InventoryLog.warehouse),
        selectinload(InventoryLog.product),
        selectinload(InventoryLog.batch),
        selectinload(InventoryLog.operator),
    )
    if conditions:
        count_query = count_query.where(and_(*conditions))
        query = query.where(and_(*conditions))

    total = (await db.execute(count_query)).scalar() or 0
    query = query.order_by(InventoryLog.created_at.desc(), InventoryLog.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    logs = (await db.execute(query)).scalars().all()

    return InventoryLogListResponse(
        data=[build_log_response(log) for log in logs],
        total=total, page=page, limit=limit
    )


@router.get("/dashboard", response_model=StockDashboard)
async def get_dashboard(
    *,
    db: AsyncSession = Depends(get_db),
    warehouse_id: Optional[int] = Query(None),
) -> Any:
    """库存看板：商品数、总量、库存价值、低库存、临期/过期批次"""
    stock_conditions = [Stock.quantity > 0]
    batch_conditions = [Batch.deleted_at.is_(None), Batch.remaining_quantity > 0]
    if warehouse_id:
        stock_conditions.append(Stock.warehouse_id == warehouse_id)
        batch_conditions.append(Batch.warehouse_id == warehouse_id)

    product_count, total_quantity = (await db.execute(
        select(func.count(func.distinct(Stock.product_id)), func.coalesce(func.sum(Stock.quantity), 0))
        .where(and_(*stock_conditions))
    )).one()

    # 库存价值按移动加权平均成本计算
    total_value = (await db.execute(
        select(func.coalesce(func.sum(Stock.quantity * ProductCost.average_cost), 0))
        .join(ProductCost, ProductCost.product_id == Stock.product_id)
        .where(and_(*stock_conditions))
    )).scalar()

    low_conditions = [Stock.safety_stock > 0, Stock.quantity < Stock.safety_stock]
    if warehouse_id:
        low_conditions.append(Stock.warehouse_id == warehouse_id)
    low_stock_count = (await db.execute(
        select(func.count(Stock.id)).where(and_(*low_conditions))
    )).scalar() or 0

    today = date.today()
    expiring = (await db.execute(
        select(func.count(Batch.id)).where(
            and_(*batch_conditions),
            Batch.status == "available",
            Batch.expiry_date.is_not(None),
            Batch.expiry_date >= today,
            Batch.expiry_date <= today + timedelta(days=settings.EXPIRING_SOON_DAYS),
        )
    )).scalar() or 0
    expired = (await db.execute(
        select(func.count(Batch.id)).where(
            and_(*batch_conditions),
            or_(Batch.status == "expired", and_(Batch.expiry_date.is_not(None), Batch.expiry_date < today)),
        )
    )).scalar() or 0

    locked = False
    if warehouse_id:
        locked = (await db.execute(
            select(func.count(Stocktake.id)).where(
                Stocktake.warehouse_id == warehouse_id, Stocktake.is_locked.is_(True)
            )
        )).scalar() > 0

    return StockDashboard(
        warehouse_id=warehouse_id,
        product_count=product_count or 0,
        total_quantity=Decimal(str(total_quantity or 0)),
        total_value=Decimal(str(total_value or 0)).quantize(Decimal("0.01")),
        low_stock_count=low_stock_count,
        expiring_soon_batches=expiring,
        expired_batches=expired,
        locked=locked,
    )


@router.put("/{stock_id}", response_model=StockResponse)
async def update_stock(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    stock_id: int,
    data: StockUpdate,
) -> Any:
    """更新安全库存（数量只能通过库存操作变动）"""
    stock = await db.get(Stock, stock_id)
    if not stock:
        raise HTTPException(status_code=404, detail="库存记录不存在")
    if data.safety_stock is not None:
        stock.safety_stock = data.safety_stock
    await add_log(db, operator_id, "update", "stock", stock.id, new_value=data.model_dump(exclude_unset=True))
    await db.commit()
    return await build_stock_response(db, await load_stock(db, stock_id))
