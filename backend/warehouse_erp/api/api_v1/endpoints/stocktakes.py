"""盘点API - 盘点期间仓库锁定，审核后按实盘调整库存"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse_erp.core.deps import get_db, get_operator_id
from warehouse_erp.models.stocktake import Stocktake, StocktakeItem
from warehouse_erp.schemas.stocktake import (
    StocktakeCreate, StocktakeItemsUpdate,
    StocktakeItemResponse, StocktakeResponse, StocktakeListResponse,
)
from warehouse_erp.services import stocktake_service

router = APIRouter()


def build_stocktake_response(stocktake: Stocktake, with_items: bool = True) -> StocktakeResponse:
    items = []
    if with_items:
        for item in stocktake.items:
            resp = StocktakeItemResponse.model_validate(item)
            resp.product_name = item.product.name if item.product else ""
            resp.product_sku = item.product.sku if item.product else ""
            items.append(resp)

    return StocktakeResponse(
        id=stocktake.id,
        stocktake_code=stocktake.stocktake_code,
        warehouse_id=stocktake.warehouse_id,
        warehouse_name=stocktake.warehouse.name if stocktake.warehouse else "",
        status=stocktake.status,
        status_display=stocktake.status_display,
        is_locked=bool(stocktake.is_locked),
        notes=stocktake.notes,
        started_at=stocktake.started_at,
        completed_at=stocktake.completed_at,
        approved_at=stocktake.approved_at,
        approved_by=stocktake.approved_by,
        created_by=stocktake.created_by,
        created_at=stocktake.created_at,
        items=items,
        **stocktake_service.count_summary(stocktake.items),
    )


def _load_options():
    return (
        selectinload(Stocktake.items).selectinload(StocktakeItem.product),
        selectinload(Stocktake.warehouse),
    )


async def load_stocktake(db: AsyncSession, stocktake_id: int) -> Stocktake:
    result = await db.execute(
        select(Stocktake)
        .options(*_load_options())
        .where(Stocktake.id == stocktake_id)
        .execution_options(populate_existing=True)
    )
    stocktake = result.scalar_one_or_none()
    if not stocktake:
        raise HTTPException(status_code=404, detail="盘点单不存在")
    return stocktake


@router.get("/", response_model=StocktakeListResponse)
async def list_stocktakes(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    warehouse_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
) -> Any:
    """盘点单列表（不含明细）"""
    conditions = []
    if warehouse_id:
        conditions.append(Stocktake.warehouse_id == warehouse_id)
    if status:
        conditions.append(Stocktake.status == status)

    query = select(Stocktake).options(*_load_options())
    count_query = select(func.count(Stocktake.id))
    if conditions:
        query = query.where(and_(*conditions))
        count_query = count_query.where(and_(*conditions))

    total = (await db.execute(count_query)).scalar() or 0
    query = query.order_by(Stocktake.created_at.desc(), Stocktake.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    stocktakes = (await db.execute(query)).scalars().all()

    return StocktakeListResponse(
        data=[build_stocktake_response(s, with_items=False) for s in stocktakes],
        total=total, page=page, limit=limit
    )


@router.post("/", response_model=StocktakeResponse)
async def create_stocktake(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    data: StocktakeCreate,
) -> Any:
    """创建盘点单（快照当前账面库存）"""
    stocktake = await stocktake_service.create_stocktake(db, data, operator_id)
    await db.commit()
    return build_stocktake_response(await load_stocktake(db, stocktake.id))


@router.get("/{stocktake_id}", response_model=StocktakeResponse)
async def get_stocktake(
    *,
    db: AsyncSession = Depends(get_db),
    stocktake_id: int,
) -> Any:
    return build_stocktake_response(await load_stocktake(db, stocktake_id))


@router.post("/{stocktake_id}/start", response_model=StocktakeResponse)
async def start_stocktake(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    stocktake_id: int,
) -> Any:
    """开始盘点并锁定仓库"""
    await stocktake_service.start_stocktake(db, stocktake_id, operator_id)
    await db.commit()
    return build_stocktake_response(await load_stocktake(db, stocktake_id))


@router.put("/{stocktake_id}/items", response_model=StocktakeResponse)
async def update_stocktake_items(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    stocktake_id: int,
    data: StocktakeItemsUpdate,
) -> Any:
    """录入实盘数量"""
    await stocktake_service.update_items(db, stocktake_id, data, operator_id)
    await db.commit()
    return build_stocktake_response(await load_stocktake(db, stocktake_id))


@router.post("/{stocktake_id}/complete", response_model=StocktakeResponse)
async def complete_stocktake(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    stocktake_id: int,
) -> Any:
    """提交审核"""
    await stocktake_service.complete_stocktake(db, stocktake_id, operator_id)
    await db.commit()
    return build_stocktake_response(await load_stocktake(db, stocktake_id))


@router.post("/{stocktake_id}/approve", response_model=StocktakeResponse)
async def approve_stocktake(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    stocktake_id: int,
) -> Any:
    """审核通过：调整库存并解锁仓库"""
    await stocktake_service.approve_stocktake(db, stocktake_id, operator_id)
    await db.commit()
    return build_stocktake_response(await load_stocktake(db, stocktake_id))


@router.post("/{stocktake_id}/cancel", response_model=StocktakeResponse)
async def cancel_stocktake(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    stocktake_id: int,
) -> Any:
    await stocktake_service.cancel_stocktake(db, stocktake_id, operator_id)
    await db.commit()
    return build_stocktake_response(await load_stocktake(db, stocktake_id))


@router.delete("/{stocktake_id}")
async def delete_stocktake(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    stocktake_id: int,
) -> Any:
    await stocktake_service.delete_stocktake(db, stocktake_id, operator_id)
    await db.commit()
    return {"message": "删除成功"}
