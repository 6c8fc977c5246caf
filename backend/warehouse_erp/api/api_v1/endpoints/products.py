"""商品管理API"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse_erp.core.deps import get_db, get_operator_id
from warehouse_erp.models.product import Product
from warehouse_erp.schemas.product import (
    ProductCreate, ProductUpdate, ProductResponse, ProductListResponse
)
from warehouse_erp.services.audit import add_log

router = APIRouter()


@router.get("/", response_model=ProductListResponse)
async def list_products(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, description="搜索品名/SKU"),
    is_active: Optional[bool] = Query(None),
) -> Any:
    """获取商品列表"""
    conditions = []
    if search:
        conditions.append(Product.name.contains(search) | Product.sku.contains(search))
    if is_active is not None:
        conditions.append(Product.is_active == is_active)

    query = select(Product)
    count_query = select(func.count(Product.id))
    if conditions:
        query = query.where(and_(*conditions))
        count_query = count_query.where(and_(*conditions))

    total = (await db.execute(count_query)).scalar() or 0
    query = query.order_by(Product.id.desc()).offset((page - 1) * limit).limit(limit)
    products = (await db.execute(query)).scalars().all()

    return ProductListResponse(
        data=[ProductResponse.model_validate(p) for p in products],
        total=total, page=page, limit=limit
    )


@router.post("/", response_model=ProductResponse)
async def create_product(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    product_in: ProductCreate,
) -> Any:
    """创建商品"""
    exists = await db.execute(select(Product.id).where(Product.sku == product_in.sku))
    if exists.scalar_one_or_none():
        raise HTTPException(status_code=400, detail=f"SKU {product_in.sku} 已存在")

    product = Product(**product_in.model_dump(), is_active=True, created_by=operator_id)
    db.add(product)
    await db.flush()
    await add_log(db, operator_id, "create", "product", product.id, product.name)
    await db.commit()
    await db.refresh(product)
    return ProductResponse.model_validate(product)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    *,
    db: AsyncSession = Depends(get_db),
    product_id: int,
) -> Any:
    product = await db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="商品不存在")
    return ProductResponse.model_validate(product)


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    product_id: int,
    product_in: ProductUpdate,
) -> Any:
    """更新商品（成本价由系统维护）"""
    product = await db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="商品不存在")

    update_data = product_in.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(product, field, value)
    await add_log(db, operator_id, "update", "product", product.id, product.name, new_value=update_data)

    await db.commit()
    await db.refresh(product)
    return ProductResponse.model_validate(product)


@router.delete("/{product_id}", response_model=ProductResponse)
async def deactivate_product(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    product_id: int,
) -> Any:
    """停用商品"""
    product = await db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="商品不存在")
    product.is_active = False
    await add_log(db, operator_id, "delete", "product", product.id, product.name, description="停用")
    await db.commit()
    await db.refresh(product)
    return ProductResponse.model_validate(product)
