"""
移动加权平均成本

入库：新均价 = (原库存价值 + 入库数量 × 入库单价) / (原数量 + 入库数量)
出库：按当前均价减少库存价值，均价不变
"""

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse_erp.models.product import Product
from warehouse_erp.models.product_cost import ProductCost, ProductCostHistory

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize(value: Decimal) -> Decimal:
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


async def get_or_create_product_cost(db: AsyncSession, product_id: int) -> ProductCost:
    result = await db.execute(
        select(ProductCost).where(ProductCost.product_id == product_id).with_for_update()
    )
    cost = result.scalar_one_or_none()
    if not cost:
        product = await db.get(Product, product_id)
        initial = (product.cost_price if product and product.cost_price else ZERO)
        cost = ProductCost(
            product_id=product_id,
            average_cost=initial,
            last_cost=initial,
            total_quantity=ZERO,
            total_value=ZERO,
            last_updated_at=datetime.utcnow(),
        )
        db.add(cost)
        await db.flush()
    return cost


async def get_average_cost(db: AsyncSession, product_id: int) -> Decimal:
    cost = await get_or_create_product_cost(db, product_id)
    return cost.average_cost


async def _sync_product_price(db: AsyncSession, product_id: int, average_cost: Decimal):
    product = await db.get(Product, product_id)
    if product:
        product.cost_price = average_cost


async def apply_inbound_cost(
    db: AsyncSession,
    product_id: int,
    quantity: Decimal,
    unit_cost: Decimal,
    operator_id: Optional[int] = None,
    batch_id: Optional[int] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
) -> ProductCost:
    """入库重算均价"""
    cost = await get_or_create_product_cost(db, product_id)
    old_average = cost.average_cost
    new_quantity = cost.total_quantity + quantity
    new_value = cost.total_value + quantity * unit_cost

    if new_quantity > 0:
        new_average = quantize(new_value / new_quantity)
    else:
        new_average = quantize(unit_cost)

    cost.total_quantity = new_quantity
    cost.total_value = quantize(new_value)
    cost.average_cost = new_average
    cost.last_cost = quantize(unit_cost)
    cost.last_updated_at = datetime.utcnow()

    db.add(ProductCostHistory(
        product_id=product_id,
        batch_id=batch_id,
        action="inbound",
        quantity=quantity,
        unit_cost=quantize(unit_cost),
        old_average_cost=old_average,
        new_average_cost=new_average,
        reference_type=reference_type,
        reference_id=reference_id,
        created_by=operator_id,
        created_at=datetime.utcnow(),
    ))
    await _sync_product_price(db, product_id, new_average)

    if old_average != new_average:
        logger.info(f"💰 商品 {product_id} 均价 {old_average} → {new_average}")
    return cost


async def apply_outbound_cost(
    db: AsyncSession,
    product_id: int,
    quantity: Decimal,
    operator_id: Optional[int] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
) -> Decimal:
    """按均价出库，返回出库成本单价"""
    cost = await get_or_create_product_cost(db, product_id)
    average = cost.average_cost

    new_quantity = max(ZERO, cost.total_quantity - quantity)
    new_value = max(ZERO, cost.total_value - quantity * average)
    if new_quantity == 0:
        new_value = ZERO

    cost.total_quantity = new_quantity
    cost.total_value = quantize(new_value)
    cost.last_updated_at = datetime.utcnow()

    db.add(ProductCostHistory(
        product_id=product_id,
        action="outbound",
        quantity=quantity,
        unit_cost=average,
        old_average_cost=average,
        new_average_cost=average,
        reference_type=reference_type,
        reference_id=reference_id,
        created_by=operator_id,
        created_at=datetime.utcnow(),
    ))
    return average
