"""
库存预警服务

- 预警设置的增删改查（商品+仓库唯一，仓库为空表示全部仓库）
- 低库存 / 超储 / 临期预警
- 低库存自动生成采购申请
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse_erp.core.config import settings
from warehouse_erp.models.batch import Batch
from warehouse_erp.models.inventory_setting import InventorySetting
from warehouse_erp.models.product import Product
from warehouse_erp.models.stock import Stock
from warehouse_erp.schemas.purchase_request import InventorySettingSave
from warehouse_erp.services import purchase_request_service
from warehouse_erp.services.audit import add_log
from warehouse_erp.services.batch_service import allocatable_conditions
from warehouse_erp.services.common import get_product, get_warehouse

logger = logging.getLogger(__name__)


# ===== 预警设置 =====

async def list_settings(db: AsyncSession, product_id: Optional[int] = None) -> List[InventorySetting]:
    query = select(InventorySetting).order_by(InventorySetting.product_id, InventorySetting.id)
    if product_id:
        query = query.where(InventorySetting.product_id == product_id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def _find_setting(db: AsyncSession, product_id: int, warehouse_id: Optional[int]) -> Optional[InventorySetting]:
    query = select(InventorySetting).where(InventorySetting.product_id == product_id)
    if warehouse_id is None:
        query = query.where(InventorySetting.warehouse_id.is_(None))
    else:
        query = query.where(InventorySetting.warehouse_id == warehouse_id)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def save_setting(db: AsyncSession, data: InventorySettingSave, operator_id: int) -> InventorySetting:
    """保存预警设置（存在则更新）"""
    await get_product(db, data.product_id)
    if data.warehouse_id:
        await get_warehouse(db, data.warehouse_id)
    if data.max_quantity > 0 and data.min_quantity > data.max_quantity:
        raise HTTPException(status_code=400, detail="最低库存不能大于最高库存")

    setting = await _find_setting(db, data.product_id, data.warehouse_id)
    values = data.model_dump()
    if setting:
        for field, value in values.items():
            setattr(setting, field, value)
        action = "update"
    else:
        setting = InventorySetting(**values)
        db.add(setting)
        action = "create"
    await db.flush()
    await add_log(db, operator_id, action, "inventory_setting", setting.id, new_value=values)
    return setting


async def delete_setting(db: AsyncSession, setting_id: int, operator_id: int) -> None:
    setting = await db.get(InventorySetting, setting_id)
    if not setting:
        raise HTTPException(status_code=404, detail="预警设置不存在")
    await db.delete(setting)
    await add_log(db, operator_id, "delete", "inventory_setting", setting_id)


# ===== 库存与预警 =====

async def get_current_stock(db: AsyncSession, product_id: int, warehouse_id: Optional[int] = None) -> Decimal:
    """当前库存：以库存汇总为准，没有汇总记录时用可用批次剩余数量"""
    query = select(func.count(Stock.id), func.coalesce(func.sum(Stock.quantity), 0)).where(
        Stock.product_id == product_id
    )
    if warehouse_id:
        query = query.where(Stock.warehouse_id == warehouse_id)
    count, total = (await db.execute(query)).one()
    if count:
        return Decimal(str(total))

    batch_query = select(func.coalesce(func.sum(Batch.remaining_quantity), 0)).where(
        Batch.product_id == product_id, *allocatable_conditions()
    )
    if warehouse_id:
        batch_query = batch_query.where(Batch.warehouse_id == warehouse_id)
    return Decimal(str((await db.execute(batch_query)).scalar() or 0))


async def get_alerts(db: AsyncSession, days: Optional[int] = None) -> List[dict]:
    days = days if days is not None else settings.EXPIRING_SOON_DAYS
    alerts = []

    for setting in await list_settings(db):
        product = await db.get(Product, setting.product_id)
        current = await get_current_stock(db, setting.product_id, setting.warehouse_id)
        base = {
            "product_id": setting.product_id,
            "product_name": product.name if product else "",
            "warehouse_id": setting.warehouse_id,
            "current_stock": current,
            "min_quantity": setting.min_quantity,
            "max_quantity": setting.max_quantity,
        }
        if setting.is_below_min(current):
            alerts.append({
                **base,
                "type": "low_stock",
                "recommended_quantity": setting.recommended_order_quantity(current),
                "message": f"{base['product_name']} 库存 {current} 低于下限 {setting.min_quantity}",
            })
        elif setting.is_above_max(current):
            alerts.append({
                **base,
                "type": "over_stock",
                "message": f"{base['product_name']} 库存 {current} 超过上限 {setting.max_quantity}",
            })

    today = date.today()
    result = await db.execute(
        select(Batch, Product.name)
        .join(Product, Batch.product_id == Product.id)
        .where(
            Batch.deleted_at.is_(None),
            Batch.status == "available",
            Batch.remaining_quantity > 0,
            Batch.expiry_date.is_not(None),
            Batch.expiry_date >= today,
            Batch.expiry_date <= today + timedelta(days=days),
        )
        .order_by(Batch.expiry_date, Batch.id)
    )
    for batch, product_name in result.all():
        alerts.append({
            "type": "expiring_soon",
            "product_id": batch.product_id,
            "product_name": product_name,
            "warehouse_id": batch.warehouse_id,
            "current_stock": batch.remaining_quantity,
            "batch_id": batch.id,
            "batch_code": batch.batch_code,
            "expiry_date": batch.expiry_date,
            "days_until_expiry": batch.days_until_expiry,
            "message": f"批次 {batch.batch_code} 将于 {batch.expiry_date} 过期",
        })
    return alerts


async def get_alert_summary(db: AsyncSession) -> dict:
    alerts = await get_alerts(db)
    summary = {"low_stock": 0, "over_stock": 0, "expiring_soon": 0}
    for alert in alerts:
        summary[alert["type"]] += 1
    summary["total"] = len(alerts)
    return summary


async def check_and_create_purchase_requests(db: AsyncSession, operator_id: Optional[int] = None) -> dict:
    """低库存且开启自动补货的商品生成采购申请（已有未完成申请的跳过）"""
    operator_id = operator_id or settings.DEFAULT_OPERATOR_ID
    created, skipped, codes = 0, 0, []

    result = await db.execute(
        select(InventorySetting)
        .join(Product, Product.id == InventorySetting.product_id)
        .where(InventorySetting.auto_create_purchase_request.is_(True), Product.is_active.is_(True))
    )
    for setting in result.scalars().all():
        current = await get_current_stock(db, setting.product_id, setting.warehouse_id)
        if not setting.is_below_min(current):
            continue
        quantity = setting.recommended_order_quantity(current)
        if quantity <= 0 or await purchase_request_service.has_open_request(
            db, setting.product_id, setting.warehouse_id
        ):
            skipped += 1
            continue
        request = await purchase_request_service.create_request(
            db,
            product_id=setting.product_id,
            requested_quantity=quantity,
            operator_id=operator_id,
            warehouse_id=setting.warehouse_id,
            current_stock=current,
            min_stock=setting.min_quantity,
            source="auto",
            notes="低库存自动生成",
        )
        created += 1
        codes.append(request.request_code)

    if created:
        logger.info(f"🛒 自动生成采购申请 {created} 个，跳过 {skipped} 个")
    return {"created": created, "skipped": skipped, "request_codes": codes}
