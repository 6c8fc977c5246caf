"""库存预警API - 预警设置、预警列表、自动补货"""

from typing import Any, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse_erp.core.deps import get_db, get_operator_id
from warehouse_erp.models.inventory_setting import InventorySetting
from warehouse_erp.schemas.purchase_request import (
    InventorySettingSave, InventorySettingResponse,
    InventoryAlert, InventoryAlertSummary, AutoPurchaseResult,
)
from warehouse_erp.services import inventory_alert_service

router = APIRouter()


async def build_setting_response(db: AsyncSession, setting: InventorySetting) -> InventorySettingResponse:
    resp = InventorySettingResponse.model_validate(setting)
    resp.product_name = setting.product.name if setting.product else ""
    resp.warehouse_name = setting.warehouse.name if setting.warehouse else "全部仓库"
    resp.current_stock = await inventory_alert_service.get_current_stock(
        db, setting.product_id, setting.warehouse_id
    )
    return resp


async def load_setting(db: AsyncSession, setting_id: int) -> InventorySetting:
    result = await db.execute(
        select(InventorySetting)
        .options(selectinload(InventorySetting.product), selectinload(InventorySetting.warehouse))
        .where(InventorySetting.id == setting_id)
        .execution_options(populate_existing=True)
    )
    setting = result.scalar_one_or_none()
    if not setting:
        raise HTTPException(status_code=404, detail="预警设置不存在")
    return setting


@router.get("/settings", response_model=List[InventorySettingResponse])
async def list_settings(
    *,
    db: AsyncSession = Depends(get_db),
    product_id: Optional[int] = Query(None),
) -> Any:
    query = (
        select(InventorySetting)
        .options(selectinload(InventorySetting.product), selectinload(InventorySetting.warehouse))
        .order_by(InventorySetting.product_id, InventorySetting.id)
    )
    if product_id:
        query = query.where(InventorySetting.product_id == product_id)
    settings_list = (await db.execute(query)).scalars().all()
    return [await build_setting_response(db, s) for s in settings_list]


@router.post("/settings", response_model=InventorySettingResponse)
async def save_setting(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    data: InventorySettingSave,
) -> Any:
    """保存预警设置（商品+仓库已存在则覆盖）"""
    setting = await inventory_alert_service.save_setting(db, data, operator_id)
    await db.commit()
    return await build_setting_response(db, await load_setting(db, setting.id))


@router.delete("/settings/{setting_id}")
async def delete_setting(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    setting_id: int,
) -> Any:
    await inventory_alert_service.delete_setting(db, setting_id, operator_id)
    await db.commit()
    return {"message": "删除成功"}


@router.get("/", response_model=List[InventoryAlert])
async def get_alerts(
    *,
    db: AsyncSession = Depends(get_db),
    alert_type: Optional[str] = Query(None, description="low_stock/over_stock/expiring_soon"),
    days: Optional[int] = Query(None, ge=0, le=365, description="临期天数"),
) -> Any:
    alerts = await inventory_alert_service.get_alerts(db, days)
    if alert_type:
        alerts = [a for a in alerts if a["type"] == alert_type]
    return alerts


@router.get("/summary", response_model=InventoryAlertSummary)
async def get_alert_summary(
    *,
    db: AsyncSession = Depends(get_db),
) -> Any:
    return await inventory_alert_service.get_alert_summary(db)


@router.post("/check-auto", response_model=AutoPurchaseResult)
async def check_auto_purchase(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
) -> Any:
    """手动触发低库存自动补货检查"""
    result = await inventory_alert_service.check_and_create_purchase_requests(db, operator_id)
    await db.commit()
    return result
