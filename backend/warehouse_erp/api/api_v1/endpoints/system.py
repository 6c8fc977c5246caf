"""系统API - 定时任务状态与手动触发"""

from typing import Any
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse_erp.core.deps import get_db, get_operator_id
from warehouse_erp.services import batch_service, debt_service, inventory_alert_service
from warehouse_erp.services.scheduler import get_scheduler_status

router = APIRouter()


@router.get("/scheduler")
async def scheduler_status() -> Any:
    """定时任务状态"""
    return get_scheduler_status()


@router.post("/run-daily-checks")
async def run_daily_checks(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
) -> Any:
    """立即执行一次过期标记、逾期标记、低库存补货"""
    expired = await batch_service.mark_expired_batches(db)
    overdue = await debt_service.update_overdue_debts(db)
    reorder = await inventory_alert_service.check_and_create_purchase_requests(db, operator_id)
    await db.commit()
    return {"expired_batches": expired, "overdue": overdue, "purchase_requests": reorder}
