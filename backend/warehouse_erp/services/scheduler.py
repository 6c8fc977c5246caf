"""
定时任务调度器服务
使用 APScheduler 执行批次过期标记、账款逾期更新、低库存自动补货
"""

import logging
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from warehouse_erp.core.config import settings
from warehouse_erp.db.session import SessionLocal
from warehouse_erp.services import batch_service, debt_service, inventory_alert_service

logger = logging.getLogger(__name__)

# 全局调度器实例
scheduler: Optional[AsyncIOScheduler] = None


async def mark_expired_batches_job():
    """把已过期的可用批次标记为过期"""
    async with SessionLocal() as db:
        try:
            count = await batch_service.mark_expired_batches(db)
            await db.commit()
            logger.info(f"✅ 过期批次检查完成: 标记 {count} 个")
        except Exception as e:
            await db.rollback()
            logger.error(f"❌ 过期批次检查失败: {str(e)}")


async def update_overdue_debts_job():
    async with SessionLocal() as db:
        try:
            counts = await debt_service.update_overdue_debts(db)
            await db.commit()
            logger.info(f"✅ 逾期账款检查完成: {counts}")
        except Exception as e:
            await db.rollback()
            logger.error(f"❌ 逾期账款检查失败: {str(e)}")


async def auto_purchase_request_job():
    """低库存自动生成采购申请"""
    async with SessionLocal() as db:
        try:
            result = await inventory_alert_service.check_and_create_purchase_requests(db)
            await db.commit()
            if result["created"]:
                logger.info(f"✅ 自动补货检查完成: 新建 {result['created']} 个采购申请")
        except Exception as e:
            await db.rollback()
            logger.error(f"❌ 自动补货检查失败: {str(e)}")


def init_scheduler():
    """初始化并启动调度器"""
    global scheduler

    if not settings.SCHEDULER_ENABLED:
        logger.info("⏰ 定时任务已禁用")
        return

    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        mark_expired_batches_job,
        trigger=CronTrigger(
            hour=settings.EXPIRY_CHECK_HOUR,
            minute=settings.EXPIRY_CHECK_MINUTE
        ),
        id="mark_expired_batches",
        name="批次过期标记",
        replace_existing=True
    )
    scheduler.add_job(
        update_overdue_debts_job,
        trigger=CronTrigger(hour=settings.OVERDUE_CHECK_HOUR, minute=0),
        id="update_overdue_debts",
        name="账款逾期更新",
        replace_existing=True
    )
    scheduler.add_job(
        auto_purchase_request_job,
        trigger=IntervalTrigger(minutes=settings.REORDER_CHECK_INTERVAL_MINUTES),
        id="auto_purchase_request",
        name="低库存自动补货",
        replace_existing=True
    )

    scheduler.start()
    logger.info(
        f"⏰ 定时任务调度器已启动 - 过期检查: 每天 {settings.EXPIRY_CHECK_HOUR:02d}:{settings.EXPIRY_CHECK_MINUTE:02d}，"
        f"补货检查: 每 {settings.REORDER_CHECK_INTERVAL_MINUTES} 分钟"
    )


def shutdown_scheduler():
    """关闭调度器"""
    global scheduler
    if scheduler:
        scheduler.shutdown()
        scheduler = None
        logger.info("⏰ 定时任务调度器已关闭")


def get_scheduler_status() -> dict:
    """获取调度器状态"""
    if not scheduler:
        return {
            "enabled": settings.SCHEDULER_ENABLED,
            "running": False,
            "jobs": []
        }

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None
        })

    return {
        "enabled": settings.SCHEDULER_ENABLED,
        "running": scheduler.running,
        "jobs": jobs
    }
