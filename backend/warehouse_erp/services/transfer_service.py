"""
内部调拨服务

发货：调出仓按指定批次或 FEFO 扣减（不影响均价）
收货：调入仓按来源批次生成新批次（继承有效期和成本），短收部分按损耗出库
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse_erp.models.batch import Batch
from warehouse_erp.models.internal_transfer import InternalTransfer, InternalTransferItem
from warehouse_erp.schemas.internal_transfer import TransferCreate, TransferReceive
from warehouse_erp.services import batch_service, cost_service, stock_ops
from warehouse_erp.services.audit import add_log
from warehouse_erp.services.common import generate_code, get_product, get_warehouse

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
REFERENCE_TYPE = "transfer_item"


async def get_transfer(db: AsyncSession, transfer_id: int) -> InternalTransfer:
    result = await db.execute(
        select(InternalTransfer).where(InternalTransfer.id == transfer_id).with_for_update()
    )
    transfer = result.scalar_one_or_none()
    if not transfer:
        raise HTTPException(status_code=404, detail="调拨单不存在")
    return transfer


async def get_items(db: AsyncSession, transfer_id: int) -> List[InternalTransferItem]:
    result = await db.execute(
        select(InternalTransferItem)
        .where(InternalTransferItem.transfer_id == transfer_id)
        .order_by(InternalTransferItem.id)
    )
    return list(result.scalars().all())


async def create_transfer(db: AsyncSession, data: TransferCreate, operator_id: int) -> InternalTransfer:
    if data.from_warehouse_id == data.to_warehouse_id:
        raise HTTPException(status_code=400, detail="调出仓和调入仓不能相同")
    await get_warehouse(db, data.from_warehouse_id)
    await get_warehouse(db, data.to_warehouse_id)
    if not data.items:
        raise HTTPException(status_code=400, detail="调拨明细不能为空")

    now = datetime.utcnow()
    transfer = InternalTransfer(
        transfer_code=await generate_code(db, InternalTransfer.transfer_code, "TRF"),
        from_warehouse_id=data.from_warehouse_id,
        to_warehouse_id=data.to_warehouse_id,
        status="draft",
        notes=data.notes,
        created_by=operator_id,
        created_at=now,
        updated_at=now,
    )
    db.add(transfer)
    await db.flush()

    for item_in in data.items:
        await get_product(db, item_in.product_id, active_only=False)
        if item_in.batch_id:
            batch = await batch_service.get_batch(db, item_in.batch_id)
            if batch.product_id != item_in.product_id or batch.warehouse_id != data.from_warehouse_id:
                raise HTTPException(status_code=400, detail=f"批次 {batch.batch_code} 不属于调出仓或该商品")
        db.add(InternalTransferItem(
            transfer_id=transfer.id,
            product_id=item_in.product_id,
            batch_id=item_in.batch_id,
            quantity=item_in.quantity,
            received_quantity=None,
            notes=item_in.notes,
        ))
    await db.flush()

    await add_log(db, operator_id, "create", "transfer", transfer.id, transfer.transfer_code,
                  description=f"仓库 {data.from_warehouse_id} → {data.to_warehouse_id}")
    return transfer


async def submit_transfer(db: AsyncSession, transfer_id: int, operator_id: int) -> InternalTransfer:
    transfer = await get_transfer(db, transfer_id)
    if transfer.status != "draft":
        raise HTTPException(status_code=400, detail="只有草稿状态的调拨单可以提交")
    transfer.status = "pending"
    await add_log(db, operator_id, "submit", "transfer", transfer.id, transfer.transfer_code)
    return transfer


async def ship_transfer(db: AsyncSession, transfer_id: int, operator_id: int) -> InternalTransfer:
    """发货：扣减调出仓批次和库存，任一明细不足则整单失败"""
    transfer = await get_transfer(db, transfer_id)
    if transfer.status not in ("draft", "pending"):
        raise HTTPException(status_code=400, detail="当前状态不能发货")

    for item in await get_items(db, transfer.id):
        await stock_ops.take_stock(
            db,
            warehouse_id=transfer.from_warehouse_id,
            product_id=item.product_id,
            quantity=item.quantity,
            movement_type="transfer_out",
            reference_type=REFERENCE_TYPE,
            reference_id=item.id,
            operator_id=operator_id,
            batch_id=item.batch_id,
            reason=f"调拨 {transfer.transfer_code} 发货",
            apply_cost=False,
        )

    transfer.status = "in_transit"
    transfer.shipped_at = datetime.utcnow()
    transfer.shipped_by = operator_id
    await add_log(db, operator_id, "ship", "transfer", transfer.id, transfer.transfer_code)
    logger.info(f"🚛 调拨 {transfer.transfer_code} 已发货")
    return transfer


def _fefo_key(batch: Batch):
    return (batch.expiry_date is None, batch.expiry_date or date.max, batch.created_at, batch.id)


async def receive_transfer(
    db: AsyncSession, transfer_id: int, data: TransferReceive, operator_id: int
) -> InternalTransfer:
    """收货：调入仓按来源批次拆出新批次"""
    transfer = await get_transfer(db, transfer_id)
    if transfer.status != "in_transit":
        raise HTTPException(status_code=400, detail="只有在途的调拨单可以收货")

    items = await get_items(db, transfer.id)
    by_id = {item.id: item for item in items}
    received = {}
    for row in (data.items or []):
        item = by_id.get(row.item_id)
        if not item:
            raise HTTPException(status_code=400, detail=f"调拨明细 {row.item_id} 不属于该调拨单")
        if row.received_quantity > item.quantity:
            raise HTTPException(
                status_code=400,
                detail=f"实收数量不能超过发货数量：{row.received_quantity} > {item.quantity}",
            )
        received[item.id] = row.received_quantity

    for item in items:
        quantity = received.get(item.id, item.quantity)
        item.received_quantity = quantity

        allocations = await batch_service.get_allocations(db, REFERENCE_TYPE, [item.id])
        sources = []
        for allocation in allocations:
            sources.append((await db.get(Batch, allocation.batch_id), allocation.quantity))
        sources.sort(key=lambda pair: _fefo_key(pair[0]))

        left = quantity
        for source, shipped in sources:
            if left <= 0:
                break
            take = min(left, shipped)
            await stock_ops.put_stock(
                db,
                warehouse_id=transfer.to_warehouse_id,
                product_id=item.product_id,
                quantity=take,
                unit_cost=source.unit_cost,
                movement_type="transfer_in",
                operator_id=operator_id,
                reference_type=REFERENCE_TYPE,
                reference_id=item.id,
                supplier_id=source.supplier_id,
                parent_batch_id=source.id,
                manufacturing_date=source.manufacturing_date,
                expiry_date=source.expiry_date,
                notes=f"调拨 {transfer.transfer_code}",
                reason=f"调拨 {transfer.transfer_code} 收货",
                apply_cost=False,
            )
            left -= take

        shortage = item.quantity - quantity
        if shortage > 0:
            # 在途损耗按均价出库
            await cost_service.apply_outbound_cost(
                db, item.product_id, shortage, operator_id, REFERENCE_TYPE, item.id
            )
            logger.warning(f"⚠️ 调拨 {transfer.transfer_code} 商品 {item.product_id} 短收 {shortage}")

    transfer.status = "received"
    transfer.received_at = datetime.utcnow()
    transfer.received_by = operator_id
    await add_log(db, operator_id, "receive", "transfer", transfer.id, transfer.transfer_code)
    return transfer


async def cancel_transfer(db: AsyncSession, transfer_id: int, operator_id: int) -> InternalTransfer:
    """取消调拨：在途的按原批次退回调出仓"""
    transfer = await get_transfer(db, transfer_id)
    if transfer.status in ("received", "cancelled"):
        raise HTTPException(status_code=400, detail=f"调拨单{transfer.status_display}，不能取消")

    if transfer.status == "in_transit":
        items = await get_items(db, transfer.id)
        await stock_ops.restore_allocations(
            db,
            reference_type=REFERENCE_TYPE,
            reference_ids=[item.id for item in items],
            movement_type="transfer_cancel",
            operator_id=operator_id,
            apply_cost=False,
            reason=f"调拨 {transfer.transfer_code} 取消",
        )

    transfer.status = "cancelled"
    await add_log(db, operator_id, "cancel", "transfer", transfer.id, transfer.transfer_code)
    return transfer


async def delete_transfer(db: AsyncSession, transfer_id: int, operator_id: int) -> None:
    transfer = await get_transfer(db, transfer_id)
    if transfer.status != "draft":
        raise HTTPException(status_code=400, detail="只有草稿状态的调拨单可以删除")
    for item in await get_items(db, transfer.id):
        await db.delete(item)
    await db.delete(transfer)
    await add_log(db, operator_id, "delete", "transfer", transfer.id, transfer.transfer_code)
