"""
库存批次模型 - 每次质检入库生成一个批次，独立追踪效期和成本
支持：
- 先到期先出（FEFO）分配
- 来源追溯（入库批次、质检单、调拨来源批次）
- 一次出库从多个批次扣减（BatchAllocation）
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey, DECIMAL, Boolean
from sqlalchemy.orm import relationship

from warehouse_erp.db.base import Base


class Batch(Base):
    """库存批次"""
    __tablename__ = "batches"

    id = Column(Integer, primary_key=True, index=True)

    # 批次号（LOT + 年月日 + 序号，如 LOT241016-0001）
    batch_code = Column(String(50), unique=True, nullable=False, index=True, comment="批次号")

    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = Column(Integer, ForeignKey("entities.id"), nullable=False, index=True)
    supplier_id = Column(Integer, ForeignKey("entities.id"), index=True, comment="供应商")

    # 来源追溯
    inbound_batch_id = Column(Integer, ForeignKey("inbound_batches.id"), index=True, comment="来源入库批次")
    quality_check_id = Column(Integer, ForeignKey("quality_checks.id"), index=True, comment="来源质检单")
    parent_batch_id = Column(Integer, ForeignKey("batches.id"), index=True, comment="调拨来源批次")

    quantity = Column(DECIMAL(12, 2), nullable=False, comment="初始数量")
    remaining_quantity = Column(DECIMAL(12, 2), nullable=False, comment="剩余数量")
    unit_cost = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="单位成本")

    manufacturing_date = Column(Date, comment="生产日期")
    expiry_date = Column(Date, index=True, comment="到期日期")

    # available: 可用
    # reserved: 冻结
    # expired: 已过期
    # depleted: 已用完
    status = Column(String(20), default="available", index=True, comment="状态")

    is_opening = Column(Boolean, default=False, comment="是否期初数据")
    notes = Column(Text, comment="备注")

    created_by = Column(Integer, ForeignKey("sys_user.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    # 软删除（流水和成本历史仍引用该批次）
    deleted_at = Column(DateTime, index=True)

    product = relationship("Product", foreign_keys=[product_id])
    warehouse = relationship("Entity", foreign_keys=[warehouse_id])
    supplier = relationship("Entity", foreign_keys=[supplier_id])

    def __repr__(self):
        return f"<Batch {self.batch_code}: {self.remaining_quantity}/{self.quantity}>"

    @property
    def is_expired(self) -> bool:
        """到期日已过（当天仍可用）"""
        return self.expiry_date is not None and self.expiry_date < date.today()

    @property
    def days_until_expiry(self) -> Optional[int]:
        if self.expiry_date is None:
            return None
        return (self.expiry_date - date.today()).days

    @property
    def is_allocatable(self) -> bool:
        """可参与出库分配：可用状态、有剩余、未过期"""
        return (
            self.status == "available"
            and (self.remaining_quantity or Decimal("0")) > 0
            and not self.is_expired
        )

    @property
    def status_display(self) -> str:
        status_map = {
            "available": "可用",
            "reserved": "冻结",
            "expired": "已过期",
            "depleted": "已用完",
        }
        return status_map.get(self.status, self.status)

    def update_status(self):
        """根据剩余数量更新状态（过期、冻结状态不被覆盖）"""
        if self.remaining_quantity <= Decimal("0"):
            self.status = "depleted"
        elif self.status == "depleted":
            self.status = "expired" if self.is_expired else "available"


class BatchAllocation(Base):
    """批次出库记录 - 一次出库从哪些批次扣减了多少"""
    __tablename__ = "batch_allocations"

    id = Column(Integer, primary_key=True, index=True)

    batch_id = Column(Integer, ForeignKey("batches.id"), nullable=False, index=True)

    # order_item / transfer_item / outbound / adjustment / stocktake / disposal
    reference_type = Column(String(30), nullable=False, index=True, comment="出库单据类型")
    reference_id = Column(Integer, nullable=False, index=True, comment="出库单据ID")

    quantity = Column(DECIMAL(12, 2), nullable=False, comment="扣减数量")
    unit_cost = Column(DECIMAL(12, 2), nullable=False, comment="批次单位成本")

    # 取消单据时回滚到批次
    restored = Column(Boolean, default=False, comment="是否已回滚")

    created_at = Column(DateTime, default=datetime.utcnow)

    batch = relationship("Batch", foreign_keys=[batch_id])

    def __repr__(self):
        return f"<BatchAllocation {self.reference_type}:{self.reference_id} <- {self.batch_id} x {self.quantity}>"
