"""
入库批次与质检模型

流程：待收货(pending) → 已收货(received) → 质检中(qc_in_progress) → 质检完成(qc_completed)
收货只记录数量，库存在质检通过后才生成
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Text, Date, DateTime, ForeignKey, DECIMAL, Boolean, JSON
)
from sqlalchemy.orm import relationship

from warehouse_erp.db.base import Base


class InboundBatch(Base):
    """入库批次（收货单）"""
    __tablename__ = "inbound_batches"

    id = Column(Integer, primary_key=True, index=True)

    # IB + 年月日 + 序号
    batch_number = Column(String(50), unique=True, nullable=False, index=True, comment="入库批次号")

    warehouse_id = Column(Integer, ForeignKey("entities.id"), nullable=False, index=True)
    supplier_id = Column(Integer, ForeignKey("entities.id"), index=True)

    # pending / received / qc_in_progress / qc_completed / cancelled
    status = Column(String(20), default="pending", index=True, comment="状态")

    received_date = Column(Date, comment="收货日期")
    notes = Column(Text, comment="备注")

    created_by = Column(Integer, ForeignKey("sys_user.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    warehouse = relationship("Entity", foreign_keys=[warehouse_id])
    supplier = relationship("Entity", foreign_keys=[supplier_id])
    items = relationship("InboundBatchItem", order_by="InboundBatchItem.id")
    quality_check = relationship("QualityCheck", uselist=False, viewonly=True)

    def __repr__(self):
        return f"<InboundBatch {self.batch_number} ({self.status})>"

    @property
    def can_be_edited(self) -> bool:
        """质检开始后不可再修改"""
        return self.status in ("pending", "received")

    @property
    def status_display(self) -> str:
        status_map = {
            "pending": "待收货",
            "received": "已收货",
            "qc_in_progress": "质检中",
            "qc_completed": "质检完成",
            "cancelled": "已取消",
        }
        return status_map.get(self.status, self.status)


class InboundBatchItem(Base):
    """入库批次明细"""
    __tablename__ = "inbound_batch_items"

    id = Column(Integer, primary_key=True, index=True)
    inbound_batch_id = Column(Integer, ForeignKey("inbound_batches.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)

    quantity_expected = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="应收数量")
    quantity_received = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="实收数量")
    unit_cost = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="采购单价")

    manufacturing_date = Column(Date, comment="生产日期")
    expiry_date = Column(Date, comment="到期日期")
    supplier_lot = Column(String(50), comment="供应商批号")

    # 质检结果
    quantity_passed = Column(DECIMAL(12, 2), comment="合格数量")
    quantity_failed = Column(DECIMAL(12, 2), comment="不合格数量")

    product = relationship("Product", foreign_keys=[product_id])


class QualityCheck(Base):
    """质检单 - 每个入库批次只有一张正式质检单，提交后不可修改"""
    __tablename__ = "quality_checks"

    id = Column(Integer, primary_key=True, index=True)
    inbound_batch_id = Column(Integer, ForeignKey("inbound_batches.id"), unique=True, nullable=False, index=True)
    warehouse_id = Column(Integer, ForeignKey("entities.id"), nullable=False)
    supplier_id = Column(Integer, ForeignKey("entities.id"))

    inspector_id = Column(Integer, ForeignKey("sys_user.id"), nullable=False)
    check_date = Column(Date, nullable=False)

    # pass / fail / partial
    status = Column(String(20), nullable=False, comment="质检结果")
    score = Column(DECIMAL(5, 2), comment="评分")
    quantity_passed = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"))
    quantity_failed = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"))

    notes = Column(Text)
    issues = Column(JSON, comment="问题清单")

    created_at = Column(DateTime, default=datetime.utcnow)

    inspector = relationship("User", foreign_keys=[inspector_id])

    @property
    def status_display(self) -> str:
        return {"pass": "合格", "fail": "不合格", "partial": "部分合格"}.get(self.status, self.status)
