"""
内部调拨模型

draft → pending → in_transit（发货扣减调出仓）→ received（调入仓入库）
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship

from warehouse_erp.db.base import Base


class InternalTransfer(Base):
    """调拨单"""
    __tablename__ = "internal_transfers"

    id = Column(Integer, primary_key=True, index=True)
    transfer_code = Column(String(50), unique=True, nullable=False, index=True, comment="调拨单号")

    from_warehouse_id = Column(Integer, ForeignKey("entities.id"), nullable=False, index=True)
    to_warehouse_id = Column(Integer, ForeignKey("entities.id"), nullable=False, index=True)

    # draft / pending / in_transit / received / cancelled
    status = Column(String(20), default="draft", index=True)
    notes = Column(Text)

    shipped_at = Column(DateTime)
    shipped_by = Column(Integer, ForeignKey("sys_user.id"))
    received_at = Column(DateTime)
    received_by = Column(Integer, ForeignKey("sys_user.id"))

    created_by = Column(Integer, ForeignKey("sys_user.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    from_warehouse = relationship("Entity", foreign_keys=[from_warehouse_id])
    to_warehouse = relationship("Entity", foreign_keys=[to_warehouse_id])
    items = relationship("InternalTransferItem", order_by="InternalTransferItem.id")

    @property
    def status_display(self) -> str:
        status_map = {
            "draft": "草稿",
            "pending": "待发货",
            "in_transit": "在途",
            "received": "已收货",
            "cancelled": "已取消",
        }
        return status_map.get(self.status, self.status)


class InternalTransferItem(Base):
    """调拨明细"""
    __tablename__ = "internal_transfer_items"

    id = Column(Integer, primary_key=True, index=True)
    transfer_id = Column(Integer, ForeignKey("internal_transfers.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    # 指定批次（为空时按 FEFO 自动分配）
    batch_id = Column(Integer, ForeignKey("batches.id"))

    quantity = Column(DECIMAL(12, 2), nullable=False, comment="调拨数量")
    received_quantity = Column(DECIMAL(12, 2), comment="实收数量")
    notes = Column(String(200))

    product = relationship("Product", foreign_keys=[product_id])
