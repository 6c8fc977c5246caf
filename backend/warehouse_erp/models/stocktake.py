"""
盘点模型

draft → in_progress（锁定仓库）→ pending_approval → approved
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL, Boolean
from sqlalchemy.orm import relationship

from warehouse_erp.db.base import Base


class Stocktake(Base):
    """盘点单"""
    __tablename__ = "stocktakes"

    id = Column(Integer, primary_key=True, index=True)
    stocktake_code = Column(String(50), unique=True, nullable=False, index=True, comment="盘点单号")
    warehouse_id = Column(Integer, ForeignKey("entities.id"), nullable=False, index=True)

    # draft / in_progress / pending_approval / approved / cancelled
    status = Column(String(20), default="draft", index=True)
    is_locked = Column(Boolean, default=False, comment="盘点中锁定仓库")

    notes = Column(Text)

    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    approved_at = Column(DateTime)
    approved_by = Column(Integer, ForeignKey("sys_user.id"))

    created_by = Column(Integer, ForeignKey("sys_user.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    warehouse = relationship("Entity", foreign_keys=[warehouse_id])
    items = relationship("StocktakeItem", order_by="StocktakeItem.id")

    @property
    def status_display(self) -> str:
        status_map = {
            "draft": "草稿",
            "in_progress": "盘点中",
            "pending_approval": "待审核",
            "approved": "已审核",
            "cancelled": "已取消",
        }
        return status_map.get(self.status, self.status)


class StocktakeItem(Base):
    """盘点明细"""
    __tablename__ = "stocktake_items"

    id = Column(Integer, primary_key=True, index=True)
    stocktake_id = Column(Integer, ForeignKey("stocktakes.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)

    system_quantity = Column(DECIMAL(12, 2), nullable=False, comment="账面数量（快照）")
    actual_quantity = Column(DECIMAL(12, 2), comment="实盘数量")
    # 实盘 - 账面
    difference = Column(DECIMAL(12, 2), comment="差异")
    reason = Column(String(200), comment="差异原因")

    product = relationship("Product", foreign_keys=[product_id])

    @property
    def is_counted(self) -> bool:
        return self.actual_quantity is not None
