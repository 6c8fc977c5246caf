"""
采购申请模型
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship

from warehouse_erp.db.base import Base


class PurchaseRequest(Base):
    """采购申请（手动创建或低库存自动生成）"""
    __tablename__ = "purchase_requests"

    id = Column(Integer, primary_key=True, index=True)
    # PR + 年月日 + 序号
    request_code = Column(String(50), unique=True, nullable=False, index=True)

    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = Column(Integer, ForeignKey("entities.id"), index=True)
    supplier_id = Column(Integer, ForeignKey("entities.id"))

    requested_quantity = Column(DECIMAL(12, 2), nullable=False, comment="申请数量")
    current_stock = Column(DECIMAL(12, 2), comment="申请时库存")
    min_stock = Column(DECIMAL(12, 2), comment="申请时最低库存")

    # pending / approved / rejected / ordered / completed / cancelled
    status = Column(String(20), default="pending", index=True)
    # auto / manual
    source = Column(String(20), default="manual")
    notes = Column(Text)

    requested_by = Column(Integer, ForeignKey("sys_user.id"))
    approved_by = Column(Integer, ForeignKey("sys_user.id"))
    approved_at = Column(DateTime)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = relationship("Product", foreign_keys=[product_id])
    warehouse = relationship("Entity", foreign_keys=[warehouse_id])
    supplier = relationship("Entity", foreign_keys=[supplier_id])

    @property
    def status_display(self) -> str:
        status_map = {
            "pending": "待审批",
            "approved": "已批准",
            "rejected": "已驳回",
            "ordered": "已下单",
            "completed": "已完成",
            "cancelled": "已取消",
        }
        return status_map.get(self.status, self.status)
