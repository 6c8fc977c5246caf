"""
退货（RMA）模型
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship

from warehouse_erp.db.base import Base


class ReturnRequest(Base):
    """退货申请

    pending → approved → receiving → received → completed（良品回库）
    """
    __tablename__ = "return_requests"

    id = Column(Integer, primary_key=True, index=True)
    return_code = Column(String(50), unique=True, nullable=False, index=True)

    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("entities.id"), nullable=False, index=True)
    # 回库仓库（完成时确定）
    warehouse_id = Column(Integer, ForeignKey("entities.id"))

    # return / exchange / refund_only
    type = Column(String(20), nullable=False, default="return")
    reason = Column(String(500))
    # pending / approved / rejected / receiving / received / completed / cancelled
    status = Column(String(20), default="pending", index=True)
    refund_amount = Column(DECIMAL(12, 2), default=Decimal("0.00"))
    notes = Column(Text)

    requested_at = Column(DateTime, default=datetime.utcnow)
    approved_at = Column(DateTime)
    approved_by = Column(Integer, ForeignKey("sys_user.id"))
    received_at = Column(DateTime)
    completed_at = Column(DateTime)

    created_by = Column(Integer, ForeignKey("sys_user.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Entity", foreign_keys=[customer_id])
    items = relationship("ReturnItem", order_by="ReturnItem.id")

    @property
    def status_display(self) -> str:
        status_map = {
            "pending": "待审核",
            "approved": "已批准",
            "rejected": "已拒绝",
            "receiving": "收货中",
            "received": "已收货",
            "completed": "已完成",
            "cancelled": "已取消",
        }
        return status_map.get(self.status, self.status)


class ReturnItem(Base):
    """退货明细"""
    __tablename__ = "return_items"

    id = Column(Integer, primary_key=True, index=True)
    return_id = Column(Integer, ForeignKey("return_requests.id"), nullable=False, index=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id"))
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)

    quantity = Column(DECIMAL(12, 2), nullable=False)
    received_quantity = Column(DECIMAL(12, 2), comment="实收数量")
    # good / damaged / defective
    condition = Column(String(20))
    # restock / dispose
    action = Column(String(20))
    reason = Column(String(200))

    product = relationship("Product", foreign_keys=[product_id])
