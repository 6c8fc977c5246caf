"""
商品模型
cost_price 始终等于移动加权平均成本（由成本服务维护）
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship

from warehouse_erp.db.base import Base


class Product(Base):
    """商品"""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(100), nullable=False, index=True, comment="品名")
    sku = Column(String(50), unique=True, nullable=False, index=True, comment="SKU")
    unit = Column(String(20), nullable=False, default="个", comment="计量单位")

    cost_price = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="成本价（移动加权平均）")
    sale_price = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="销售价")

    description = Column(Text, comment="描述")
    is_active = Column(Boolean, default=True, comment="是否启用")

    created_by = Column(Integer, ForeignKey("sys_user.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    creator = relationship("User", foreign_keys=[created_by])

    def __repr__(self):
        return f"<Product {self.sku}: {self.name}>"
