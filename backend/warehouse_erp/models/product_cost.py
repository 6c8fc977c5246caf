"""
商品成本模型 - 移动加权平均成本
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, DECIMAL

from warehouse_erp.db.base import Base


class ProductCost(Base):
    """商品当前成本（每个商品一条）"""
    __tablename__ = "product_costs"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), unique=True, nullable=False, index=True)

    average_cost = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="移动加权平均成本")
    last_cost = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="最近一次入库成本")
    total_quantity = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="计价数量")
    total_value = Column(DECIMAL(14, 2), nullable=False, default=Decimal("0.00"), comment="库存总价值")

    last_updated_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<ProductCost {self.product_id}: {self.average_cost}>"


class ProductCostHistory(Base):
    """成本变动历史"""
    __tablename__ = "product_cost_history"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    batch_id = Column(Integer, ForeignKey("batches.id"), index=True)

    # inbound / outbound
    action = Column(String(20), nullable=False, comment="变动方向")
    quantity = Column(DECIMAL(12, 2), nullable=False)
    unit_cost = Column(DECIMAL(12, 2), nullable=False)
    old_average_cost = Column(DECIMAL(12, 2), nullable=False)
    new_average_cost = Column(DECIMAL(12, 2), nullable=False)

    reference_type = Column(String(30), comment="关联单据类型")
    reference_id = Column(Integer, comment="关联单据ID")

    created_by = Column(Integer, ForeignKey("sys_user.id"))
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
