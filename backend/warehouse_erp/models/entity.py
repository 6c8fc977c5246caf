"""
实体模型 - 统一的参与方
供应商、客户、仓库本质上都是"实体"，只是角色不同
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from warehouse_erp.db.base import Base


class Entity(Base):
    """实体 - 统一的业务参与方"""
    __tablename__ = "entities"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(100), nullable=False, index=True, comment="名称")
    code = Column(String(50), unique=True, index=True, comment="编码（自动生成）")

    # supplier(供应商), customer(客户), warehouse(仓库)
    # 用逗号分隔表示多重身份，如 "supplier,customer"
    entity_type = Column(String(100), nullable=False, default="warehouse", comment="实体类型")

    contact_name = Column(String(50), comment="联系人")
    phone = Column(String(20), comment="电话")
    address = Column(String(200), comment="地址")
    notes = Column(Text, comment="备注")

    is_active = Column(Boolean, default=True, comment="是否启用")

    created_by = Column(Integer, ForeignKey("sys_user.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    creator = relationship("User", foreign_keys=[created_by])

    def __repr__(self):
        return f"<Entity {self.code}: {self.name} ({self.entity_type})>"

    @property
    def is_supplier(self) -> bool:
        return "supplier" in self.entity_type

    @property
    def is_customer(self) -> bool:
        return "customer" in self.entity_type

    @property
    def is_warehouse(self) -> bool:
        return "warehouse" in self.entity_type

    @property
    def type_display(self) -> str:
        """类型显示名称"""
        types = []
        if self.is_supplier:
            types.append("供应商")
        if self.is_customer:
            types.append("客户")
        if self.is_warehouse:
            types.append("仓库")
        return "/".join(types) if types else "未知"
