from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime

from warehouse_erp.db.base import Base


class User(Base):
    """操作人（单机版，仅用于审计和权限判断）"""
    __tablename__ = "sys_user"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    display_name = Column(String(50), comment="显示名称")
    # admin / manager / user
    role = Column(String(20), nullable=False, default="user")
    status = Column(Boolean, nullable=False, default=True)  # True: 启用, False: 禁用
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_admin(self):
        return self.role == "admin"

    @property
    def is_manager(self):
        """仓库主管及以上（可以手动调整库存）"""
        return self.role in ("admin", "manager")

    @property
    def is_active(self):
        return self.status
