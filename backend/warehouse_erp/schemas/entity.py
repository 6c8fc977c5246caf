"""实体 Schema"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

ENTITY_TYPES = {"warehouse", "supplier", "customer"}


class EntityBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    entity_type: str = Field(..., description="warehouse/supplier/customer，多个用逗号分隔")
    contact_name: Optional[str] = Field(None, max_length=50)
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = None

    @field_validator("entity_type")
    @classmethod
    def validate_entity_type(cls, v: str) -> str:
        types = [t.strip() for t in v.split(",") if t.strip()]
        if not types or any(t not in ENTITY_TYPES for t in types):
            raise ValueError(f"实体类型必须是 {', '.join(sorted(ENTITY_TYPES))} 的组合")
        return ",".join(types)


class EntityCreate(EntityBase):
    code: Optional[str] = Field(None, max_length=50, description="编码，为空自动生成")


class EntityUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None


class EntityResponse(EntityBase):
    id: int
    code: Optional[str] = None
    type_display: str = ""
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class EntityListResponse(BaseModel):
    data: List[EntityResponse]
    total: int
    page: int
    limit: int
