"""实体管理API - 统一的仓库/供应商/客户"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse_erp.core.deps import get_db, get_operator_id
from warehouse_erp.models.entity import Entity
from warehouse_erp.schemas.entity import (
    EntityCreate, EntityUpdate, EntityResponse, EntityListResponse
)
from warehouse_erp.services.audit import add_log

router = APIRouter()


async def generate_entity_code(db: AsyncSession) -> str:
    """生成实体编码：E + 序号"""
    prefix = "E"
    result = await db.execute(
        select(func.max(Entity.code)).where(Entity.code.like(f"{prefix}%"))
    )
    max_code = result.scalar()

    if max_code:
        try:
            num = int(max_code[len(prefix):]) + 1
        except ValueError:
            num = 1
    else:
        num = 1

    return f"{prefix}{num:04d}"


def build_entity_response(entity: Entity) -> EntityResponse:
    resp = EntityResponse.model_validate(entity)
    resp.type_display = entity.type_display
    return resp


@router.get("/", response_model=EntityListResponse)
async def list_entities(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    entity_type: Optional[str] = Query(None, description="类型筛选"),
    search: Optional[str] = Query(None, description="搜索"),
    is_active: Optional[bool] = Query(None, description="是否启用"),
) -> Any:
    """获取实体列表"""
    query = select(Entity)
    conditions = []

    if entity_type:
        conditions.append(Entity.entity_type.contains(entity_type))
    if is_active is not None:
        conditions.append(Entity.is_active == is_active)
    if search:
        conditions.append(
            Entity.name.contains(search) |
            Entity.code.contains(search) |
            Entity.contact_name.contains(search)
        )

    if conditions:
        query = query.where(and_(*conditions))

    # 统计总数
    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    # 分页查询
    query = query.order_by(Entity.created_at.desc(), Entity.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)

    result = await db.execute(query)
    entities = result.scalars().all()

    return EntityListResponse(
        data=[build_entity_response(e) for e in entities],
        total=total, page=page, limit=limit
    )


@router.post("/", response_model=EntityResponse)
async def create_entity(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    entity_in: EntityCreate,
) -> Any:
    """创建实体"""
    data = entity_in.model_dump()
    code = data.pop("code") or await generate_entity_code(db)
    exists = await db.execute(select(Entity.id).where(Entity.code == code))
    if exists.scalar_one_or_none():
        raise HTTPException(status_code=400, detail=f"编码 {code} 已存在")

    entity = Entity(**data, code=code, is_active=True, created_by=operator_id)
    db.add(entity)
    await db.flush()
    await add_log(db, operator_id, "create", "entity", entity.id, entity.name,
                  description=f"新建{entity.type_display} {entity.name}")
    await db.commit()
    await db.refresh(entity)
    return build_entity_response(entity)


@router.get("/{entity_id}", response_model=EntityResponse)
async def get_entity(
    *,
    db: AsyncSession = Depends(get_db),
    entity_id: int,
) -> Any:
    """获取实体详情"""
    entity = await db.get(Entity, entity_id)
    if not entity:
        raise HTTPException(status_code=404, detail="实体不存在")
    return build_entity_response(entity)


@router.put("/{entity_id}", response_model=EntityResponse)
async def update_entity(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    entity_id: int,
    entity_in: EntityUpdate,
) -> Any:
    """更新实体"""
    entity = await db.get(Entity, entity_id)
    if not entity:
        raise HTTPException(status_code=404, detail="实体不存在")

    update_data = entity_in.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(entity, field, value)
    await add_log(db, operator_id, "update", "entity", entity.id, entity.name, new_value=update_data)

    await db.commit()
    await db.refresh(entity)
    return build_entity_response(entity)


@router.delete("/{entity_id}", response_model=EntityResponse)
async def deactivate_entity(
    *,
    db: AsyncSession = Depends(get_db),
    operator_id: int = Depends(get_operator_id),
    entity_id: int,
) -> Any:
    """停用实体（单据仍引用，不做物理删除）"""
    entity = await db.get(Entity, entity_id)
    if not entity:
        raise HTTPException(status_code=404, detail="实体不存在")

    entity.is_active = False
    await add_log(db, operator_id, "delete", "entity", entity.id, entity.name, description="停用")
    await db.commit()
    await db.refresh(entity)
    return build_entity_response(entity)
