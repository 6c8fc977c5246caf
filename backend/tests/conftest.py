"""测试夹具：每个用例一个独立的内存数据库"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from warehouse_erp.core.deps import get_db
from warehouse_erp.db.base import Base
from warehouse_erp.models import Entity, Fund, Product, User
from warehouse_erp.services import stock_ops


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = sessionmaker(
        bind=engine, class_=AsyncSession, autoflush=False, expire_on_commit=False
    )
    async with factory() as session:
        session.add(User(id=1, username="admin", display_name="管理员", role="admin", status=True))
        session.add(User(id=2, username="clerk", display_name="仓管员", role="user", status=True))
        await session.commit()

    yield factory
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def _entity(db, name, code, entity_type):
    entity = Entity(name=name, code=code, entity_type=entity_type, is_active=True, created_by=1)
    db.add(entity)
    await db.commit()
    return entity


@pytest.fixture
async def warehouse(db):
    return await _entity(db, "主仓", "E0001", "warehouse")


@pytest.fixture
async def warehouse2(db):
    return await _entity(db, "分仓", "E0002", "warehouse")


@pytest.fixture
async def supplier(db):
    return await _entity(db, "鲜果供应商", "E0003", "supplier")


@pytest.fixture
async def customer(db):
    return await _entity(db, "零售客户", "E0004", "customer")


@pytest.fixture
async def product(db):
    product = Product(
        name="苹果", sku="APPLE-01", unit="箱",
        cost_price=Decimal("0"), sale_price=Decimal("20"), is_active=True, created_by=1,
    )
    db.add(product)
    await db.commit()
    return product


@pytest.fixture
async def fund(db):
    fund = Fund(
        name="现金", code="F001", type="cash",
        balance=Decimal("1000.00"), initial_balance=Decimal("1000.00"),
        is_default=True, is_active=True,
    )
    db.add(fund)
    await db.commit()
    return fund


@pytest.fixture
def make_batch(db):
    """期初入库一个批次，expiry_days 为距今天数（None 表示无有效期）"""
    async def _make(warehouse, product, quantity, unit_cost="10", expiry_days=None):
        expiry = date.today() + timedelta(days=expiry_days) if expiry_days is not None else None
        batch = await stock_ops.create_opening_batch(
            db,
            warehouse_id=warehouse.id,
            product_id=product.id,
            quantity=Decimal(str(quantity)),
            unit_cost=Decimal(str(unit_cost)),
            operator_id=1,
            expiry_date=expiry,
        )
        await db.commit()
        return batch
    return _make


@pytest.fixture
async def client(session_factory):
    from warehouse_erp.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
