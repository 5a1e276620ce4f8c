import os
from contextlib import asynccontextmanager

# Must run before core.config is imported anywhere.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("READ_RETRY_DELAY_SECONDS", "0")

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from db.database import Base
from schemas.item import ItemCreate
from schemas.product import ComponentCreate, ProductCreate
from services import catalog
from services.stock_locks import stock_locks


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'stock.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def make_item(db):
    async def _make(name: str, stock: int = 0):
        return await catalog.create_item(db, ItemCreate(name=name, stock_quantity=stock))

    return _make


@pytest.fixture
def make_product(db):
    async def _make(name: str, components=(), stock=None):
        product = await catalog.create_product(db, ProductCreate(name=name, stock_quantity=stock))
        for item, qty in components:
            await catalog.add_component(db, product.id, ComponentCreate(item_id=item.id, quantity=qty))
        return await catalog.get_product(db, product.id)

    return _make


@pytest.fixture
def fresh(session_maker):
    """Read an entity through a brand-new session (no identity-map reuse)."""

    async def _get(model, entity_id):
        async with session_maker() as session:
            return await session.get(model, entity_id)

    return _get


@pytest.fixture
def held_keys(monkeypatch):
    """Records the key set of every in-process stock lock acquisition."""
    calls = []
    original = stock_locks.hold

    @asynccontextmanager
    async def recording(keys):
        keys = list(keys)
        calls.append(set(keys))
        async with original(keys):
            yield

    monkeypatch.setattr(stock_locks, "hold", recording)
    return calls
