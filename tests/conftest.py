"""
Pytest configuration and shared test fixtures.

This module provides a throwaway SQLite database per test, a catalog builder
for seeding components, products and orders, a controllable clock for undo
expiry, and an HTTP client bound to the FastAPI application.
"""

import os
from typing import AsyncGenerator, Optional, Sequence

os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_LOG_LEVEL", "WARNING")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from kitpack.core.config import get_settings
from kitpack.database.connection import create_engine, create_schema, create_session_factory, get_db
from kitpack.database.models import (
    Component,
    KitEntry,
    Order,
    OrderLineItem,
    Product,
    StockAdjustment,
    UsageLedgerEntry,
)
from kitpack.services.packing.service import PackingService
from kitpack.services.packing.store import SqlAlchemyPackingStore
from kitpack.services.packing.undo import UndoManager


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CatalogBuilder:
    """
    Seeds catalog and order rows, each call in its own committed session.

    Also reads back stock and ledger state through fresh sessions so tests
    observe only what was durably committed.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._product_names: dict[int, str] = {}
        self._counter = 0

    def _next_code(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter:04d}"

    async def component(
        self,
        name: str,
        stock: int = 100,
        min_stock_alert: int = 0,
    ) -> int:
        async with self._session_factory() as session:
            component = Component(
                sku=self._next_code("CMP"),
                name=name,
                current_stock=stock,
                min_stock_alert=min_stock_alert,
            )
            session.add(component)
            await session.commit()
            return component.id

    async def product(
        self,
        name: str,
        kit: Sequence[tuple] = (),
    ) -> int:
        """
        Create a product with its kit.

        Args:
            name: Product name
            kit: ``(component_id, quantity_per_unit)`` or
                 ``(component_id, quantity_per_unit, is_optional)`` tuples
        """
        async with self._session_factory() as session:
            product = Product(sku=self._next_code("PRD"), name=name)
            session.add(product)
            await session.flush()

            for row in kit:
                component_id, quantity = row[0], row[1]
                optional = row[2] if len(row) > 2 else False
                session.add(
                    KitEntry(
                        product_id=product.id,
                        component_id=component_id,
                        quantity_per_unit=quantity,
                        is_optional=optional,
                    )
                )

            await session.commit()
            self._product_names[product.id] = name
            return product.id

    async def order(self, lines: Sequence[tuple[int, int]]) -> int:
        """Create a pending order from ``(product_id, requested_quantity)`` lines."""
        async with self._session_factory() as session:
            order = Order(order_number=self._next_code("ORD"))
            session.add(order)
            await session.flush()

            for position, (product_id, quantity) in enumerate(lines):
                session.add(
                    OrderLineItem(
                        order_id=order.id,
                        position=position,
                        product_id=product_id,
                        requested_quantity=quantity,
                        product_name=self._product_names.get(product_id, f"Product {product_id}"),
                    )
                )

            await session.commit()
            return order.id

    async def set_stock(self, component_id: int, stock: int) -> None:
        async with self._session_factory() as session:
            component = await session.get(Component, component_id)
            component.current_stock = stock
            await session.commit()

    async def stock_of(self, component_id: int) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Component.current_stock).where(Component.id == component_id)
            )
            return result.scalar_one()

    async def ledger_total(self, order_id: int, component_id: int) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.coalesce(func.sum(UsageLedgerEntry.quantity_used), 0)).where(
                    UsageLedgerEntry.order_id == order_id,
                    UsageLedgerEntry.component_id == component_id,
                )
            )
            return result.scalar_one()

    async def ledger_rows(self, order_id: int) -> list[UsageLedgerEntry]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UsageLedgerEntry)
                .where(UsageLedgerEntry.order_id == order_id)
                .order_by(UsageLedgerEntry.id)
            )
            return list(result.scalars())

    async def adjustments(self, component_id: int) -> list[StockAdjustment]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(StockAdjustment)
                .where(StockAdjustment.component_id == component_id)
                .order_by(StockAdjustment.id)
            )
            return list(result.scalars())

    async def order_row(self, order_id: int) -> Optional[Order]:
        async with self._session_factory() as session:
            return await session.get(Order, order_id)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    Create an engine on a fresh SQLite file with the full schema.

    Yields:
        AsyncEngine: Engine bound to a database private to the test
    """
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'kitpack.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def catalog(session_factory) -> CatalogBuilder:
    return CatalogBuilder(session_factory)


# ============================================================================
# Packing Fixtures
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def undo_manager(clock) -> UndoManager:
    """Undo manager with a five second window on the fake clock."""
    return UndoManager(window_seconds=5.0, clock=clock)


@pytest.fixture
def store(db_session) -> SqlAlchemyPackingStore:
    return SqlAlchemyPackingStore(db_session)


@pytest.fixture
def packing_service(store, undo_manager) -> PackingService:
    return PackingService(store=store, undo_manager=undo_manager, settings=get_settings())


# ============================================================================
# HTTP Fixtures
# ============================================================================


@pytest.fixture
async def async_client(session_factory, undo_manager) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an asynchronous test client for the FastAPI application.

    The database dependency is overridden with the test database and the
    undo manager is placed on ``app.state`` the way the lifespan does.

    Yields:
        AsyncClient: Client sending requests straight to the ASGI app
    """
    from kitpack.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.state.undo_manager = undo_manager

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
