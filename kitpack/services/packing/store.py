"""
Storage port and SQLAlchemy adapter for packing.

The packing service programs against ``PackingStore``; ``SqlAlchemyPackingStore``
implements it on an async SQLAlchemy session. All writes of one packed unit or
one undo run inside ``transaction()`` so the stock decrement, the audit rows and
the ledger rows are committed together or not at all.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Iterable, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from kitpack.core.logging import get_logger
from kitpack.database.models.catalog import Component, KitEntry
from kitpack.database.models.ledger import StockAdjustment, UsageLedgerEntry
from kitpack.database.models.order import Order
from kitpack.services.packing.enums import (
    STOCK_REASON_PACKING,
    STOCK_REASON_UNDO,
    LedgerEntryType,
    OrderStatus,
    validate_order_status_transition,
)
from kitpack.services.packing.types import (
    BomEntry,
    ComponentLevel,
    ComponentUsage,
    LineItem,
    OrderSnapshot,
)

logger = get_logger(__name__)


class PackingError(Exception):
    """Base exception for packing operations."""

    def __init__(self, message: str, code: str, **context: Any):
        super().__init__(message)
        self.code = code
        self.context = context


class OrderNotFoundError(PackingError):
    """Raised when an order does not exist."""

    def __init__(self, order_id: int):
        super().__init__(
            f"Order {order_id} not found",
            code="ORDER_NOT_FOUND",
            order_id=order_id,
        )


class InsufficientStockError(PackingError):
    """Raised when a guarded stock decrement matches no row."""

    def __init__(
        self,
        component_id: int,
        requested: int,
        available: int,
        component_name: Optional[str] = None,
    ):
        label = component_name or f"component {component_id}"
        super().__init__(
            f"Insufficient stock for {label}: need {requested}, have {available}",
            code="INSUFFICIENT_STOCK",
            component_id=component_id,
            component_name=component_name,
            requested=requested,
            available=available,
        )
        self.component_id = component_id
        self.component_name = component_name
        self.requested = requested
        self.available = available


class PackingPersistenceError(PackingError):
    """Raised when stored state does not allow a write to proceed."""


class PackingStore(ABC):
    """Storage contract consumed by the packing service."""

    @abstractmethod
    def transaction(self) -> Any:
        """Async context manager committing on success, rolling back on error."""
        ...

    @abstractmethod
    async def resolve_bom(self, product_id: int) -> list[BomEntry]:
        """Kit rows of a product in stable order, empty when it has no kit."""
        ...

    @abstractmethod
    async def get_component_stock(self, component_id: int) -> int:
        ...

    @abstractmethod
    async def get_component_levels(
        self, component_ids: Iterable[int]
    ) -> dict[int, ComponentLevel]:
        ...

    @abstractmethod
    async def decrement_component_stock(
        self,
        component_id: int,
        amount: int,
        order_id: Optional[int] = None,
        reason: str = STOCK_REASON_PACKING,
    ) -> int:
        """
        Decrement stock, never below zero.

        Returns:
            Stock left after the decrement

        Raises:
            InsufficientStockError: If stock is lower than ``amount``
        """
        ...

    @abstractmethod
    async def increment_component_stock(
        self,
        component_id: int,
        amount: int,
        order_id: Optional[int] = None,
        reason: str = STOCK_REASON_UNDO,
    ) -> int:
        ...

    @abstractmethod
    async def append_usage_ledger_entries(
        self,
        order_id: int,
        usages: Sequence[ComponentUsage],
        packed_by: Optional[str] = None,
    ) -> None:
        ...

    @abstractmethod
    async def retract_usage_ledger_entries(
        self,
        order_id: int,
        usages: Sequence[ComponentUsage],
        packed_by: Optional[str] = None,
    ) -> None:
        """Append negating rows so the order's pool loses exactly ``usages``."""
        ...

    @abstractmethod
    async def get_usage_ledger_entries(self, order_id: int) -> list[ComponentUsage]:
        ...

    @abstractmethod
    async def get_order(self, order_id: int) -> Optional[OrderSnapshot]:
        ...

    @abstractmethod
    async def set_order_status(self, order_id: int, status: OrderStatus) -> None:
        ...

    async def resolve_boms(self, product_ids: Iterable[int]) -> dict[int, list[BomEntry]]:
        """Resolve the kit of every distinct product, one lookup at a time."""
        boms: dict[int, list[BomEntry]] = {}
        for product_id in product_ids:
            if product_id not in boms:
                boms[product_id] = await self.resolve_bom(product_id)
        return boms


class SqlAlchemyPackingStore(PackingStore):
    """PackingStore backed by an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession):
        """
        Initialize packing store.

        Args:
            session: Async database session
        """
        self.session = session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """
        Run a unit of work and commit it.

        Any exception rolls back everything written since the last commit and
        is re-raised to the caller.
        """
        try:
            yield self.session
            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            logger.debug(
                "Packing transaction rolled back",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

    async def resolve_bom(self, product_id: int) -> list[BomEntry]:
        stmt = (
            select(
                KitEntry.component_id,
                KitEntry.quantity_per_unit,
                KitEntry.is_optional,
                Component.name,
            )
            .join(Component, Component.id == KitEntry.component_id)
            .where(KitEntry.product_id == product_id)
            .order_by(KitEntry.id)
        )
        result = await self.session.execute(stmt)

        return [
            BomEntry(
                component_id=row.component_id,
                quantity_per_unit=row.quantity_per_unit,
                optional=row.is_optional,
                component_name=row.name,
            )
            for row in result
        ]

    async def get_component_stock(self, component_id: int) -> int:
        """Current stock of a component, 0 for an unknown component."""
        stmt = select(Component.current_stock).where(Component.id == component_id)
        result = await self.session.execute(stmt)
        stock = result.scalar_one_or_none()
        return stock if stock is not None else 0

    async def get_component_levels(
        self, component_ids: Iterable[int]
    ) -> dict[int, ComponentLevel]:
        ids = list(set(component_ids))
        if not ids:
            return {}

        stmt = select(
            Component.id,
            Component.name,
            Component.current_stock,
            Component.min_stock_alert,
        ).where(Component.id.in_(ids))
        result = await self.session.execute(stmt)

        return {
            row.id: ComponentLevel(
                component_id=row.id,
                name=row.name,
                current_stock=row.current_stock,
                min_stock_alert=row.min_stock_alert,
            )
            for row in result
        }

    async def decrement_component_stock(
        self,
        component_id: int,
        amount: int,
        order_id: Optional[int] = None,
        reason: str = STOCK_REASON_PACKING,
    ) -> int:
        if amount <= 0:
            raise ValueError("Decrement amount must be positive")

        # Guarded update serializes concurrent writers on the row itself
        stmt = (
            update(Component)
            .where(
                Component.id == component_id,
                Component.current_stock >= amount,
            )
            .values(current_stock=Component.current_stock - amount)
            .returning(Component.current_stock)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        remaining = result.scalar_one_or_none()

        if remaining is None:
            available = await self.get_component_stock(component_id)
            levels = await self.get_component_levels([component_id])
            name = levels[component_id].name if component_id in levels else None
            logger.warning(
                "Guarded stock decrement rejected",
                component_id=component_id,
                requested=amount,
                available=available,
                order_id=order_id,
            )
            raise InsufficientStockError(
                component_id=component_id,
                requested=amount,
                available=available,
                component_name=name,
            )

        self.session.add(
            StockAdjustment(
                component_id=component_id,
                quantity_change=-amount,
                reason=reason,
                order_id=order_id,
            )
        )
        await self.session.flush()

        logger.debug(
            "Component stock decremented",
            component_id=component_id,
            amount=amount,
            remaining=remaining,
            order_id=order_id,
        )
        return remaining

    async def increment_component_stock(
        self,
        component_id: int,
        amount: int,
        order_id: Optional[int] = None,
        reason: str = STOCK_REASON_UNDO,
    ) -> int:
        if amount <= 0:
            raise ValueError("Increment amount must be positive")

        stmt = (
            update(Component)
            .where(Component.id == component_id)
            .values(current_stock=Component.current_stock + amount)
            .returning(Component.current_stock)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        current = result.scalar_one_or_none()

        if current is None:
            raise PackingPersistenceError(
                f"Component {component_id} not found",
                code="COMPONENT_NOT_FOUND",
                component_id=component_id,
            )

        self.session.add(
            StockAdjustment(
                component_id=component_id,
                quantity_change=amount,
                reason=reason,
                order_id=order_id,
            )
        )
        await self.session.flush()

        logger.debug(
            "Component stock incremented",
            component_id=component_id,
            amount=amount,
            current=current,
            order_id=order_id,
        )
        return current

    async def append_usage_ledger_entries(
        self,
        order_id: int,
        usages: Sequence[ComponentUsage],
        packed_by: Optional[str] = None,
    ) -> None:
        for usage in usages:
            self.session.add(
                UsageLedgerEntry(
                    order_id=order_id,
                    component_id=usage.component_id,
                    quantity_used=usage.quantity,
                    entry_type=LedgerEntryType.CONSUME,
                    packed_by=packed_by,
                )
            )
        await self.session.flush()

        logger.debug(
            "Usage ledger entries appended",
            order_id=order_id,
            entry_count=len(usages),
        )

    async def retract_usage_ledger_entries(
        self,
        order_id: int,
        usages: Sequence[ComponentUsage],
        packed_by: Optional[str] = None,
    ) -> None:
        """
        Retract usages by appending negating rows.

        Raises:
            PackingPersistenceError: If the order's pool holds less of a
                                     component than is being retracted
        """
        stmt = (
            select(
                UsageLedgerEntry.component_id,
                func.sum(UsageLedgerEntry.quantity_used).label("total"),
            )
            .where(UsageLedgerEntry.order_id == order_id)
            .group_by(UsageLedgerEntry.component_id)
        )
        result = await self.session.execute(stmt)
        pool = {row.component_id: row.total for row in result}

        for usage in usages:
            held = pool.get(usage.component_id, 0)
            if held < usage.quantity:
                raise PackingPersistenceError(
                    f"Ledger for order {order_id} holds {held} of component "
                    f"{usage.component_id}, cannot retract {usage.quantity}",
                    code="LEDGER_MISMATCH",
                    order_id=order_id,
                    component_id=usage.component_id,
                    held=held,
                    requested=usage.quantity,
                )

        for usage in usages:
            self.session.add(
                UsageLedgerEntry(
                    order_id=order_id,
                    component_id=usage.component_id,
                    quantity_used=-usage.quantity,
                    entry_type=LedgerEntryType.RETRACT,
                    packed_by=packed_by,
                )
            )
        await self.session.flush()

        logger.debug(
            "Usage ledger entries retracted",
            order_id=order_id,
            entry_count=len(usages),
        )

    async def get_usage_ledger_entries(self, order_id: int) -> list[ComponentUsage]:
        stmt = (
            select(UsageLedgerEntry.component_id, UsageLedgerEntry.quantity_used)
            .where(UsageLedgerEntry.order_id == order_id)
            .order_by(UsageLedgerEntry.id)
        )
        result = await self.session.execute(stmt)

        return [
            ComponentUsage(component_id=row.component_id, quantity=row.quantity_used)
            for row in result
        ]

    async def _load_order(self, order_id: int) -> Optional[Order]:
        stmt = (
            select(Order)
            .options(selectinload(Order.line_items))
            .where(Order.id == order_id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_order(self, order_id: int) -> Optional[OrderSnapshot]:
        order = await self._load_order(order_id)
        if order is None:
            return None

        return OrderSnapshot(
            id=order.id,
            order_number=order.order_number,
            status=order.status,
            line_items=tuple(
                LineItem(
                    product_id=item.product_id,
                    requested_quantity=item.requested_quantity,
                    product_name=item.product_name,
                    sku=item.sku,
                )
                for item in order.line_items
            ),
        )

    async def set_order_status(self, order_id: int, status: OrderStatus) -> None:
        """
        Move an order to ``status``.

        Raises:
            OrderNotFoundError: If the order does not exist
            PackingPersistenceError: If the transition is not allowed
        """
        order = await self.session.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        if order.status == status:
            return

        if not validate_order_status_transition(order.status, status):
            raise PackingPersistenceError(
                f"Cannot move order {order_id} from {order.status.value} to {status.value}",
                code="INVALID_STATUS_TRANSITION",
                order_id=order_id,
                from_status=order.status.value,
                to_status=status.value,
            )

        previous = order.status
        order.status = status
        order.completed_at = (
            datetime.now(timezone.utc) if status == OrderStatus.COMPLETED else None
        )
        await self.session.flush()

        logger.info(
            "Order status changed",
            order_id=order_id,
            from_status=previous.value,
            to_status=status.value,
        )
