"""
Packing service: progress, unit commits, undo and stock preflight.

This module implements the PackingService orchestrating the packing workflow
on top of a PackingStore. Progress is always reconstructed from the usage
ledger, never cached. Committing a unit validates the checklist and stock,
then decrements stock, appends ledger rows and completes the order inside one
store transaction. Commit and undo outcomes are returned as result values;
only reads raise.
"""

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from kitpack.core.config import Settings, get_settings
from kitpack.core.logging import get_logger, log_performance
from kitpack.services.packing.enums import (
    STOCK_REASON_PACKING,
    STOCK_REASON_UNDO,
    OrderStatus,
    RejectionReason,
    UndoStatus,
)
from kitpack.services.packing.progress import reconstruct_progress
from kitpack.services.packing.session import PackingSession, build_checklist
from kitpack.services.packing.store import (
    InsufficientStockError,
    OrderNotFoundError,
    PackingError,
    PackingStore,
)
from kitpack.services.packing.types import (
    BomEntry,
    CommitResult,
    ComponentUsage,
    OrderProgress,
    OrderSnapshot,
    Rejection,
    StockCheck,
    StockShortage,
    UndoResult,
)
from kitpack.services.packing.undo import UndoManager

logger = get_logger(__name__)


class LineItemNotFoundError(PackingError):
    """Raised when a line index is outside the order."""

    def __init__(self, order_id: int, line_index: int, line_count: int):
        super().__init__(
            f"Order {order_id} has no line item {line_index}",
            code="LINE_ITEM_NOT_FOUND",
            order_id=order_id,
            line_index=line_index,
            line_count=line_count,
        )


class LineItemCompleteError(PackingError):
    """Raised when beginning a unit on a fully packed line item."""

    def __init__(self, order_id: int, line_index: int):
        super().__init__(
            f"Line item {line_index} of order {order_id} is already packed",
            code="LINE_ITEM_COMPLETE",
            order_id=order_id,
            line_index=line_index,
        )


class CommitRejectedError(PackingError):
    """Aborts a commit transaction with a rejection for the caller."""

    def __init__(self, rejection: Rejection):
        super().__init__(
            rejection.message,
            code=rejection.reason.value.upper(),
        )
        self.rejection = rejection


def collect_usages(
    bom: Iterable[BomEntry],
    checked: Mapping[int, bool],
) -> tuple[ComponentUsage, ...]:
    """
    Component quantities one unit consumes.

    Every required entry is used; optional entries only when checked. Entries
    naming the same component are merged, keeping first-seen order.

    Args:
        bom: Kit of the product being packed
        checked: Checked flag per component id

    Returns:
        One usage per touched component
    """
    totals: dict[int, int] = {}
    for entry in bom:
        if entry.optional and not checked.get(entry.component_id, False):
            continue
        totals[entry.component_id] = totals.get(entry.component_id, 0) + entry.quantity_per_unit

    return tuple(
        ComponentUsage(component_id=component_id, quantity=quantity)
        for component_id, quantity in totals.items()
    )


class PackingService:
    """
    Service for packing orders unit by unit.

    Owns no state of its own apart from the undo manager it is handed, which
    holds the compensation of the most recently committed unit.
    """

    def __init__(
        self,
        store: PackingStore,
        undo_manager: UndoManager,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize packing service.

        Args:
            store: Storage port used for every read and write
            undo_manager: Holder of the pending compensation
            settings: Application settings, defaults to ``get_settings()``
        """
        self.store = store
        self.undo_manager = undo_manager
        self.settings = settings or get_settings()

    async def _load_order(self, order_id: int) -> OrderSnapshot:
        order = await self.store.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def _reconstruct(
        self,
        order: OrderSnapshot,
        boms: Optional[Mapping[int, list[BomEntry]]] = None,
    ) -> OrderProgress:
        if boms is None:
            boms = await self.store.resolve_boms(
                item.product_id for item in order.line_items
            )
        ledger = await self.store.get_usage_ledger_entries(order.id)
        return reconstruct_progress(order.id, order.line_items, boms, ledger)

    async def get_progress(self, order_id: int) -> OrderProgress:
        """
        Reconstruct packing progress of an order from its ledger.

        Args:
            order_id: Order to inspect

        Returns:
            Current OrderProgress

        Raises:
            OrderNotFoundError: If the order does not exist
        """
        order = await self._load_order(order_id)
        progress = await self._reconstruct(order)

        logger.debug(
            "Progress reconstructed",
            order_id=order_id,
            percent_complete=progress.percent_complete,
            next_target_index=progress.next_target_index,
        )
        return progress

    async def begin_unit(self, order_id: int, line_index: int) -> PackingSession:
        """
        Start packing the next unit of a line item.

        Reads only; the returned session can be dropped without side effects.

        Args:
            order_id: Order being packed
            line_index: Line item to pack

        Returns:
            PackingSession with an unchecked checklist

        Raises:
            OrderNotFoundError: If the order does not exist
            LineItemNotFoundError: If the line index is out of range
            LineItemCompleteError: If every unit of the line item is packed
        """
        order = await self._load_order(order_id)
        if not 0 <= line_index < len(order.line_items):
            raise LineItemNotFoundError(order_id, line_index, len(order.line_items))

        line_item = order.line_items[line_index]
        boms = await self.store.resolve_boms(item.product_id for item in order.line_items)
        progress = await self._reconstruct(order, boms)
        line_progress = progress.line_items[line_index]

        if line_progress.is_complete:
            raise LineItemCompleteError(order_id, line_index)

        bom = boms.get(line_item.product_id, [])
        levels = await self.store.get_component_levels(
            entry.component_id for entry in bom
        )

        session = PackingSession(
            order_id=order_id,
            line_index=line_index,
            product_id=line_item.product_id,
            product_name=line_item.product_name,
            unit_number=line_progress.packed_qty + 1,
            requested_qty=line_item.requested_quantity,
            checklist=build_checklist(bom, levels, self.settings.low_stock_margin),
        )

        logger.info(
            "Packing unit started",
            order_id=order_id,
            line_index=line_index,
            unit_number=session.unit_number,
            requested_qty=session.requested_qty,
            checklist_size=len(session.checklist),
        )
        return session

    async def commit_unit(
        self,
        order_id: int,
        line_index: int,
        checked: Mapping[int, bool],
        packed_by: Optional[str] = None,
    ) -> CommitResult:
        """
        Commit one packed unit.

        Validation happens before any write. Stock decrements, stock audit
        rows, ledger rows and order completion are then committed as one
        transaction; any failure rolls all of them back.

        Args:
            order_id: Order being packed
            line_index: Line item the unit belongs to
            checked: Checked flag per component id
            packed_by: Packer name, defaults to ``settings.default_packer``

        Returns:
            CommitResult, with a Rejection when nothing was committed
        """
        packer = packed_by or self.settings.default_packer

        try:
            async with self.store.transaction():
                result = await self._commit_in_transaction(
                    order_id, line_index, checked, packer
                )
        except CommitRejectedError as e:
            logger.info(
                "Unit commit rejected",
                order_id=order_id,
                line_index=line_index,
                reason=e.rejection.reason.value,
                message=e.rejection.message,
            )
            return CommitResult.rejected(order_id, line_index, e.rejection)
        except InsufficientStockError as e:
            logger.warning(
                "Unit commit rejected by stock guard",
                order_id=order_id,
                line_index=line_index,
                component_id=e.component_id,
                requested=e.requested,
                available=e.available,
            )
            return CommitResult.rejected(
                order_id,
                line_index,
                Rejection(
                    reason=RejectionReason.INSUFFICIENT_STOCK,
                    message=str(e),
                    component_id=e.component_id,
                    component_name=e.component_name,
                    available=e.available,
                    required=e.requested,
                ),
            )
        except (SQLAlchemyError, PackingError) as e:
            logger.error(
                "Unit commit failed, transaction rolled back",
                order_id=order_id,
                line_index=line_index,
                error=str(e),
                error_type=type(e).__name__,
            )
            return CommitResult.rejected(
                order_id,
                line_index,
                Rejection(
                    reason=RejectionReason.PERSISTENCE_FAILURE,
                    message=f"Packing could not be saved: {e}",
                ),
            )

        compensation = self.undo_manager.create(
            order_id=order_id,
            line_index=line_index,
            usages=result.usages,
            completed_order=result.completed_order,
            packed_by=packer,
        )
        self.undo_manager.register(compensation)

        progress = result.progress
        if not progress.line_items[line_index].is_complete:
            next_target = line_index
        else:
            next_target = progress.next_target_index

        logger.info(
            "Unit committed",
            order_id=order_id,
            line_index=line_index,
            packed_by=packer,
            next_target_index=next_target,
            order_completed=progress.is_complete,
            percent_complete=progress.percent_complete,
        )

        return CommitResult(
            order_id=order_id,
            line_index=line_index,
            committed=True,
            next_target_index=next_target,
            same_line_item=next_target == line_index,
            order_completed=progress.is_complete,
            progress=progress,
            compensation=compensation,
        )

    async def _commit_in_transaction(
        self,
        order_id: int,
        line_index: int,
        checked: Mapping[int, bool],
        packer: str,
    ) -> "_CommittedUnit":
        order = await self.store.get_order(order_id)
        if order is None:
            raise CommitRejectedError(
                Rejection(
                    reason=RejectionReason.ORDER_NOT_FOUND,
                    message=f"Order {order_id} not found",
                )
            )

        if not 0 <= line_index < len(order.line_items):
            raise CommitRejectedError(
                Rejection(
                    reason=RejectionReason.LINE_INDEX_OUT_OF_RANGE,
                    message=f"Order {order_id} has no line item {line_index}",
                )
            )

        boms = await self.store.resolve_boms(item.product_id for item in order.line_items)
        before = await self._reconstruct(order, boms)
        if before.line_items[line_index].is_complete:
            raise CommitRejectedError(
                Rejection(
                    reason=RejectionReason.LINE_ITEM_COMPLETE,
                    message=f"Line item {line_index} of order {order_id} is already packed",
                )
            )

        bom = boms.get(order.line_items[line_index].product_id, [])
        missing = [
            entry
            for entry in bom
            if not entry.optional and not checked.get(entry.component_id, False)
        ]
        if missing:
            names = ", ".join(
                entry.component_name or str(entry.component_id) for entry in missing
            )
            raise CommitRejectedError(
                Rejection(
                    reason=RejectionReason.CHECKLIST_INCOMPLETE,
                    message=f"Required components not checked: {names}",
                    missing_component_ids=tuple(entry.component_id for entry in missing),
                )
            )

        usages = collect_usages(bom, checked)
        levels = await self.store.get_component_levels(usage.component_id for usage in usages)
        for usage in usages:
            level = levels.get(usage.component_id)
            available = level.current_stock if level else 0
            if available < usage.quantity:
                name = level.name if level else None
                raise CommitRejectedError(
                    Rejection(
                        reason=RejectionReason.INSUFFICIENT_STOCK,
                        message=(
                            f"Insufficient stock for {name or f'component {usage.component_id}'}: "
                            f"need {usage.quantity}, have {available}"
                        ),
                        component_id=usage.component_id,
                        component_name=name,
                        available=available,
                        required=usage.quantity,
                    )
                )

        with log_performance(logger, "commit_unit", order_id=order_id, line_index=line_index):
            for usage in usages:
                await self.store.decrement_component_stock(
                    usage.component_id,
                    usage.quantity,
                    order_id=order_id,
                    reason=STOCK_REASON_PACKING,
                )

            await self.store.append_usage_ledger_entries(order_id, usages, packed_by=packer)

            after = await self._reconstruct(order, boms)

            completed_order = False
            if after.is_complete and order.status != OrderStatus.COMPLETED:
                await self.store.set_order_status(order_id, OrderStatus.COMPLETED)
                completed_order = True

        return _CommittedUnit(usages=usages, progress=after, completed_order=completed_order)

    async def invoke_undo(self) -> UndoResult:
        """
        Reverse the most recently committed unit if its window is still open.

        Restores stock, appends retract ledger rows and reopens the order if
        the unit had completed it, all in one transaction. A failed reversal
        leaves the compensation pending so it can be retried in its window.

        Returns:
            UndoResult with status success, expired_or_absent or failed
        """
        compensation = self.undo_manager.take()
        if compensation is None:
            logger.info("Undo requested with nothing pending")
            return UndoResult(
                status=UndoStatus.EXPIRED_OR_ABSENT,
                message="Nothing to undo",
            )

        try:
            with log_performance(
                logger,
                "invoke_undo",
                order_id=compensation.order_id,
                line_index=compensation.line_index,
            ):
                async with self.store.transaction():
                    for usage in compensation.usages:
                        await self.store.increment_component_stock(
                            usage.component_id,
                            usage.quantity,
                            order_id=compensation.order_id,
                            reason=STOCK_REASON_UNDO,
                        )

                    await self.store.retract_usage_ledger_entries(
                        compensation.order_id,
                        compensation.usages,
                        packed_by=compensation.packed_by,
                    )

                    if compensation.completed_order:
                        await self.store.set_order_status(
                            compensation.order_id, OrderStatus.PENDING
                        )
        except (SQLAlchemyError, PackingError) as e:
            logger.error(
                "Undo failed, transaction rolled back",
                order_id=compensation.order_id,
                line_index=compensation.line_index,
                error=str(e),
                error_type=type(e).__name__,
            )
            self.undo_manager.restore(compensation)
            return UndoResult(
                status=UndoStatus.FAILED,
                order_id=compensation.order_id,
                line_index=compensation.line_index,
                message=f"Undo could not be saved: {e}",
            )

        progress = await self.get_progress(compensation.order_id)

        logger.info(
            "Unit undone",
            order_id=compensation.order_id,
            line_index=compensation.line_index,
            reopened_order=compensation.completed_order,
        )

        return UndoResult(
            status=UndoStatus.SUCCESS,
            order_id=compensation.order_id,
            line_index=compensation.line_index,
            message="Last packed unit undone",
            progress=progress,
        )

    async def check_stock_availability(self, order_id: int) -> StockCheck:
        """
        Compare stock against what the unpacked units of an order still need.

        Only required kit entries count. Reads only.

        Args:
            order_id: Order to check

        Returns:
            StockCheck listing per-component requirements and shortages

        Raises:
            OrderNotFoundError: If the order does not exist
        """
        order = await self._load_order(order_id)
        boms = await self.store.resolve_boms(item.product_id for item in order.line_items)
        progress = await self._reconstruct(order, boms)

        requirements: dict[int, int] = {}
        names: dict[int, str] = {}
        for item, line_progress in zip(order.line_items, progress.line_items):
            remaining = line_progress.remaining_qty
            if remaining == 0:
                continue
            for entry in boms.get(item.product_id, []):
                if entry.optional:
                    continue
                requirements[entry.component_id] = (
                    requirements.get(entry.component_id, 0)
                    + entry.quantity_per_unit * remaining
                )
                if entry.component_name:
                    names[entry.component_id] = entry.component_name

        levels = await self.store.get_component_levels(requirements)
        shortages = []
        for component_id, required in requirements.items():
            level = levels.get(component_id)
            available = level.current_stock if level else 0
            if available < required:
                shortages.append(
                    StockShortage(
                        component_id=component_id,
                        component_name=names.get(component_id, f"Component {component_id}"),
                        required=required,
                        available=available,
                    )
                )

        if shortages:
            logger.warning(
                "Stock shortfall for order",
                order_id=order_id,
                shortage_count=len(shortages),
                component_ids=[shortage.component_id for shortage in shortages],
            )

        return StockCheck(
            order_id=order_id,
            requirements=requirements,
            shortages=tuple(shortages),
        )


@dataclass(frozen=True)
class _CommittedUnit:
    """What a successful commit transaction produced."""

    usages: tuple[ComponentUsage, ...]
    progress: OrderProgress
    completed_order: bool
