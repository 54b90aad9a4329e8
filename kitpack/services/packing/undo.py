"""
Time-boxed compensation for the most recent packed unit.

At most one PendingCompensation is held at a time. Registering a new one
discards the previous one without executing it; a compensation older than the
undo window can no longer be taken. Executing the reversal is the packing
service's job, this module only owns the pending value and its expiry.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional

from kitpack.core.config import get_settings
from kitpack.core.logging import get_logger
from kitpack.services.packing.types import ComponentUsage

logger = get_logger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class PendingCompensation:
    """
    Everything needed to reverse one committed unit.

    Attributes:
        order_id: Order the unit was packed for
        line_index: Line item the unit belonged to
        usages: Component quantities decremented and appended to the ledger
        completed_order: Whether the unit moved the order to completed
        packed_by: Packer who committed the unit
        created_at: Clock reading at registration
        expires_at: Clock reading after which undo is refused
    """

    order_id: int
    line_index: int
    usages: tuple[ComponentUsage, ...]
    completed_order: bool
    packed_by: Optional[str]
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class UndoManager:
    """
    Holder of the single pending compensation.

    The clock is injectable so expiry can be driven deterministically in
    tests; it defaults to ``time.monotonic``.
    """

    def __init__(
        self,
        window_seconds: Optional[float] = None,
        clock: Clock = time.monotonic,
    ):
        """
        Initialize undo manager.

        Args:
            window_seconds: Undo window, defaults to the configured
                            ``undo_window_seconds``
            clock: Monotonic time source in seconds
        """
        if window_seconds is None:
            window_seconds = get_settings().undo_window_seconds
        if window_seconds <= 0:
            raise ValueError("Undo window must be positive")

        self.window_seconds = window_seconds
        self._clock = clock
        self._pending: Optional[PendingCompensation] = None

    def create(
        self,
        order_id: int,
        line_index: int,
        usages: tuple[ComponentUsage, ...],
        completed_order: bool = False,
        packed_by: Optional[str] = None,
    ) -> PendingCompensation:
        """Build a compensation stamped with the current clock reading."""
        now = self._clock()
        return PendingCompensation(
            order_id=order_id,
            line_index=line_index,
            usages=usages,
            completed_order=completed_order,
            packed_by=packed_by,
            created_at=now,
            expires_at=now + self.window_seconds,
        )

    def register(self, compensation: PendingCompensation) -> Optional[PendingCompensation]:
        """
        Make ``compensation`` the pending one.

        Returns:
            The discarded previous compensation, if one was still live
        """
        superseded = self.pending()
        self._pending = compensation

        if superseded is not None:
            logger.debug(
                "Pending compensation superseded",
                order_id=superseded.order_id,
                line_index=superseded.line_index,
            )

        logger.debug(
            "Compensation registered",
            order_id=compensation.order_id,
            line_index=compensation.line_index,
            component_count=len(compensation.usages),
            window_seconds=self.window_seconds,
        )
        return superseded

    def pending(self) -> Optional[PendingCompensation]:
        """Return the live compensation, dropping it first if it has expired."""
        if self._pending is not None and self._pending.is_expired(self._clock()):
            logger.debug(
                "Compensation expired",
                order_id=self._pending.order_id,
                line_index=self._pending.line_index,
            )
            self._pending = None
        return self._pending

    def take(self) -> Optional[PendingCompensation]:
        """Pop the live compensation for execution."""
        compensation = self.pending()
        self._pending = None
        return compensation

    def restore(self, compensation: PendingCompensation) -> bool:
        """
        Put back a compensation whose reversal failed.

        The original ``expires_at`` is kept. Nothing is restored when the
        window has closed or a newer compensation was registered meanwhile.

        Returns:
            True if the compensation is pending again
        """
        if self.pending() is not None or compensation.is_expired(self._clock()):
            return False

        self._pending = compensation
        logger.debug(
            "Compensation restored",
            order_id=compensation.order_id,
            line_index=compensation.line_index,
        )
        return True

    def clear(self) -> None:
        self._pending = None

    def seconds_remaining(self) -> float:
        compensation = self.pending()
        if compensation is None:
            return 0.0
        return max(0.0, compensation.expires_at - self._clock())
