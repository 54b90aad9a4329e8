"""
Order models for packing fulfillment.

An order holds an ordered sequence of line items. The ``position`` column fixes
that sequence at creation time; it drives both progress reconstruction and the
choice of the next unit to pack.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kitpack.database.base import BaseModel
from kitpack.services.packing.enums import OrderStatus


class Order(BaseModel):
    """
    Customer order awaiting or finished packing.

    Attributes:
        id: Order identifier
        order_number: Unique human-readable number
        customer_name: Optional customer name
        status: pending or completed
        completed_at: When the last unit was packed
        line_items: Line items in packing order
    """

    __tablename__ = "orders"

    order_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        comment="Human-readable order number",
    )

    customer_name: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
        comment="Customer name",
    )

    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(
            OrderStatus,
            name="order_status",
            create_constraint=True,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
        comment="Packing status",
    )

    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Timestamp when the order was fully packed",
    )

    line_items: Mapped[list["OrderLineItem"]] = relationship(
        "OrderLineItem",
        back_populates="order",
        order_by="OrderLineItem.position",
        cascade="all, delete-orphan",
    )


class OrderLineItem(BaseModel):
    """
    One product entry in an order with its requested quantity.

    Product name and SKU are denormalized at order entry so the order still
    reads correctly if the catalog changes.
    """

    __tablename__ = "order_line_items"

    order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Owning order",
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Zero-based position within the order",
    )

    product_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        comment="Ordered product",
    )

    requested_quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Units ordered",
    )

    product_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Product name at order entry",
    )

    sku: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        comment="Product SKU at order entry",
    )

    order: Mapped["Order"] = relationship("Order", back_populates="line_items")

    __table_args__ = (
        UniqueConstraint("order_id", "position", name="uq_order_line_items_position"),
        CheckConstraint(
            "requested_quantity >= 1",
            name="ck_order_line_items_quantity_positive",
        ),
    )
