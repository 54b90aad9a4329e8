"""
Catalog models: products, packaging components and product kits.

A product's kit (bill of materials) is the list of components and per-unit
quantities consumed when one unit of the product is packed. Component stock
is the only counter mutated by packing and undo.
"""

from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kitpack.database.base import BaseModel


class Product(BaseModel):
    """
    Sellable product packed from a kit of components.

    Attributes:
        id: Product identifier
        sku: Unique stock keeping unit
        name: Display name
        kit_entries: Bill of materials rows, in kit order
    """

    __tablename__ = "products"

    sku: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="Unique stock keeping unit",
    )

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Product display name",
    )

    kit_entries: Mapped[list["KitEntry"]] = relationship(
        "KitEntry",
        back_populates="product",
        order_by="KitEntry.id",
        cascade="all, delete-orphan",
    )


class Component(BaseModel):
    """
    Packaging component with a finite on-hand stock.

    Attributes:
        id: Component identifier
        sku: Optional supplier SKU
        name: Display name shown on the packing checklist
        current_stock: Units on hand, never negative
        min_stock_alert: Level at or below which the component counts as low
    """

    __tablename__ = "components"

    sku: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        comment="Supplier SKU",
    )

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Component display name",
    )

    current_stock: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Units currently on hand",
    )

    min_stock_alert: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=10,
        comment="Low stock alert level",
    )

    __table_args__ = (
        CheckConstraint(
            "current_stock >= 0",
            name="ck_components_stock_non_negative",
        ),
        CheckConstraint(
            "min_stock_alert >= 0",
            name="ck_components_alert_non_negative",
        ),
    )

    def is_low(self, margin: int = 0) -> bool:
        """Check if stock is at or below the alert level plus ``margin``."""
        return self.current_stock <= self.min_stock_alert + margin


class KitEntry(BaseModel):
    """
    One bill-of-materials row: ``quantity_per_unit`` of a component per unit.

    Optional entries may be packed or skipped freely; they never gate a
    commit and never count towards reconstructed progress.
    """

    __tablename__ = "kit_entries"

    product_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Product this kit row belongs to",
    )

    component_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("components.id", ondelete="CASCADE"),
        nullable=False,
        comment="Component consumed",
    )

    quantity_per_unit: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Units of the component consumed per packed unit",
    )

    is_optional: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Whether the component may be skipped",
    )

    product: Mapped["Product"] = relationship("Product", back_populates="kit_entries")
    component: Mapped["Component"] = relationship("Component", lazy="joined")

    __table_args__ = (
        CheckConstraint(
            "quantity_per_unit >= 1",
            name="ck_kit_entries_quantity_positive",
        ),
        Index("ix_kit_entries_product_component", "product_id", "component_id"),
    )
