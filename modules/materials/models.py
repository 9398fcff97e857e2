from decimal import Decimal

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Text, UniqueConstraint, event
from sqlalchemy.orm import relationship

from core.models import Base, SoftDeleteMixin, TenantMixin, TimestampMixin, new_uuid, utcnow
from core.settings import to_decimal


def classify_stock(stock_quantity, reorder_level, critical_ratio: float, excess_ratio: float) -> str:
    """Bucket a stock level against its reorder level.

    out_of_stock: nothing left; critical: at or below ``reorder_level * critical_ratio``;
    low: below the reorder level; excess: at or above ``reorder_level * excess_ratio``.
    """
    stock = to_decimal(stock_quantity)
    reorder = to_decimal(reorder_level)
    if stock <= 0:
        return "out_of_stock"
    if reorder > 0 and stock <= reorder * to_decimal(critical_ratio):
        return "critical"
    if stock < reorder:
        return "low"
    if reorder > 0 and stock >= reorder * to_decimal(excess_ratio):
        return "excess"
    return "normal"


class Material(Base, TenantMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "materials"
    __table_args__ = (UniqueConstraint("tenant_id", "sku", name="uq_materials_tenant_sku"),)

    id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=True)
    description = Column(String(1000), nullable=True)
    category = Column(String(100), nullable=True, index=True)
    unit = Column(String(16), nullable=False)
    stock_quantity = Column(Numeric(14, 3), nullable=False, default=Decimal("0"))
    reorder_level = Column(Numeric(14, 3), nullable=False, default=Decimal("0"))
    unit_cost = Column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    supplier = Column(String(255), nullable=True)

    recipe_materials = relationship("RecipeMaterial", back_populates="material")
    transactions = relationship(
        "InventoryTransaction",
        back_populates="material",
        cascade="all, delete-orphan",
        order_by="InventoryTransaction.created_at.desc()",
    )

    @property
    def is_low_stock(self) -> bool:
        return to_decimal(self.stock_quantity) < to_decimal(self.reorder_level)

    @property
    def stock_value(self) -> Decimal:
        return to_decimal(self.stock_quantity) * to_decimal(self.unit_cost)

    def active_recipes(self):
        return [rm.recipe for rm in self.recipe_materials if rm.recipe is not None and rm.recipe.is_active]


class InventoryTransaction(Base, TenantMixin):
    """Ledger row written once per stock mutation and never updated."""

    __tablename__ = "inventory_transactions"

    id = Column(String(36), primary_key=True, default=new_uuid)
    material_id = Column(String(36), ForeignKey("materials.id", ondelete="CASCADE"), nullable=False, index=True)
    transaction_type = Column(String(16), nullable=False, index=True)
    quantity_before = Column(Numeric(14, 3), nullable=False)
    quantity_change = Column(Numeric(14, 3), nullable=False)
    quantity_after = Column(Numeric(14, 3), nullable=False)
    reason = Column(String(32), nullable=False, index=True)
    notes = Column(Text, nullable=True)
    user_id = Column(String(64), nullable=True)
    reference_type = Column(String(64), nullable=True)
    reference_id = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    material = relationship("Material", back_populates="transactions")

    @property
    def direction(self) -> str:
        change = to_decimal(self.quantity_change)
        if change > 0:
            return "in"
        if change < 0:
            return "out"
        return "neutral"


@event.listens_for(InventoryTransaction, "before_update")
def _reject_ledger_update(mapper, connection, target):
    raise ValueError("Inventory transactions are immutable")
