from decimal import Decimal

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import relationship

from core.models import Base, TenantMixin, TimestampMixin, new_uuid
from core.settings import to_decimal

ALERT_STATUSES = ("pending", "acknowledged", "resolved", "dismissed")
ACTIONABLE_STATUSES = ("pending", "acknowledged")
ALERT_SEVERITIES = ("low", "critical", "out_of_stock")


def severity_for(stock_quantity, reorder_level, critical_ratio: float):
    """Return the alert severity for a stock level, or None when no alert is due."""
    stock = to_decimal(stock_quantity)
    reorder = to_decimal(reorder_level)
    if stock <= 0:
        return "out_of_stock"
    if reorder > 0 and stock <= reorder * to_decimal(critical_ratio):
        return "critical"
    if stock < reorder:
        return "low"
    return None


class StockAlert(Base, TenantMixin, TimestampMixin):
    __tablename__ = "stock_alerts"

    id = Column(String(36), primary_key=True, default=new_uuid)
    material_id = Column(String(36), ForeignKey("materials.id", ondelete="CASCADE"), nullable=False, index=True)
    current_stock = Column(Numeric(14, 3), nullable=False, default=Decimal("0"))
    reorder_level = Column(Numeric(14, 3), nullable=False, default=Decimal("0"))
    severity = Column(String(16), nullable=False, index=True)
    status = Column(String(16), nullable=False, default="pending", index=True)

    acknowledged_by = Column(String(64), nullable=True)
    acknowledged_at = Column(DateTime(timezone=True), nullable=True)
    acknowledged_notes = Column(Text, nullable=True)
    resolved_by = Column(String(64), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_notes = Column(Text, nullable=True)
    dismissed_by = Column(String(64), nullable=True)
    dismissed_at = Column(DateTime(timezone=True), nullable=True)
    dismissed_notes = Column(Text, nullable=True)

    material = relationship("Material")

    @property
    def material_name(self):
        return self.material.name if self.material else None

    @property
    def is_actionable(self) -> bool:
        return self.status in ACTIONABLE_STATUSES
