from sqlalchemy import Column, String, UniqueConstraint
from sqlalchemy.orm import relationship

from core.models import Base, SoftDeleteMixin, TenantMixin, TimestampMixin, new_uuid
from modules.products.types import InventoryManagementType


class Product(Base, TenantMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "products"
    __table_args__ = (UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),)

    id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=True)
    description = Column(String(1024), nullable=True)
    inventory_management_type = Column(String(16), nullable=False, default=InventoryManagementType.SIMPLE.value)

    recipes = relationship("Recipe", back_populates="product", cascade="all, delete-orphan")

    @property
    def uses_bom(self) -> bool:
        return self.inventory_management_type == InventoryManagementType.BOM.value
