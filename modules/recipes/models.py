from decimal import Decimal

from sqlalchemy import Boolean, Column, ForeignKey, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from core.models import Base, SoftDeleteMixin, TenantMixin, TimestampMixin, new_uuid
from core.settings import to_decimal

HUNDRED = Decimal("100")


class Recipe(Base, TenantMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "recipes"

    id = Column(String(36), primary_key=True, default=new_uuid)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    yield_quantity = Column(Numeric(14, 3), nullable=False, default=Decimal("1"))
    yield_unit = Column(String(16), nullable=False, default="pcs")
    is_active = Column(Boolean, nullable=False, default=False, index=True)
    notes = Column(Text, nullable=True)

    product = relationship("Product", back_populates="recipes")
    components = relationship(
        "RecipeMaterial",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeMaterial.created_at",
    )

    def total_cost(self) -> Decimal:
        return sum((component.total_cost for component in self.components), Decimal("0"))

    def cost_per_unit(self) -> Decimal:
        yield_quantity = to_decimal(self.yield_quantity)
        if yield_quantity <= 0:
            return Decimal("0")
        return self.total_cost() / yield_quantity


class RecipeMaterial(Base, TenantMixin, TimestampMixin):
    __tablename__ = "recipe_materials"
    __table_args__ = (UniqueConstraint("recipe_id", "material_id", name="uq_recipe_materials_recipe_material"),)

    id = Column(String(36), primary_key=True, default=new_uuid)
    recipe_id = Column(String(36), ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True)
    material_id = Column(String(36), ForeignKey("materials.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity_required = Column(Numeric(14, 3), nullable=False)
    unit = Column(String(50), nullable=False)
    waste_percentage = Column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    notes = Column(String(500), nullable=True)

    recipe = relationship("Recipe", back_populates="components")
    material = relationship("Material", back_populates="recipe_materials")

    @property
    def effective_need(self) -> Decimal:
        """Quantity consumed per unit produced, waste included."""
        return to_decimal(self.quantity_required) * (1 + to_decimal(self.waste_percentage) / HUNDRED)

    @property
    def waste_amount(self) -> Decimal:
        return to_decimal(self.quantity_required) * to_decimal(self.waste_percentage) / HUNDRED

    @property
    def total_cost(self) -> Decimal:
        if self.material is None:
            return Decimal("0")
        return self.effective_need * to_decimal(self.material.unit_cost)
