from typing import List, Literal, Optional

from pydantic import BaseModel, Field

YieldUnit = Literal["pcs", "kg", "L", "serving", "batch"]


class RecipeComponentCreate(BaseModel):
    material_id: str
    quantity_required: float = Field(..., ge=0.001, description="Quantity per yield unit")
    unit: str = Field(..., min_length=1, max_length=50)
    waste_percentage: float = Field(0, ge=0, le=100)
    notes: Optional[str] = Field(None, max_length=500)


class RecipeComponentUpdate(BaseModel):
    quantity_required: Optional[float] = Field(None, ge=0.001)
    unit: Optional[str] = Field(None, min_length=1, max_length=50)
    waste_percentage: Optional[float] = Field(None, ge=0, le=100)
    notes: Optional[str] = Field(None, max_length=500)


class RecipeComponentRead(BaseModel):
    id: str
    material_id: str
    material_name: str
    material_unit: str
    quantity_required: float
    unit: str
    waste_percentage: float
    waste_amount: float
    effective_quantity: float
    unit_cost: float
    total_cost: float
    available_stock: float
    notes: Optional[str] = None


class RecipeCreate(BaseModel):
    product_id: str
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    yield_quantity: float = Field(1, ge=0.001)
    yield_unit: YieldUnit = "pcs"
    is_active: bool = False
    notes: Optional[str] = Field(None, max_length=1000)
    components: List[RecipeComponentCreate] = Field(default_factory=list)


class RecipeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    yield_quantity: Optional[float] = Field(None, ge=0.001)
    yield_unit: Optional[YieldUnit] = None
    notes: Optional[str] = Field(None, max_length=1000)


class RecipeRead(BaseModel):
    id: str
    tenant_id: str
    product_id: str
    product_name: Optional[str] = None
    name: str
    description: Optional[str] = None
    yield_quantity: float
    yield_unit: str
    is_active: bool
    notes: Optional[str] = None
    total_cost: float
    cost_per_unit: float
    components: List[RecipeComponentRead] = Field(default_factory=list)


class ProductionRun(BaseModel):
    quantity: int = Field(..., gt=0)
    notes: Optional[str] = Field(None, max_length=1000)


class RecipeClone(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    yield_quantity: Optional[float] = Field(None, ge=0.001)
    yield_unit: Optional[YieldUnit] = None
    notes: Optional[str] = Field(None, max_length=1000)
