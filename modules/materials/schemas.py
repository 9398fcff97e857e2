from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

MaterialUnit = Literal["kg", "g", "L", "ml", "pcs", "box", "bottle", "can", "bag"]
TransactionType = Literal["adjustment", "deduction", "restock"]
AdjustmentReason = Literal["purchase", "waste", "damage", "count_adjustment", "production", "sale", "other"]


class MaterialBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    sku: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    category: Optional[str] = Field(None, max_length=100)
    unit: MaterialUnit
    reorder_level: float = Field(0, ge=0)
    unit_cost: float = Field(0, ge=0)
    supplier: Optional[str] = Field(None, max_length=255)


class MaterialCreate(MaterialBase):
    stock_quantity: float = Field(0, ge=0, description="Opening stock")


class MaterialUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    sku: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    category: Optional[str] = Field(None, max_length=100)
    unit: Optional[MaterialUnit] = None
    reorder_level: Optional[float] = Field(None, ge=0)
    unit_cost: Optional[float] = Field(None, ge=0)
    supplier: Optional[str] = Field(None, max_length=255)


class MaterialRead(MaterialBase):
    id: str
    tenant_id: str
    stock_quantity: float
    is_low_stock: bool
    stock_status: str
    stock_value: float


class MaterialBulkCreate(BaseModel):
    materials: List[dict] = Field(..., min_length=1)


class StockAdjustment(BaseModel):
    type: TransactionType
    quantity: float = Field(..., description="Signed for adjustments, magnitude for restock/deduction")
    reason: AdjustmentReason
    notes: Optional[str] = Field(None, max_length=1000)


class InventoryTransactionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    material_id: str
    transaction_type: str
    quantity_before: float
    quantity_change: float
    quantity_after: float
    reason: str
    notes: Optional[str] = None
    user_id: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    created_at: datetime
