from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from modules.products.types import InventoryManagementType


class ProductBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    sku: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=1024)
    inventory_management_type: InventoryManagementType = InventoryManagementType.SIMPLE


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    sku: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=1024)
    inventory_management_type: Optional[InventoryManagementType] = None


class ProductRead(ProductBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
