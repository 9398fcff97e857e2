from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class BulkAvailabilityRequest(BaseModel):
    product_ids: List[str] = Field(..., min_length=1, max_length=100)


class BatchRequirementsRequest(BaseModel):
    product_id: str
    quantity: int = Field(..., gt=0)


class OptimalBatchRequest(BaseModel):
    product_id: str
    min_batch_size: Optional[int] = Field(None, ge=1)
    max_batch_size: Optional[int] = Field(None, ge=1)
    target_quantity: Optional[int] = Field(None, ge=1)

    @model_validator(mode="after")
    def check_bounds(self):
        if self.min_batch_size and self.max_batch_size and self.min_batch_size > self.max_batch_size:
            raise ValueError("min_batch_size cannot exceed max_batch_size")
        return self


class PlanItem(BaseModel):
    product_id: str
    quantity: int = Field(..., gt=0)


class MultiProductPlanRequest(BaseModel):
    products: List[PlanItem] = Field(..., min_length=1)

    @field_validator("products")
    @classmethod
    def unique_products(cls, v: List[PlanItem]) -> List[PlanItem]:
        seen = set()
        for item in v:
            if item.product_id in seen:
                raise ValueError(f"Product {item.product_id} is listed more than once")
            seen.add(item.product_id)
        return v
