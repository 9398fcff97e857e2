from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class StockAlertRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    material_id: str
    material_name: Optional[str] = None
    current_stock: float
    reorder_level: float
    severity: str
    status: str
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    acknowledged_notes: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_notes: Optional[str] = None
    dismissed_by: Optional[str] = None
    dismissed_at: Optional[datetime] = None
    dismissed_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class AlertTransition(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)
