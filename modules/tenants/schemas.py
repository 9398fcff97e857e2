from pydantic import BaseModel, ConfigDict, Field


class TenantCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class TenantRead(TenantCreate):
    model_config = ConfigDict(from_attributes=True)

    id: str
