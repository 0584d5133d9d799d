from datetime import datetime

from pydantic import BaseModel


class MetadataCreate(BaseModel):
    name: str


class MetadataUpdate(BaseModel):
    name: str | None = None
    is_active: bool | None = None


class MetadataOut(BaseModel):
    id: str
    name: str
    is_active: bool
    created_by: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
