from datetime import datetime

from pydantic import BaseModel

from stocktrack.schemas.inventory import InventoryItemOut


class InsetCreate(BaseModel):
    sku_id: str
    bin: str
    quantity: int
    order_no: str = ""


class InsetOut(BaseModel):
    id: str
    sku_id: str
    order_no: str
    bin: str
    quantity: int
    source: str
    user_id: str
    user_name: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class InsetCreated(BaseModel):
    message: str
    inset: InsetOut
    inventory: InventoryItemOut
