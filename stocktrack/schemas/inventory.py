from datetime import datetime

from pydantic import BaseModel


class InventoryItemOut(BaseModel):
    id: str
    sku_id: str
    bin: str
    name: str
    quantity: int
    last_updated: datetime
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class StockAdjust(BaseModel):
    sku_id: str
    bin: str
    quantity_change: int
    reason: str = ""


class StockAdjustOut(BaseModel):
    message: str
    item: InventoryItemOut
    change: dict
