from datetime import datetime

from pydantic import BaseModel


class OutsetCreate(BaseModel):
    sku_id: str
    quantity: int
    customer_name: str
    invoice_no: str
    bin: str


class OutsetOut(BaseModel):
    id: str
    sku_id: str
    name: str
    quantity: int
    bin: str
    customer_name: str
    invoice_no: str
    batch_id: str | None = None
    user_id: str
    user_name: str
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class OutsetCreated(BaseModel):
    message: str
    outset: OutsetOut
    inventory: dict


class BatchLine(BaseModel):
    sku_id: str
    bin: str
    quantity: int


class BatchOutsetCreate(BaseModel):
    items: list[BatchLine]
    customer_name: str
    invoice_no: str


class BatchOutsetCreated(BaseModel):
    message: str
    batch_id: str
    created_records: list[OutsetOut]


class BatchSummaryOut(BaseModel):
    batch_id: str
    customer_name: str
    invoice_no: str
    created_at: datetime | None = None
    created_by: str
    total_items: int
    total_quantity: int
    items: list[OutsetOut]
