from pydantic import BaseModel, Field
from typing import List, Optional, Literal


class OrderItemIn(BaseModel):
    product_id: str = Field(..., alias="productId")
    quantity: int = Field(..., ge=1, le=50)
    notes: Optional[str] = Field(None, max_length=200)

    class Config:
        populate_by_name = True


class OrderCreate(BaseModel):
    reservation_id: str = Field(..., alias="reservationId")
    items: List[OrderItemIn] = Field(..., min_length=1)
    order_type: Literal["frigobar", "room_service"] = Field("frigobar", alias="orderType")
    notes: Optional[str] = Field(None, max_length=500)

    class Config:
        populate_by_name = True


class OrderCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=200)
