from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, Literal

from motel.services.shifts import normalize_payment_method

ReservationStatus = Literal["pending", "confirmed", "checked-in", "checked-out", "cancelled"]
PaymentStatus = Literal["pending", "paid", "refunded"]


class CustomerFields(BaseModel):
    """Denormalized customer contact copy carried by a reservation"""
    customer_id: Optional[str] = Field(None, alias="customerId")
    customer_name: Optional[str] = Field(None, alias="customerName", max_length=100)
    customer_phone: Optional[str] = Field(None, alias="customerPhone", max_length=20)
    customer_email: Optional[str] = Field(None, alias="customerEmail", max_length=100)
    customer_document: Optional[str] = Field(None, alias="customerDocument", max_length=30)

    class Config:
        populate_by_name = True


class ReservationCreate(CustomerFields):
    room_id: Optional[str] = Field(None, alias="roomId", description="Room ID; first bookable room when omitted")
    check_in: datetime = Field(..., alias="checkIn")
    check_out: datetime = Field(..., alias="checkOut")
    period_type: str = Field(..., alias="periodType", min_length=1)
    total_price: Optional[float] = Field(None, alias="totalPrice", ge=0)
    payment_method: str = Field("cash", alias="paymentMethod")
    payment_status: PaymentStatus = Field("paid", alias="paymentStatus")
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("payment_method")
    @classmethod
    def check_payment_method(cls, value):
        return normalize_payment_method(value)


class ReservationUpdate(CustomerFields):
    check_in: Optional[datetime] = Field(None, alias="checkIn")
    check_out: Optional[datetime] = Field(None, alias="checkOut")
    total_price: Optional[float] = Field(None, alias="totalPrice", ge=0)
    payment_method: Optional[str] = Field(None, alias="paymentMethod")
    payment_status: Optional[PaymentStatus] = Field(None, alias="paymentStatus")
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("payment_method")
    @classmethod
    def check_payment_method(cls, value):
        return normalize_payment_method(value) if value is not None else None


class ReservationStatusUpdate(BaseModel):
    status: ReservationStatus
    reason: Optional[str] = Field(None, max_length=200)


class ConflictCheckRequest(BaseModel):
    room_id: str = Field(..., alias="roomId")
    check_in: datetime = Field(..., alias="checkIn")
    check_out: datetime = Field(..., alias="checkOut")
    exclude_reservation_id: Optional[str] = Field(None, alias="excludeReservationId")

    class Config:
        populate_by_name = True

