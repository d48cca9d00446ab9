from pydantic import BaseModel, Field, model_validator
from typing import Optional, Literal

PeriodKind = Literal["hourly", "overnight", "daily"]
TIME_PATTERN = r"^([01][0-9]|2[0-3]):[0-5][0-9]$"


class PeriodBase(BaseModel):
    period_type: str = Field(..., alias="periodType", pattern=r"^[a-z0-9_]+$", max_length=30)
    name: str = Field(..., min_length=1, max_length=50)
    kind: PeriodKind = "hourly"
    duration_hours: Optional[float] = Field(None, alias="durationHours", gt=0, le=72)
    check_in_time: Optional[str] = Field(None, alias="checkInTime", pattern=TIME_PATTERN)
    check_out_time: Optional[str] = Field(None, alias="checkOutTime", pattern=TIME_PATTERN)
    base_price: float = Field(..., alias="basePrice", ge=0)
    available_today: bool = Field(True, alias="availableToday")
    available_scheduled: bool = Field(True, alias="availableScheduled")
    description: Optional[str] = Field(None, max_length=200)
    order: int = 0
    active: bool = True

    class Config:
        populate_by_name = True

    @model_validator(mode="after")
    def check_kind_fields(self):
        if self.kind == "hourly" and not self.duration_hours:
            raise ValueError("Hourly periods need durationHours")
        if self.kind != "hourly" and (not self.check_in_time or not self.check_out_time):
            raise ValueError("Overnight and daily periods need checkInTime and checkOutTime")
        if not self.available_today and not self.available_scheduled:
            raise ValueError("Period must be offered for today or for scheduled bookings")
        return self


class PeriodCreate(PeriodBase):
    pass


class PeriodUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    duration_hours: Optional[float] = Field(None, alias="durationHours", gt=0, le=72)
    check_in_time: Optional[str] = Field(None, alias="checkInTime", pattern=TIME_PATTERN)
    check_out_time: Optional[str] = Field(None, alias="checkOutTime", pattern=TIME_PATTERN)
    base_price: Optional[float] = Field(None, alias="basePrice", ge=0)
    available_today: Optional[bool] = Field(None, alias="availableToday")
    available_scheduled: Optional[bool] = Field(None, alias="availableScheduled")
    description: Optional[str] = Field(None, max_length=200)
    order: Optional[int] = None

    class Config:
        populate_by_name = True


class PriceRequest(BaseModel):
    period_type: str = Field(..., alias="periodType")
    room_id: Optional[str] = Field(None, alias="roomId")

    class Config:
        populate_by_name = True
