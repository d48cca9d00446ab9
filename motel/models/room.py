from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Dict, List, Optional, Literal

RoomCategory = Literal["standard", "premium", "suite", "luxo"]
RoomStatus = Literal["available", "occupied", "cleaning", "maintenance"]

AMENITIES = (
    "wifi", "ar_condicionado", "tv", "frigobar", "cofre", "banheira", "varanda",
    "cama_king", "cama_queen", "mesa", "cadeira", "espelho", "secador",
)
DEFAULT_ROOM_PRICES = {"4h": 50.0, "6h": 70.0, "12h": 100.0, "daily": 150.0}


def _check_prices(value: Optional[Dict[str, float]]) -> Optional[Dict[str, float]]:
    if value is None:
        return value
    for period_type, price in value.items():
        if price < 0:
            raise ValueError(f"Price for '{period_type}' cannot be negative")
    return {period_type: round(float(price), 2) for period_type, price in value.items()}


def _check_amenities(value: Optional[List[str]]) -> Optional[List[str]]:
    if value is None:
        return value
    invalid = [item for item in value if item not in AMENITIES]
    if invalid:
        raise ValueError(f"Invalid amenities: {', '.join(invalid)}")
    return list(dict.fromkeys(value))


class RoomBase(BaseModel):
    number: str = Field(..., pattern=r"^[1-9][0-9]{2}$", description="Room number, first digit is the floor (e.g. '101')")
    category: RoomCategory = Field("standard", alias="type")
    capacity: int = Field(2, ge=1, le=10)
    floor: Optional[str] = Field(None, pattern=r"^[1-9]$")
    prices: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_ROOM_PRICES))
    description: Optional[str] = Field(None, max_length=500)
    amenities: List[str] = Field(default_factory=lambda: ["wifi", "ar_condicionado", "tv"])
    is_active: bool = True

    class Config:
        populate_by_name = True

    @field_validator("prices")
    @classmethod
    def check_prices(cls, value):
        return _check_prices(value)

    @field_validator("amenities")
    @classmethod
    def check_amenities(cls, value):
        return _check_amenities(value)

    @model_validator(mode="after")
    def default_floor(self):
        if not self.floor:
            self.floor = self.number[0]
        return self


class RoomCreate(RoomBase):
    status: RoomStatus = "available"


class RoomUpdate(BaseModel):
    number: Optional[str] = Field(None, pattern=r"^[1-9][0-9]{2}$")
    category: Optional[RoomCategory] = Field(None, alias="type")
    capacity: Optional[int] = Field(None, ge=1, le=10)
    floor: Optional[str] = Field(None, pattern=r"^[1-9]$")
    prices: Optional[Dict[str, float]] = None
    description: Optional[str] = Field(None, max_length=500)
    amenities: Optional[List[str]] = None
    is_active: Optional[bool] = None

    class Config:
        populate_by_name = True

    @field_validator("prices")
    @classmethod
    def check_prices(cls, value):
        return _check_prices(value)

    @field_validator("amenities")
    @classmethod
    def check_amenities(cls, value):
        return _check_amenities(value)


class RoomStatusUpdate(BaseModel):
    status: RoomStatus
    maintenance_reason: Optional[str] = Field(None, alias="maintenanceReason", max_length=200)

    class Config:
        populate_by_name = True
