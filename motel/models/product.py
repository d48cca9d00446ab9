from pydantic import BaseModel, Field
from typing import List, Optional, Literal


class ProductBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    category: str = Field(..., min_length=1, max_length=50)
    sku: Optional[str] = Field(None, max_length=40)
    description: Optional[str] = Field(None, max_length=500)
    price: float = Field(..., ge=0)
    cost: float = Field(0, ge=0)
    stock: int = Field(0, ge=0)
    min_stock: int = Field(5, alias="minStock", ge=0)
    is_active: bool = True
    # Empty means sold in every room
    available_rooms: List[str] = Field(default_factory=list, alias="availableRooms")

    class Config:
        populate_by_name = True


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    category: Optional[str] = Field(None, min_length=1, max_length=50)
    sku: Optional[str] = Field(None, max_length=40)
    description: Optional[str] = Field(None, max_length=500)
    price: Optional[float] = Field(None, ge=0)
    cost: Optional[float] = Field(None, ge=0)
    min_stock: Optional[int] = Field(None, alias="minStock", ge=0)
    is_active: Optional[bool] = None
    available_rooms: Optional[List[str]] = Field(None, alias="availableRooms")

    class Config:
        populate_by_name = True


class StockAdjust(BaseModel):
    operation: Literal["add", "subtract", "set"]
    quantity: int = Field(..., ge=0)
    reason: Optional[str] = Field(None, max_length=200)
