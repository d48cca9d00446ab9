from pydantic import BaseModel, Field, EmailStr
from typing import Optional, Literal

DocumentType = Literal["CPF", "RG", "CNH", "Passaporte", "Outro"]


class Address(BaseModel):
    street: Optional[str] = None
    number: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = Field(None, alias="zipCode")

    class Config:
        populate_by_name = True


class CustomerBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    phone: str = Field(..., min_length=8, max_length=20)
    email: Optional[EmailStr] = None
    document: Optional[str] = Field(None, max_length=30)
    document_type: DocumentType = Field("CPF", alias="documentType")
    address: Optional[Address] = None
    preferences: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)

    class Config:
        populate_by_name = True


class CustomerCreate(CustomerBase):
    pass


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    phone: Optional[str] = Field(None, min_length=8, max_length=20)
    email: Optional[EmailStr] = None
    document: Optional[str] = Field(None, max_length=30)
    document_type: Optional[DocumentType] = Field(None, alias="documentType")
    address: Optional[Address] = None
    preferences: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)

    class Config:
        populate_by_name = True


class LoyaltyAdjust(BaseModel):
    operation: Literal["add", "subtract", "set"]
    points: int = Field(..., ge=0)
    reason: Optional[str] = Field(None, max_length=200)
