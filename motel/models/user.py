from pydantic import BaseModel, Field, EmailStr
from typing import Optional, Literal
from datetime import datetime

Role = Literal["admin", "recepcionista", "camareira", "cozinha"]


class UserBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    role: Role = "recepcionista"
    is_active: bool = Field(default=True)


class UserCreate(UserBase):
    password: str = Field(..., min_length=6)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    role: Optional[Role] = None


class UserResponse(BaseModel):
    id: str = Field(alias="_id")
    name: str
    email: str
    role: str
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        populate_by_name = True


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class PasswordChange(BaseModel):
    current_password: Optional[str] = Field(None, alias="currentPassword")
    new_password: str = Field(..., alias="newPassword", min_length=6)

    class Config:
        populate_by_name = True
