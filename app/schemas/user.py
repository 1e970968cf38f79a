from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from app.models.user import UserRole
from app.schemas.common import Pagination
import re

# Nigerian phone number validation
def validate_nigerian_phone(phone: str) -> str:
    phone = re.sub(r'[\s\-]', '', phone)

    if not re.match(r'^(0|\+234|234)[789]\d{9}$', phone):
        raise ValueError('Invalid Nigerian phone number')

    if phone.startswith('0'):
        phone = '+234' + phone[1:]
    elif phone.startswith('234'):
        phone = '+' + phone

    return phone

class UserBase(BaseModel):
    email: EmailStr
    phone_number: str
    full_name: str = Field(..., min_length=1, max_length=100)

class UserCreate(UserBase):
    password: str = Field(..., min_length=6)
    # Self-registration can pick "agent"; admins are created by script or promoted
    role: UserRole = UserRole.USER
    referral_code: Optional[str] = None

    @field_validator('phone_number')
    @classmethod
    def validate_phone(cls, v):
        return validate_nigerian_phone(v)

    @field_validator('email')
    @classmethod
    def lower_email(cls, v):
        return v.lower()

    @field_validator('role')
    @classmethod
    def no_self_admin(cls, v):
        if v == UserRole.ADMIN:
            raise ValueError('Cannot self-register as admin')
        return v

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=100)
    company: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    avatar: Optional[str] = None

class PhoneVerifyRequest(BaseModel):
    verification_code: str = Field(..., min_length=6, max_length=6)

class UserResponse(BaseModel):
    id: UUID
    email: str
    phone_number: str
    full_name: str
    role: UserRole
    is_verified: bool
    is_active: bool
    avatar: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    properties_handled: int = 0
    referral_code: str
    referred_by_id: Optional[UUID] = None
    total_referrals: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

class UserSummary(BaseModel):
    id: UUID
    full_name: str
    email: str
    role: UserRole

    model_config = {"from_attributes": True}

class AuthData(BaseModel):
    user: UserResponse
    token: str
    token_type: str = "bearer"

class UserData(BaseModel):
    user: UserResponse

class AvatarData(UserData):
    avatar: str

class UserListData(BaseModel):
    users: List[UserResponse]
    pagination: Pagination

class AdminUserUpdate(BaseModel):
    role: Optional[UserRole] = None
    is_verified: Optional[bool] = None
    is_active: Optional[bool] = None
