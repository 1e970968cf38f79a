from sqlalchemy import Column, String, Boolean, Text, Integer, DateTime, Enum, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.models.base import BaseModel, enum_values
from app.models.property import Property  # noqa: F401
import enum

class UserRole(str, enum.Enum):
    USER = "user"
    AGENT = "agent"
    ADMIN = "admin"

class User(BaseModel):
    __tablename__ = "users"

    email = Column(String(100), unique=True, index=True, nullable=False)
    phone_number = Column(String(20), unique=True, index=True, nullable=False)
    full_name = Column(String(100), nullable=False)
    password_hash = Column(String(255), nullable=False)

    role = Column(Enum(UserRole, values_callable=enum_values), default=UserRole.USER, nullable=False)
    is_verified = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)

    # Profile
    avatar = Column(String(255), nullable=True)
    company = Column(String(100), nullable=True)
    location = Column(String(100), nullable=True)
    bio = Column(Text, nullable=True)
    properties_handled = Column(Integer, default=0, nullable=False)

    verification_code = Column(String(6), nullable=True)
    verification_code_expiry = Column(DateTime, nullable=True)

    # Referrals
    referral_code = Column(String(12), unique=True, index=True, nullable=False)
    referred_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    total_referrals = Column(Integer, default=0, nullable=False)

    referred_by = relationship("User", remote_side="User.id")
    properties = relationship(
        "Property",
        back_populates="owner",
        foreign_keys="Property.owner_id"
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
