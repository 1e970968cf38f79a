from sqlalchemy import Column, String, Integer, Float, Boolean, Text, Enum, ForeignKey, JSON, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.models.base import BaseModel, enum_values
import enum

class PropertyType(str, enum.Enum):
    HOUSE = "house"
    APARTMENT = "apartment"
    LAND = "land"
    COMMERCIAL = "commercial"
    SHOP = "shop"
    OFFICE = "office"
    WAREHOUSE = "warehouse"
    EVENT_CENTER = "event_center"
    SHORTLET = "shortlet"

class ListingType(str, enum.Enum):
    RENT = "rent"
    SALE = "sale"
    LEASE = "lease"
    SHORTLET = "shortlet"

class PropertyVerificationStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"

class Property(BaseModel):
    __tablename__ = "properties"

    # Basic Info
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    property_type = Column(Enum(PropertyType, values_callable=enum_values), nullable=False)
    listing_type = Column(Enum(ListingType, values_callable=enum_values), default=ListingType.SALE, nullable=False)

    # Location
    address = Column(String(255), nullable=False)
    city = Column(String(100), nullable=False, index=True)
    state = Column(String(50), nullable=False, index=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    # Pricing
    price = Column(Float, nullable=False)
    currency = Column(String(3), default="NGN", nullable=False)

    # Property Details
    bedrooms = Column(Integer, nullable=True)
    bathrooms = Column(Integer, nullable=True)
    size = Column(String(50), nullable=True)
    features = Column(JSON, default=list)

    # Ownership documents, one dict per document
    documents = Column(JSON, default=list)

    # Media
    main_image = Column(String(255), nullable=True)

    # Verification summary, written only by the verification workflow
    verification_status = Column(
        Enum(PropertyVerificationStatus, values_callable=enum_values),
        default=PropertyVerificationStatus.PENDING,
        nullable=False,
    )
    verification_score = Column(Integer, default=0, nullable=False)
    last_verified = Column(DateTime, nullable=True)
    verified_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)

    # Analytics, only ever incremented
    view_count = Column(Integer, default=0, nullable=False)
    share_count = Column(Integer, default=0, nullable=False)
    inquiry_count = Column(Integer, default=0, nullable=False)
    favorite_count = Column(Integer, default=0, nullable=False)

    is_active = Column(Boolean, default=True)
    is_premium = Column(Boolean, default=False)

    # Relationships
    owner_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    owner = relationship(
        "User",
        back_populates="properties",
        foreign_keys=[owner_id]
    )
    images = relationship(
        "PropertyImage",
        back_populates="property",
        cascade="all, delete-orphan",
        order_by="PropertyImage.display_order",
    )

class PropertyImage(BaseModel):
    __tablename__ = "property_images"

    property_id = Column(UUID(as_uuid=True), ForeignKey("properties.id"), nullable=False)
    image_url = Column(String(255), nullable=False)
    is_main = Column(Boolean, default=False)
    caption = Column(String(100), nullable=True)
    display_order = Column(Integer, default=0)

    property = relationship("Property", back_populates="images")
