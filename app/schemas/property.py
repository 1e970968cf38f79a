from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any
from uuid import UUID
from datetime import datetime
from app.models.property import PropertyType, ListingType, PropertyVerificationStatus
from app.schemas.common import Pagination


# ─── Image Schemas ────────────────────────────────────────────────────────────

class PropertyImageResponse(BaseModel):
    id: UUID
    image_url: str          # stored path / CDN URL after upload
    is_main: bool = False
    caption: Optional[str] = None
    display_order: int = 0

    model_config = {"from_attributes": True}


class ImageDeleteRequest(BaseModel):
    filename: Optional[str] = None
    url: Optional[str] = None


# ─── Ownership Document Schema ────────────────────────────────────────────────
# Each document is a dict whose keys depend on the document type.
# Minimum required key: "document_type"
# Example:
# {
#   "document_type": "Certificate of Occupancy (C of O)",
#   "co_number": "LAG/C-O/2023/00123",
#   "state_of_issue": "Lagos State",
#   "url": "https://..."
# }

class OwnershipDocument(BaseModel):
    document_type: str
    # Other keys depend on the document type and are kept as extra fields
    model_config = {"extra": "allow"}

    @field_validator("document_type")
    @classmethod
    def document_type_must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("document_type must not be empty")
        return v.strip()


# ─── Property Base ────────────────────────────────────────────────────────────

class PropertyBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    property_type: PropertyType
    listing_type: ListingType = ListingType.SALE
    address: str
    city: str
    state: str
    price: float = Field(..., ge=0)
    currency: str = Field("NGN", min_length=3, max_length=3)
    bedrooms: Optional[int] = Field(None, ge=0)
    bathrooms: Optional[int] = Field(None, ge=0)
    size: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    features: List[str] = []


class PropertyCreate(PropertyBase):
    documents: List[OwnershipDocument] = []


# Owners edit listing fields only; verification summary and analytics are not editable
class PropertyUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1)
    property_type: Optional[PropertyType] = None
    listing_type: Optional[ListingType] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    bedrooms: Optional[int] = Field(None, ge=0)
    bathrooms: Optional[int] = Field(None, ge=0)
    size: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    features: Optional[List[str]] = None
    documents: Optional[List[OwnershipDocument]] = None
    is_active: Optional[bool] = None


# ─── Response Schema ──────────────────────────────────────────────────────────

class PropertyVerificationSummary(BaseModel):
    status: PropertyVerificationStatus
    score: int
    last_verified: Optional[datetime] = None
    verified_by: Optional[UUID] = None


class PropertyAnalytics(BaseModel):
    views: int = 0
    shares: int = 0
    inquiries: int = 0
    favorites: int = 0


class PropertyResponse(PropertyBase):
    id: UUID
    owner_id: UUID
    documents: List[Dict[str, Any]] = []
    main_image: Optional[str] = None
    images: List[PropertyImageResponse] = []
    verification: PropertyVerificationSummary
    analytics: PropertyAnalytics
    is_active: bool
    is_premium: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, prop) -> "PropertyResponse":
        return cls(
            id=prop.id,
            owner_id=prop.owner_id,
            title=prop.title,
            description=prop.description,
            property_type=prop.property_type,
            listing_type=prop.listing_type,
            address=prop.address,
            city=prop.city,
            state=prop.state,
            price=prop.price,
            currency=prop.currency,
            bedrooms=prop.bedrooms,
            bathrooms=prop.bathrooms,
            size=prop.size,
            latitude=prop.latitude,
            longitude=prop.longitude,
            features=prop.features or [],
            documents=prop.documents or [],
            main_image=prop.main_image,
            images=[PropertyImageResponse.model_validate(img) for img in prop.images],
            verification=PropertyVerificationSummary(
                status=prop.verification_status,
                score=prop.verification_score or 0,
                last_verified=prop.last_verified,
                verified_by=prop.verified_by_id,
            ),
            analytics=PropertyAnalytics(
                views=prop.view_count or 0,
                shares=prop.share_count or 0,
                inquiries=prop.inquiry_count or 0,
                favorites=prop.favorite_count or 0,
            ),
            is_active=bool(prop.is_active),
            is_premium=bool(prop.is_premium),
            created_at=prop.created_at,
            updated_at=prop.updated_at,
        )


class PropertyData(BaseModel):
    property: PropertyResponse


class PropertyListData(BaseModel):
    properties: List[PropertyResponse]
    pagination: Pagination


class ImageListData(BaseModel):
    images: List[str]


class ShareData(BaseModel):
    share_url: str
    title: str
    description: str
