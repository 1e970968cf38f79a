import logging
from fastapi import APIRouter, Depends, HTTPException, status, Query, UploadFile, File
from sqlalchemy.orm import Session
from sqlalchemy import or_
from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import ConflictError
from app.models.property import Property, PropertyType, PropertyVerificationStatus, PropertyImage
from app.models.user import User, UserRole
from app.models.verification import VerificationCase
from app.schemas.common import ApiResponse, Pagination
from app.schemas.property import (
    ImageDeleteRequest, ImageListData, PropertyCreate, PropertyData, PropertyListData,
    PropertyResponse, PropertyUpdate, ShareData,
)
from app.api.deps import get_current_active_user, require_agent_or_admin
from app.utils.file_storage import save_property_images, delete_property_image
from typing import List, Optional
from uuid import UUID

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/properties", tags=["Properties"])

MAX_IMAGES_PER_UPLOAD = 10


# ─── Helpers ──────────────────────────────────────────────────────────────────

def _get_property_or_404(db: Session, property_id: UUID) -> Property:
    prop = db.query(Property).filter(Property.id == property_id).first()
    if not prop:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")
    return prop


def _ensure_can_manage(prop: Property, user: User) -> None:
    if prop.owner_id != user.id and user.role != UserRole.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized")


def _increment(db: Session, property_id: UUID, column) -> None:
    """Counters only go up, and the increment happens in SQL, not in Python."""
    db.query(Property).filter(Property.id == property_id).update(
        {column: column + 1}, synchronize_session=False
    )
    db.commit()


def _property_data(prop: Property) -> PropertyData:
    return PropertyData(property=PropertyResponse.from_model(prop))


def _paginated(query, page: int, limit: int) -> PropertyListData:
    total = query.count()
    properties = query.offset((page - 1) * limit).limit(limit).all()
    return PropertyListData(
        properties=[PropertyResponse.from_model(p) for p in properties],
        pagination=Pagination.build(page, limit, total),
    )


# ─── LIST (public) ────────────────────────────────────────────────────────────

@router.get("/", response_model=ApiResponse[PropertyListData])
async def list_properties(
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, min_length=2),
    state: Optional[str] = Query(None),
    city: Optional[str] = Query(None),
    property_type: Optional[PropertyType] = Query(None),
    min_price: Optional[float] = Query(None),
    max_price: Optional[float] = Query(None),
    bedrooms: Optional[int] = Query(None),
    bathrooms: Optional[int] = Query(None),
    verified: Optional[bool] = Query(None),
    agent: Optional[UUID] = Query(None),
    sort_by: Optional[str] = Query("newest", pattern="^(newest|oldest|price_low|price_high|most_viewed)$"),
):
    """List active properties with filtering, sorting and pagination."""
    query = db.query(Property).filter(Property.is_active.is_(True))

    if search:
        search_term = f"%{search}%"
        query = query.filter(
            or_(
                Property.title.ilike(search_term),
                Property.description.ilike(search_term),
                Property.address.ilike(search_term),
            )
        )
    if state:
        query = query.filter(Property.state == state)
    if city:
        query = query.filter(Property.city.ilike(f"%{city}%"))
    if property_type:
        query = query.filter(Property.property_type == property_type)
    if min_price is not None:
        query = query.filter(Property.price >= min_price)
    if max_price is not None:
        query = query.filter(Property.price <= max_price)
    if bedrooms is not None:
        query = query.filter(Property.bedrooms == bedrooms)
    if bathrooms is not None:
        query = query.filter(Property.bathrooms == bathrooms)
    if verified:
        query = query.filter(Property.verification_status == PropertyVerificationStatus.VERIFIED)
    if agent:
        query = query.filter(Property.owner_id == agent)

    if sort_by == "oldest":
        query = query.order_by(Property.created_at.asc())
    elif sort_by == "price_low":
        query = query.order_by(Property.price.asc())
    elif sort_by == "price_high":
        query = query.order_by(Property.price.desc())
    elif sort_by == "most_viewed":
        query = query.order_by(Property.view_count.desc())
    else:
        query = query.order_by(Property.created_at.desc())

    return ApiResponse(data=_paginated(query, page, limit))


# ─── CREATE ───────────────────────────────────────────────────────────────────

@router.post("/", response_model=ApiResponse[PropertyData], status_code=status.HTTP_201_CREATED)
async def create_property(
    property_in: PropertyCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_agent_or_admin),
):
    """Create a listing owned by the calling agent. Images are uploaded separately."""
    data = property_in.model_dump(exclude={"documents"})
    property_obj = Property(
        **data,
        documents=[doc.model_dump() for doc in property_in.documents],
        owner_id=current_user.id,
        verification_status=PropertyVerificationStatus.PENDING,
    )
    db.add(property_obj)
    db.query(User).filter(User.id == current_user.id).update(
        {User.properties_handled: User.properties_handled + 1}, synchronize_session=False
    )
    db.commit()
    db.refresh(property_obj)

    logger.info("Property %s created by %s", property_obj.id, current_user.id)
    return ApiResponse(message="Property created", data=_property_data(property_obj))


# ─── MY LISTINGS ──────────────────────────────────────────────────────────────

@router.get("/my", response_model=ApiResponse[PropertyListData])
async def my_properties(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    query = (
        db.query(Property)
        .filter(Property.owner_id == current_user.id)
        .order_by(Property.created_at.desc())
    )
    return ApiResponse(data=_paginated(query, page, limit))


# ─── GET single property (public) ────────────────────────────────────────────

@router.get("/{property_id}", response_model=ApiResponse[PropertyData])
async def get_property(
    property_id: UUID,
    db: Session = Depends(get_db),
):
    """Public. Each fetch counts as one view."""
    prop = _get_property_or_404(db, property_id)
    _increment(db, property_id, Property.view_count)
    db.refresh(prop)
    return ApiResponse(data=_property_data(prop))


# ─── UPDATE / DELETE ──────────────────────────────────────────────────────────

@router.put("/{property_id}", response_model=ApiResponse[PropertyData])
async def update_property(
    property_id: UUID,
    updates: PropertyUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_agent_or_admin),
):
    """Update listing fields. Verification summary and analytics are not editable here."""
    prop = _get_property_or_404(db, property_id)
    _ensure_can_manage(prop, current_user)

    changes = updates.model_dump(exclude_unset=True, exclude={"documents"})
    for field, value in changes.items():
        if value is not None:
            setattr(prop, field, value)
    if updates.documents is not None:
        prop.documents = [doc.model_dump() for doc in updates.documents]

    db.commit()
    db.refresh(prop)
    return ApiResponse(message="Property updated", data=_property_data(prop))


@router.delete("/{property_id}", response_model=ApiResponse[dict])
async def delete_property(
    property_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_agent_or_admin),
):
    prop = _get_property_or_404(db, property_id)
    _ensure_can_manage(prop, current_user)

    # Verification cases are never deleted, so their property must stay
    has_cases = db.query(VerificationCase.id).filter(VerificationCase.property_id == property_id).first()
    if has_cases:
        raise ConflictError("Property has verification history and cannot be deleted")

    image_urls = [img.image_url for img in prop.images]
    db.delete(prop)
    db.commit()
    for url in image_urls:
        delete_property_image(url)

    logger.info("Property %s deleted by %s", property_id, current_user.id)
    return ApiResponse(message="Property deleted")


# ─── IMAGES ───────────────────────────────────────────────────────────────────

@router.post("/{property_id}/images", response_model=ApiResponse[ImageListData])
async def upload_images(
    property_id: UUID,
    images: List[UploadFile] = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_agent_or_admin),
):
    prop = _get_property_or_404(db, property_id)
    _ensure_can_manage(prop, current_user)

    real_images = [f for f in images if f and f.filename]
    if not real_images:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded")
    if len(real_images) > MAX_IMAGES_PER_UPLOAD:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {MAX_IMAGES_PER_UPLOAD} images per upload",
        )

    image_urls = await save_property_images(real_images)

    start = len(prop.images)
    for idx, url in enumerate(image_urls):
        db.add(PropertyImage(
            property_id=prop.id,
            image_url=url,
            is_main=(start == 0 and idx == 0),
            display_order=start + idx,
        ))
    if not prop.main_image:
        prop.main_image = image_urls[0]
    db.commit()

    return ApiResponse(message="Images uploaded", data=ImageListData(images=image_urls))


@router.delete("/{property_id}/images", response_model=ApiResponse[ImageListData])
async def remove_image(
    property_id: UUID,
    body: ImageDeleteRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_agent_or_admin),
):
    if not body.filename and not body.url:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="filename or url required")

    prop = _get_property_or_404(db, property_id)
    _ensure_can_manage(prop, current_user)

    target = body.filename or body.url.rstrip("/").split("/")[-1]
    matches = [img for img in prop.images if img.image_url.split("/")[-1] == target]
    if not matches:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found on property")

    for img in matches:
        prop.images.remove(img)
        delete_property_image(img.image_url)

    if prop.main_image and prop.main_image.split("/")[-1] == target:
        prop.main_image = prop.images[0].image_url if prop.images else None
    db.commit()
    db.refresh(prop)

    return ApiResponse(message="Image removed", data=ImageListData(images=[i.image_url for i in prop.images]))


# ─── ENGAGEMENT ───────────────────────────────────────────────────────────────

@router.post("/{property_id}/favorite", response_model=ApiResponse[dict])
async def favorite_property(
    property_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    _get_property_or_404(db, property_id)
    _increment(db, property_id, Property.favorite_count)
    return ApiResponse(message="Property favorited")


@router.post("/{property_id}/inquiry", response_model=ApiResponse[dict])
async def inquire_property(
    property_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    _get_property_or_404(db, property_id)
    _increment(db, property_id, Property.inquiry_count)
    return ApiResponse(message="Inquiry recorded")


@router.post("/{property_id}/share", response_model=ApiResponse[ShareData])
async def share_property(
    property_id: UUID,
    db: Session = Depends(get_db),
):
    prop = _get_property_or_404(db, property_id)
    _increment(db, property_id, Property.share_count)
    description = prop.description if len(prop.description) <= 150 else prop.description[:150] + "..."
    return ApiResponse(
        message="Share updated",
        data=ShareData(
            share_url=f"{settings.FRONTEND_URL.rstrip('/')}/property/{prop.id}",
            title=prop.title,
            description=description,
        ),
    )
