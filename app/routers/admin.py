from fastapi import APIRouter, Depends, HTTPException, status, Query
from pydantic import BaseModel
from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
from app.core.database import get_db
from app.models.property import Property, PropertyVerificationStatus
from app.models.user import User, UserRole
from app.models.verification import PaymentStatus, VerificationCase, VerificationStatus
from app.schemas.common import ApiResponse, Pagination
from app.schemas.property import PropertyListData, PropertyResponse
from app.schemas.user import AdminUserUpdate, UserData, UserListData, UserResponse
from app.schemas.verification import VerificationCaseResponse
from app.api.deps import require_admin

router = APIRouter(tags=["Admin"])

RECENT_LIMIT = 5


class DashboardStats(BaseModel):
    total_users: int
    total_agents: int
    total_properties: int
    verified_properties: int
    pending_verifications: int
    completed_verifications: int
    total_revenue: int


class DashboardRecent(BaseModel):
    users: List[UserResponse]
    properties: List[PropertyResponse]
    verifications: List[VerificationCaseResponse]


class DashboardData(BaseModel):
    stats: DashboardStats
    recent: DashboardRecent


# ─── Dashboard ────────────────────────────────────────────────────────────────

@router.get("/dashboard", response_model=ApiResponse[DashboardData])
async def dashboard(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Headline counts, revenue from paid verifications, and the latest activity."""
    revenue = (
        db.query(func.coalesce(func.sum(VerificationCase.payment_amount), 0))
        .filter(VerificationCase.payment_status == PaymentStatus.PAID)
        .scalar()
    )
    stats = DashboardStats(
        total_users=db.query(User).count(),
        total_agents=db.query(User).filter(User.role == UserRole.AGENT).count(),
        total_properties=db.query(Property).count(),
        verified_properties=db.query(Property)
        .filter(Property.verification_status == PropertyVerificationStatus.VERIFIED)
        .count(),
        pending_verifications=db.query(VerificationCase)
        .filter(VerificationCase.status == VerificationStatus.PENDING)
        .count(),
        completed_verifications=db.query(VerificationCase)
        .filter(VerificationCase.status == VerificationStatus.COMPLETED)
        .count(),
        total_revenue=int(revenue or 0),
    )

    recent_users = db.query(User).order_by(User.created_at.desc()).limit(RECENT_LIMIT).all()
    recent_properties = db.query(Property).order_by(Property.created_at.desc()).limit(RECENT_LIMIT).all()
    recent_cases = (
        db.query(VerificationCase).order_by(VerificationCase.created_at.desc()).limit(RECENT_LIMIT).all()
    )

    return ApiResponse(
        data=DashboardData(
            stats=stats,
            recent=DashboardRecent(
                users=[UserResponse.model_validate(u) for u in recent_users],
                properties=[PropertyResponse.from_model(p) for p in recent_properties],
                verifications=[VerificationCaseResponse.from_model(c) for c in recent_cases],
            ),
        )
    )


# ─── Users ────────────────────────────────────────────────────────────────────

@router.get("/users", response_model=ApiResponse[UserListData])
async def list_users(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
    role: Optional[UserRole] = Query(None),
    search: Optional[str] = Query(None, min_length=1),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    if search:
        term = f"%{search}%"
        query = query.filter(or_(User.full_name.ilike(term), User.email.ilike(term)))

    total = query.count()
    users = query.order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return ApiResponse(
        data=UserListData(
            users=[UserResponse.model_validate(u) for u in users],
            pagination=Pagination.build(page, limit, total),
        )
    )


@router.put("/users/{user_id}/status", response_model=ApiResponse[UserData])
async def update_user_status(
    user_id: UUID,
    updates: AdminUserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Change a user's role or verified/active flags. Admin only."""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if user.id == current_user.id and (
        (updates.role is not None and updates.role != UserRole.ADMIN) or updates.is_active is False
    ):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Admins cannot demote or deactivate themselves")

    for field, value in updates.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(user, field, value)
    db.commit()
    db.refresh(user)

    return ApiResponse(message="User updated", data=UserData(user=UserResponse.model_validate(user)))


# ─── Properties ───────────────────────────────────────────────────────────────

@router.get("/properties", response_model=ApiResponse[PropertyListData])
async def list_all_properties(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
    state: Optional[str] = Query(None),
    verification_status: Optional[PropertyVerificationStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """All listings, including inactive ones."""
    query = db.query(Property)
    if state:
        query = query.filter(Property.state == state)
    if verification_status:
        query = query.filter(Property.verification_status == verification_status)

    total = query.count()
    properties = query.order_by(Property.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return ApiResponse(
        data=PropertyListData(
            properties=[PropertyResponse.from_model(p) for p in properties],
            pagination=Pagination.build(page, limit, total),
        )
    )
