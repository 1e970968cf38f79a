from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from uuid import UUID
from datetime import datetime
from app.models.verification import PaymentStatus, VerificationPriority, VerificationStatus
from app.schemas.common import Pagination


# ─── Requests ─────────────────────────────────────────────────────────────────

class VerificationRequestCreate(BaseModel):
    property_id: UUID
    priority: VerificationPriority = VerificationPriority.MEDIUM


class PaymentSubmit(BaseModel):
    payment_reference: str = Field(..., min_length=1, max_length=100)
    version: Optional[int] = None


class AssignRequest(BaseModel):
    agent_id: UUID
    version: Optional[int] = None


class ScoreBreakdown(BaseModel):
    documentation: Optional[int] = Field(None, ge=0, le=100)
    ownership: Optional[int] = Field(None, ge=0, le=100)
    legal: Optional[int] = Field(None, ge=0, le=100)
    physical: Optional[int] = Field(None, ge=0, le=100)


class StatusUpdate(BaseModel):
    status: VerificationStatus
    notes: Optional[str] = Field(None, max_length=2000)
    score: Optional[int] = Field(None, ge=0, le=100)
    breakdown: Optional[ScoreBreakdown] = None
    version: Optional[int] = None


class LandRegistryCheck(BaseModel):
    status: Optional[str] = None
    reference: Optional[str] = None
    verified_at: Optional[datetime] = None


class OwnershipCheck(BaseModel):
    verified: Optional[bool] = None
    issues: Optional[List[str]] = None


class LegalCheck(BaseModel):
    status: Optional[str] = None
    issues: Optional[List[str]] = None


class PhysicalCheck(BaseModel):
    inspected: Optional[bool] = None
    inspection_date: Optional[datetime] = None
    report: Optional[str] = None


class ChecksUpdate(BaseModel):
    land_registry: Optional[LandRegistryCheck] = None
    ownership: Optional[OwnershipCheck] = None
    legal: Optional[LegalCheck] = None
    physical: Optional[PhysicalCheck] = None
    version: Optional[int] = None

    def findings(self) -> Dict[str, Dict[str, Any]]:
        # Only what the caller sent; omitted fields keep their recorded value
        return self.model_dump(
            mode="json",
            exclude={"version"},
            exclude_unset=True,
            exclude_none=True,
        )


class RefundRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)
    version: Optional[int] = None


# ─── Responses ────────────────────────────────────────────────────────────────

class PaymentInfo(BaseModel):
    amount: int
    status: PaymentStatus
    reference: Optional[str] = None
    paid_at: Optional[datetime] = None


class ScoreInfo(BaseModel):
    overall: int = 0
    breakdown: Optional[Dict[str, Optional[int]]] = None


class CertificateInfo(BaseModel):
    id: str
    issued_at: datetime
    expires_at: Optional[datetime] = None


class TimelineEntryResponse(BaseModel):
    sequence: int
    action: str
    user: Optional[UUID] = None
    timestamp: datetime
    details: Optional[str] = None


class PropertyRef(BaseModel):
    id: UUID
    title: str
    address: str
    price: float
    currency: str


class VerificationCaseResponse(BaseModel):
    id: UUID
    property: PropertyRef
    requested_by: UUID
    assigned_to: Optional[UUID] = None
    status: VerificationStatus
    priority: VerificationPriority
    payment: PaymentInfo
    score: ScoreInfo
    checks: Dict[str, Any] = {}
    certificate: Optional[CertificateInfo] = None
    notes: List[str] = []
    timeline: List[TimelineEntryResponse] = []
    version: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, case) -> "VerificationCaseResponse":
        prop = case.property
        certificate = None
        if case.certificate_id:
            certificate = CertificateInfo(
                id=case.certificate_id,
                issued_at=case.certificate_issued_at,
                expires_at=case.certificate_expires_at,
            )
        return cls(
            id=case.id,
            property=PropertyRef(
                id=prop.id, title=prop.title, address=prop.address, price=prop.price, currency=prop.currency
            ),
            requested_by=case.requested_by_id,
            assigned_to=case.assigned_to_id,
            status=case.status,
            priority=case.priority,
            payment=PaymentInfo(
                amount=case.payment_amount,
                status=case.payment_status,
                reference=case.payment_reference,
                paid_at=case.paid_at,
            ),
            score=ScoreInfo(overall=case.score_overall or 0, breakdown=case.score_breakdown),
            checks=case.checks or {},
            certificate=certificate,
            notes=case.notes or [],
            timeline=[
                TimelineEntryResponse(
                    sequence=entry.sequence,
                    action=entry.action,
                    user=entry.user_id,
                    timestamp=entry.timestamp,
                    details=entry.details,
                )
                for entry in case.timeline
            ],
            version=case.version,
            created_at=case.created_at,
            updated_at=case.updated_at,
        )


class VerificationData(BaseModel):
    verification: VerificationCaseResponse


class VerificationRequestData(VerificationData):
    payment_amount: int
    currency: str
    payment_instructions: str


class VerificationListData(BaseModel):
    verifications: List[VerificationCaseResponse]


class VerificationPageData(VerificationListData):
    pagination: Pagination


class PaymentInitData(BaseModel):
    authorization_url: Optional[str] = None
    access_code: Optional[str] = None
    reference: str
    amount: int
