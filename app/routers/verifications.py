from fastapi import APIRouter, Depends, Query, status
from typing import Optional
from uuid import UUID
from app.api.deps import get_current_active_user, require_admin, require_agent_or_admin, get_verification_service
from app.models.user import User
from app.models.verification import VerificationPriority, VerificationStatus
from app.schemas.common import ApiResponse, Pagination
from app.schemas.verification import (
    AssignRequest, ChecksUpdate, PaymentInitData, PaymentSubmit, RefundRequest, StatusUpdate,
    VerificationCaseResponse, VerificationData, VerificationListData, VerificationPageData,
    VerificationRequestCreate, VerificationRequestData,
)
from app.services.verification import VerificationService

router = APIRouter(prefix="/verifications", tags=["Verifications"])


def _case_data(case) -> VerificationData:
    return VerificationData(verification=VerificationCaseResponse.from_model(case))


# ─── Request ──────────────────────────────────────────────────────────────────

@router.post(
    "/request",
    response_model=ApiResponse[VerificationRequestData],
    status_code=status.HTTP_201_CREATED,
)
async def request_verification(
    body: VerificationRequestCreate,
    current_user: User = Depends(get_current_active_user),
    service: VerificationService = Depends(get_verification_service),
):
    """Open a verification case for a property. The fee depends on priority."""
    result = service.request(current_user, body.property_id, body.priority)
    return ApiResponse(
        message="Verification request created",
        data=VerificationRequestData(
            verification=VerificationCaseResponse.from_model(result.case),
            payment_amount=result.amount,
            currency=result.currency,
            payment_instructions=result.instructions,
        ),
    )


# ─── Payment ──────────────────────────────────────────────────────────────────

@router.post("/{verification_id}/payment/initialize", response_model=ApiResponse[PaymentInitData])
def initialize_payment(
    verification_id: UUID,
    current_user: User = Depends(get_current_active_user),
    service: VerificationService = Depends(get_verification_service),
):
    """Start a gateway checkout for the case fee. Requester only."""
    data = service.initialize_payment(verification_id, current_user)
    return ApiResponse(message="Payment initialized", data=PaymentInitData(**data))


@router.post("/{verification_id}/payment", response_model=ApiResponse[VerificationData])
def submit_payment(
    verification_id: UUID,
    body: PaymentSubmit,
    current_user: User = Depends(get_current_active_user),
    service: VerificationService = Depends(get_verification_service),
):
    """Confirm a payment reference against the gateway. Requester only."""
    case = service.submit_payment(verification_id, current_user, body.payment_reference, body.version)
    return ApiResponse(message="Payment confirmed", data=_case_data(case))


@router.post("/{verification_id}/refund", response_model=ApiResponse[VerificationData])
async def refund_payment(
    verification_id: UUID,
    body: RefundRequest,
    current_user: User = Depends(require_admin),
    service: VerificationService = Depends(get_verification_service),
):
    case = service.refund(verification_id, current_user, body.reason, body.version)
    return ApiResponse(message="Payment refunded", data=_case_data(case))


# ─── Reads ────────────────────────────────────────────────────────────────────

@router.get("/my-verifications", response_model=ApiResponse[VerificationListData])
async def my_verifications(
    current_user: User = Depends(get_current_active_user),
    service: VerificationService = Depends(get_verification_service),
):
    cases = service.list_for_requester(current_user)
    return ApiResponse(
        data=VerificationListData(verifications=[VerificationCaseResponse.from_model(c) for c in cases])
    )


@router.get("/", response_model=ApiResponse[VerificationPageData])
async def list_verifications(
    status_filter: Optional[VerificationStatus] = Query(None, alias="status"),
    priority: Optional[VerificationPriority] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(require_agent_or_admin),
    service: VerificationService = Depends(get_verification_service),
):
    """Agents see cases assigned to them; admins see everything."""
    result = service.list(current_user, status_filter, priority, page, limit)
    return ApiResponse(
        data=VerificationPageData(
            verifications=[VerificationCaseResponse.from_model(c) for c in result.items],
            pagination=Pagination.build(page, limit, result.total),
        )
    )


@router.get("/{verification_id}", response_model=ApiResponse[VerificationData])
async def get_verification(
    verification_id: UUID,
    current_user: User = Depends(get_current_active_user),
    service: VerificationService = Depends(get_verification_service),
):
    """Visible to the requester, the assigned agent and admins."""
    case = service.get(verification_id, current_user)
    return ApiResponse(data=_case_data(case))


# ─── Workflow ─────────────────────────────────────────────────────────────────

@router.post("/{verification_id}/assign", response_model=ApiResponse[VerificationData])
async def assign_verification(
    verification_id: UUID,
    body: AssignRequest,
    current_user: User = Depends(require_admin),
    service: VerificationService = Depends(get_verification_service),
):
    case = service.assign(verification_id, current_user, body.agent_id, body.version)
    return ApiResponse(message="Assigned successfully", data=_case_data(case))


@router.put("/{verification_id}/status", response_model=ApiResponse[VerificationData])
async def update_verification_status(
    verification_id: UUID,
    body: StatusUpdate,
    current_user: User = Depends(require_agent_or_admin),
    service: VerificationService = Depends(get_verification_service),
):
    """
    Advance the workflow. Completing with a score also marks the property as
    verified with that score.
    """
    breakdown = body.breakdown.model_dump() if body.breakdown else None
    case = service.update_status(
        verification_id,
        current_user,
        body.status,
        notes=body.notes,
        score=body.score,
        breakdown=breakdown,
        version=body.version,
    )
    return ApiResponse(message="Status updated", data=_case_data(case))


@router.put("/{verification_id}/checks", response_model=ApiResponse[VerificationData])
async def update_verification_checks(
    verification_id: UUID,
    body: ChecksUpdate,
    current_user: User = Depends(require_agent_or_admin),
    service: VerificationService = Depends(get_verification_service),
):
    """Record land registry, ownership, legal or physical inspection findings."""
    case = service.update_checks(verification_id, current_user, body.findings(), body.version)
    return ApiResponse(message="Checks updated", data=_case_data(case))
