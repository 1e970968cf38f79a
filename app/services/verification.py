"""
services/verification.py

The verification workflow: request → pay → assign → inspect → complete.

A `VerificationService` is built per request with the request's session, the
payment gateway and the notification dispatcher. Every mutating operation
appends exactly one timeline entry, commits, and only then triggers its
notifications.

Two guards sit on top of the plain read-check-write flow:

- status changes go through ALLOWED_TRANSITIONS, so a closed case can't be
  reopened by a stray write. Confirming a payment is the one exception: it
  always leaves the case pending;
- `version` is SQLAlchemy's version counter. Callers may pass the version they
  read; a mismatch, or a concurrent flush that got there first, raises
  ConflictError.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import Settings, settings as default_settings
from app.core.exceptions import (
    ConflictError, ForbiddenError, NotFoundError, PaymentError, UnexpectedError, ValidationError
)
from app.models.property import Property, PropertyVerificationStatus
from app.models.user import User, UserRole
from app.models.verification import (
    OPEN_STATUSES, PaymentStatus, TimelineEntry, VerificationCase,
    VerificationPriority, VerificationStatus,
)
from app.services.notifications import NotificationDispatcher
from app.services.payments import PaymentGatewayError, reconcile_payment, to_minor_units

logger = logging.getLogger(__name__)

VERIFICATION_FEES = {
    VerificationPriority.LOW: 25000,
    VerificationPriority.MEDIUM: 50000,
    VerificationPriority.HIGH: 75000,
    VerificationPriority.URGENT: 100000,
}

PAYMENT_INSTRUCTIONS = "Proceed to payment to start verification"

ALLOWED_TRANSITIONS = {
    VerificationStatus.PENDING: {VerificationStatus.IN_PROGRESS, VerificationStatus.REJECTED},
    VerificationStatus.IN_PROGRESS: {
        VerificationStatus.IN_PROGRESS,
        VerificationStatus.COMPLETED,
        VerificationStatus.REJECTED,
        VerificationStatus.DISPUTED,
    },
    VerificationStatus.DISPUTED: {
        VerificationStatus.IN_PROGRESS,
        VerificationStatus.COMPLETED,
        VerificationStatus.REJECTED,
    },
    VerificationStatus.COMPLETED: set(),
    VerificationStatus.REJECTED: set(),
}

CLOSED_STATUSES = (VerificationStatus.COMPLETED, VerificationStatus.REJECTED)

CHECK_KEYS = ("land_registry", "ownership", "legal", "physical")


@dataclass
class VerificationRequestResult:
    case: VerificationCase
    amount: int
    currency: str
    instructions: str = PAYMENT_INSTRUCTIONS


@dataclass
class CasePage:
    items: List[VerificationCase]
    total: int
    page: int
    limit: int


def fee_for(priority: VerificationPriority) -> int:
    return VERIFICATION_FEES[priority]


def format_amount(amount: int, currency: str = "NGN") -> str:
    symbol = "₦" if currency == "NGN" else f"{currency} "
    return f"{symbol}{amount:,}"


class VerificationService:
    def __init__(
        self,
        db: Session,
        gateway=None,
        notifier: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.settings = settings or default_settings
        self.notifier = notifier or NotificationDispatcher(self.settings)

    # ─── Helpers ─────────────────────────────────────────────────────────────

    def _get_case(self, case_id: UUID) -> VerificationCase:
        case = self.db.query(VerificationCase).filter(VerificationCase.id == case_id).first()
        if not case:
            raise NotFoundError("Verification not found")
        return case

    @staticmethod
    def _check_version(case: VerificationCase, version: Optional[int]) -> None:
        if version is not None and version != case.version:
            raise ConflictError("Verification was modified by another request. Reload and try again.")

    @staticmethod
    def _can_work_on(case: VerificationCase, user: User) -> bool:
        return case.assigned_to_id == user.id or user.role == UserRole.ADMIN

    @staticmethod
    def _transition(case: VerificationCase, new_status: VerificationStatus) -> None:
        if new_status not in ALLOWED_TRANSITIONS[case.status]:
            raise ValidationError(
                f"Cannot move verification from {case.status.value} to {new_status.value}"
            )
        case.status = new_status

    @staticmethod
    def _append_timeline(case: VerificationCase, action: str, user: User, details: str) -> None:
        now = datetime.utcnow()
        case.timeline.append(TimelineEntry(
            sequence=len(case.timeline) + 1,
            action=action,
            user_id=user.id,
            timestamp=now,
            details=details,
        ))
        # Any mutation dirties the case row, which bumps its version
        case.updated_at = now

    def _commit(self, conflict_message: str = "Verification was modified by another request") -> None:
        try:
            self.db.commit()
        except (IntegrityError, StaleDataError) as e:
            self.db.rollback()
            logger.warning("Verification write conflict: %s", e)
            raise ConflictError(conflict_message) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Verification write failed")
            raise UnexpectedError() from e

    # ─── Create ──────────────────────────────────────────────────────────────

    def request(
        self,
        user: User,
        property_id: UUID,
        priority: Optional[VerificationPriority] = None,
    ) -> VerificationRequestResult:
        priority = priority or VerificationPriority.MEDIUM

        prop = self.db.query(Property).filter(Property.id == property_id).first()
        if not prop:
            raise NotFoundError("Property not found")

        existing = (
            self.db.query(VerificationCase)
            .filter(
                VerificationCase.property_id == property_id,
                VerificationCase.status.in_(OPEN_STATUSES),
            )
            .first()
        )
        if existing:
            raise ConflictError("Verification already in progress")

        amount = fee_for(priority)
        case = VerificationCase(
            property_id=prop.id,
            requested_by_id=user.id,
            status=VerificationStatus.PENDING,
            priority=priority,
            payment_amount=amount,
            payment_status=PaymentStatus.PENDING,
            checks={},
            notes=[],
            timeline=[],
        )
        self._append_timeline(
            case, "Verification requested", user, f"{priority.value} priority verification requested"
        )
        self.db.add(case)
        self._commit("Verification already in progress")

        logger.info("Verification %s requested for property %s (%s)", case.id, prop.id, priority.value)
        return VerificationRequestResult(case=case, amount=amount, currency=prop.currency)

    # ─── Payment ─────────────────────────────────────────────────────────────

    def _payable_case(self, case_id: UUID, user: User, version: Optional[int] = None) -> VerificationCase:
        case = self._get_case(case_id)
        if case.requested_by_id != user.id:
            raise ForbiddenError()
        self._check_version(case, version)
        if case.payment_status != PaymentStatus.PENDING:
            raise ConflictError(f"Payment already {case.payment_status.value}")
        if case.status in CLOSED_STATUSES:
            raise ValidationError(f"Verification is already {case.status.value}")
        return case

    def initialize_payment(self, case_id: UUID, user: User) -> Dict[str, Any]:
        case = self._payable_case(case_id, user)
        reference = f"PV-{case.id.hex[:12]}-{secrets.token_hex(3)}".upper()
        minor_amount = to_minor_units(case.payment_amount)
        try:
            data = self.gateway.initialize_transaction(
                email=user.email,
                amount=minor_amount,
                reference=reference,
                metadata={"verification_id": str(case.id)},
            )
        except PaymentGatewayError as e:
            logger.error("Payment init error for verification %s: %s", case.id, e)
            raise PaymentError("Could not initialize payment") from e

        return {
            "authorization_url": data.get("authorization_url"),
            "access_code": data.get("access_code"),
            "reference": data.get("reference") or reference,
            "amount": case.payment_amount,
        }

    def submit_payment(
        self,
        case_id: UUID,
        user: User,
        reference: str,
        version: Optional[int] = None,
    ) -> VerificationCase:
        case = self._payable_case(case_id, user, version)

        result = reconcile_payment(self.gateway, reference, case.payment_amount)
        if not result.success:
            raise PaymentError("Payment verification failed")

        # Payment puts the case back in the queue. This is a payment effect, not a
        # workflow transition, so it skips ALLOWED_TRANSITIONS; the assignee is kept.
        case.status = VerificationStatus.PENDING
        case.payment_status = PaymentStatus.PAID
        case.payment_reference = reference.strip()
        case.paid_at = datetime.utcnow()
        self._append_timeline(
            case,
            "Payment confirmed",
            user,
            f"Payment of {format_amount(case.payment_amount, case.property.currency)} confirmed",
        )
        self._commit("Payment reference already used")

        logger.info("Verification %s paid (ref %s)", case.id, case.payment_reference)
        self.notifier.notify_admin(
            "Verification payment confirmed",
            f"New verification payment confirmed. ID: {case.id}",
        )
        return case

    def refund(
        self,
        case_id: UUID,
        admin: User,
        reason: Optional[str] = None,
        version: Optional[int] = None,
    ) -> VerificationCase:
        if admin.role != UserRole.ADMIN:
            raise ForbiddenError()
        case = self._get_case(case_id)
        self._check_version(case, version)
        if case.payment_status not in (PaymentStatus.PENDING, PaymentStatus.PAID):
            raise ConflictError(f"Payment already {case.payment_status.value}")

        case.payment_status = PaymentStatus.REFUNDED
        self._append_timeline(
            case,
            "Payment refunded",
            admin,
            reason or f"Refund of {format_amount(case.payment_amount, case.property.currency)}",
        )
        self._commit()

        logger.info("Verification %s payment refunded", case.id)
        self.notifier.send_email(
            case.requested_by.email,
            "Verification payment refunded",
            f"Your payment for verification {case.id} has been refunded.",
        )
        return case

    # ─── Workflow ────────────────────────────────────────────────────────────

    def assign(
        self,
        case_id: UUID,
        admin: User,
        agent_id: UUID,
        version: Optional[int] = None,
    ) -> VerificationCase:
        if admin.role != UserRole.ADMIN:
            raise ForbiddenError()
        case = self._get_case(case_id)
        self._check_version(case, version)

        agent = self.db.query(User).filter(User.id == agent_id).first()
        if not agent:
            raise NotFoundError("Agent not found")
        if agent.role not in (UserRole.AGENT, UserRole.ADMIN):
            raise ValidationError("Verifications can only be assigned to agents")

        self._transition(case, VerificationStatus.IN_PROGRESS)
        case.assigned_to_id = agent.id
        self._append_timeline(case, "Assigned to agent", admin, f"Assigned to agent {agent.full_name} ({agent.id})")
        self._commit()

        logger.info("Verification %s assigned to %s", case.id, agent.id)
        self.notifier.send_sms(
            agent.phone_number,
            f"You have been assigned property verification {case.id}.",
        )
        return case

    def update_status(
        self,
        case_id: UUID,
        user: User,
        status: VerificationStatus,
        notes: Optional[str] = None,
        score: Optional[int] = None,
        breakdown: Optional[Dict[str, int]] = None,
        version: Optional[int] = None,
    ) -> VerificationCase:
        case = self._get_case(case_id)
        if not self._can_work_on(case, user):
            raise ForbiddenError()
        self._check_version(case, version)

        completing = status == VerificationStatus.COMPLETED
        if (score is not None or breakdown is not None) and not completing:
            raise ValidationError("A score can only be recorded when completing a verification")
        if breakdown is not None and score is None:
            raise ValidationError("A score breakdown needs an overall score")
        if score is not None and not 0 <= score <= 100:
            raise ValidationError("Score must be between 0 and 100")

        previous = case.status
        self._transition(case, status)

        if notes:
            case.notes = [*(case.notes or []), notes]

        if completing and score is not None:
            now = datetime.utcnow()
            case.score_overall = score
            case.score_breakdown = breakdown
            case.certificate_id = f"PV-{now:%Y%m%d}-{secrets.token_hex(4).upper()}"
            case.certificate_issued_at = now
            case.certificate_expires_at = now + timedelta(days=self.settings.CERTIFICATE_VALIDITY_DAYS)

            prop = case.property
            prop.verification_status = PropertyVerificationStatus.VERIFIED
            prop.verification_score = score
            prop.last_verified = now
            prop.verified_by_id = user.id

        self._append_timeline(case, f"Status updated to {status.value}", user, notes or "Status updated")
        self._commit()

        logger.info("Verification %s: %s -> %s", case.id, previous.value, status.value)
        if status in CLOSED_STATUSES:
            message = f"Your verification for '{case.property.title}' is {status.value}."
            if completing and score is not None:
                message += f" Score: {score}/100. Certificate: {case.certificate_id}."
            self.notifier.send_email(case.requested_by.email, "Property verification update", message)
        return case

    def update_checks(
        self,
        case_id: UUID,
        user: User,
        checks: Dict[str, Dict[str, Any]],
        version: Optional[int] = None,
    ) -> VerificationCase:
        case = self._get_case(case_id)
        if not self._can_work_on(case, user):
            raise ForbiddenError()
        self._check_version(case, version)
        if case.status in CLOSED_STATUSES:
            raise ValidationError(f"Verification is already {case.status.value}")

        updates = {k: v for k, v in checks.items() if k in CHECK_KEYS and v is not None}
        if not updates:
            raise ValidationError("No checks supplied")

        merged = dict(case.checks or {})
        for key, value in updates.items():
            merged[key] = {**merged.get(key, {}), **value}
        case.checks = merged
        self._append_timeline(case, "Checks updated", user, ", ".join(sorted(updates)))
        self._commit()
        return case

    # ─── Reads ───────────────────────────────────────────────────────────────

    def get(self, case_id: UUID, user: User) -> VerificationCase:
        case = self._get_case(case_id)
        has_access = (
            case.requested_by_id == user.id
            or case.assigned_to_id == user.id
            or user.role == UserRole.ADMIN
        )
        if not has_access:
            raise ForbiddenError()
        return case

    def list_for_requester(self, user: User) -> List[VerificationCase]:
        return (
            self.db.query(VerificationCase)
            .filter(VerificationCase.requested_by_id == user.id)
            .order_by(VerificationCase.created_at.desc())
            .all()
        )

    def list(
        self,
        user: User,
        status: Optional[VerificationStatus] = None,
        priority: Optional[VerificationPriority] = None,
        page: int = 1,
        limit: int = 20,
    ) -> CasePage:
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")

        query = self.db.query(VerificationCase)
        if status:
            query = query.filter(VerificationCase.status == status)
        if priority:
            query = query.filter(VerificationCase.priority == priority)
        if user.role == UserRole.AGENT:
            query = query.filter(VerificationCase.assigned_to_id == user.id)
        elif user.role != UserRole.ADMIN:
            raise ForbiddenError()

        total = query.count()
        items = (
            query.order_by(VerificationCase.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return CasePage(items=items, total=total, page=page, limit=limit)
