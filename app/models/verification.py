from datetime import datetime
from sqlalchemy import (
    Column, String, Integer, Text, Enum, ForeignKey, JSON, DateTime, Index, UniqueConstraint, text
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.models.base import Base, BaseModel, enum_values
import enum
import uuid

class VerificationStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    DISPUTED = "disputed"

class VerificationPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

OPEN_STATUSES = (VerificationStatus.PENDING, VerificationStatus.IN_PROGRESS)

# Partial index predicate, must match OPEN_STATUSES
_OPEN_CASE_PREDICATE = text("status IN ('pending', 'in-progress')")

class VerificationCase(BaseModel):
    __tablename__ = "verification_cases"
    __table_args__ = (
        Index(
            "uq_verification_open_case_per_property",
            "property_id",
            unique=True,
            sqlite_where=_OPEN_CASE_PREDICATE,
            postgresql_where=_OPEN_CASE_PREDICATE,
        ),
    )

    property_id = Column(UUID(as_uuid=True), ForeignKey("properties.id"), nullable=False, index=True)
    requested_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    assigned_to_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True, index=True)

    status = Column(
        Enum(VerificationStatus, values_callable=enum_values),
        default=VerificationStatus.PENDING,
        nullable=False,
    )
    priority = Column(
        Enum(VerificationPriority, values_callable=enum_values),
        default=VerificationPriority.MEDIUM,
        nullable=False,
    )

    # Payment
    payment_amount = Column(Integer, nullable=False)
    payment_status = Column(
        Enum(PaymentStatus, values_callable=enum_values),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    payment_reference = Column(String(100), nullable=True, unique=True)
    paid_at = Column(DateTime, nullable=True)

    # Score, written on completion
    score_overall = Column(Integer, default=0, nullable=False)
    score_breakdown = Column(JSON, nullable=True)

    # Findings: land_registry / ownership / legal / physical
    checks = Column(JSON, default=dict)

    # Certificate, issued on completion with a score
    certificate_id = Column(String(32), nullable=True, unique=True)
    certificate_issued_at = Column(DateTime, nullable=True)
    certificate_expires_at = Column(DateTime, nullable=True)

    notes = Column(JSON, default=list)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    property = relationship("Property")
    requested_by = relationship("User", foreign_keys=[requested_by_id])
    assigned_to = relationship("User", foreign_keys=[assigned_to_id])
    timeline = relationship(
        "TimelineEntry",
        back_populates="case",
        order_by="TimelineEntry.sequence",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

class TimelineEntry(Base):
    """One row of a case's audit trail. Rows are only ever inserted."""
    __tablename__ = "verification_timeline"
    __table_args__ = (
        UniqueConstraint("case_id", "sequence", name="uq_verification_timeline_sequence"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    case_id = Column(UUID(as_uuid=True), ForeignKey("verification_cases.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    action = Column(String(100), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    details = Column(Text, nullable=True)

    case = relationship("VerificationCase", back_populates="timeline")
    user = relationship("User")
