"""SQLAlchemy ORM models for payments, fraud screening and bookkeeping jobs"""

import uuid
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship

from payment_orchestrator.domain.models import (
    AlertStatus,
    AlertType,
    FraudDecision,
    PaymentMethod,
    PaymentStatus,
    RecipientType,
    ReviewDecision,
    RiskLevel,
    RuleType,
    Severity,
    TrustLevel,
)
from payment_orchestrator.utils.date_utils import utcnow

Base = declarative_base()


def _enum(enum_cls):
    return SAEnum(enum_cls, native_enum=False, length=32)


class Payment(Base):
    """Payment owned by the orchestration saga"""

    __tablename__ = "payment"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sender_id = Column(Text, nullable=False, index=True)
    recipient_id = Column(Text, nullable=False, index=True)
    recipient_type = Column(_enum(RecipientType), nullable=False)
    qr_code_id = Column(Text, nullable=True)
    amount = Column(Numeric(15, 2), nullable=False)
    discount_amount = Column(Numeric(15, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="USD")
    method = Column(_enum(PaymentMethod), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(_enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, index=True)
    correlation_id = Column(Text, nullable=False, index=True)
    retry_count = Column(Integer, nullable=False, default=0)
    failure_reason = Column(Text, nullable=True)
    fraud_analysis_id = Column(UUID(as_uuid=True), nullable=True)
    bank_transaction_id = Column(Text, nullable=True, unique=True)
    manually_approved = Column(Boolean, nullable=False, default=False)
    context = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    settlement_started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)


class FraudCheck(Base):
    """One fraud evaluation; immutable apart from the review fields"""

    __tablename__ = "fraud_check"

    check_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    payment_id = Column(Text, nullable=True, index=True)
    customer_id = Column(Text, nullable=False, index=True)
    merchant_id = Column(Text, nullable=True, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    risk_score = Column(Integer, nullable=False)
    risk_level = Column(_enum(RiskLevel), nullable=False, index=True)
    decision = Column(_enum(FraudDecision), nullable=False, index=True)
    reason = Column(Text, nullable=True)
    rules_fired = Column(JSON, nullable=False, default=list)
    check_metadata = Column("metadata", JSON, nullable=True)
    reviewed_by = Column(Text, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    review_decision = Column(_enum(ReviewDecision), nullable=True)
    review_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    alerts = relationship("FraudAlert", back_populates="fraud_check")


class FraudRule(Base):
    """Configured fraud rule; conditions hold the typed condition set as JSON"""

    __tablename__ = "fraud_rule"

    rule_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    type = Column(_enum(RuleType), nullable=False, index=True)
    severity = Column(_enum(Severity), nullable=False, index=True)
    score_impact = Column(Integer, nullable=False)
    conditions = Column(JSON, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_by = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class CustomerRiskProfile(Base):
    """Per-customer mutable risk state"""

    __tablename__ = "customer_risk_profile"

    profile_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id = Column(Text, nullable=False, unique=True)
    base_risk_score = Column(Integer, nullable=False, default=15)
    trust_level = Column(_enum(TrustLevel), nullable=False, default=TrustLevel.NEW, index=True)
    total_transactions = Column(Integer, nullable=False, default=0)
    total_amount = Column(Numeric(15, 2), nullable=False, default=0)
    fraud_incidents = Column(Integer, nullable=False, default=0)
    last_incident_at = Column(DateTime(timezone=True), nullable=True)
    is_blacklisted = Column(Boolean, nullable=False, default=False, index=True)
    blacklist_reason = Column(Text, nullable=True)
    blacklisted_at = Column(DateTime(timezone=True), nullable=True)
    last_updated = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class FraudAlert(Base):
    """Alert raised for HIGH or CRITICAL fraud checks"""

    __tablename__ = "fraud_alert"

    alert_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(_enum(AlertType), nullable=False, index=True)
    severity = Column(_enum(RiskLevel), nullable=False, index=True)
    customer_id = Column(Text, nullable=False, index=True)
    payment_id = Column(Text, nullable=True)
    fraud_check_id = Column(UUID(as_uuid=True), ForeignKey("fraud_check.check_id"), nullable=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    status = Column(_enum(AlertStatus), nullable=False, default=AlertStatus.OPEN, index=True)
    assigned_to = Column(Text, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolution = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    fraud_check = relationship("FraudCheck", back_populates="alerts")


class BookkeepingJob(Base):
    """Best-effort downstream call with retry tracking"""

    __tablename__ = "bookkeeping_job"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    payment_id = Column(Text, nullable=True, index=True)
    job_type = Column(Text, nullable=False)
    payload = Column(JSON, nullable=False)
    status = Column(Text, nullable=False, default="pending")  # pending, retrying, delivered, failed
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
