"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field

from payment_orchestrator.domain.models import (
    AdminDecision,
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


def _to_float(value: Any) -> Any:
    return float(value) if isinstance(value, Decimal) else value


# Monetary amounts leave the API as JSON numbers
Money = Annotated[float, BeforeValidator(_to_float)]


class LocationSchema(BaseModel):
    country: str = Field(..., min_length=2, max_length=3)
    city: Optional[str] = None


# Payments


class PaymentCreateRequest(BaseModel):
    """Request body for POST /v1/payments"""

    sender_id: str = Field(..., min_length=1, description="Paying customer")
    recipient_id: str = Field(..., min_length=1, description="Receiving customer or merchant")
    recipient_type: RecipientType = RecipientType.CUSTOMER
    amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    currency: str = Field("USD", pattern=r"^[A-Z]{3}$")
    method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    description: Optional[str] = Field(None, max_length=500)
    qr_code_id: Optional[str] = None
    loyalty_points: Optional[int] = Field(None, ge=0, description="Points to redeem against the payment")
    location: Optional[LocationSchema] = None
    device_info: Optional[Dict[str, Any]] = None


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    sender_id: str
    recipient_id: str
    recipient_type: RecipientType
    amount: Money
    discount_amount: Optional[Money] = None
    currency: str
    method: PaymentMethod
    description: Optional[str] = None
    status: PaymentStatus
    correlation_id: str
    retry_count: int
    failure_reason: Optional[str] = None
    fraud_analysis_id: Optional[UUID] = None
    qr_code_id: Optional[str] = None
    bank_transaction_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    processed_at: Optional[datetime] = None
    settlement_started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class PaymentPage(BaseModel):
    content: List[PaymentResponse]
    total_elements: int
    total_pages: int
    size: int
    number: int


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class StatusUpdateRequest(BaseModel):
    """Admin decision on a payment held for review"""

    decision: AdminDecision


# Fraud checks


class FraudCheckRequest(BaseModel):
    """Request body for POST /v1/fraud/checks"""

    customer_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    currency: str = Field("USD", pattern=r"^[A-Z]{3}$")
    payment_id: Optional[str] = None
    merchant_id: Optional[str] = None
    method: Optional[PaymentMethod] = None
    location: Optional[LocationSchema] = None
    device_info: Optional[Dict[str, Any]] = None


class FraudCheckResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    check_id: UUID
    payment_id: Optional[str] = None
    customer_id: str
    merchant_id: Optional[str] = None
    amount: Money
    currency: str
    risk_score: int
    risk_level: RiskLevel
    decision: FraudDecision
    reason: Optional[str] = None
    rules_fired: List[Dict[str, Any]]
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias=AliasChoices("check_metadata", "metadata"))
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_decision: Optional[ReviewDecision] = None
    review_notes: Optional[str] = None
    created_at: datetime


class ReviewRequest(BaseModel):
    reviewer_id: str = Field(..., min_length=1)
    decision: ReviewDecision
    notes: str = Field("", max_length=2000)


# Rules


class FraudRuleCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    type: RuleType
    severity: Severity
    score_impact: int = Field(..., ge=1, le=50)
    conditions: Dict[str, Any] = Field(default_factory=dict, description="Parameters for the rule type")
    is_active: bool = True
    created_by: Optional[str] = None


class FraudRuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rule_id: UUID
    name: str
    description: Optional[str] = None
    type: RuleType
    severity: Severity
    score_impact: int
    conditions: Dict[str, Any]
    is_active: bool
    created_by: Optional[str] = None
    created_at: datetime


class RuleActivationRequest(BaseModel):
    is_active: bool


# Alerts


class FraudAlertResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    alert_id: UUID
    type: AlertType
    severity: RiskLevel
    customer_id: str
    payment_id: Optional[str] = None
    fraud_check_id: Optional[UUID] = None
    title: str
    description: str
    status: AlertStatus
    assigned_to: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution: Optional[str] = None
    created_at: datetime


class FraudAlertPage(BaseModel):
    content: List[FraudAlertResponse]
    total_elements: int
    total_pages: int
    size: int
    number: int


class AlertUpdateRequest(BaseModel):
    status: AlertStatus
    resolution: Optional[str] = None
    assignee_id: Optional[str] = None


# Statistics and customers


class FraudStatisticsResponse(BaseModel):
    period: str
    total_checks: int
    blocked_transactions: int
    review_requests: int
    allowed_transactions: int
    block_rate: float
    review_rate: float
    false_positives: int
    accuracy: float


class BlacklistRequest(BaseModel):
    is_blacklisted: bool
    reason: str = ""


class RiskProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    customer_id: str
    base_risk_score: int
    trust_level: TrustLevel
    total_transactions: int
    total_amount: Money
    fraud_incidents: int
    last_incident_at: Optional[datetime] = None
    is_blacklisted: bool
    blacklist_reason: Optional[str] = None
    blacklisted_at: Optional[datetime] = None
