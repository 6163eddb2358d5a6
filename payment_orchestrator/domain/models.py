"""Domain models - enums and pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from payment_orchestrator.utils.date_utils import utcnow


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    BLOCKED = "BLOCKED"
    UNDER_REVIEW = "UNDER_REVIEW"
    CANCELLED = "CANCELLED"


class RecipientType(str, Enum):
    CUSTOMER = "CUSTOMER"
    MERCHANT = "MERCHANT"


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "BANK_TRANSFER"
    QR_CODE = "QR_CODE"
    DIRECT = "DIRECT"
    MANUAL = "MANUAL"


class AdminDecision(str, Enum):
    """Admin adjudication of a payment held UNDER_REVIEW"""

    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class NotificationEvent(str, Enum):
    FRAUD_BLOCKED = "FRAUD_BLOCKED"
    MANUAL_REVIEW = "MANUAL_REVIEW"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    PAYMENT_SUCCESS = "PAYMENT_SUCCESS"
    PAYMENT_CANCELLED = "PAYMENT_CANCELLED"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]


SEVERITY_RANK = {Severity.LOW: 1, Severity.MEDIUM: 2, Severity.HIGH: 3, Severity.CRITICAL: 4}


class FraudDecision(str, Enum):
    ALLOW = "ALLOW"
    REVIEW = "REVIEW"
    BLOCK = "BLOCK"


class ReviewDecision(str, Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class TrustLevel(str, Enum):
    NEW = "NEW"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    TRUSTED = "TRUSTED"


class RuleType(str, Enum):
    VELOCITY = "VELOCITY"
    AMOUNT = "AMOUNT"
    LOCATION = "LOCATION"
    PATTERN = "PATTERN"
    BLACKLIST = "BLACKLIST"
    TIME_WINDOW = "TIME_WINDOW"


class AlertType(str, Enum):
    HIGH_RISK_TRANSACTION = "HIGH_RISK_TRANSACTION"
    SUSPICIOUS_PATTERN = "SUSPICIOUS_PATTERN"
    BLACKLISTED_USER = "BLACKLISTED_USER"
    VELOCITY_EXCEEDED = "VELOCITY_EXCEEDED"
    AMOUNT_ANOMALY = "AMOUNT_ANOMALY"


class AlertStatus(str, Enum):
    OPEN = "OPEN"
    INVESTIGATING = "INVESTIGATING"
    RESOLVED = "RESOLVED"
    FALSE_POSITIVE = "FALSE_POSITIVE"


@dataclass
class Location:
    """Where a transaction was initiated"""

    country: str
    city: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"country": self.country, "city": self.city}


@dataclass
class FraudTransaction:
    """Input to a single fraud evaluation"""

    customer_id: str
    amount: Decimal
    currency: str = "USD"
    payment_id: Optional[str] = None
    merchant_id: Optional[str] = None
    method: Optional[str] = None
    location: Optional[Location] = None
    device_info: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class CheckSnapshot:
    """Prior fraud check for the same customer, as seen by history-based rules"""

    amount: Decimal
    created_at: datetime
    country: Optional[str] = None


@dataclass
class RuleOutcome:
    """Result of evaluating one rule against one transaction"""

    triggered: bool
    reason: str = ""
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class FiredRule:
    """Firing record appended to a fraud check"""

    rule: str
    type: RuleType
    severity: Severity
    impact: int
    details: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule": self.rule,
            "type": self.type.value,
            "severity": self.severity.value,
            "impact": self.impact,
            "details": self.details,
        }


@dataclass
class RiskAssessment:
    """Output of the decision policy"""

    risk_score: int
    risk_level: RiskLevel
    decision: FraudDecision
    rules_fired: List[FiredRule] = field(default_factory=list)


@dataclass
class SettlementResult:
    """Outcome reported by the settlement collaborator"""

    success: bool
    transaction_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class LoyaltyRedemption:
    """Points the sender wants to redeem against a payment"""

    points: int


@dataclass
class PaymentRequest:
    """Client request to move money from a sender to a recipient"""

    sender_id: str
    recipient_id: str
    amount: Decimal
    currency: str = "USD"
    recipient_type: RecipientType = RecipientType.CUSTOMER
    method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    description: Optional[str] = None
    qr_code_id: Optional[str] = None
    location: Optional[Location] = None
    device_info: Optional[Dict[str, Any]] = None
    loyalty_points: Optional[int] = None
