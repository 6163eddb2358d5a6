"""Data access layer for payment and fraud entities"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from payment_orchestrator.domain.models import (
    AlertStatus,
    FraudDecision,
    PaymentMethod,
    PaymentStatus,
    RecipientType,
    TrustLevel,
)
from payment_orchestrator.infrastructure.database.models import (
    BookkeepingJob,
    CustomerRiskProfile,
    FraudAlert,
    FraudCheck,
    FraudRule,
    Payment,
)
from payment_orchestrator.utils.date_utils import utcnow


class PaymentRepository:
    """Repository for payments"""

    def __init__(self, db: Session):
        self.db = db

    def create_payment(
        self,
        sender_id: str,
        recipient_id: str,
        recipient_type: RecipientType,
        amount: Decimal,
        currency: str,
        method: PaymentMethod,
        description: Optional[str] = None,
        qr_code_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Payment:
        """Persist a new PENDING payment with a fresh correlation ID"""
        payment = Payment(
            sender_id=sender_id,
            recipient_id=recipient_id,
            recipient_type=recipient_type,
            amount=amount,
            currency=currency,
            method=method,
            description=description,
            qr_code_id=qr_code_id,
            context=context,
            status=PaymentStatus.PENDING,
            correlation_id=str(uuid.uuid4()),
            retry_count=0,
            manually_approved=False,
        )
        self.db.add(payment)
        self.db.flush()  # Get ID without committing
        return payment

    def get_payment(self, payment_id: uuid.UUID, for_update: bool = False) -> Optional[Payment]:
        """Fetch payment, optionally locking the row for the rest of the transaction"""
        query = self.db.query(Payment).filter(Payment.id == payment_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def list_by_customer(
        self,
        customer_id: str,
        status: Optional[PaymentStatus] = None,
        page: int = 0,
        size: int = 20,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> Tuple[List[Payment], int]:
        """Payments where the customer is sender or recipient, newest first"""
        query = self.db.query(Payment).filter(
            or_(Payment.sender_id == customer_id, Payment.recipient_id == customer_id)
        )
        if status is not None:
            query = query.filter(Payment.status == status)
        if from_date is not None:
            query = query.filter(Payment.created_at >= from_date)
        if to_date is not None:
            query = query.filter(Payment.created_at <= to_date)

        total = query.count()
        items = query.order_by(Payment.created_at.desc()).offset(page * size).limit(size).all()
        return items, total


class FraudCheckRepository:
    """Repository for fraud checks"""

    def __init__(self, db: Session):
        self.db = db

    def create_check(self, **fields: Any) -> FraudCheck:
        """Persist a fraud check record (audit trail)"""
        check = FraudCheck(**fields)
        self.db.add(check)
        self.db.flush()
        return check

    def get_check(self, check_id: uuid.UUID) -> Optional[FraudCheck]:
        return self.db.query(FraudCheck).filter(FraudCheck.check_id == check_id).first()

    def get_recent_for_customer(self, customer_id: str, since: datetime) -> List[FraudCheck]:
        """Customer's checks created at or after since, newest first"""
        return (
            self.db.query(FraudCheck)
            .filter(FraudCheck.customer_id == customer_id, FraudCheck.created_at >= since)
            .order_by(FraudCheck.created_at.desc())
            .all()
        )

    def count_since(self, since: datetime, decision: Optional[FraudDecision] = None) -> int:
        query = self.db.query(FraudCheck).filter(FraudCheck.created_at >= since)
        if decision is not None:
            query = query.filter(FraudCheck.decision == decision)
        return query.count()


class FraudRuleRepository:
    """Repository for fraud rules"""

    def __init__(self, db: Session):
        self.db = db

    def create_rule(self, **fields: Any) -> FraudRule:
        rule = FraudRule(**fields)
        self.db.add(rule)
        self.db.flush()
        return rule

    def get_rule(self, rule_id: uuid.UUID) -> Optional[FraudRule]:
        return self.db.query(FraudRule).filter(FraudRule.rule_id == rule_id).first()

    def get_rule_by_name(self, name: str) -> Optional[FraudRule]:
        return self.db.query(FraudRule).filter(FraudRule.name == name).first()

    def list_rules(self, active_only: bool = False) -> List[FraudRule]:
        query = self.db.query(FraudRule)
        if active_only:
            query = query.filter(FraudRule.is_active.is_(True))
        return query.order_by(FraudRule.created_at.asc()).all()


class RiskProfileRepository:
    """Repository for customer risk profiles"""

    def __init__(self, db: Session):
        self.db = db

    def get_profile(self, customer_id: str, for_update: bool = False) -> Optional[CustomerRiskProfile]:
        query = self.db.query(CustomerRiskProfile).filter(CustomerRiskProfile.customer_id == customer_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def create_profile(self, customer_id: str, base_risk_score: int) -> CustomerRiskProfile:
        profile = CustomerRiskProfile(
            customer_id=customer_id,
            base_risk_score=base_risk_score,
            trust_level=TrustLevel.NEW,
            total_transactions=0,
            total_amount=Decimal("0"),
            fraud_incidents=0,
            is_blacklisted=False,
            last_updated=utcnow(),
        )
        self.db.add(profile)
        self.db.flush()
        return profile


class FraudAlertRepository:
    """Repository for fraud alerts"""

    def __init__(self, db: Session):
        self.db = db

    def create_alert(self, **fields: Any) -> FraudAlert:
        alert = FraudAlert(**fields)
        self.db.add(alert)
        self.db.flush()
        return alert

    def get_alert(self, alert_id: uuid.UUID) -> Optional[FraudAlert]:
        return self.db.query(FraudAlert).filter(FraudAlert.alert_id == alert_id).first()

    def search(
        self,
        filters: Dict[str, Any],
        page: int = 0,
        size: int = 20,
    ) -> Tuple[List[FraudAlert], int]:
        """Filter alerts by any of status, severity, type, customer_id; newest first"""
        query = self.db.query(FraudAlert)
        for column in ("status", "severity", "type", "customer_id"):
            value = filters.get(column)
            if value is not None:
                query = query.filter(getattr(FraudAlert, column) == value)

        total = query.count()
        items = query.order_by(FraudAlert.created_at.desc()).offset(page * size).limit(size).all()
        return items, total

    def count_since(self, since: datetime, status: Optional[AlertStatus] = None) -> int:
        query = self.db.query(FraudAlert).filter(FraudAlert.created_at >= since)
        if status is not None:
            query = query.filter(FraudAlert.status == status)
        return query.count()


class BookkeepingJobRepository:
    """Repository for best-effort bookkeeping jobs"""

    def __init__(self, db: Session):
        self.db = db

    def create_job(self, payment_id: Optional[str], job_type: str, payload: Dict[str, Any]) -> BookkeepingJob:
        job = BookkeepingJob(
            payment_id=payment_id,
            job_type=job_type,
            payload=payload,
            status="pending",
            attempts=0,
        )
        self.db.add(job)
        self.db.flush()
        return job

    def get_job(self, job_id: uuid.UUID) -> Optional[BookkeepingJob]:
        return self.db.query(BookkeepingJob).filter(BookkeepingJob.id == job_id).first()

    def list_for_payment(self, payment_id: str) -> List[BookkeepingJob]:
        return (
            self.db.query(BookkeepingJob)
            .filter(BookkeepingJob.payment_id == payment_id)
            .order_by(BookkeepingJob.created_at.asc())
            .all()
        )
