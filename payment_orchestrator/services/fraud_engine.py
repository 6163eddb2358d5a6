"""
Fraud risk scoring engine.

Turns the active rule set plus the customer's risk profile into a scored,
persisted FraudCheck, raises alerts for HIGH/CRITICAL outcomes and feeds the
outcome back into the profile. The whole evaluation for one customer runs
under that customer's profile lock, so concurrent checks never lose a
profile update and velocity rules see each other's records.
"""

import logging
import math
import time
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from payment_orchestrator.domain.exceptions import InvalidOperationError, NotFoundError, ValidationError
from payment_orchestrator.domain.models import (
    AlertStatus,
    AlertType,
    CheckSnapshot,
    FiredRule,
    FraudDecision,
    FraudTransaction,
    ReviewDecision,
    RiskAssessment,
    RiskLevel,
    RuleType,
    Severity,
)
from payment_orchestrator.domain.rules import (
    RuleContext,
    dump_conditions,
    evaluate_rule,
    parse_conditions,
    required_lookback,
)
from payment_orchestrator.domain.scoring import assess, blacklisted_assessment
from payment_orchestrator.infrastructure.database.models import (
    CustomerRiskProfile,
    FraudAlert,
    FraudCheck,
    FraudRule,
)
from payment_orchestrator.infrastructure.database.repositories import (
    FraudAlertRepository,
    FraudCheckRepository,
    FraudRuleRepository,
)
from payment_orchestrator.infrastructure.observability.logging import log_fraud_decision
from payment_orchestrator.infrastructure.observability.metrics import (
    fraud_rule_errors_counter,
    record_fraud_decision,
)
from payment_orchestrator.services.risk_profiles import RiskProfileStore
from payment_orchestrator.utils.date_utils import as_utc, utcnow
from payment_orchestrator.utils.identifiers import parse_uuid

logger = logging.getLogger(__name__)

MIN_SCORE_IMPACT = 1
MAX_SCORE_IMPACT = 50

ALERT_TYPES = {
    RiskLevel.HIGH: AlertType.HIGH_RISK_TRANSACTION,
    RiskLevel.CRITICAL: AlertType.SUSPICIOUS_PATTERN,
}


class FraudEngine:
    """Fraud screening operations over one database session"""

    def __init__(self, db: Session, profiles: Optional[RiskProfileStore] = None):
        self.db = db
        self.profiles = profiles or RiskProfileStore(db)
        self.checks = FraudCheckRepository(db)
        self.rules = FraudRuleRepository(db)
        self.alerts = FraudAlertRepository(db)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(self, transaction: FraudTransaction) -> FraudCheck:
        """
        Score a transaction and persist the resulting FraudCheck.

        Flow:
        1. Load or lazily create the customer's risk profile
        2. Blacklisted customer: 100 / CRITICAL / BLOCK, no rules, no alert
        3. Evaluate every active rule, highest severity first
        4. Apply the decision policy to the clamped score
        5. Persist the check, raise an alert for HIGH / CRITICAL
        6. Feed the outcome back into the profile
        """
        start_time = time.time()

        with self.profiles.locked(transaction.customer_id):
            try:
                check = self._evaluate_locked(transaction)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        duration_ms = (time.time() - start_time) * 1000
        record_fraud_decision(check.decision.value, check.risk_level.value, check.risk_score)
        log_fraud_decision(
            str(check.check_id),
            check.customer_id,
            check.risk_score,
            check.risk_level.value,
            check.decision.value,
            duration_ms,
        )
        return check

    def _evaluate_locked(self, txn: FraudTransaction) -> FraudCheck:
        profile = self.profiles.get_or_create(txn.customer_id)

        # Blacklist short-circuit skips rule evaluation, alerting and the profile update
        if profile.is_blacklisted:
            assessment = blacklisted_assessment()
            assessment.rules_fired = [
                FiredRule(
                    rule="BLACKLIST_CHECK",
                    type=RuleType.BLACKLIST,
                    severity=Severity.CRITICAL,
                    impact=0,
                    details={"blacklist_reason": profile.blacklist_reason},
                )
            ]
            return self._persist_check(txn, assessment, f"Customer is blacklisted: {profile.blacklist_reason}")

        fired, reasons = self._run_rules(txn, profile)
        assessment = assess(profile.base_risk_score, fired)
        check = self._persist_check(txn, assessment, "; ".join(reasons) or None)

        if assessment.risk_level in ALERT_TYPES:
            self._raise_alert(check)

        self.profiles.record_transaction(profile, txn.amount, blocked=assessment.decision == FraudDecision.BLOCK)
        return check

    def _active_rules(self) -> List[Tuple[FraudRule, Any]]:
        """Active rules with parsed conditions, highest severity first"""
        parsed = []
        for rule in self.rules.list_rules(active_only=True):
            try:
                parsed.append((rule, parse_conditions(rule.conditions)))
            except ValidationError as e:
                fraud_rule_errors_counter.labels(rule_type=rule.type.value).inc()
                logger.error(f"Skipping rule {rule.name} with unreadable conditions: {e}")
        parsed.sort(key=lambda item: Severity(item[0].severity).rank, reverse=True)
        return parsed

    def _run_rules(self, txn: FraudTransaction, profile: CustomerRiskProfile) -> Tuple[List[FiredRule], List[str]]:
        rules = self._active_rules()
        ctx = RuleContext(
            transaction=txn,
            history=self._load_history(txn, [cond for _, cond in rules]),
            customer_blacklisted=profile.is_blacklisted,
            blacklist_reason=profile.blacklist_reason,
        )

        fired: List[FiredRule] = []
        reasons: List[str] = []
        for rule, conditions in rules:
            try:
                outcome = evaluate_rule(conditions, ctx)
            except Exception:
                # A failing rule counts as not triggered; the check goes on
                fraud_rule_errors_counter.labels(rule_type=rule.type.value).inc()
                logger.exception(f"Error evaluating rule {rule.name}")
                continue

            if outcome.triggered:
                fired.append(
                    FiredRule(
                        rule=rule.name,
                        type=RuleType(rule.type),
                        severity=Severity(rule.severity),
                        impact=rule.score_impact,
                        details=outcome.details,
                    )
                )
                reasons.append(outcome.reason)
        return fired, reasons

    def _load_history(self, txn: FraudTransaction, conditions: List[Any]) -> List[CheckSnapshot]:
        if not conditions:
            return []
        since = as_utc(txn.timestamp) - required_lookback(conditions)
        snapshots = []
        for check in self.checks.get_recent_for_customer(txn.customer_id, since):
            location = (check.check_metadata or {}).get("location") or {}
            snapshots.append(
                CheckSnapshot(
                    amount=Decimal(check.amount),
                    created_at=as_utc(check.created_at),
                    country=location.get("country"),
                )
            )
        return snapshots

    def _persist_check(self, txn: FraudTransaction, assessment: RiskAssessment, reason: Optional[str]) -> FraudCheck:
        return self.checks.create_check(
            payment_id=txn.payment_id,
            customer_id=txn.customer_id,
            merchant_id=txn.merchant_id,
            amount=txn.amount,
            currency=txn.currency,
            risk_score=assessment.risk_score,
            risk_level=assessment.risk_level,
            decision=assessment.decision,
            reason=reason,
            rules_fired=[rule.to_dict() for rule in assessment.rules_fired],
            check_metadata={
                "location": txn.location.to_dict() if txn.location else None,
                "device_info": txn.device_info,
                "method": txn.method,
                "evaluated_at": utcnow().isoformat(),
            },
            created_at=utcnow(),
        )

    def _raise_alert(self, check: FraudCheck) -> FraudAlert:
        level = RiskLevel(check.risk_level)
        alert = self.alerts.create_alert(
            type=ALERT_TYPES[level],
            severity=level,
            customer_id=check.customer_id,
            payment_id=check.payment_id,
            fraud_check_id=check.check_id,
            title=f"{level.value} Risk Transaction Detected",
            description=f"Transaction flagged with risk score {check.risk_score}. Reason: {check.reason}",
            status=AlertStatus.OPEN,
            created_at=utcnow(),
        )
        logger.warning(
            "Fraud alert created",
            extra={"alert_id": str(alert.alert_id), "customer_id": check.customer_id},
        )
        return alert

    # ------------------------------------------------------------------
    # Human review
    # ------------------------------------------------------------------

    def get_check(self, check_id: Union[str, uuid.UUID]) -> FraudCheck:
        check = self.checks.get_check(parse_uuid(check_id, "fraud check ID"))
        if check is None:
            raise NotFoundError("Fraud check not found")
        return check

    def review(
        self,
        check_id: Union[str, uuid.UUID],
        reviewer_id: str,
        decision: ReviewDecision,
        notes: str = "",
    ) -> FraudCheck:
        """
        Record a human adjudication on a fraud check.

        A REJECTED review also counts as a fraud incident on the customer's profile.

        Raises:
            NotFoundError: Unknown check
            InvalidOperationError: Check already reviewed
        """
        check = self.get_check(check_id)

        with self.profiles.locked(check.customer_id):
            try:
                # Re-read under the lock so concurrent reviews see each other
                self.db.refresh(check, with_for_update=True)
                if check.review_decision is not None:
                    raise InvalidOperationError("Fraud check has already been reviewed")

                check.reviewed_by = reviewer_id
                check.reviewed_at = utcnow()
                check.review_decision = decision
                check.review_notes = notes
                if decision == ReviewDecision.REJECTED:
                    self.profiles.record_incident(self.profiles.get_or_create(check.customer_id))
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info(f"Fraud check {check.check_id} reviewed by {reviewer_id}: {decision.value}")
        return check

    # ------------------------------------------------------------------
    # Rule management
    # ------------------------------------------------------------------

    def create_rule(
        self,
        name: str,
        severity: Severity,
        score_impact: int,
        conditions: Any,
        description: Optional[str] = None,
        created_by: Optional[str] = None,
        is_active: bool = True,
    ) -> FraudRule:
        """
        Register a rule; its type is the tag of its condition set.

        Raises:
            ValidationError: Impact out of range or invalid conditions
            InvalidOperationError: Rule name already taken
        """
        if not MIN_SCORE_IMPACT <= score_impact <= MAX_SCORE_IMPACT:
            raise ValidationError(f"score_impact must be within {MIN_SCORE_IMPACT}-{MAX_SCORE_IMPACT}")
        parsed = parse_conditions(conditions)

        if self.rules.get_rule_by_name(name) is not None:
            raise InvalidOperationError(f"Fraud rule named {name!r} already exists")

        rule = self.rules.create_rule(
            name=name,
            description=description,
            type=parsed.rule_type,
            severity=Severity(severity),
            score_impact=score_impact,
            conditions=dump_conditions(parsed),
            is_active=is_active,
            created_by=created_by,
            created_at=utcnow(),
        )
        self.db.commit()
        logger.info(f"Fraud rule {name} created", extra={"rule_type": parsed.rule_type.value})
        return rule

    def list_rules(self, active_only: bool = False) -> List[FraudRule]:
        return self.rules.list_rules(active_only=active_only)

    def set_rule_active(self, rule_id: Union[str, uuid.UUID], is_active: bool) -> FraudRule:
        rule = self.rules.get_rule(parse_uuid(rule_id, "rule ID"))
        if rule is None:
            raise NotFoundError("Fraud rule not found")
        rule.is_active = is_active
        self.db.commit()
        return rule

    # ------------------------------------------------------------------
    # Alerts and reporting
    # ------------------------------------------------------------------

    def get_alerts(
        self,
        status: Optional[AlertStatus] = None,
        severity: Optional[RiskLevel] = None,
        type: Optional[AlertType] = None,
        customer_id: Optional[str] = None,
        page: int = 0,
        size: int = 20,
    ) -> Dict[str, Any]:
        """Paginated alert search, newest first"""
        filters = {"status": status, "severity": severity, "type": type, "customer_id": customer_id}
        alerts, total = self.alerts.search(filters, page=page, size=size)
        return {
            "content": alerts,
            "total_elements": total,
            "total_pages": math.ceil(total / size) if size else 0,
            "size": size,
            "number": page,
        }

    def update_alert_status(
        self,
        alert_id: Union[str, uuid.UUID],
        status: AlertStatus,
        resolution: Optional[str] = None,
        assignee_id: Optional[str] = None,
    ) -> FraudAlert:
        alert = self.alerts.get_alert(parse_uuid(alert_id, "alert ID"))
        if alert is None:
            raise NotFoundError("Fraud alert not found")

        alert.status = status
        if assignee_id:
            alert.assigned_to = assignee_id
        if status == AlertStatus.RESOLVED:
            alert.resolved_at = utcnow()
            alert.resolution = resolution
        elif status == AlertStatus.FALSE_POSITIVE:
            alert.resolved_at = utcnow()
            alert.resolution = resolution or "Marked as false positive"
        self.db.commit()
        return alert

    def get_statistics(self, days: int = 30) -> Dict[str, Any]:
        """
        Screening outcomes over the trailing window.

        Rates are percentages with two decimals; accuracy treats every alert
        marked FALSE_POSITIVE as a wrong call.
        """
        if days <= 0:
            raise ValidationError("days must be positive")
        since = utcnow() - timedelta(days=days)

        total_checks = self.checks.count_since(since)
        blocked = self.checks.count_since(since, FraudDecision.BLOCK)
        reviews = self.checks.count_since(since, FraudDecision.REVIEW)
        false_positives = self.alerts.count_since(since, AlertStatus.FALSE_POSITIVE)

        def rate(count: int) -> float:
            return round(count / total_checks * 100, 2) if total_checks else 0.0

        return {
            "period": f"{days} days",
            "total_checks": total_checks,
            "blocked_transactions": blocked,
            "review_requests": reviews,
            "allowed_transactions": total_checks - blocked - reviews,
            "block_rate": rate(blocked),
            "review_rate": rate(reviews),
            "false_positives": false_positives,
            "accuracy": rate(total_checks - false_positives) if total_checks else 100.0,
        }

    def update_customer_blacklist(self, customer_id: str, is_blacklisted: bool, reason: str = "") -> CustomerRiskProfile:
        """Blacklist or whitelist a customer through the profile store"""
        with self.profiles.locked(customer_id):
            try:
                profile = self.profiles.get_or_create(customer_id)
                if is_blacklisted:
                    self.profiles.blacklist(profile, reason)
                else:
                    self.profiles.whitelist(profile)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
        return profile
