"""Unit tests for the fraud risk scoring engine"""

import threading
import uuid
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.orm import Session
from payment_orchestrator.domain.exceptions import InvalidOperationError, NotFoundError, ValidationError
from payment_orchestrator.domain.models import (
    AlertStatus,
    AlertType,
    FraudDecision,
    Location,
    ReviewDecision,
    RiskLevel,
    Severity,
)
from payment_orchestrator.infrastructure.database.models import CustomerRiskProfile, FraudAlert, FraudCheck
from payment_orchestrator.services.fraud_engine import FraudEngine


def profile_of(db: Session, customer_id: str) -> CustomerRiskProfile:
    db.expire_all()
    return db.query(CustomerRiskProfile).filter_by(customer_id=customer_id).one()


def test_no_rules_allows_with_base_score(engine: FraudEngine, make_transaction, db: Session):
    """Fresh customer, no rules: base 15, LOW / ALLOW, profile updated"""
    check = engine.evaluate(make_transaction())

    assert check.risk_score == 15
    assert check.risk_level == RiskLevel.LOW
    assert check.decision == FraudDecision.ALLOW
    assert check.rules_fired == []
    assert check.reason is None

    profile = profile_of(db, "cust_1")
    assert profile.total_transactions == 1
    assert profile.base_risk_score == 14


def test_round_amount_rule_sends_to_review(engine: FraudEngine, make_transaction, db: Session):
    engine.create_rule("round_amounts", Severity.HIGH, 30, {"type": "AMOUNT", "flag_round_amounts": True})

    check = engine.evaluate(make_transaction(amount=Decimal("20000")))

    assert check.risk_score == 45
    assert check.risk_level == RiskLevel.MEDIUM
    assert check.decision == FraudDecision.REVIEW
    assert check.rules_fired[0]["rule"] == "round_amounts"
    assert check.rules_fired[0]["impact"] == 30
    assert "Round amount" in check.reason
    # MEDIUM does not raise an alert
    assert db.query(FraudAlert).count() == 0


def test_blacklisted_customer_short_circuits(engine: FraudEngine, make_transaction, db: Session):
    engine.create_rule("big", Severity.LOW, 5, {"type": "AMOUNT", "min_amount": 1})
    engine.update_customer_blacklist("cust_1", True, "chargeback ring")

    check = engine.evaluate(make_transaction())

    assert (check.risk_score, check.risk_level, check.decision) == (100, RiskLevel.CRITICAL, FraudDecision.BLOCK)
    assert [fired["rule"] for fired in check.rules_fired] == ["BLACKLIST_CHECK"]
    assert check.reason == "Customer is blacklisted: chargeback ring"
    assert db.query(FraudAlert).count() == 0

    profile = profile_of(db, "cust_1")
    assert profile.total_transactions == 0
    assert profile.base_risk_score == 100


def test_critical_rule_blocks_and_alerts(engine: FraudEngine, make_transaction, db: Session):
    engine.create_rule("sanctioned", Severity.CRITICAL, 10, {"type": "LOCATION", "blocked_countries": ["KP"]})

    check = engine.evaluate(make_transaction(location=Location(country="KP")))

    assert check.decision == FraudDecision.BLOCK
    assert check.risk_level == RiskLevel.CRITICAL
    alert = db.query(FraudAlert).one()
    assert alert.type == AlertType.SUSPICIOUS_PATTERN
    assert alert.title == "CRITICAL Risk Transaction Detected"
    assert alert.fraud_check_id == check.check_id

    profile = profile_of(db, "cust_1")
    assert profile.fraud_incidents == 1
    assert profile.base_risk_score == 35


def test_high_risk_raises_high_risk_alert(engine: FraudEngine, make_transaction, db: Session):
    engine.create_rule("large", Severity.HIGH, 50, {"type": "AMOUNT", "min_amount": 1000})

    check = engine.evaluate(make_transaction(amount=Decimal("1500")))

    assert check.risk_score == 65
    assert check.risk_level == RiskLevel.HIGH
    assert db.query(FraudAlert).one().type == AlertType.HIGH_RISK_TRANSACTION


def test_velocity_counts_prior_checks(engine: FraudEngine, make_transaction):
    engine.create_rule("burst", Severity.MEDIUM, 25, {"type": "VELOCITY", "max_transactions": 2})

    first = engine.evaluate(make_transaction())
    second = engine.evaluate(make_transaction())
    third = engine.evaluate(make_transaction())

    assert first.rules_fired == []
    assert second.rules_fired == []
    assert third.rules_fired[0]["details"]["transaction_count"] == 2


def test_metadata_is_recorded(engine: FraudEngine, make_transaction):
    check = engine.evaluate(
        make_transaction(location=Location(country="US", city="Austin"), device_info={"os": "ios"}, method="QR_CODE")
    )

    assert check.check_metadata["location"] == {"country": "US", "city": "Austin"}
    assert check.check_metadata["device_info"] == {"os": "ios"}
    assert check.check_metadata["method"] == "QR_CODE"
    assert "evaluated_at" in check.check_metadata


def test_failing_rule_is_treated_as_not_triggered(engine: FraudEngine, make_transaction):
    engine.create_rule("large", Severity.HIGH, 30, {"type": "AMOUNT", "min_amount": 10})

    with patch(
        "payment_orchestrator.services.fraud_engine.evaluate_rule",
        side_effect=RuntimeError("boom"),
    ):
        check = engine.evaluate(make_transaction())

    assert check.rules_fired == []
    assert check.decision == FraudDecision.ALLOW


def test_rules_fire_in_severity_order(engine: FraudEngine, make_transaction):
    engine.create_rule("low_one", Severity.LOW, 1, {"type": "AMOUNT", "min_amount": 1})
    engine.create_rule("high_one", Severity.HIGH, 1, {"type": "AMOUNT", "min_amount": 1})
    engine.create_rule("medium_one", Severity.MEDIUM, 1, {"type": "AMOUNT", "min_amount": 1})

    check = engine.evaluate(make_transaction())

    assert [fired["rule"] for fired in check.rules_fired] == ["high_one", "medium_one", "low_one"]


def test_inactive_rules_are_skipped(engine: FraudEngine, make_transaction):
    rule = engine.create_rule("large", Severity.HIGH, 30, {"type": "AMOUNT", "min_amount": 10})
    engine.set_rule_active(rule.rule_id, False)

    assert engine.evaluate(make_transaction()).rules_fired == []
    assert engine.list_rules(active_only=True) == []
    assert len(engine.list_rules()) == 1


def test_concurrent_evaluations_do_not_lose_profile_updates(session_factory, make_transaction):
    errors = []

    def worker():
        db = session_factory()
        try:
            FraudEngine(db).evaluate(make_transaction())
        except Exception as e:  # surfaced by the assertion below
            errors.append(e)
        finally:
            db.close()

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    db = session_factory()
    try:
        assert errors == []
        profile = db.query(CustomerRiskProfile).filter_by(customer_id="cust_1").one()
        assert profile.total_transactions == 5
        assert profile.base_risk_score == 10
        assert db.query(FraudCheck).count() == 5
    finally:
        db.close()


# Rule management


def test_create_rule_rejects_duplicate_name(engine: FraudEngine):
    engine.create_rule("large", Severity.HIGH, 30, {"type": "AMOUNT", "min_amount": 10})

    with pytest.raises(InvalidOperationError):
        engine.create_rule("large", Severity.LOW, 5, {"type": "AMOUNT", "min_amount": 10})


def test_create_rule_validates_conditions_and_impact(engine: FraudEngine):
    with pytest.raises(ValidationError):
        engine.create_rule("bad", Severity.HIGH, 30, {"type": "VELOCITY"})
    with pytest.raises(ValidationError):
        engine.create_rule("bad", Severity.HIGH, 51, {"type": "AMOUNT", "min_amount": 10})


def test_create_rule_derives_type_from_conditions(engine: FraudEngine):
    rule = engine.create_rule("night", Severity.MEDIUM, 10, {"type": "PATTERN", "flag_night_time": True})

    assert rule.type.value == "PATTERN"
    assert rule.conditions["flag_night_time"] is True


# Review


def test_review_rejected_counts_incident(engine: FraudEngine, make_transaction, db: Session):
    check = engine.evaluate(make_transaction())

    reviewed = engine.review(check.check_id, "analyst_7", ReviewDecision.REJECTED, "stolen card")

    assert reviewed.review_decision == ReviewDecision.REJECTED
    assert reviewed.reviewed_by == "analyst_7"
    assert reviewed.reviewed_at is not None
    profile = profile_of(db, "cust_1")
    assert profile.fraud_incidents == 1
    assert profile.last_incident_at is not None


def test_review_approved_leaves_profile(engine: FraudEngine, make_transaction, db: Session):
    check = engine.evaluate(make_transaction())

    engine.review(str(check.check_id), "analyst_7", ReviewDecision.APPROVED)

    assert profile_of(db, "cust_1").fraud_incidents == 0


def test_review_twice_is_rejected(engine: FraudEngine, make_transaction):
    check = engine.evaluate(make_transaction())
    engine.review(check.check_id, "analyst_7", ReviewDecision.APPROVED)

    with pytest.raises(InvalidOperationError):
        engine.review(check.check_id, "analyst_8", ReviewDecision.REJECTED)


def test_review_rereads_check_loaded_by_another_session(session_factory, make_transaction, db: Session):
    first, second = session_factory(), session_factory()
    try:
        check = FraudEngine(first).evaluate(make_transaction())
        FraudEngine(second).get_check(check.check_id)  # stale copy, still unreviewed

        FraudEngine(first).review(check.check_id, "analyst_7", ReviewDecision.REJECTED)

        with pytest.raises(InvalidOperationError):
            FraudEngine(second).review(check.check_id, "analyst_8", ReviewDecision.REJECTED)
    finally:
        first.close()
        second.close()

    assert profile_of(db, "cust_1").fraud_incidents == 1


def test_review_unknown_check(engine: FraudEngine):
    with pytest.raises(NotFoundError):
        engine.review(uuid.uuid4(), "analyst_7", ReviewDecision.APPROVED)
    with pytest.raises(ValidationError):
        engine.get_check("not-a-uuid")


# Alerts and statistics


def test_alert_search_and_resolution(engine: FraudEngine, make_transaction):
    engine.create_rule("sanctioned", Severity.CRITICAL, 10, {"type": "LOCATION", "blocked_countries": ["KP"]})
    engine.evaluate(make_transaction(location=Location(country="KP")))
    engine.evaluate(make_transaction(customer_id="cust_2", location=Location(country="KP")))

    page = engine.get_alerts(status=AlertStatus.OPEN, size=1)
    assert page["total_elements"] == 2
    assert page["total_pages"] == 2
    assert len(page["content"]) == 1

    alert = engine.update_alert_status(page["content"][0].alert_id, AlertStatus.FALSE_POSITIVE, assignee_id="analyst_7")
    assert alert.resolved_at is not None
    assert alert.resolution == "Marked as false positive"
    assert alert.assigned_to == "analyst_7"

    assert engine.get_alerts(customer_id="cust_2")["total_elements"] == 1


def test_statistics(engine: FraudEngine, make_transaction):
    engine.create_rule("large", Severity.HIGH, 30, {"type": "AMOUNT", "min_amount": 1000})
    engine.evaluate(make_transaction())
    engine.evaluate(make_transaction(customer_id="cust_2", amount=Decimal("5000")))
    engine.update_customer_blacklist("cust_3", True, "fraud")
    engine.evaluate(make_transaction(customer_id="cust_3"))

    stats = engine.get_statistics(days=30)

    assert stats["period"] == "30 days"
    assert stats["total_checks"] == 3
    assert stats["blocked_transactions"] == 1
    assert stats["review_requests"] == 1
    assert stats["allowed_transactions"] == 1
    assert stats["block_rate"] == 33.33
    assert stats["accuracy"] == 100.0


def test_whitelist_customer(engine: FraudEngine, make_transaction):
    engine.update_customer_blacklist("cust_1", True, "fraud")
    profile = engine.update_customer_blacklist("cust_1", False)

    assert profile.is_blacklisted is False
    assert profile.base_risk_score == 70
    assert engine.evaluate(make_transaction()).decision == FraudDecision.REVIEW
