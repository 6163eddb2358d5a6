"""Unit tests for the customer risk profile store and keyed locks"""

import threading
from decimal import Decimal

from sqlalchemy.orm import Session
from payment_orchestrator.domain.models import TrustLevel
from payment_orchestrator.services.risk_profiles import RiskProfileStore
from payment_orchestrator.utils.locks import KeyedLock


def test_get_or_create_defaults(db: Session):
    store = RiskProfileStore(db)

    profile = store.get_or_create("cust_new")
    db.commit()

    assert profile.base_risk_score == 15
    assert profile.trust_level == TrustLevel.NEW
    assert profile.total_transactions == 0
    assert profile.is_blacklisted is False
    assert store.get_or_create("cust_new").profile_id == profile.profile_id


def test_record_clean_transaction_lowers_score(db: Session):
    store = RiskProfileStore(db)
    profile = store.get_or_create("cust_1")

    store.record_transaction(profile, Decimal("50.00"), blocked=False)

    assert profile.total_transactions == 1
    assert Decimal(profile.total_amount) == Decimal("50.00")
    assert profile.base_risk_score == 14
    assert profile.fraud_incidents == 0


def test_record_blocked_transaction_counts_incident(db: Session):
    store = RiskProfileStore(db)
    profile = store.get_or_create("cust_1")

    store.record_transaction(profile, Decimal("900.00"), blocked=True)

    assert profile.base_risk_score == 35
    assert profile.fraud_incidents == 1
    assert profile.last_incident_at is not None
    assert profile.trust_level == TrustLevel.HIGH


def test_update_risk_score_clamps(db: Session):
    store = RiskProfileStore(db)
    profile = store.get_or_create("cust_1")

    store.update_risk_score(profile, 500)
    assert profile.base_risk_score == 100
    assert profile.trust_level == TrustLevel.LOW

    store.update_risk_score(profile, -500)
    assert profile.base_risk_score == 0


def test_blacklist_and_whitelist(db: Session):
    store = RiskProfileStore(db)
    profile = store.get_or_create("cust_1")

    store.blacklist(profile, "chargeback ring")
    assert profile.is_blacklisted is True
    assert profile.base_risk_score == 100
    assert profile.trust_level == TrustLevel.LOW
    assert profile.blacklisted_at is not None

    store.whitelist(profile)
    assert profile.is_blacklisted is False
    assert profile.blacklist_reason is None
    assert profile.base_risk_score == 70


def test_whitelist_score_floor(db: Session):
    store = RiskProfileStore(db, default_base_score=20)
    profile = store.get_or_create("cust_1")

    store.whitelist(profile)

    assert profile.base_risk_score == 10


def test_keyed_lock_serializes_same_key():
    locks = KeyedLock()
    inside = []
    overlap = []

    def worker():
        with locks.hold("cust_1"):
            if inside:
                overlap.append(True)
            inside.append(1)
            threading.Event().wait(0.01)
            inside.pop()

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert overlap == []
    assert len(locks) == 0


def test_keyed_lock_is_reentrant():
    locks = KeyedLock()

    with locks.hold("cust_1"):
        with locks.hold("cust_1"):
            assert len(locks) == 1

    assert len(locks) == 0
