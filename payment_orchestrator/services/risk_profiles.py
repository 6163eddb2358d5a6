"""Customer risk profile store with per-customer serialization"""

import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Iterator, Optional

from sqlalchemy.orm import Session

from payment_orchestrator.config import settings
from payment_orchestrator.domain.models import TrustLevel
from payment_orchestrator.domain.scoring import clamp_score, compute_trust_level
from payment_orchestrator.infrastructure.database.models import CustomerRiskProfile
from payment_orchestrator.infrastructure.database.repositories import RiskProfileRepository
from payment_orchestrator.utils.date_utils import utcnow
from payment_orchestrator.utils.locks import KeyedLock

logger = logging.getLogger(__name__)

BLOCK_PENALTY = 20
CLEAN_TRANSACTION_CREDIT = -1
WHITELIST_CREDIT = 30
WHITELIST_FLOOR = 10

# Shared by every store in the process so concurrent sessions serialize on the same keys
profile_locks = KeyedLock()


class RiskProfileStore:
    """
    Reads and mutates CustomerRiskProfile rows.

    Every mutation is a read-modify-write over shared state, so callers wrap
    the whole sequence (load, mutate, commit) in ``locked(customer_id)``.
    Inside the lock profiles are loaded with SELECT ... FOR UPDATE, which
    extends the serialization across processes on databases that support it.
    """

    def __init__(self, db: Session, locks: Optional[KeyedLock] = None, default_base_score: Optional[int] = None):
        self.db = db
        self.repo = RiskProfileRepository(db)
        self.locks = locks or profile_locks
        self.default_base_score = (
            default_base_score if default_base_score is not None else settings.default_base_risk_score
        )

    @contextmanager
    def locked(self, customer_id: str) -> Iterator[None]:
        with self.locks.hold(customer_id):
            yield

    def get_or_create(self, customer_id: str) -> CustomerRiskProfile:
        """Load the profile, creating it lazily with the default base score and trust NEW"""
        profile = self.repo.get_profile(customer_id, for_update=True)
        if profile is None:
            profile = self.repo.create_profile(customer_id, self.default_base_score)
            logger.info("Created risk profile", extra={"customer_id": customer_id})
        return profile

    def update_risk_score(self, profile: CustomerRiskProfile, delta: int) -> CustomerRiskProfile:
        """Shift the base score, clamp it and recompute the trust level"""
        profile.base_risk_score = clamp_score(profile.base_risk_score + delta)
        profile.trust_level = compute_trust_level(
            profile.base_risk_score,
            profile.total_transactions,
            TrustLevel(profile.trust_level),
        )
        profile.last_updated = utcnow()
        return profile

    def record_transaction(self, profile: CustomerRiskProfile, amount: Decimal, blocked: bool) -> CustomerRiskProfile:
        """Account for one evaluated transaction"""
        profile.total_transactions += 1
        profile.total_amount = Decimal(profile.total_amount or 0) + Decimal(amount)
        if blocked:
            self.record_incident(profile)
            return self.update_risk_score(profile, BLOCK_PENALTY)
        return self.update_risk_score(profile, CLEAN_TRANSACTION_CREDIT)

    def record_incident(self, profile: CustomerRiskProfile) -> CustomerRiskProfile:
        profile.fraud_incidents += 1
        profile.last_incident_at = utcnow()
        return profile

    def blacklist(self, profile: CustomerRiskProfile, reason: str) -> CustomerRiskProfile:
        profile.is_blacklisted = True
        profile.blacklist_reason = reason
        profile.blacklisted_at = utcnow()
        profile.base_risk_score = 100
        profile.trust_level = TrustLevel.LOW
        profile.last_updated = utcnow()
        logger.warning("Customer blacklisted", extra={"customer_id": profile.customer_id, "reason": reason})
        return profile

    def whitelist(self, profile: CustomerRiskProfile) -> CustomerRiskProfile:
        profile.is_blacklisted = False
        profile.blacklist_reason = None
        profile.blacklisted_at = None
        profile.base_risk_score = max(WHITELIST_FLOOR, profile.base_risk_score - WHITELIST_CREDIT)
        profile.last_updated = utcnow()
        logger.info("Customer removed from blacklist", extra={"customer_id": profile.customer_id})
        return profile
