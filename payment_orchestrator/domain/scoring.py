"""Risk scoring policy - core business logic for fraud decisions"""

from typing import List, Tuple

from payment_orchestrator.domain.models import (
    FiredRule,
    FraudDecision,
    RiskAssessment,
    RiskLevel,
    Severity,
    TrustLevel,
)

MIN_SCORE = 0
MAX_SCORE = 100
BLACKLIST_SCORE = 100


def clamp_score(score: int) -> int:
    """Bound any score to [0, 100]"""
    return max(MIN_SCORE, min(MAX_SCORE, score))


def determine_risk_level(score: int, rules_fired: List[FiredRule]) -> Tuple[RiskLevel, FraudDecision]:
    """
    Map a clamped score and the fired rules to a risk level and decision.

    Priority order:
    - Any fired CRITICAL-severity rule: CRITICAL / BLOCK regardless of score
    - 80+:     CRITICAL / BLOCK
    - 60 - 80: HIGH / REVIEW
    - 40 - 60: MEDIUM / REVIEW
    - 20 - 40: MEDIUM / ALLOW
    - below 20: LOW / ALLOW
    """
    if any(rule.severity == Severity.CRITICAL for rule in rules_fired):
        return RiskLevel.CRITICAL, FraudDecision.BLOCK

    if score >= 80:
        return RiskLevel.CRITICAL, FraudDecision.BLOCK
    elif score >= 60:
        return RiskLevel.HIGH, FraudDecision.REVIEW
    elif score >= 40:
        return RiskLevel.MEDIUM, FraudDecision.REVIEW
    elif score >= 20:
        return RiskLevel.MEDIUM, FraudDecision.ALLOW
    else:
        return RiskLevel.LOW, FraudDecision.ALLOW


def calculate_risk_score(base_score: int, rules_fired: List[FiredRule]) -> int:
    """Base profile score plus every fired rule's impact, clamped"""
    return clamp_score(base_score + sum(rule.impact for rule in rules_fired))


def assess(base_score: int, rules_fired: List[FiredRule]) -> RiskAssessment:
    """
    Main entry point: score the fired rules and decide.

    Returns complete RiskAssessment with score, level, decision and firing records.
    """
    score = calculate_risk_score(base_score, rules_fired)
    risk_level, decision = determine_risk_level(score, rules_fired)
    return RiskAssessment(risk_score=score, risk_level=risk_level, decision=decision, rules_fired=rules_fired)


def blacklisted_assessment() -> RiskAssessment:
    return RiskAssessment(risk_score=BLACKLIST_SCORE, risk_level=RiskLevel.CRITICAL, decision=FraudDecision.BLOCK)


def compute_trust_level(score: int, total_transactions: int, current: TrustLevel) -> TrustLevel:
    """
    Derive trust level from the profile's base risk score.

    Bands: 80+ LOW, 50+ MEDIUM, 20+ HIGH; below 20 the customer becomes
    TRUSTED only after more than 100 transactions, otherwise keeps its level.
    """
    if score >= 80:
        return TrustLevel.LOW
    elif score >= 50:
        return TrustLevel.MEDIUM
    elif score >= 20:
        return TrustLevel.HIGH
    elif total_transactions > 100:
        return TrustLevel.TRUSTED
    return current
