"""Fraud screening endpoints - checks, reviews, rules, alerts and statistics"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from payment_orchestrator.api.dependencies import get_fraud_engine
from payment_orchestrator.api.v1.schemas import (
    AlertUpdateRequest,
    BlacklistRequest,
    FraudAlertPage,
    FraudAlertResponse,
    FraudCheckRequest,
    FraudCheckResponse,
    FraudRuleCreateRequest,
    FraudRuleResponse,
    FraudStatisticsResponse,
    ReviewRequest,
    RiskProfileResponse,
    RuleActivationRequest,
)
from payment_orchestrator.domain.models import (
    AlertStatus,
    AlertType,
    FraudTransaction,
    Location,
    RiskLevel,
)
from payment_orchestrator.services.fraud_engine import FraudEngine

router = APIRouter()


@router.post("/fraud/checks", response_model=FraudCheckResponse)
def perform_fraud_check(
    request_body: FraudCheckRequest,
    engine: FraudEngine = Depends(get_fraud_engine),
):
    """Score a transaction against the active rule set and the customer's profile"""
    check = engine.evaluate(
        FraudTransaction(
            customer_id=request_body.customer_id,
            amount=request_body.amount,
            currency=request_body.currency,
            payment_id=request_body.payment_id,
            merchant_id=request_body.merchant_id,
            method=request_body.method.value if request_body.method else None,
            location=Location(**request_body.location.model_dump()) if request_body.location else None,
            device_info=request_body.device_info,
        )
    )
    return FraudCheckResponse.model_validate(check)


@router.get("/fraud/checks/{check_id}", response_model=FraudCheckResponse)
def get_fraud_check(check_id: str, engine: FraudEngine = Depends(get_fraud_engine)):
    return FraudCheckResponse.model_validate(engine.get_check(check_id))


@router.post("/fraud/checks/{check_id}/review", response_model=FraudCheckResponse)
def review_fraud_check(
    check_id: str,
    request_body: ReviewRequest,
    engine: FraudEngine = Depends(get_fraud_engine),
):
    check = engine.review(check_id, request_body.reviewer_id, request_body.decision, request_body.notes)
    return FraudCheckResponse.model_validate(check)


@router.post("/fraud/rules", response_model=FraudRuleResponse, status_code=201)
def create_fraud_rule(
    request_body: FraudRuleCreateRequest,
    engine: FraudEngine = Depends(get_fraud_engine),
):
    rule = engine.create_rule(
        name=request_body.name,
        severity=request_body.severity,
        score_impact=request_body.score_impact,
        conditions={**request_body.conditions, "type": request_body.type.value},
        description=request_body.description,
        created_by=request_body.created_by,
        is_active=request_body.is_active,
    )
    return FraudRuleResponse.model_validate(rule)


@router.get("/fraud/rules", response_model=List[FraudRuleResponse])
def list_fraud_rules(
    active_only: bool = Query(False),
    engine: FraudEngine = Depends(get_fraud_engine),
):
    return [FraudRuleResponse.model_validate(rule) for rule in engine.list_rules(active_only)]


@router.patch("/fraud/rules/{rule_id}", response_model=FraudRuleResponse)
def set_fraud_rule_active(
    rule_id: str,
    request_body: RuleActivationRequest,
    engine: FraudEngine = Depends(get_fraud_engine),
):
    return FraudRuleResponse.model_validate(engine.set_rule_active(rule_id, request_body.is_active))


@router.get("/fraud/alerts", response_model=FraudAlertPage)
def get_fraud_alerts(
    status: Optional[AlertStatus] = Query(None),
    severity: Optional[RiskLevel] = Query(None),
    type: Optional[AlertType] = Query(None),
    customer_id: Optional[str] = Query(None),
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=100),
    engine: FraudEngine = Depends(get_fraud_engine),
):
    """Paginated alert search, newest first"""
    result = engine.get_alerts(status, severity, type, customer_id, page, size)
    return FraudAlertPage(
        content=[FraudAlertResponse.model_validate(alert) for alert in result["content"]],
        total_elements=result["total_elements"],
        total_pages=result["total_pages"],
        size=result["size"],
        number=result["number"],
    )


@router.patch("/fraud/alerts/{alert_id}", response_model=FraudAlertResponse)
def update_fraud_alert(
    alert_id: str,
    request_body: AlertUpdateRequest,
    engine: FraudEngine = Depends(get_fraud_engine),
):
    alert = engine.update_alert_status(
        alert_id, request_body.status, request_body.resolution, request_body.assignee_id
    )
    return FraudAlertResponse.model_validate(alert)


@router.get("/fraud/statistics", response_model=FraudStatisticsResponse)
def get_fraud_statistics(
    days: int = Query(30, ge=1, le=365),
    engine: FraudEngine = Depends(get_fraud_engine),
):
    return FraudStatisticsResponse(**engine.get_statistics(days))


@router.put("/fraud/customers/{customer_id}/blacklist", response_model=RiskProfileResponse)
def update_customer_blacklist(
    customer_id: str,
    request_body: BlacklistRequest,
    engine: FraudEngine = Depends(get_fraud_engine),
):
    profile = engine.update_customer_blacklist(customer_id, request_body.is_blacklisted, request_body.reason)
    return RiskProfileResponse.model_validate(profile)
