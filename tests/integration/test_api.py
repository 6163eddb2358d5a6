"""Integration tests for API endpoints"""

from fastapi.testclient import TestClient
from payment_orchestrator.domain.exceptions import NotFoundError
from payment_orchestrator.domain.models import SettlementResult


def create_payment(client: TestClient, **overrides) -> dict:
    body = {"sender_id": "cust_1", "recipient_id": "cust_2", "amount": 50.0, "currency": "USD"}
    body.update(overrides)
    response = client.post("/v1/payments", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "payment_status_transitions_total" in response.text
    assert "fraud_decisions_total" in response.text


def test_request_id_is_echoed(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-42"})
    assert response.headers["X-Request-ID"] == "req-42"


def test_initiate_payment_processes_in_background(client: TestClient, collaborators):
    """POST returns PENDING; the background task settles before the test client returns"""
    created = create_payment(client)

    assert created["status"] == "PENDING"
    assert created["amount"] == 50.0

    fetched = client.get(f"/v1/payments/{created['id']}").json()
    assert fetched["status"] == "COMPLETED"
    assert fetched["bank_transaction_id"] == "TXN-0001"
    collaborators.settlement.process.assert_awaited_once()


def test_initiate_payment_validation(client: TestClient):
    response = client.post(
        "/v1/payments",
        json={"sender_id": "cust_1", "recipient_id": "cust_2", "amount": -1, "currency": "USD"},
    )
    assert response.status_code == 422


def test_initiate_payment_unknown_recipient(client: TestClient, collaborators):
    def lookup(customer_id):
        if customer_id == "ghost":
            raise NotFoundError("Customer ghost not found")
        return {"id": customer_id}

    collaborators.identity.get_customer.side_effect = lookup

    response = client.post(
        "/v1/payments",
        json={"sender_id": "cust_1", "recipient_id": "ghost", "amount": 10, "currency": "USD"},
    )

    assert response.status_code == 404
    data = response.json()
    assert data["error"] == "NOT_FOUND"
    assert data["message"] == "Customer ghost not found"
    assert data["path"] == "/v1/payments"
    assert "timestamp" in data


def test_get_unknown_payment(client: TestClient):
    response = client.get("/v1/payments/6f1c1b9e-7a0e-4c4e-9d7f-0d6f8a1e2b3c")
    assert response.status_code == 404

    response = client.get("/v1/payments/not-a-uuid")
    assert response.status_code == 422
    assert response.json()["error"] == "VALIDATION_ERROR"


def test_cancel_completed_payment_conflicts(client: TestClient):
    created = create_payment(client)

    response = client.post(f"/v1/payments/{created['id']}/cancel", json={"reason": "too late"})

    assert response.status_code == 409
    assert response.json()["error"] == "INVALID_OPERATION"


def test_failed_payment_retry_flow(client: TestClient, collaborators):
    collaborators.settlement.process.return_value = SettlementResult(success=False, error="Account frozen")
    created = create_payment(client)

    assert client.get(f"/v1/payments/{created['id']}").json()["status"] == "FAILED"

    collaborators.settlement.process.return_value = SettlementResult(success=True, transaction_id="TXN-2")
    retried = client.post(f"/v1/payments/{created['id']}/retry")

    assert retried.status_code == 200
    assert retried.json()["retry_count"] == 1
    final = client.get(f"/v1/payments/{created['id']}").json()
    assert final["status"] == "COMPLETED"
    assert final["correlation_id"] == created["correlation_id"]


def test_review_and_admin_approval_flow(client: TestClient):
    rule = client.post(
        "/v1/fraud/rules",
        json={
            "name": "round_amounts",
            "type": "AMOUNT",
            "severity": "HIGH",
            "score_impact": 30,
            "conditions": {"flag_round_amounts": True},
        },
    )
    assert rule.status_code == 201
    assert rule.json()["conditions"]["type"] == "AMOUNT"

    created = create_payment(client, amount=20000)
    held = client.get(f"/v1/payments/{created['id']}").json()
    assert held["status"] == "UNDER_REVIEW"

    approved = client.patch(f"/v1/payments/{created['id']}/status", json={"decision": "APPROVED"})
    assert approved.status_code == 200

    assert client.get(f"/v1/payments/{created['id']}").json()["status"] == "COMPLETED"


def test_list_customer_payments(client: TestClient):
    create_payment(client)
    create_payment(client, sender_id="cust_3", recipient_id="cust_1")

    response = client.get("/v1/payments", params={"customer_id": "cust_1"})

    assert response.status_code == 200
    data = response.json()
    assert data["total_elements"] == 2
    assert len(data["content"]) == 2


def test_fraud_check_and_review(client: TestClient):
    response = client.post(
        "/v1/fraud/checks",
        json={"customer_id": "cust_9", "amount": 120.5, "location": {"country": "US"}},
    )
    assert response.status_code == 200
    check = response.json()
    assert check["risk_score"] == 15
    assert check["decision"] == "ALLOW"
    assert check["metadata"]["location"]["country"] == "US"

    review = client.post(
        f"/v1/fraud/checks/{check['check_id']}/review",
        json={"reviewer_id": "analyst_1", "decision": "REJECTED", "notes": "confirmed fraud"},
    )
    assert review.status_code == 200
    assert review.json()["review_decision"] == "REJECTED"

    again = client.post(
        f"/v1/fraud/checks/{check['check_id']}/review",
        json={"reviewer_id": "analyst_2", "decision": "APPROVED"},
    )
    assert again.status_code == 409


def test_invalid_rule_conditions(client: TestClient):
    response = client.post(
        "/v1/fraud/rules",
        json={"name": "burst", "type": "VELOCITY", "severity": "MEDIUM", "score_impact": 10, "conditions": {}},
    )

    assert response.status_code == 422
    assert response.json()["error"] == "VALIDATION_ERROR"


def test_blacklist_blocks_and_alerts_listing(client: TestClient):
    response = client.put("/v1/fraud/customers/cust_1/blacklist", json={"is_blacklisted": True, "reason": "fraud ring"})
    assert response.status_code == 200
    assert response.json()["base_risk_score"] == 100

    created = create_payment(client)
    blocked = client.get(f"/v1/payments/{created['id']}").json()
    assert blocked["status"] == "BLOCKED"

    alerts = client.get("/v1/fraud/alerts", params={"status": "OPEN"}).json()
    assert alerts["total_elements"] == 0

    stats = client.get("/v1/fraud/statistics", params={"days": 7}).json()
    assert stats["total_checks"] == 1
    assert stats["blocked_transactions"] == 1
    assert stats["block_rate"] == 100.0


def test_alert_update(client: TestClient):
    client.post(
        "/v1/fraud/rules",
        json={
            "name": "sanctioned",
            "type": "LOCATION",
            "severity": "CRITICAL",
            "score_impact": 10,
            "conditions": {"blocked_countries": ["KP"]},
        },
    )
    client.post("/v1/fraud/checks", json={"customer_id": "cust_1", "amount": 10, "location": {"country": "KP"}})

    alerts = client.get("/v1/fraud/alerts").json()
    assert alerts["total_elements"] == 1
    alert_id = alerts["content"][0]["alert_id"]

    response = client.patch(f"/v1/fraud/alerts/{alert_id}", json={"status": "RESOLVED", "resolution": "card cancelled"})

    assert response.status_code == 200
    assert response.json()["resolution"] == "card cancelled"
    assert response.json()["resolved_at"] is not None
