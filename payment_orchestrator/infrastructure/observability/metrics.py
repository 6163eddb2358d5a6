"""Prometheus metrics for payment outcomes, fraud decisions and collaborator health"""

from prometheus_client import Counter, Histogram

# Payment lifecycle metrics
payment_transition_counter = Counter(
    "payment_status_transitions_total",
    "Payment status transitions",
    ["to_status"],
)

settlement_latency_histogram = Histogram(
    "settlement_latency_seconds",
    "Settlement call response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

# Fraud metrics
fraud_decision_counter = Counter(
    "fraud_decisions_total",
    "Fraud checks by decision and risk level",
    ["decision", "risk_level"],
)

fraud_risk_score_histogram = Histogram(
    "fraud_risk_score",
    "Distribution of fraud risk scores",
    buckets=[10, 20, 30, 40, 50, 60, 70, 80, 90, 100],
)

fraud_rule_errors_counter = Counter(
    "fraud_rule_errors_total",
    "Rules that raised during evaluation (treated as not triggered)",
    ["rule_type"],
)

fraud_degraded_counter = Counter(
    "fraud_gate_degraded_total",
    "Payments that passed the fraud gate in degraded default-allow mode",
)

# Collaborator metrics
collaborator_failures_counter = Counter(
    "collaborator_failures_total",
    "Failed calls to external collaborators",
    ["collaborator"],
)

bookkeeping_job_counter = Counter(
    "bookkeeping_jobs_total",
    "Best-effort bookkeeping job outcomes",
    ["job_type", "outcome"],  # delivered | failed
)

bookkeeping_latency_histogram = Histogram(
    "bookkeeping_job_latency_seconds",
    "Bookkeeping call response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_transition(to_status: str) -> None:
    payment_transition_counter.labels(to_status=to_status).inc()


def record_fraud_decision(decision: str, risk_level: str, risk_score: int) -> None:
    """Record decision metrics for monitoring block and review rates"""
    fraud_decision_counter.labels(decision=decision, risk_level=risk_level).inc()
    fraud_risk_score_histogram.observe(risk_score)
