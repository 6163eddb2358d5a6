"""Structured JSON logging for production observability"""

import logging
import sys
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from payment_orchestrator.config import settings
from payment_orchestrator.utils.date_utils import utcnow

logger = logging.getLogger("payment_orchestrator")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = utcnow().isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers
    root.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    root.addHandler(handler)


def log_payment_transition(
    payment_id: str,
    previous: str,
    current: str,
    reason: Optional[str] = None,
) -> None:
    """Log a payment status change for lifecycle analysis"""
    logger.info(
        "Payment status changed",
        extra={
            "payment_id": payment_id,
            "step": "status_transition",
            "from_status": previous,
            "to_status": current,
            "reason": reason,
        },
    )


def log_fraud_decision(
    check_id: str,
    customer_id: str,
    risk_score: int,
    risk_level: str,
    decision: str,
    duration_ms: float,
) -> None:
    """Log structured fraud check outcome"""
    logger.info(
        "Fraud check completed",
        extra={
            "check_id": check_id,
            "customer_id": customer_id,
            "step": "fraud_check_complete",
            "risk_score": risk_score,
            "risk_level": risk_level,
            "decision": decision,
            "duration_ms": duration_ms,
        },
    )


def log_degraded_mode(payment_id: str, error: Exception) -> None:
    """Fraud engine unavailable: the payment proceeds under default-allow"""
    logger.warning(
        "Fraud engine unavailable, proceeding in degraded default-allow mode",
        extra={
            "payment_id": payment_id,
            "step": "fraud_gate_degraded",
            "error": str(error),
            "error_type": type(error).__name__,
        },
    )
