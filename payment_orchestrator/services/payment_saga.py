"""
Payment orchestration saga.

Owns the payment lifecycle: a payment is persisted PENDING and handed to a
background scheduler, then gated by the fraud engine, settled, and followed
by best-effort bookkeeping jobs. Settlement success is the only signal that
funds moved; nothing downstream of it can revert COMPLETED.
"""

import logging
import math
import re
import uuid
from dataclasses import replace
from datetime import datetime
from decimal import Decimal, InvalidOperation as DecimalInvalidOperation
from typing import Any, Callable, Dict, Optional, Tuple, Union

from sqlalchemy.orm import Session

from payment_orchestrator.config import settings
from payment_orchestrator.domain.exceptions import (
    CollaboratorUnavailableError,
    InsufficientFundsError,
    InvalidOperationError,
    NotFoundError,
    ValidationError,
)
from payment_orchestrator.domain.models import (
    AdminDecision,
    FraudDecision,
    FraudTransaction,
    Location,
    LoyaltyRedemption,
    NotificationEvent,
    PaymentMethod,
    PaymentRequest,
    PaymentStatus,
    RecipientType,
    SettlementResult,
)
from payment_orchestrator.domain.state_machine import CANCELLABLE_STATES, ensure_transition
from payment_orchestrator.infrastructure.clients.collaborators import Collaborators
from payment_orchestrator.infrastructure.database.models import Payment
from payment_orchestrator.infrastructure.database.repositories import PaymentRepository
from payment_orchestrator.infrastructure.database.session import SessionFactory
from payment_orchestrator.infrastructure.jobs import BookkeepingRunner
from payment_orchestrator.infrastructure.observability.logging import log_degraded_mode, log_payment_transition
from payment_orchestrator.infrastructure.observability.metrics import (
    collaborator_failures_counter,
    fraud_degraded_counter,
    record_transition,
)
from payment_orchestrator.services.fraud_engine import FraudEngine
from payment_orchestrator.utils.date_utils import as_utc, utcnow
from payment_orchestrator.utils.identifiers import parse_uuid

logger = logging.getLogger(__name__)

Scheduler = Callable[..., Any]

CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")
MAX_DESCRIPTION_LENGTH = 500
MAX_PAGE_SIZE = 100


class PaymentSaga:
    """
    Payment lifecycle operations.

    Every operation opens its own session from ``session_factory``; background
    work is submitted through ``schedule(fn, *args, **kwargs)`` (FastAPI's
    ``BackgroundTasks.add_task`` in the HTTP layer).
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        collaborators: Collaborators,
        schedule: Scheduler,
        runner: Optional[BookkeepingRunner] = None,
        fraud_engine_factory: Callable[[Session], FraudEngine] = FraudEngine,
        max_retries: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.collaborators = collaborators
        self.schedule = schedule
        self.runner = runner or BookkeepingRunner(session_factory)
        self.fraud_engine_factory = fraud_engine_factory
        self.max_retries = settings.max_payment_retries if max_retries is None else max_retries

    # ------------------------------------------------------------------
    # Initiation
    # ------------------------------------------------------------------

    async def initiate(self, request: PaymentRequest) -> Payment:
        """
        Validate and persist a PENDING payment, then schedule processing.

        QR_CODE payments take their recipient, and amount when the code fixes
        one, from the scanned code.

        Raises:
            ValidationError: Malformed amount, currency or identifiers
            NotFoundError: Sender, recipient or QR code unknown (or code expired)
            CollaboratorUnavailableError: Identity directory or QR service unreachable
        """
        request = await self._resolve_qr_code(request)
        amount = self._validate_request(request)

        identity = self.collaborators.identity
        await identity.get_customer(request.sender_id)
        if request.recipient_type == RecipientType.MERCHANT:
            await identity.get_merchant(request.recipient_id)
        else:
            await identity.get_customer(request.recipient_id)

        context = {
            "location": request.location.to_dict() if request.location else None,
            "device_info": request.device_info,
        }

        db = self.session_factory()
        try:
            payment = PaymentRepository(db).create_payment(
                sender_id=request.sender_id,
                recipient_id=request.recipient_id,
                recipient_type=request.recipient_type,
                amount=amount,
                currency=request.currency,
                method=request.method,
                description=request.description,
                qr_code_id=request.qr_code_id,
                context=context,
            )
            db.commit()
            payment = _detach(db, payment)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        log_payment_transition(str(payment.id), None, PaymentStatus.PENDING.value, "initiated")
        record_transition(PaymentStatus.PENDING.value)

        redemption = LoyaltyRedemption(request.loyalty_points) if request.loyalty_points else None
        self.schedule(self.process, payment.id, redemption)
        return payment

    async def _resolve_qr_code(self, request: PaymentRequest) -> PaymentRequest:
        if request.method != PaymentMethod.QR_CODE:
            if request.qr_code_id:
                raise ValidationError("qr_code_id is only accepted for QR_CODE payments")
            return request
        if not request.qr_code_id:
            raise ValidationError("qr_code_id is required for QR_CODE payments")

        code = await self.collaborators.qr.get_code(request.qr_code_id)
        overrides: Dict[str, Any] = {}
        if code.get("merchant_id"):
            overrides.update(recipient_id=code["merchant_id"], recipient_type=RecipientType.MERCHANT)
        elif code.get("customer_id"):
            overrides.update(recipient_id=code["customer_id"], recipient_type=RecipientType.CUSTOMER)
        if code.get("amount") is not None:
            overrides["amount"] = Decimal(str(code["amount"]))
        return replace(request, **overrides)

    def _validate_request(self, request: PaymentRequest) -> Decimal:
        for label, value in (("sender_id", request.sender_id), ("recipient_id", request.recipient_id)):
            if not value or not str(value).strip():
                raise ValidationError(f"{label} is required")
        if request.sender_id == request.recipient_id:
            raise ValidationError("Sender and recipient must differ")

        try:
            amount = Decimal(str(request.amount))
        except DecimalInvalidOperation:
            raise ValidationError(f"Invalid amount: {request.amount}")
        if not amount.is_finite() or amount <= 0:
            raise ValidationError("Amount must be positive")
        if amount.as_tuple().exponent < -2:
            raise ValidationError("Amount supports at most two decimal places")

        if not request.currency or not CURRENCY_PATTERN.match(request.currency):
            raise ValidationError(f"Invalid currency: {request.currency}")
        if request.description and len(request.description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(f"Description exceeds {MAX_DESCRIPTION_LENGTH} characters")
        if request.loyalty_points is not None and request.loyalty_points < 0:
            raise ValidationError("loyalty_points cannot be negative")
        return amount

    # ------------------------------------------------------------------
    # Background processing
    # ------------------------------------------------------------------

    async def process(self, payment_id: Union[str, uuid.UUID], loyalty_redemption: Optional[LoyaltyRedemption] = None) -> None:
        """
        Run the saga for a PENDING payment; any other status makes this a no-op.

        Nothing escapes: unexpected errors are logged and recorded on the
        payment, which moves to FAILED if it was caught mid-processing.
        """
        try:
            await self._process(parse_uuid(payment_id, "payment ID"), loyalty_redemption)
        except Exception as e:
            logger.exception(f"Unexpected error processing payment {payment_id}")
            self._record_unexpected_failure(payment_id, e)

    async def _process(self, payment_id: uuid.UUID, redemption: Optional[LoyaltyRedemption]) -> None:
        db = self.session_factory()
        try:
            payment = PaymentRepository(db).get_payment(payment_id)
            if payment is None:
                logger.warning(f"Payment {payment_id} vanished before processing")
                return
            if payment.status != PaymentStatus.PENDING:
                logger.info(
                    "Skipping duplicate processing request",
                    extra={"payment_id": str(payment_id), "status": payment.status.value},
                )
                return

            # Step 1: fraud gate
            if not payment.manually_approved and not await self._fraud_gate(db, payment):
                return

            # Step 2: claim the payment
            self._transition(db, payment, PaymentStatus.PROCESSING)
            payment.processed_at = utcnow()
            db.commit()

            # Step 3: optional loyalty discount
            amount_due = await self._apply_loyalty(db, payment, redemption)

            # Step 4: settlement, unless a cancel landed first. Once the
            # marker is committed, cancel refuses the payment.
            db.refresh(payment, with_for_update=True)
            if payment.status != PaymentStatus.PROCESSING:
                logger.info(
                    "Payment left PROCESSING before settlement, stopping",
                    extra={"payment_id": str(payment.id), "status": payment.status.value},
                )
                db.commit()
                return
            payment.settlement_started_at = utcnow()
            db.commit()

            result = await self._settle(payment, amount_due)

            if not (result.success and result.transaction_id):
                reason = result.error or "Settlement returned no transaction reference"
                self._transition(db, payment, PaymentStatus.FAILED, reason)
                self._notify(payment, NotificationEvent.PAYMENT_FAILED, reason)
                return

            # Step 5: completion and best-effort bookkeeping
            payment.bank_transaction_id = result.transaction_id
            payment.completed_at = utcnow()
            self._transition(db, payment, PaymentStatus.COMPLETED)
            self._schedule_bookkeeping(payment)
        finally:
            db.close()

    async def _fraud_gate(self, db: Session, payment: Payment) -> bool:
        """Screen the payment; False when it was blocked or parked for review"""
        verdict = self._screen(payment)
        if verdict is None:
            return True

        check_id, decision, reason = verdict
        payment.fraud_analysis_id = check_id

        if decision == FraudDecision.BLOCK:
            reason = reason or "Blocked by fraud screening"
            self._transition(db, payment, PaymentStatus.BLOCKED, reason)
            self._notify(payment, NotificationEvent.FRAUD_BLOCKED, reason)
            return False
        if decision == FraudDecision.REVIEW:
            reason = reason or "Held for manual fraud review"
            self._transition(db, payment, PaymentStatus.UNDER_REVIEW, reason)
            self._notify(payment, NotificationEvent.MANUAL_REVIEW, reason)
            return False

        db.commit()
        return True

    def _screen(self, payment: Payment) -> Optional[Tuple[uuid.UUID, FraudDecision, Optional[str]]]:
        """Evaluate the payment in the fraud engine's own session; None means degraded default-allow"""
        context = payment.context or {}
        location = context.get("location")
        transaction = FraudTransaction(
            customer_id=payment.sender_id,
            amount=Decimal(payment.amount),
            currency=payment.currency,
            payment_id=str(payment.id),
            merchant_id=payment.recipient_id if payment.recipient_type == RecipientType.MERCHANT else None,
            method=payment.method.value,
            location=Location(**location) if location else None,
            device_info=context.get("device_info"),
            timestamp=utcnow(),
        )

        fraud_db = self.session_factory()
        try:
            check = self.fraud_engine_factory(fraud_db).evaluate(transaction)
            return check.check_id, FraudDecision(check.decision), check.reason
        except Exception as e:
            fraud_degraded_counter.inc()
            log_degraded_mode(str(payment.id), e)
            return None
        finally:
            fraud_db.close()

    async def _apply_loyalty(self, db: Session, payment: Payment, redemption: Optional[LoyaltyRedemption]) -> Decimal:
        amount = Decimal(payment.amount)
        if redemption is None or redemption.points <= 0:
            return amount

        try:
            discount = await self.collaborators.loyalty.redeem(payment.sender_id, redemption.points)
        except Exception as e:
            # Redemption is optional; settle the full amount
            collaborator_failures_counter.labels(collaborator="loyalty").inc()
            logger.warning(
                "Loyalty redemption failed, settling full amount",
                extra={"payment_id": str(payment.id), "error": str(e)},
            )
            return amount

        discount = min(max(discount, Decimal("0")), amount)
        payment.discount_amount = discount
        db.commit()
        return amount - discount

    async def _settle(self, payment: Payment, amount_due: Decimal) -> SettlementResult:
        try:
            return await self.collaborators.settlement.process(
                str(payment.id), amount_due, payment.currency, payment.correlation_id
            )
        except InsufficientFundsError as e:
            return SettlementResult(success=False, error=f"Insufficient funds: {e}")
        except CollaboratorUnavailableError as e:
            return SettlementResult(success=False, error=str(e))

    def _record_unexpected_failure(self, payment_id: Union[str, uuid.UUID], error: Exception) -> None:
        db = self.session_factory()
        try:
            payment = PaymentRepository(db).get_payment(parse_uuid(payment_id, "payment ID"))
            if payment is None:
                return
            reason = f"Unexpected error: {error}"
            if payment.status == PaymentStatus.PROCESSING:
                self._transition(db, payment, PaymentStatus.FAILED, reason)
            else:
                payment.failure_reason = reason
                db.commit()
        except Exception:
            db.rollback()
            logger.exception(f"Could not record failure for payment {payment_id}")
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Client and admin operations
    # ------------------------------------------------------------------

    def cancel(self, payment_id: Union[str, uuid.UUID], reason: Optional[str] = None) -> Payment:
        """
        Cancel a PENDING or PROCESSING payment.

        Cooperative: once settlement has been handed the payment, cancelling
        is refused so the settlement outcome always lands on the record.

        Raises:
            NotFoundError: Unknown payment
            InvalidOperationError: Payment not cancellable in its current status,
                or settlement already started
        """
        db = self.session_factory()
        try:
            payment = self._load(db, payment_id, for_update=True)
            if payment.status not in CANCELLABLE_STATES:
                raise InvalidOperationError(f"Payment cannot be cancelled in status {payment.status.value}")
            if payment.settlement_started_at is not None:
                raise InvalidOperationError("Payment cannot be cancelled once settlement has started")

            reason = reason or "Cancelled by customer"
            self._transition(db, payment, PaymentStatus.CANCELLED, reason)
            self._notify(payment, NotificationEvent.PAYMENT_CANCELLED, reason)
            return _detach(db, payment)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def retry(self, payment_id: Union[str, uuid.UUID]) -> Payment:
        """
        Reset a FAILED payment to PENDING and reprocess it under the same correlation ID.

        Raises:
            NotFoundError: Unknown payment
            InvalidOperationError: Payment not FAILED, or retries exhausted
        """
        db = self.session_factory()
        try:
            payment = self._load(db, payment_id, for_update=True)
            if payment.status != PaymentStatus.FAILED:
                raise InvalidOperationError(f"Only FAILED payments can be retried, status is {payment.status.value}")
            if payment.retry_count >= self.max_retries:
                raise InvalidOperationError(f"Maximum retry attempts ({self.max_retries}) exceeded")

            payment.retry_count += 1
            payment.settlement_started_at = None
            self._transition(db, payment, PaymentStatus.PENDING, f"retry {payment.retry_count}")
            payment = _detach(db, payment)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        self.schedule(self.process, payment.id, None)
        return payment

    def update_status(self, payment_id: Union[str, uuid.UUID], decision: AdminDecision) -> Payment:
        """
        Admin adjudication of a payment held UNDER_REVIEW.

        APPROVED sends it back to PENDING with the fraud gate waived;
        REJECTED blocks it.
        """
        db = self.session_factory()
        try:
            payment = self._load(db, payment_id, for_update=True)
            if payment.status != PaymentStatus.UNDER_REVIEW:
                raise InvalidOperationError(
                    f"Only payments UNDER_REVIEW accept an admin decision, status is {payment.status.value}"
                )

            if decision == AdminDecision.APPROVED:
                payment.manually_approved = True
                self._transition(db, payment, PaymentStatus.PENDING, "approved by admin")
            else:
                self._transition(db, payment, PaymentStatus.BLOCKED, "Rejected by admin review")
            payment = _detach(db, payment)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        if decision == AdminDecision.APPROVED:
            self.schedule(self.process, payment.id, None)
        return payment

    def get_payment(self, payment_id: Union[str, uuid.UUID]) -> Payment:
        db = self.session_factory()
        try:
            return _detach(db, self._load(db, payment_id))
        finally:
            db.close()

    def list_customer_payments(
        self,
        customer_id: str,
        status: Optional[PaymentStatus] = None,
        page: int = 0,
        size: int = 20,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Paginated payments sent or received by a customer, newest first, optionally within a created_at range"""
        if page < 0 or size <= 0:
            raise ValidationError("page must be >= 0 and size > 0")
        from_date = as_utc(from_date) if from_date else None
        to_date = as_utc(to_date) if to_date else None
        if from_date and to_date and from_date > to_date:
            raise ValidationError("from_date must not be after to_date")
        size = min(size, MAX_PAGE_SIZE)

        db = self.session_factory()
        try:
            items, total = PaymentRepository(db).list_by_customer(
                customer_id, status, page, size, from_date=from_date, to_date=to_date
            )
            for item in items:
                db.expunge(item)
        finally:
            db.close()

        return {
            "content": items,
            "total_elements": total,
            "total_pages": math.ceil(total / size),
            "size": size,
            "number": page,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, db: Session, payment_id: Union[str, uuid.UUID], for_update: bool = False) -> Payment:
        payment = PaymentRepository(db).get_payment(parse_uuid(payment_id, "payment ID"), for_update=for_update)
        if payment is None:
            raise NotFoundError(f"Payment {payment_id} not found")
        return payment

    def _transition(self, db: Session, payment: Payment, target: PaymentStatus, reason: Optional[str] = None) -> None:
        """Apply and commit a status change; the only place payment.status is written"""
        previous = PaymentStatus(payment.status)
        ensure_transition(previous, target)

        payment.status = target
        if target in (PaymentStatus.FAILED, PaymentStatus.BLOCKED, PaymentStatus.CANCELLED, PaymentStatus.UNDER_REVIEW):
            payment.failure_reason = reason
        elif target == PaymentStatus.PENDING:
            payment.failure_reason = None
        db.commit()

        log_payment_transition(str(payment.id), previous.value, target.value, reason)
        record_transition(target.value)

    def _notify(self, payment: Payment, event: NotificationEvent, reason: Optional[str] = None) -> None:
        self._submit(
            "notification",
            payment,
            self.collaborators.notification.send,
            {
                "payment_id": str(payment.id),
                "customer_id": payment.sender_id,
                "event_type": event.value,
                "amount": str(payment.amount),
                "currency": payment.currency,
                "reason": reason,
            },
        )

    def _schedule_bookkeeping(self, payment: Payment) -> None:
        """Ledger record, loyalty accrual, QR redemption and success notice, each as its own job"""
        payment_id = str(payment.id)
        amount = str(payment.amount)

        self._submit(
            "ledger",
            payment,
            self.collaborators.ledger.record,
            {
                "payment_id": payment_id,
                "transaction_id": payment.bank_transaction_id,
                "sender_id": payment.sender_id,
                "recipient_id": payment.recipient_id,
                "amount": amount,
                "currency": payment.currency,
            },
        )
        self._submit(
            "loyalty_accrual",
            payment,
            self.collaborators.loyalty.accrue,
            {
                "customer_id": payment.sender_id,
                "payment_id": payment_id,
                "amount": amount,
                "method": payment.method.value,
            },
        )
        if payment.qr_code_id:
            self._submit(
                "qr_mark_used",
                payment,
                self.collaborators.qr.mark_used,
                {"qr_code_id": payment.qr_code_id, "payment_id": payment_id},
            )
        self._notify(payment, NotificationEvent.PAYMENT_SUCCESS)

    def _submit(self, job_type: str, payment: Payment, call: Callable[..., Any], payload: Dict[str, Any]) -> None:
        self.schedule(self.runner.run, job_type, str(payment.id), call, payload)


def _detach(db: Session, obj: Any) -> Any:
    """Load every column and detach, so the object outlives its session"""
    db.refresh(obj)
    db.expunge(obj)
    return obj
