"""Dependency injection for FastAPI endpoints"""

from fastapi import BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from payment_orchestrator.infrastructure.clients.collaborators import Collaborators
from payment_orchestrator.infrastructure.database.session import SessionFactory, get_db, get_session_factory
from payment_orchestrator.services.fraud_engine import FraudEngine
from payment_orchestrator.services.payment_saga import PaymentSaga


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_collaborators() -> Collaborators:
    """Provide the collaborator adapter bundle"""
    return Collaborators()


def get_payment_saga(
    background_tasks: BackgroundTasks,
    session_factory: SessionFactory = Depends(get_session_factory),
    collaborators: Collaborators = Depends(get_collaborators),
) -> PaymentSaga:
    """Saga whose background work runs after the response is sent"""
    return PaymentSaga(session_factory, collaborators, background_tasks.add_task)


def get_fraud_engine(db: Session = Depends(get_db)) -> FraudEngine:
    return FraudEngine(db)
