"""Pytest fixtures for testing"""

import inspect
from decimal import Decimal
from typing import Any, Callable, Generator, List, Tuple
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from payment_orchestrator.api.dependencies import get_collaborators
from payment_orchestrator.api.main import create_app
from payment_orchestrator.domain.models import FraudTransaction, SettlementResult
from payment_orchestrator.infrastructure.clients.collaborators import Collaborators
from payment_orchestrator.infrastructure.database.models import Base
from payment_orchestrator.infrastructure.database.session import get_db, get_session_factory
from payment_orchestrator.infrastructure.jobs import BookkeepingRunner
from payment_orchestrator.services.fraud_engine import FraudEngine
from payment_orchestrator.services.payment_saga import PaymentSaga


class RecordingScheduler:
    """Stands in for BackgroundTasks: records submissions and runs them on demand"""

    def __init__(self) -> None:
        self.calls: List[Tuple[Callable[..., Any], tuple, dict]] = []

    def __call__(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        self.calls.append((fn, args, kwargs))

    async def drain(self) -> int:
        """Run every queued call, including ones queued while draining"""
        ran = 0
        while self.calls:
            fn, args, kwargs = self.calls.pop(0)
            result = fn(*args, **kwargs)
            if inspect.isawaitable(result):
                await result
            ran += 1
        return ran

    def job_types(self) -> List[str]:
        """job_type of every queued bookkeeping job"""
        return [args[0] for fn, args, _ in self.calls if getattr(fn, "__name__", "") == "run"]


@pytest.fixture
def session_factory(tmp_path) -> Generator[sessionmaker, None, None]:
    """File-backed SQLite so concurrent sessions get their own connections"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Create test database session"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def engine(db: Session) -> FraudEngine:
    return FraudEngine(db)


@pytest.fixture
def collaborators() -> Collaborators:
    """Collaborator adapters that answer like healthy services"""
    identity = AsyncMock()
    identity.get_customer.side_effect = lambda customer_id: {"id": customer_id, "status": "ACTIVE"}
    identity.get_merchant.side_effect = lambda merchant_id: {"id": merchant_id, "status": "ACTIVE"}

    settlement = AsyncMock()
    settlement.process.return_value = SettlementResult(success=True, transaction_id="TXN-0001")

    loyalty = AsyncMock()
    loyalty.redeem.return_value = Decimal("5.00")

    qr = AsyncMock()
    qr.get_code.side_effect = lambda qr_code_id: {"qr_code_id": qr_code_id, "customer_id": "cust_2", "amount": None}

    return Collaborators(
        identity=identity,
        settlement=settlement,
        loyalty=loyalty,
        ledger=AsyncMock(),
        qr=qr,
        notification=AsyncMock(),
    )


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def runner(session_factory: sessionmaker) -> BookkeepingRunner:
    """No backoff delay between attempts"""
    return BookkeepingRunner(session_factory, max_attempts=3, backoff_base=0)


@pytest.fixture
def saga(
    session_factory: sessionmaker,
    collaborators: Collaborators,
    scheduler: RecordingScheduler,
    runner: BookkeepingRunner,
) -> PaymentSaga:
    return PaymentSaga(session_factory, collaborators, scheduler, runner=runner)


@pytest.fixture
def client(session_factory: sessionmaker, collaborators: Collaborators) -> TestClient:
    """Create FastAPI test client with test database and mocked collaborators"""
    app = create_app()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_collaborators] = lambda: collaborators
    return TestClient(app)


@pytest.fixture
def make_transaction() -> Callable[..., FraudTransaction]:
    """Build a FraudTransaction with sensible defaults"""

    def _make(**overrides: Any) -> FraudTransaction:
        fields = {"customer_id": "cust_1", "amount": Decimal("50.00"), "currency": "USD"}
        fields.update(overrides)
        return FraudTransaction(**fields)

    return _make
