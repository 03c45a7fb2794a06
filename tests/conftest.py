import uuid
from dataclasses import dataclass
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.main import app
from app.database import Base, get_db
from app.api.deps import create_access_token
from app.models.customer import Customer, Vehicle
from app.models.elevator import Elevator
from app.models.user import User
from app.schemas.quote import DiagnosisCreate, QuoteCreate, QuoteItemCreate, QuoteUpdate
from app.security.rbac import Caller, Role
from app.services import diagnosis, mechanic_claims, quote_service

from tests.factories import (
    CustomerFactory,
    DiagnosisFactory,
    ElevatorFactory,
    MechanicFactory,
    UserFactory,
    VehicleFactory,
)

# Test database URL (SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"


@dataclass
class Workshop:
    """One seeded tenant: staff, two mechanics, a customer with a vehicle."""

    tenant_id: str
    receptionist: Caller
    mechanic: Caller
    other_mechanic: Caller
    customer_id: str
    vehicle_id: str
    elevator_id: str


def caller_for(user: dict) -> Caller:
    return Caller(user_id=user["id"], tenant_id=user["tenant_id"], role=Role(user["role"]))


def auth_headers(caller: Caller) -> dict:
    """Bearer header with a token shaped like the auth service's."""
    token = create_access_token({"sub": caller.user_id, "tid": caller.tenant_id, "role": caller.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def session_factory():
    """Create test database and tables; yield a session factory bound to it."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def test_db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def workshop(test_db: AsyncSession) -> Workshop:
    """Seed one tenant with the records every quote needs."""
    tenant_id = str(uuid.uuid4())
    receptionist = UserFactory(tenant_id=tenant_id)
    mechanic = MechanicFactory(tenant_id=tenant_id)
    other_mechanic = MechanicFactory(tenant_id=tenant_id)
    customer = CustomerFactory(tenant_id=tenant_id)
    vehicle = VehicleFactory(customer_id=customer["id"])
    elevator = ElevatorFactory(tenant_id=tenant_id)

    test_db.add_all([
        User(**receptionist),
        User(**mechanic),
        User(**other_mechanic),
        Customer(**customer),
        Vehicle(**vehicle),
        Elevator(**elevator),
    ])
    await test_db.commit()

    return Workshop(
        tenant_id=tenant_id,
        receptionist=caller_for(receptionist),
        mechanic=caller_for(mechanic),
        other_mechanic=caller_for(other_mechanic),
        customer_id=customer["id"],
        vehicle_id=vehicle["id"],
        elevator_id=elevator["id"],
    )


@pytest_asyncio.fixture
async def client(session_factory):
    """Create test client; each request gets its own session like in production."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


class QuoteFlow:
    """Drives a quote through the workflow services up to a given stage."""

    def __init__(self, db: AsyncSession, workshop: Workshop):
        self.db = db
        self.workshop = workshop

    async def draft(self, **overrides):
        data = QuoteCreate(
            customer_id=self.workshop.customer_id,
            vehicle_id=self.workshop.vehicle_id,
            reported_problem_category=overrides.pop("reported_problem_category", "motor"),
            reported_problem_description=overrides.pop(
                "reported_problem_description", "Motor falhando na partida"
            ),
            reported_problem_symptoms=overrides.pop("reported_problem_symptoms", ["falha", "fumaça"]),
            **overrides,
        )
        return await quote_service.create_quote(self.db, self.workshop.receptionist, data)

    async def awaiting(self, **overrides):
        quote = await self.draft(**overrides)
        return await quote_service.submit_for_diagnosis(self.db, self.workshop.receptionist, quote.id)

    async def claimed(self, **overrides):
        quote = await self.awaiting(**overrides)
        return await mechanic_claims.claim_quote(self.db, self.workshop.mechanic, quote.id)

    async def diagnosed(self, **overrides):
        quote = await self.claimed(**overrides)
        return await diagnosis.record_diagnosis(
            self.db, self.workshop.mechanic, quote.id, DiagnosisCreate(**DiagnosisFactory())
        )

    async def priced(self, **overrides):
        quote = await self.diagnosed(**overrides)
        update = QuoteUpdate(
            items=[QuoteItemCreate(type="service", name="Troca de vela", quantity=4, unit_cost=Decimal("25.00"))],
            labor_cost=Decimal("150.00"),
        )
        return await quote_service.update_quote(self.db, self.workshop.receptionist, quote.id, update)

    async def sent(self, **overrides):
        """Returns (quote, token)."""
        quote = await self.priced(**overrides)
        quote, token, _ = await quote_service.send_quote(self.db, self.workshop.receptionist, quote.id)
        return quote, token


@pytest.fixture
def flow(test_db: AsyncSession, workshop: Workshop) -> QuoteFlow:
    return QuoteFlow(test_db, workshop)
