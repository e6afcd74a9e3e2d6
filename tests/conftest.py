"""
Shared test fixtures.

Everything runs in-process: in-memory ride store, location channel and
per-ride locks, plus a SQLite file database (via aiosqlite) for the
durable store.  No Docker / PostgreSQL / Redis is required.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from ridecore.api.app import create_app
from ridecore.api.dependencies import get_container
from ridecore.api.middleware import limiter
from ridecore.bootstrap import Container
from ridecore.domain.billing import Company
from ridecore.domain.entities import (
    Coords,
    DriverSnapshot,
    PassengerSnapshot,
    RideRequest,
)
from ridecore.domain.enums import CompanyStatus, ServiceType
from ridecore.domain.pricing import (
    PricingCalculator,
    PricingSettings,
    StaticPricingProvider,
)
from ridecore.infrastructure.companies import InMemoryCompanyDirectory
from ridecore.infrastructure.database import (
    build_engine,
    build_session_factory,
    create_schema,
)
from ridecore.infrastructure.locks import LocalRideLocks
from ridecore.infrastructure.sql_store import SqlRideStore
from ridecore.infrastructure.store import InMemoryRideStore
from ridecore.realtime.location import InMemoryLocationChannel
from ridecore.services.dispatch import DispatchService
from ridecore.services.lifecycle import RideLifecycleEngine


# ── Test doubles ──────────────────────────────────────────────────────


class RecordingNotifier:
    """Collects ``(event, payload)`` pairs instead of calling a webhook."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    def trigger(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((getattr(event, "value", event), payload))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    async def aclose(self) -> None:
        return None


class StepClock:
    """Deterministic clock; each call advances one second."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(seconds=1)
        return current


PASSENGER = PassengerSnapshot(id="p-1", name="Ana", phone="+5511900000001")
DRIVER = DriverSnapshot(
    id="d-1", name="Joao", vehicle="Honda CG 160", plate="ABC1D23"
)
OTHER_DRIVER = DriverSnapshot(id="d-2", name="Maria", vehicle="Yamaha Factor")

ACTIVE_COMPANY = Company(
    id="acme",
    name="Acme",
    credit_limit=Decimal("100.00"),
    used_credit=Decimal("80.00"),
    status=CompanyStatus.ACTIVE,
)


def make_ride(**overrides) -> RideRequest:
    fields = dict(
        passenger=PASSENGER,
        origin="Praca da Se",
        destination="Avenida Paulista",
        service_type=ServiceType.MOTO_TAXI,
        price=Decimal("25.00"),
        origin_coords=Coords(-23.5505, -46.6333),
        destination_coords=Coords(-23.5651, -46.6527),
    )
    fields.update(overrides)
    return RideRequest(**fields)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> StepClock:
    return StepClock(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def pricing_provider() -> StaticPricingProvider:
    return StaticPricingProvider(
        PricingSettings(base_price=Decimal("5.00"), price_per_km=Decimal("2.00"))
    )


@pytest.fixture
def store() -> InMemoryRideStore:
    return InMemoryRideStore()


@pytest.fixture
def locations() -> InMemoryLocationChannel:
    return InMemoryLocationChannel()


@pytest.fixture
def engine(store, notifier, locations, pricing_provider, clock) -> RideLifecycleEngine:
    return RideLifecycleEngine(
        store=store,
        pricing=PricingCalculator(pricing_provider),
        notifier=notifier,
        locations=locations,
        locks=LocalRideLocks(),
        clock=clock,
    )


@pytest_asyncio.fixture
async def sql_store(tmp_path) -> AsyncGenerator[SqlRideStore, None]:
    """Durable store on a throwaway SQLite file."""
    db_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'rides.db'}")
    await create_schema(db_engine)
    yield SqlRideStore(build_session_factory(db_engine))
    await db_engine.dispose()


@pytest.fixture
def companies() -> InMemoryCompanyDirectory:
    return InMemoryCompanyDirectory([ACTIVE_COMPANY])


@pytest_asyncio.fixture
async def client(
    engine, store, pricing_provider, companies
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app with in-memory backends."""
    container = Container(
        engine=engine,
        dispatch=DispatchService(store),
        pricing=pricing_provider,
        companies=companies,
    )
    app = create_app()
    app.dependency_overrides[get_container] = lambda: container
    limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
