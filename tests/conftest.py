"""
Shared test fixtures.

Uses a file-backed SQLite database (via aiosqlite) per test so tests run
without Docker / PostgreSQL / Redis, while separate sessions still share
one database -- the concurrency tests need two connections racing on the
same rows.  Redis is replaced by ``AsyncMock`` where it is needed at all.
"""

from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.domain.entities import Location, Principal, RideDetails
from src.domain.enums import (
    ActorRole,
    ApprovalStatus,
    Availability,
    BookingStatus,
    BookingType,
    FulfillerKind,
    PaymentMethod,
    PaymentStatus,
    PriceSetBy,
)
from src.infrastructure.database import Base
from src.infrastructure.models import BookingModel, FulfillerModel
from src.infrastructure.notifications import NullNotifier

REQUESTER = Principal(id=1, role=ActorRole.USER)
OTHER_USER = Principal(id=2, role=ActorRole.USER)
ADMIN = Principal(id=900, role=ActorRole.ADMIN)


def driver(user_id: int = 50) -> Principal:
    return Principal(id=user_id, role=ActorRole.DRIVER)


def logistics(user_id: int = 60) -> Principal:
    return Principal(id=user_id, role=ActorRole.LOGISTICS)


RIDE = RideDetails(
    pickup=Location("Banjul International Airport", 13.338, -16.652),
    destination=Location("Senegambia Strip, Kololi", 13.449, -16.722),
)


class RecordingNotifier(NullNotifier):
    """Captures dispatched events instead of queueing them."""

    def __init__(self):
        super().__init__()
        self.events: list[tuple[str, dict]] = []

    def dispatch(self, event: str, **payload) -> None:
        self.events.append((event, payload))

    def names(self) -> list[str]:
        return [event for event, _ in self.events]


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh schema in a throwaway file; dropped with ``tmp_path``."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}",
        echo=False,
        connect_args={"timeout": 15},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


# ── Builders ──────────────────────────────────────────────────────────


async def make_fulfiller(
    session: AsyncSession,
    *,
    user_id: int = 50,
    kind: FulfillerKind = FulfillerKind.DRIVER,
    approval: ApprovalStatus = ApprovalStatus.APPROVED,
    availability: Availability = Availability.AVAILABLE,
    current_booking_id: Optional[int] = None,
    rating_average: float = 0.0,
    display_name: str = "Lamin Jallow",
) -> FulfillerModel:
    row = FulfillerModel(
        user_id=user_id,
        kind=kind,
        display_name=display_name,
        approval_status=approval,
        availability=availability,
        current_booking_id=current_booking_id,
        rating_average=rating_average,
        rating_total=0,
        rating_breakdown={},
        rating_version=0,
    )
    session.add(row)
    await session.commit()
    return row


async def make_booking(
    session: AsyncSession,
    *,
    requester_id: int = REQUESTER.id,
    booking_type: BookingType = BookingType.RIDE,
    status: BookingStatus = BookingStatus.PENDING,
    fulfiller_id: Optional[int] = None,
    price_amount: Optional[float] = None,
    price_set_by: PriceSetBy = PriceSetBy.ADMIN,
) -> BookingModel:
    row = BookingModel(
        requester_id=requester_id,
        type=booking_type,
        status=status,
        fulfiller_id=fulfiller_id,
        pickup_address="Serrekunda Market",
        destination_address="Bakau Fish Market",
        payment_method=PaymentMethod.CASH,
        payment_status=PaymentStatus.PENDING,
        price_amount=price_amount,
        price_currency="GMD" if price_amount is not None else None,
        price_set_by=price_set_by if price_amount is not None else None,
    )
    session.add(row)
    await session.commit()
    return row
