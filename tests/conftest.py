"""
Test configuration and fixtures.

This module sets up the test environment and provides shared fixtures for all tests.
Integration tests run against a file-backed SQLite database (aiosqlite) created
per test in tmp_path; every transaction opens with BEGIN IMMEDIATE so concurrent
writers serialise the way row locks make them serialise on PostgreSQL.
"""

import os
from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

# Override settings for tests
# Must be set BEFORE any imports of shared.config
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./booking_test.db"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["LOG_LEVEL"] = "WARNING"

from booking.transactions import BookingOrchestrator  # noqa: E402
from database.connection import (  # noqa: E402
    create_engine_from_url,
    create_schema,
    create_session_factory,
)
from database.models import Provider, Service, TimeSlot, User, UserRole  # noqa: E402
from shared.time_utils import at_utc  # noqa: E402

# Fixed "now" used by every clock-dependent test
NOW = datetime(2030, 1, 15, 8, 0, tzinfo=UTC)
TOMORROW = date(2030, 1, 16)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    """Deterministic clock injected into the booking services."""
    return lambda: NOW


@pytest.fixture
async def engine(tmp_path):
    """Fresh SQLite database per test, disposed afterwards."""
    engine = create_engine_from_url(f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def orchestrator(session_factory, clock):
    return BookingOrchestrator(session_factory, clock=clock)


async def seed_booking_data(session_factory) -> SimpleNamespace:
    """
    Two customers, two providers (each with one service), one admin, and four
    one-hour slots for the first provider on TOMORROW (09:00-13:00 UTC).
    """
    async with session_factory() as session:
        async with session.begin():
            customer = User(name="Ana Ruiz", email="ana@example.com", role=UserRole.CUSTOMER)
            other_customer = User(name="Luis Gil", email="luis@example.com", role=UserRole.CUSTOMER)
            provider_user = User(name="Studio North", email="north@example.com", role=UserRole.PROVIDER)
            other_provider_user = User(name="Studio South", email="south@example.com", role=UserRole.PROVIDER)
            admin = User(name="Admin", email="admin@example.com", role=UserRole.ADMIN)
            session.add_all([customer, other_customer, provider_user, other_provider_user, admin])
            await session.flush()

            provider = Provider(user_id=provider_user.id, business_name="Studio North")
            other_provider = Provider(user_id=other_provider_user.id, business_name="Studio South")
            session.add_all([provider, other_provider])
            await session.flush()

            service = Service(
                provider_id=provider.id,
                name="Haircut",
                duration_minutes=60,
                price=Decimal("40.00"),
                category="hair",
            )
            other_service = Service(
                provider_id=other_provider.id,
                name="Massage",
                duration_minutes=60,
                price=Decimal("55.00"),
                category="wellness",
            )
            session.add_all([service, other_service])

            slots = [
                TimeSlot(
                    provider_id=provider.id,
                    start_time=at_utc(TOMORROW, time(hour)),
                    end_time=at_utc(TOMORROW, time(hour + 1)),
                )
                for hour in (9, 10, 11, 12)
            ]
            session.add_all(slots)
            await session.flush()

    return SimpleNamespace(
        customer_id=customer.id,
        other_customer_id=other_customer.id,
        admin_id=admin.id,
        provider_id=provider.id,
        provider_user_id=provider_user.id,
        other_provider_id=other_provider.id,
        service_id=service.id,
        other_service_id=other_service.id,
        slot_ids=[slot.id for slot in slots],
        slot_starts=[slot.start_time for slot in slots],
    )


@pytest.fixture
def make_slot(session_factory):
    """Insert a single slot starting at an arbitrary instant."""

    async def _make_slot(provider_id, start: datetime, minutes: int = 60, **fields) -> TimeSlot:
        async with session_factory() as session:
            async with session.begin():
                slot = TimeSlot(
                    provider_id=provider_id,
                    start_time=start,
                    end_time=start + timedelta(minutes=minutes),
                    **fields,
                )
                session.add(slot)
        return slot

    return _make_slot


@pytest.fixture
async def seeded(session_factory):
    return await seed_booking_data(session_factory)


@pytest.fixture
def booking_seeder():
    """The seeding coroutine itself, for tests that run it on another event loop."""
    return seed_booking_data
