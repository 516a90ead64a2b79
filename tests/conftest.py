"""
Shared pytest fixtures available to every test file automatically.
No imports needed in test files, pytest discovers this by convention.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.testclient import TestClient
from tortoise import Tortoise, connections

from facility_bookings.deps import (
    can_cancel_or_manage_booking,
    can_manage_booking,
    can_manage_trainer_booking,
    can_read_or_manage_booking,
    can_read_trainer_booking,
    can_write_booking,
    get_activity_client,
    get_current_user,
)
from facility_bookings.errors import register_error_handlers
from facility_bookings.routers import booking, trainer_booking
from facility_bookings.settings import TORTOISE_MODULES

from .factories import make_customer, make_staff

# ---------------------------------------------------------------------------
# Database: in-memory SQLite, fresh schema per test
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture()
async def db():
    await Tortoise.init(
        db_url="sqlite://:memory:",
        modules=TORTOISE_MODULES,
        use_tz=True,
        timezone="UTC",
    )
    await Tortoise.generate_schemas()
    yield
    await connections.close_all()


# ---------------------------------------------------------------------------
# Default no-op collaborators: prevent real HTTP / redis calls in tests
# ---------------------------------------------------------------------------


def _noop_activity_client():
    mock = MagicMock()
    mock.track = AsyncMock(return_value=True)
    return mock


@pytest.fixture(autouse=True)
def _no_slots_cache():
    with (
        patch(
            "facility_bookings.routers.booking.get_slots_cache",
            AsyncMock(return_value=None),
        ),
        patch("facility_bookings.routers.booking.set_slots_cache", AsyncMock()),
        patch("facility_bookings.routers.booking.invalidate_slots_cache", AsyncMock()),
    ):
        yield


# ---------------------------------------------------------------------------
# App builder: used by all client fixtures
# ---------------------------------------------------------------------------


def build_app(current_user, activity_client=None) -> FastAPI:
    """
    Fresh FastAPI app with auth/scope dependencies overridden to return
    `current_user` unconditionally. Engine errors are mapped exactly as in
    the real app.
    """
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(booking.router)
    app.include_router(booking.slots_router)
    app.include_router(trainer_booking.router)

    async def _user():
        return current_user

    for dep in (
        can_read_or_manage_booking,
        can_cancel_or_manage_booking,
        can_write_booking,
        can_manage_booking,
        can_read_trainer_booking,
        can_manage_trainer_booking,
        get_current_user,
    ):
        app.dependency_overrides[dep] = _user

    ac = activity_client if activity_client is not None else _noop_activity_client()
    app.dependency_overrides[get_activity_client] = lambda: ac

    return app


# ---------------------------------------------------------------------------
# Reusable client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def customer_client():
    return TestClient(build_app(make_customer()), raise_server_exceptions=True)


@pytest.fixture()
def staff_client():
    return TestClient(build_app(make_staff()), raise_server_exceptions=True)


@pytest.fixture()
def anon_app():
    """
    Bare app with NO dependency overrides.
    Use this when you want real scope/auth deps to run so you can assert 401/403/422.
    """
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(booking.router)
    app.include_router(trainer_booking.router)
    return app


@pytest.fixture()
def client_factory():
    def _make(current_user, activity_client=None) -> TestClient:
        return TestClient(
            build_app(current_user, activity_client=activity_client),
            raise_server_exceptions=True,
        )

    return _make
