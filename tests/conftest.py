"""
Shared pytest fixtures available to every test file automatically.
No imports needed in test files; pytest discovers this by convention.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from tortoise import Tortoise

from rentals.deps import get_current_user
from rentals.errors import install_error_handlers
from rentals.routers import (
    agreements,
    availability,
    booking,
    inspections,
    notifications,
    webhooks,
)

from .factories import make_admin, make_customer, make_staff

# ---------------------------------------------------------------------------
# Default no-op cache mock, prevents real Redis calls in tests
# ---------------------------------------------------------------------------


def noop_cache():
    mock = MagicMock()
    mock.get = AsyncMock(return_value=None)
    mock.set = AsyncMock(return_value=None)
    mock.invalidate = AsyncMock(return_value=None)
    return mock


# ---------------------------------------------------------------------------
# App builder, used by all client fixtures
# ---------------------------------------------------------------------------


def build_app(current_user=None, cache=None) -> FastAPI:
    """
    Fresh FastAPI app with every router and the error handlers installed.

    `get_current_user` is overridden to return `current_user`; the scope
    dependencies built on top of it still run, so permission rules are real.
    Pass `current_user=None` to keep the real header-reading dependency.
    """
    app = FastAPI()
    install_error_handlers(app)
    for module in (availability, booking, agreements, inspections, notifications, webhooks):
        app.include_router(module.router)

    if current_user is not None:

        async def _user():
            return current_user

        app.dependency_overrides[get_current_user] = _user

    app.state.blocked_cache = cache if cache is not None else noop_cache()
    return app


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture()
async def db():
    """In-memory SQLite database with the rentals schema, fresh per test."""
    await Tortoise.init(
        db_url="sqlite://:memory:", modules={"models": ["rentals.models"]}
    )
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()


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
def admin_client():
    return TestClient(build_app(make_admin()), raise_server_exceptions=True)


@pytest.fixture()
def anon_app():
    """
    Bare app with NO dependency overrides.
    Use this when you want real scope/auth deps to run so you can assert 401/403/422.
    """
    return build_app()


@pytest.fixture()
def client_factory():
    def _make(current_user, cache=None) -> TestClient:
        return TestClient(
            build_app(current_user, cache=cache), raise_server_exceptions=True
        )

    return _make


@pytest.fixture()
def async_client_factory():
    """
    httpx client bound to the app in the test's own event loop.
    Use it for endpoint tests that hit the real (SQLite) database.
    """

    def _make(current_user=None, cache=None) -> httpx.AsyncClient:
        app = build_app(current_user, cache=cache)
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://test",
            follow_redirects=True,
        )

    return _make
