# backend/tests/routes/conftest.py
"""
HTTP-level fixtures. The app runs against the per-test in-memory session and
the authenticated caller is injected through dependency overrides.
"""

from typing import Callable, Iterator, Optional

from fastapi.testclient import TestClient
import pytest

from therapport.api.dependencies.auth import Principal, get_current_principal
from therapport.api.dependencies.database import get_db
from therapport.core.enums import UserRole
from therapport.main import app


@pytest.fixture
def client(db) -> Iterator[TestClient]:
    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def login(client) -> Callable[..., TestClient]:
    """Act as ``user`` for the rest of the test; ``None`` logs out."""

    def _login(user: Optional[object], role: Optional[UserRole] = None) -> TestClient:
        if user is None:
            app.dependency_overrides.pop(get_current_principal, None)
            return client
        principal = Principal(user_id=user.id, role=role or UserRole(user.role))
        app.dependency_overrides[get_current_principal] = lambda: principal
        return client

    return _login
