"""
Dependency providers for routes.

Database sessions, the authenticated principal and service factories.
"""

from .auth import Principal, get_current_principal, require_admin
from .database import get_db

__all__ = [
    "Principal",
    "get_current_principal",
    "get_db",
    "require_admin",
]
