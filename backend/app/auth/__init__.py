# app/auth/__init__.py
"""
Authentication modules for the HireHub identity backend.

This package contains:
- roles.py: The closed set of platform roles
- tokens.py: Access/refresh token issuing and verification
- principal.py: Caller model built from verified token claims
- handoff.py: Role -> client application routing and hand-off URLs
"""
from app.auth.principal import Principal
from app.auth.roles import Role

__all__ = ["Principal", "Role"]
