from __future__ import annotations

from app.auth.roles import Role
from app.dependencies.auth import require_roles

# Ensure the authenticated caller holds the admin role (claims only, no DB lookup).
require_admin = require_roles(Role.ADMIN)
