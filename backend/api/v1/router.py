"""API v1 aggregated router.

All v1 endpoints are registered here and mounted under /api/v1 in main.py.
This makes it trivial to add /api/v2 later without touching existing routes.
"""

from fastapi import APIRouter

from api.routes import audit, health, permissions, roles, users

api_v1_router = APIRouter()

# Health (no auth required)
api_v1_router.include_router(
    health.router,
    tags=["Health"],
)

# Users, profiles and user-role assignments
api_v1_router.include_router(
    users.router,
    prefix="/users",
    tags=["Users"],
)

# Roles and their permission bundles
api_v1_router.include_router(
    roles.router,
    prefix="/roles",
    tags=["Roles"],
)

# Permission catalog, direct overrides, effective permissions
api_v1_router.include_router(
    permissions.router,
    prefix="/permissions",
    tags=["Permissions"],
)

# Audit trail (read-only)
api_v1_router.include_router(
    audit.router,
    prefix="/audit",
    tags=["Audit"],
)
