"""
API v1 Router

Shop-scoped endpoints resolve the shop from the caller's reconciled
membership rather than from the path.
"""

from fastapi import APIRouter

from . import membership, shops, team

router = APIRouter()

router.include_router(membership.router, prefix="/membership", tags=["Membership"])
router.include_router(shops.router, prefix="/shops", tags=["Shops"])
router.include_router(team.router, prefix="/team", tags=["Team"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/membership",
            "/membership/check",
            "/membership/sync",
            "/membership/fix",
            "/shops",
            "/shops/current",
            "/team/members",
            "/team/me",
            "/team/invitations",
        ],
    }
