"""API v1 router and endpoint organization."""

from fastapi import APIRouter

from getcare.api.v1 import content, keywords

router = APIRouter(prefix="/api/v1", tags=["v1"])

# Include domain-specific routers
router.include_router(content.router)
router.include_router(keywords.router)
