from fastapi import APIRouter

from servicegrid_portal.api.v1 import auth, portal_access, portal_auth

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(portal_auth.router, prefix="/portal-auth", tags=["portal-auth"])
api_router.include_router(portal_access.router, tags=["portal-access"])
