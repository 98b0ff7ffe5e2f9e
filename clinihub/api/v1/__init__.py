"""V1 API router aggregation."""

from fastapi import APIRouter

from clinihub.api.v1.auth import router as auth_router
from clinihub.api.v1.configurations import router as configurations_router
from clinihub.api.v1.entitlements import router as entitlements_router
from clinihub.api.v1.platform_api_keys import router as platform_api_keys_router
from clinihub.api.v1.platform_auth import router as platform_auth_router
from clinihub.api.v1.platform_catalog import router as platform_catalog_router
from clinihub.api.v1.platform_tenants import router as platform_tenants_router
from clinihub.api.v1.provisioning import router as provisioning_router
from clinihub.api.v1.public import router as public_router
from clinihub.api.v1.system import router as system_router
from clinihub.api.v1.tq import router as tq_router
from clinihub.api.v1.users import router as users_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(auth_router)
v1_router.include_router(users_router)
v1_router.include_router(entitlements_router)
v1_router.include_router(configurations_router)
v1_router.include_router(tq_router)
v1_router.include_router(platform_auth_router)
v1_router.include_router(platform_tenants_router)
v1_router.include_router(platform_catalog_router)
v1_router.include_router(platform_api_keys_router)
v1_router.include_router(provisioning_router)
v1_router.include_router(public_router)
v1_router.include_router(system_router)
