"""
API v1 routes.
"""

from fastapi import APIRouter

from agora_authz.api.v1 import access_codes, audit, authz, principals
from agora_authz.schemas.common import ErrorResponse

# Body shape of every AuthorizationError the kernel raises
ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Constraint violation"},
    401: {"model": ErrorResponse, "description": "Not authenticated"},
    403: {"model": ErrorResponse, "description": "Forbidden"},
    409: {"model": ErrorResponse, "description": "Conflict"},
    429: {"model": ErrorResponse, "description": "Too many failed attempts"},
}

router = APIRouter(responses=ERROR_RESPONSES)

router.include_router(access_codes.router, prefix="/access-codes", tags=["Access Codes"])
router.include_router(authz.router, prefix="/authz", tags=["Authorization"])
router.include_router(principals.router, prefix="/principals", tags=["Principals"])
router.include_router(audit.router, prefix="/audit", tags=["Audit"])
