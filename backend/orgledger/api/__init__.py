from fastapi import APIRouter

from orgledger.api.audit import router as audit_router
from orgledger.api.invites import router as invites_router
from orgledger.api.members import router as members_router
from orgledger.api.organizations import router as organizations_router

api_router = APIRouter(prefix="/api")

api_router.include_router(organizations_router)
api_router.include_router(members_router)
api_router.include_router(invites_router)
api_router.include_router(audit_router)
