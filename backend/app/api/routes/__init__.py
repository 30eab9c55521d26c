"""API Routes module"""
from fastapi import APIRouter

from .organizations import router as organizations_router
from .policies import router as policies_router
from .expenses import router as expenses_router
from .vouchers import router as vouchers_router
from .invites import router as invites_router
from .files import router as files_router

# Main API router
api_router = APIRouter()

# Include all route modules
api_router.include_router(organizations_router, tags=["Organizations"])
api_router.include_router(policies_router, tags=["Policies"])
api_router.include_router(expenses_router, tags=["Expenses"])
api_router.include_router(vouchers_router, tags=["Vouchers"])
api_router.include_router(invites_router, tags=["Invitations"])
api_router.include_router(files_router, tags=["Files"])

__all__ = ["api_router"]
