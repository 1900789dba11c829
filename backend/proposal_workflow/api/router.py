"""
All API routes
"""
from fastapi import APIRouter

from proposal_workflow.api.v1 import proposals, admin, notifications

api_router = APIRouter(prefix="/api/v1")

# Submitters: drafts and submission
api_router.include_router(proposals.router)

# Reviewers and administrators
api_router.include_router(admin.router)

# Per-user notifications
api_router.include_router(notifications.router)
