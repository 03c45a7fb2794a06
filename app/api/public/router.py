"""
Public API Router

Combines all unauthenticated endpoints under /api/public.
"""

from fastapi import APIRouter

from app.api.public import quotes

# Create the main public API router
public_router = APIRouter()

# Customer quote link
public_router.include_router(quotes.router)
