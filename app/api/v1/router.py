"""Main API router that includes all endpoint routers."""

from fastapi import APIRouter

from app.api.v1 import admin, bookings, payments, stays

api_router = APIRouter()

# Stays (applications)
api_router.include_router(stays.router, prefix="/stays", tags=["Stays"])

# Bookings
api_router.include_router(bookings.router, prefix="/bookings", tags=["Bookings"])

# Payments
api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])

# Admin
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])
