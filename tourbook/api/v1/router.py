"""Main API router that includes all endpoint routers."""

from fastapi import APIRouter

from tourbook.api.v1 import admin, assignments, bookings, payments, workflow

api_router = APIRouter()

# Workflow graph
api_router.include_router(workflow.router, prefix="/workflow", tags=["Workflow"])

# Bookings
api_router.include_router(bookings.router, prefix="/bookings", tags=["Bookings"])

# Assignments
api_router.include_router(assignments.router, prefix="/assignments", tags=["Assignments"])

# Payments
api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])

# Admin
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])
