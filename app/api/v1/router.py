from fastapi import APIRouter

# Public: seat reads and pricing catalogs
from app.api.v1.public.seats import router as public_seats_router

# Public: reservations (reserve, release, confirm, history)
from app.api.v1.public.reservations import router as reservations_router

# Admin: seat batches and pricing writes
from app.api.v1.admin.seats import router as admin_seats_router
from app.api.v1.admin.pricing import router as admin_pricing_router

api_router = APIRouter()

# --- Public: reads ---
api_router.include_router(public_seats_router)

# --- Public: reservations ---
api_router.include_router(reservations_router)

# --- Admin ---
api_router.include_router(admin_seats_router)
api_router.include_router(admin_pricing_router)
