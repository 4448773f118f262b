from fastapi import APIRouter

# Public — shows & seat selection
from quickshow.api.v1.public.shows import router as shows_router

# Public — bookings
from quickshow.api.v1.public.bookings import router as bookings_router

# Public — payment provider callbacks
from quickshow.api.v1.public.payments import router as payments_router

# Public — notifications
from quickshow.api.v1.public.me import router as me_router

# Admin
from quickshow.api.v1.admin.shows import router as admin_shows_router
from quickshow.api.v1.admin.bookings import router as admin_bookings_router

api_router = APIRouter()

# --- Public: shows & seat selection ---
api_router.include_router(shows_router)

# --- Public: bookings ---
api_router.include_router(bookings_router)

# --- Public: payments ---
api_router.include_router(payments_router)

# --- Public: notifications ---
api_router.include_router(me_router)

# --- Admin ---
api_router.include_router(admin_shows_router)
api_router.include_router(admin_bookings_router)
