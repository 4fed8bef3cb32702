"""API routers, mounted under /api/v1 by restaurant_booking.main."""
