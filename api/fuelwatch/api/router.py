from fastapi import APIRouter

from fuelwatch.api.routes import auth, events, health, locations, moderation, prices, stations, submissions, sync

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(stations.router, prefix="/stations", tags=["public"])
api_router.include_router(locations.router, prefix="/locations", tags=["public"])
api_router.include_router(prices.router, prefix="/prices", tags=["public"])
api_router.include_router(events.router, prefix="/events", tags=["public"])
api_router.include_router(submissions.router, prefix="/submissions", tags=["public"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(moderation.router, prefix="/moderation", tags=["moderation"])
api_router.include_router(sync.router, prefix="/sync", tags=["sync"])
