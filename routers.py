from fastapi import APIRouter
from endpoints.notifications import router as notifications_router
from endpoints.realtime_ws import router as realtime_ws_router

api_router = APIRouter()
api_router.include_router(realtime_ws_router, tags=["realtime"])
api_router.include_router(notifications_router, prefix="/realtime", tags=["notifications"])
