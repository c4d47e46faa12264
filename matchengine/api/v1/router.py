from fastapi import APIRouter

from matchengine.api.v1.match_engine import router as match_engine_router

v1_router = APIRouter()

v1_router.include_router(match_engine_router)
