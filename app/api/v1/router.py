from fastapi import APIRouter

from app.api.v1.endpoints import generate, profiles

api_router = APIRouter()

api_router.include_router(generate.router, prefix="/generate", tags=["Generate"])
api_router.include_router(profiles.router, prefix="/profiles", tags=["Profiles"])
