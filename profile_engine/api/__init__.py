from fastapi import APIRouter
from profile_engine.api import profile, recommendations

api_router = APIRouter()
api_router.include_router(profile.router, prefix="/projects/{project_id}/profile", tags=["profile"])
api_router.include_router(
    recommendations.router,
    prefix="/projects/{project_id}/recommendations",
    tags=["recommendations"],
)
