from fastapi import APIRouter
from app.api.v1.endpoints import subscribe, public, projects

api_router = APIRouter()

api_router.include_router(subscribe.router)
api_router.include_router(public.router)
api_router.include_router(projects.router)
