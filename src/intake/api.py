from fastapi import APIRouter

from intake.modules.applications.router import prompts_router
from intake.modules.applications.router import router as applications_router
from intake.modules.auth.router import router as auth_router
from intake.modules.reviews.router import router as reviews_router
from intake.modules.uploads.router import router as uploads_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

api_router.include_router(prompts_router, prefix="/prompts", tags=["Prompts"])

api_router.include_router(applications_router, prefix="/applications", tags=["Applications"])

api_router.include_router(uploads_router, prefix="/uploads", tags=["Uploads"])

api_router.include_router(reviews_router, prefix="/admin", tags=["Admin - Reviews"])
