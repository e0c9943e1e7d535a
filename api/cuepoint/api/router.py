from fastapi import APIRouter

from cuepoint.api.routes import admin, company_groups, company_jobs, health

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(company_jobs.router, prefix="/company/jobs", tags=["company"])
api_router.include_router(company_groups.router, prefix="/company/groups", tags=["company"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
