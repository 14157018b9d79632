from fastapi import APIRouter
from app.api.v1.endpoints.hr import employees
from app.api.v1.endpoints.kpi import entries, templates
from app.api.v1.endpoints.organization import departments

api_router = APIRouter()

# Organization routes
api_router.include_router(departments.router, prefix="/organization/department", tags=["Organization"])

# HR routes
api_router.include_router(employees.router, prefix="/hr/employee", tags=["Human Resource"])

# KPI routes
api_router.include_router(templates.router, prefix="/kpi/template", tags=["KPI"])
api_router.include_router(entries.router, prefix="/kpi/entry", tags=["KPI"])
