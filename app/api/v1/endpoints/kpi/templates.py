from fastapi import APIRouter, Depends, Query
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from app.api.dependencies import CurrentUser, require_permission
from app.core.database import get_async_session
from app.models.shared.enums import TemplateFrequency
from app.schemas.common.pagination import PaginatedResponse
from app.schemas.kpi.template_schema import (
    TemplateCreate, TemplateUpdate, TemplateResponse,
    TemplateVersionCreate, TemplateVersionResponse, TemplateFormStructure
)
from app.services.kpi.template_service import TemplateService

router = APIRouter()

@router.post("/", response_model=TemplateResponse, status_code=201)
async def create_template(
    template: TemplateCreate,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("template", "create"))
):
    """Create a KPI template"""
    service = TemplateService(session)
    return await service.create_template(template, current_user.id)

@router.get("/", response_model=PaginatedResponse[TemplateResponse])
async def get_templates(
    page_index: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=1000),
    search: Optional[str] = Query(None),
    department_slug: Optional[str] = Query(None),
    frequency: Optional[TemplateFrequency] = Query(None),
    role: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("template", "list"))
):
    """Get templates with search, filters and pagination"""
    service = TemplateService(session)
    return await service.get_templates(
        page_index=page_index,
        page_size=page_size,
        search=search,
        department_slug=department_slug,
        frequency=frequency,
        role=role,
    )

@router.get("/department/{department_slug}", response_model=List[TemplateResponse])
async def get_templates_by_department(
    department_slug: str,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("template", "list"))
):
    service = TemplateService(session)
    return await service.get_templates_by_department(department_slug)

@router.get("/frequency/{frequency}", response_model=List[TemplateResponse])
async def get_templates_by_frequency(
    frequency: TemplateFrequency,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("template", "list"))
):
    service = TemplateService(session)
    return await service.get_templates_by_frequency(frequency)

@router.get("/role/{role}", response_model=List[TemplateResponse])
async def get_templates_by_role(
    role: str,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("template", "list"))
):
    service = TemplateService(session)
    return await service.get_templates_by_role(role)

@router.get("/employee/{employee_id}", response_model=List[TemplateResponse])
async def get_templates_for_employee(
    employee_id: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("template", "list"))
):
    """Templates for the employee's department and role"""
    service = TemplateService(session)
    return await service.get_templates_for_employee(employee_id)

@router.post("/versions", response_model=TemplateVersionResponse, status_code=201)
async def create_template_version(
    version: TemplateVersionCreate,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("template", "create"))
):
    """Store a snapshot of a template under a version number"""
    service = TemplateService(session)
    return await service.create_version(version, current_user.id)

@router.get("/{template_id}/versions", response_model=List[TemplateVersionResponse])
async def get_template_versions(
    template_id: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("template", "list"))
):
    service = TemplateService(session)
    return await service.get_versions(template_id)

@router.get("/{template_id}/versions/{version}", response_model=TemplateVersionResponse)
async def get_template_version(
    template_id: int,
    version: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("template", "list"))
):
    service = TemplateService(session)
    return await service.get_version(template_id, version)

@router.get("/{template_id}/form", response_model=TemplateFormStructure)
async def get_template_form(
    template_id: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("template", "list"))
):
    """Metric fields of a template with their normalized keys"""
    service = TemplateService(session)
    return await service.get_form_structure(template_id)

@router.get("/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("template", "list"))
):
    service = TemplateService(session)
    return await service.get_template_or_404(template_id)

@router.put("/{template_id}", response_model=TemplateResponse)
async def update_template(
    template_id: int,
    template: TemplateUpdate,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("template", "update"))
):
    service = TemplateService(session)
    return await service.update_template(template_id, template, current_user.id)

@router.delete("/{template_id}")
async def delete_template(
    template_id: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("template", "delete"))
):
    service = TemplateService(session)
    await service.delete_template(template_id, current_user.id)
    return {"message": "Template deleted successfully"}
