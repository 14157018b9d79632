from fastapi import APIRouter, Depends, Query
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from app.api.dependencies import CurrentUser, require_permission
from app.core.database import get_async_session
from app.core.exceptions import DepartmentNotFoundError
from app.schemas.common.pagination import PaginatedResponse
from app.services.organization.department_service import DepartmentService
from app.schemas.organization.department_schema import DepartmentCreate, DepartmentUpdate, DepartmentResponse

router = APIRouter()

@router.post("/", response_model=DepartmentResponse, status_code=201)
async def create_department(
    department: DepartmentCreate,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("department", "create"))
):
    """Create a new department"""
    service = DepartmentService(session)
    return await service.create_department(department, current_user.id)

@router.get("/", response_model=PaginatedResponse[DepartmentResponse])
async def get_departments(
    page_index: int = Query(1, ge=1),
    page_size: int = Query(100, ge=1, le=1000),
    search: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("department", "list"))
):
    """Get all departments with filtering"""
    service = DepartmentService(session)
    return await service.get_departments(page_index, page_size, search, is_active)

@router.get("/slug/{slug}", response_model=DepartmentResponse)
async def get_department_by_slug(
    slug: str,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("department", "list"))
):
    """Get department by slug"""
    service = DepartmentService(session)
    department = await service.get_department_by_slug(slug)
    if department is None:
        raise DepartmentNotFoundError()
    return department

@router.get("/{department_id}", response_model=DepartmentResponse)
async def get_department(
    department_id: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("department", "list"))
):
    """Get department by ID"""
    service = DepartmentService(session)
    department = await service.get_department(department_id)
    if department is None:
        raise DepartmentNotFoundError()
    return department

@router.put("/{department_id}", response_model=DepartmentResponse)
async def update_department(
    department_id: int,
    department: DepartmentUpdate,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("department", "update"))
):
    """Update department"""
    service = DepartmentService(session)
    return await service.update_department(department_id, department, current_user.id)

@router.delete("/{department_id}")
async def delete_department(
    department_id: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("department", "delete"))
):
    """Delete department"""
    service = DepartmentService(session)
    result = await service.delete_department(department_id, current_user.id)
    return {"message": "Department deleted successfully", "success": result}
