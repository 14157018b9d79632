import logging
from fastapi import APIRouter, Depends, Query
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from app.api.dependencies import CurrentUser, require_permission
from app.core.database import get_async_session
from app.core.exceptions import EmployeeNotFoundError
from app.schemas.common.pagination import PaginatedResponse
from app.services.hr.employee_service import EmployeeService
from app.schemas.hr.employee_schema import EmployeeCreate, EmployeeUpdate, EmployeeResponse

router = APIRouter()
logger = logging.getLogger(__name__)

@router.post("/", response_model=EmployeeResponse, status_code=201)
async def create_employee(
    employee: EmployeeCreate,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("employee", "create"))
):
    """Create a new employee"""
    service = EmployeeService(session)
    return await service.create_employee(employee, current_user.id)

@router.get("/", response_model=PaginatedResponse[EmployeeResponse])
async def get_employees(
    page_index: int = Query(1, ge=1),
    page_size: int = Query(100, ge=1, le=1000),
    department: Optional[str] = Query(None),
    department_role: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("employee", "list"))
):
    """Get all employees with filtering and pagination"""
    service = EmployeeService(session)
    return await service.get_employees(
        page_index=page_index,
        page_size=page_size,
        department=department,
        department_role=department_role,
        is_active=is_active,
        search=search
    )

@router.get("/department/{department}", response_model=List[EmployeeResponse])
async def get_employees_by_department(
    department: str,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("employee", "list"))
):
    """Get employees of a department"""
    service = EmployeeService(session)
    return await service.get_employees_by_department(department)

@router.get("/role/{department_role}", response_model=List[EmployeeResponse])
async def get_employees_by_role(
    department_role: str,
    department: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("employee", "list"))
):
    """Get employees holding a department role"""
    service = EmployeeService(session)
    return await service.get_employees_by_role(department_role, department)

@router.get("/{employee_id}", response_model=EmployeeResponse)
async def get_employee(
    employee_id: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("employee", "list"))
):
    """Get employee by ID"""
    service = EmployeeService(session)
    employee = await service.get_employee(employee_id)
    if not employee:
        raise EmployeeNotFoundError()
    return employee

@router.put("/{employee_id}", response_model=EmployeeResponse)
async def update_employee(
    employee_id: int,
    employee: EmployeeUpdate,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("employee", "update"))
):
    """Update employee"""
    service = EmployeeService(session)
    return await service.update_employee(employee_id, employee, current_user.id)

@router.delete("/{employee_id}")
async def delete_employee(
    employee_id: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("employee", "delete"))
):
    """Delete employee"""
    service = EmployeeService(session)
    await service.delete_employee(employee_id, current_user.id)
    logger.info(f"Employee {employee_id} deleted by {current_user.id}")
    return {"message": "Employee deleted successfully"}
