import logging
from typing import Any, Dict, Optional, List
from datetime import datetime
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_

from app.core.exceptions import EmployeeNotFoundError
from app.models.hr.employee import Employee
from app.models.organization.department import Department
from app.schemas.hr.employee_schema import EmployeeCreate, EmployeeUpdate

logger = logging.getLogger(__name__)


class EmployeeService:
    def __init__(self, session: AsyncSession):
        self.session = session

    # ---------- Helpers ----------
    async def _ensure_department(self, slug: str) -> None:
        dep_res = await self.session.execute(
            select(Department.id).where(
                Department.slug == slug,
                Department.is_deleted == False
            )
        )
        if dep_res.scalar_one_or_none() is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                                detail=f"Department '{slug}' not found")

    # ---------- Create / Update / Delete ----------
    async def create_employee(self, data: EmployeeCreate, current_user_id: Optional[int] = None) -> Employee:
        try:
            await self._ensure_department(data.department)

            employee = Employee(
                name=data.name,
                email=data.contact.email,
                phone=data.contact.phone,
                department=data.department,
                department_role=data.department_role,
                metadata_=data.metadata,
                is_active=True,
                created_by=current_user_id,
            )

            self.session.add(employee)
            await self.session.flush()
            await self.session.commit()
            await self.session.refresh(employee)

            logger.info(f"Employee created: {employee.id} - {employee.name} by user {current_user_id}")
            return employee

        except HTTPException:
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error creating employee: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error creating employee")

    async def update_employee(self, employee_id: int, data: EmployeeUpdate, current_user_id: Optional[int] = None) -> Employee:
        try:
            employee = await self.get_employee(employee_id)
            if not employee:
                raise EmployeeNotFoundError()

            if data.department and data.department != employee.department:
                await self._ensure_department(data.department)

            for field, value in data.dict(exclude_unset=True).items():
                if field == "contact":
                    if value is not None:
                        employee.email = value.get("email")
                        employee.phone = value.get("phone")
                elif field == "metadata":
                    employee.metadata_ = value
                else:
                    setattr(employee, field, value)

            employee.updated_by = current_user_id
            employee.updated_at = datetime.utcnow()

            await self.session.commit()
            await self.session.refresh(employee)

            logger.info(f"Employee updated: {employee.id} by user {current_user_id}")
            return employee

        except HTTPException:
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error updating employee {employee_id}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error updating employee")

    async def delete_employee(self, employee_id: int, current_user_id: Optional[int] = None) -> bool:
        try:
            employee = await self.get_employee(employee_id)
            if not employee:
                raise EmployeeNotFoundError()

            employee.is_active = False
            employee.is_deleted = True
            employee.updated_by = current_user_id
            employee.updated_at = datetime.utcnow()

            await self.session.commit()
            logger.info(f"Employee deleted: {employee.id} by user {current_user_id}")
            return True

        except HTTPException:
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error deleting employee {employee_id}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error deleting employee")

    # ---------- Getters ----------
    async def get_employee(self, employee_id: int) -> Optional[Employee]:
        result = await self.session.execute(
            select(Employee).where(
                Employee.id == employee_id,
                Employee.is_deleted == False
            )
        )
        return result.scalar_one_or_none()

    async def get_employees_by_ids(self, employee_ids: List[int]) -> Dict[int, Employee]:
        """Live employees keyed by id; missing or deleted ids are simply absent"""
        if not employee_ids:
            return {}
        result = await self.session.execute(
            select(Employee).where(
                Employee.id.in_(set(employee_ids)),
                Employee.is_deleted == False
            )
        )
        return {employee.id: employee for employee in result.scalars().all()}

    # ---------- Listing ----------
    async def get_employees(
        self,
        page_index: int = 1,
        page_size: int = 100,
        department: Optional[str] = None,
        department_role: Optional[str] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None
    ) -> Dict[str, Any]:
        """Get paginated list of employees with filtering"""
        conditions = [Employee.is_deleted == False]

        if is_active is not None:
            conditions.append(Employee.is_active == is_active)
        if department:
            conditions.append(Employee.department == department)
        if department_role:
            conditions.append(Employee.department_role == department_role)
        if search:
            like = f"%{search}%"
            conditions.append(
                or_(
                    Employee.name.ilike(like),
                    Employee.email.ilike(like),
                    Employee.phone.ilike(like),
                    Employee.department_role.ilike(like),
                )
            )

        # Get total count
        total_count = await self.session.scalar(
            select(func.count(Employee.id)).where(*conditions)
        )

        # Calculate offset
        skip = (page_index - 1) * page_size

        # Get paginated data
        employees = await self.session.scalars(
            select(Employee)
            .where(*conditions)
            .order_by(Employee.name)
            .offset(skip)
            .limit(page_size)
        )

        return {
            "page_index": page_index,
            "page_size": page_size,
            "count": total_count or 0,
            "data": employees.all()
        }

    # ---------- Quick helpers ----------
    async def get_employees_by_department(self, department: str) -> List[Employee]:
        result = await self.session.execute(
            select(Employee)
            .where(
                Employee.department == department,
                Employee.is_deleted == False,
            )
            .order_by(Employee.name)
        )
        return result.scalars().all()

    async def get_employees_by_role(self, department_role: str, department: Optional[str] = None) -> List[Employee]:
        query = select(Employee).where(
            Employee.department_role == department_role,
            Employee.is_deleted == False,
        )
        if department:
            query = query.where(Employee.department == department)

        result = await self.session.execute(query.order_by(Employee.name))
        return result.scalars().all()
