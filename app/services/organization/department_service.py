import logging
from typing import Any, Dict, Optional
from datetime import datetime
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from app.core.exceptions import DepartmentNotFoundError
from app.models.organization.department import Department
from app.models.hr.employee import Employee
from app.schemas.organization.department_schema import DepartmentCreate, DepartmentUpdate

logger = logging.getLogger(__name__)


class DepartmentService:
    def __init__(self, session: AsyncSession):
        self.session = session

    # ---------- Getters ----------
    async def get_department(self, department_id: int) -> Optional[Department]:
        result = await self.session.execute(
            select(Department).where(
                Department.id == department_id,
                Department.is_deleted == False
            )
        )
        return result.scalar_one_or_none()

    async def get_department_by_slug(self, slug: str) -> Optional[Department]:
        result = await self.session.execute(
            select(Department).where(
                Department.slug == slug,
                Department.is_deleted == False
            )
        )
        return result.scalar_one_or_none()

    async def _slug_taken(self, slug: str, exclude_id: Optional[int] = None) -> bool:
        # Soft deleted rows still hold the unique slug
        query = select(Department.id).where(Department.slug == slug)
        if exclude_id is not None:
            query = query.where(Department.id != exclude_id)
        exists = await self.session.execute(query.limit(1))
        return exists.scalar_one_or_none() is not None

    # ---------- Create / Update / Delete ----------
    async def create_department(self, data: DepartmentCreate, created_by: Optional[int] = None) -> Department:
        try:
            if await self._slug_taken(data.slug):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Department with slug '{data.slug}' already exists"
                )

            dept = Department(
                name=data.name,
                slug=data.slug,
                logo=data.logo,
                metadata_=data.metadata,
                is_active=True,
                created_by=created_by,
            )
            self.session.add(dept)
            await self.session.flush()
            await self.session.commit()
            await self.session.refresh(dept)
            logger.info(f"Department created: {dept.name} ({dept.slug})")
            return dept

        except HTTPException:
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error creating department: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error creating department")

    async def update_department(self, department_id: int, data: DepartmentUpdate, updated_by: Optional[int] = None) -> Department:
        try:
            dept = await self.get_department(department_id)
            if not dept:
                raise DepartmentNotFoundError()

            if data.slug and data.slug != dept.slug and await self._slug_taken(data.slug, department_id):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Department with slug '{data.slug}' already exists"
                )

            for field, value in data.dict(exclude_unset=True).items():
                setattr(dept, "metadata_" if field == "metadata" else field, value)

            dept.updated_by = updated_by
            dept.updated_at = datetime.utcnow()
            await self.session.commit()
            await self.session.refresh(dept)
            logger.info(f"Department updated: {dept.name}")
            return dept

        except HTTPException:
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error updating department {department_id}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error updating department")

    async def delete_department(self, department_id: int, deleted_by: Optional[int] = None) -> bool:
        try:
            dept = await self.get_department(department_id)
            if not dept:
                raise DepartmentNotFoundError()

            # active employees check
            count_result = await self.session.execute(
                select(func.count()).select_from(Employee).where(
                    Employee.department == dept.slug,
                    Employee.is_active == True,
                    Employee.is_deleted == False
                )
            )
            if int(count_result.scalar() or 0) > 0:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Cannot delete department. It has active employees"
                )

            dept.is_active = False
            dept.is_deleted = True
            dept.updated_by = deleted_by
            dept.updated_at = datetime.utcnow()
            await self.session.commit()
            logger.info(f"Department deleted (soft): {dept.name}")
            return True

        except HTTPException:
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error deleting department {department_id}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error deleting department")

    # ---------- Listing ----------
    async def get_departments(
        self,
        page_index: int = 1,
        page_size: int = 100,
        search: Optional[str] = None,
        is_active: Optional[bool] = None
    ) -> Dict[str, Any]:
        """Get departments with pagination"""
        query = select(Department).where(Department.is_deleted == False)
        if is_active is not None:
            query = query.where(Department.is_active == is_active)
        if search:
            like = f"%{search}%"
            query = query.where(
                or_(
                    Department.name.ilike(like),
                    Department.slug.ilike(like)
                )
            )

        # Get total count
        count_query = select(func.count()).select_from(query.subquery())
        total_result = await self.session.execute(count_query)
        total = total_result.scalar() or 0

        # Calculate offset and get data
        skip = (page_index - 1) * page_size
        result = await self.session.execute(query.order_by(Department.name).offset(skip).limit(page_size))
        departments = result.scalars().all()

        return {
            "page_index": page_index,
            "page_size": page_size,
            "count": total,
            "data": departments
        }
