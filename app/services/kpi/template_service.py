import logging
from typing import Any, Dict, List, Optional
from datetime import datetime
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import EmployeeNotFoundError, TemplateNotFoundError
from app.models.hr.employee import Employee
from app.models.kpi.template import KpiTemplate, KpiTemplateVersion
from app.models.shared.enums import TemplateFrequency
from app.schemas.kpi.template_schema import (
    TemplateCreate, TemplateUpdate, TemplateVersionCreate
)
from app.services.kpi.scoring import normalize_key

logger = logging.getLogger(__name__)


class TemplateService:
    def __init__(self, session: AsyncSession):
        self.session = session

    # ---------- Create / Update / Delete ----------
    async def create_template(self, data: TemplateCreate, created_by: Optional[int] = None) -> KpiTemplate:
        try:
            template = KpiTemplate(
                name=data.name,
                kpi_name=data.kpi_name,
                description=data.description,
                role=data.role,
                frequency=data.frequency,
                department_slug=data.department_slug,
                metrics=[metric.dict() for metric in data.metrics],
                created_by=created_by,
            )
            self.session.add(template)
            await self.session.flush()
            await self.session.commit()
            await self.session.refresh(template)

            logger.info(f"📋 Template created: {template.name} ({template.department_slug}/{template.role})")
            return template

        except HTTPException:
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error creating template: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error creating template")

    async def update_template(self, template_id: int, data: TemplateUpdate, updated_by: Optional[int] = None) -> KpiTemplate:
        try:
            template = await self.get_template(template_id)
            if not template:
                raise TemplateNotFoundError()

            for field, value in data.dict(exclude_unset=True).items():
                if field in ("name", "description", "role", "frequency", "department_slug", "metrics") and value is None:
                    continue
                setattr(template, field, value)

            template.updated_by = updated_by
            template.updated_at = datetime.utcnow()
            await self.session.commit()
            await self.session.refresh(template)

            logger.info(f"Template updated: {template.id} by user {updated_by}")
            return template

        except HTTPException:
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error updating template {template_id}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error updating template")

    async def delete_template(self, template_id: int, deleted_by: Optional[int] = None) -> bool:
        try:
            template = await self.get_template(template_id)
            if not template:
                raise TemplateNotFoundError()

            template.is_deleted = True
            template.updated_by = deleted_by
            template.updated_at = datetime.utcnow()
            await self.session.commit()

            logger.info(f"Template deleted (soft): {template.id} by user {deleted_by}")
            return True

        except HTTPException:
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error deleting template {template_id}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error deleting template")

    # ---------- Getters ----------
    async def get_template(self, template_id: int) -> Optional[KpiTemplate]:
        result = await self.session.execute(
            select(KpiTemplate).where(
                KpiTemplate.id == template_id,
                KpiTemplate.is_deleted == False
            )
        )
        return result.scalar_one_or_none()

    async def get_template_or_404(self, template_id: int) -> KpiTemplate:
        template = await self.get_template(template_id)
        if not template:
            raise TemplateNotFoundError(f"Template {template_id} not found")
        return template

    async def get_templates_by_ids(self, template_ids: List[int]) -> Dict[int, KpiTemplate]:
        if not template_ids:
            return {}
        result = await self.session.execute(
            select(KpiTemplate).where(
                KpiTemplate.id.in_(set(template_ids)),
                KpiTemplate.is_deleted == False
            )
        )
        return {template.id: template for template in result.scalars().all()}

    async def find_cohort_template(self, department: str, role: str) -> KpiTemplate:
        """The template for a department/role pair; the oldest wins if several exist"""
        result = await self.session.execute(
            select(KpiTemplate)
            .where(
                KpiTemplate.department_slug == department,
                KpiTemplate.role == role,
                KpiTemplate.is_deleted == False
            )
            .order_by(KpiTemplate.id)
            .limit(1)
        )
        template = result.scalar_one_or_none()
        if not template:
            raise TemplateNotFoundError(f"No template found for department '{department}' and role '{role}'")
        return template

    # ---------- Listing ----------
    async def get_templates(
        self,
        page_index: int = 1,
        page_size: int = 10,
        search: Optional[str] = None,
        department_slug: Optional[str] = None,
        frequency: Optional[TemplateFrequency] = None,
        role: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Get paginated templates with filtering"""
        conditions = [KpiTemplate.is_deleted == False]
        if search:
            like = f"%{search}%"
            conditions.append(
                or_(
                    KpiTemplate.name.ilike(like),
                    KpiTemplate.description.ilike(like),
                    KpiTemplate.role.ilike(like),
                )
            )
        if department_slug:
            conditions.append(KpiTemplate.department_slug == department_slug)
        if frequency:
            conditions.append(KpiTemplate.frequency == frequency)
        if role:
            conditions.append(KpiTemplate.role == role)

        total_count = await self.session.scalar(
            select(func.count(KpiTemplate.id)).where(*conditions)
        )

        skip = (page_index - 1) * page_size
        templates = await self.session.scalars(
            select(KpiTemplate)
            .where(*conditions)
            .order_by(KpiTemplate.created_at.desc(), KpiTemplate.id.desc())
            .offset(skip)
            .limit(page_size)
        )

        return {
            "page_index": page_index,
            "page_size": page_size,
            "count": total_count or 0,
            "data": templates.all()
        }

    async def _filter_templates(self, *conditions) -> List[KpiTemplate]:
        result = await self.session.execute(
            select(KpiTemplate)
            .where(KpiTemplate.is_deleted == False, *conditions)
            .order_by(KpiTemplate.created_at.desc(), KpiTemplate.id.desc())
        )
        return result.scalars().all()

    async def get_templates_by_department(self, department_slug: str) -> List[KpiTemplate]:
        return await self._filter_templates(KpiTemplate.department_slug == department_slug)

    async def get_templates_by_frequency(self, frequency: TemplateFrequency) -> List[KpiTemplate]:
        return await self._filter_templates(KpiTemplate.frequency == frequency)

    async def get_templates_by_role(self, role: str) -> List[KpiTemplate]:
        return await self._filter_templates(KpiTemplate.role == role)

    async def get_templates_for_employee(self, employee_id: int) -> List[KpiTemplate]:
        """Templates matching the employee's department and role"""
        result = await self.session.execute(
            select(Employee).where(
                Employee.id == employee_id,
                Employee.is_deleted == False
            )
        )
        employee = result.scalar_one_or_none()
        if not employee:
            raise EmployeeNotFoundError()

        return await self._filter_templates(
            KpiTemplate.department_slug == employee.department,
            KpiTemplate.role == employee.department_role,
        )

    # ---------- Versions ----------
    async def create_version(self, data: TemplateVersionCreate, created_by: Optional[int] = None) -> KpiTemplateVersion:
        try:
            await self.get_template_or_404(data.template_id)

            version = KpiTemplateVersion(
                template_id=data.template_id,
                version=data.version,
                name=data.name,
                kpi_name=data.kpi_name,
                description=data.description,
                role=data.role,
                frequency=data.frequency,
                department_slug=data.department_slug,
                metrics=[metric.dict() for metric in data.metrics],
                created_by=created_by,
            )
            self.session.add(version)
            await self.session.flush()
            await self.session.commit()
            await self.session.refresh(version)

            logger.info(f"Template version created: template {data.template_id} v{data.version}")
            return version

        except HTTPException:
            raise
        except IntegrityError:
            await self.session.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Version {data.version} already exists for template {data.template_id}"
            )
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error creating template version: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error creating template version")

    async def get_versions(self, template_id: int) -> List[KpiTemplateVersion]:
        await self.get_template_or_404(template_id)
        result = await self.session.execute(
            select(KpiTemplateVersion)
            .where(
                KpiTemplateVersion.template_id == template_id,
                KpiTemplateVersion.is_deleted == False
            )
            .order_by(KpiTemplateVersion.version.desc())
        )
        return result.scalars().all()

    async def get_version(self, template_id: int, version: int) -> KpiTemplateVersion:
        result = await self.session.execute(
            select(KpiTemplateVersion).where(
                KpiTemplateVersion.template_id == template_id,
                KpiTemplateVersion.version == version,
                KpiTemplateVersion.is_deleted == False
            )
        )
        template_version = result.scalar_one_or_none()
        if not template_version:
            raise TemplateNotFoundError(f"Version {version} of template {template_id} not found")
        return template_version

    # ---------- Form structure ----------
    async def get_form_structure(self, template_id: int) -> Dict[str, Any]:
        """Metrics of a template laid out for a data entry form"""
        template = await self.get_template_or_404(template_id)
        return {
            "template_id": template.id,
            "name": template.name,
            "kpi_name": template.kpi_name,
            "role": template.role,
            "department_slug": template.department_slug,
            "frequency": template.frequency,
            "total_max_marks": template.total_max_marks,
            "fields": [
                {
                    "name": metric["name"],
                    "key": normalize_key(metric["name"]),
                    "description": metric.get("description", ""),
                    "max_marks": metric.get("max_marks", 0),
                    "unit": metric.get("unit", "%"),
                    "is_dynamic": metric.get("is_dynamic", False),
                    "sub_metrics": metric.get("sub_metrics") or [],
                }
                for metric in template.metrics or []
            ],
        }
