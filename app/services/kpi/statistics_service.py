import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    EmployeeNotFoundError, EntryNotFoundError, MissingRequiredParametersError, TemplateNotFoundError
)
from app.models.hr.employee import Employee
from app.models.kpi.entry import KpiEntry
from app.models.kpi.template import KpiTemplate
from app.services.communication.kpi_notification_service import (
    build_template_params, campaign_for, score_text, top_performers_text, NO_TOP_PERFORMERS
)
from app.services.communication.whatsapp_service import format_phone_number
from app.services.kpi import ranking
from app.services.kpi.scoring import kpi_summary
from app.services.kpi.template_service import TemplateService

logger = logging.getLogger(__name__)


class StatisticsService:
    def __init__(self, session: AsyncSession):
        self.session = session

    # ---------- Lookups ----------
    async def _employees_by_id(self, employee_ids: List[int]) -> Dict[int, Employee]:
        if not employee_ids:
            return {}
        result = await self.session.execute(
            select(Employee).where(Employee.id.in_(set(employee_ids)), Employee.is_deleted == False)
        )
        return {employee.id: employee for employee in result.scalars().all()}

    async def _templates_by_id(self, template_ids: List[int]) -> Dict[int, KpiTemplate]:
        if not template_ids:
            return {}
        result = await self.session.execute(
            select(KpiTemplate).where(KpiTemplate.id.in_(set(template_ids)), KpiTemplate.is_deleted == False)
        )
        return {template.id: template for template in result.scalars().all()}

    async def _period_entries(self, month: int, year: int, template_id: Optional[int] = None) -> List[KpiEntry]:
        query = select(KpiEntry).where(KpiEntry.month == month, KpiEntry.year == year)
        if template_id is not None:
            query = query.where(KpiEntry.template_id == template_id)
        result = await self.session.execute(query.order_by(KpiEntry.id))
        return result.scalars().all()

    async def _cohort(self, template: KpiTemplate, month: int, year: int) -> List[ranking.Resolved]:
        entries = await self._period_entries(month, year, template.id)
        employees = await self._employees_by_id([entry.employee_id for entry in entries])
        joined = ranking.join_entries(entries, employees)
        orphans = ranking.only_orphaned(joined)
        if orphans:
            logger.warning(f"{len(orphans)} orphaned entries left out of template {template.id} ranking for {month}/{year}")
        return ranking.only_resolved(joined)

    @staticmethod
    def _period(month: Optional[int], year: Optional[int], now: Optional[datetime]) -> tuple:
        default_month, default_year = ranking.resolve_period(now or datetime.now())
        return month or default_month, year or default_year

    # ---------- Statistics ----------
    async def get_statistics(
        self,
        department: Optional[str],
        role: Optional[str],
        month: Optional[int] = None,
        year: Optional[int] = None,
        page_index: int = 1,
        page_size: int = 10,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Ranking and statistics for one department/role cohort"""
        missing = [name for name, value in (("department", department), ("role", role)) if not value]
        if missing:
            raise MissingRequiredParametersError(missing)

        month, year = self._period(month, year, now)
        template = await TemplateService(self.session).find_cohort_template(department, role)
        cohort = await self._cohort(template, month, year)

        report = ranking.build_cohort_report(cohort, page_index, page_size)
        return {
            "filters": {"department": department, "role": role, "month": month, "year": year},
            "template": {
                "id": template.id,
                "name": template.name,
                "role": template.role,
                "department_slug": template.department_slug,
                "total_max_marks": template.total_max_marks,
            },
            **report,
        }

    async def get_all_department_stats(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Per department and per role breakdown of every resolvable entry of the period"""
        month, year = self._period(month, year, now)
        entries = await self._period_entries(month, year)
        employees = await self._employees_by_id([entry.employee_id for entry in entries])
        templates = await self._templates_by_id([entry.template_id for entry in entries])
        resolved = ranking.only_resolved(ranking.join_entries(entries, employees, templates))

        scores = [float(item.entry.total_score or 0) for item in resolved]
        return {
            "filters": {"month": month, "year": year},
            "overall": ranking.summarize_scores(scores),
            "department_stats": ranking.group_breakdown(
                ((item.employee.department, float(item.entry.total_score or 0)) for item in resolved),
                "department",
            ),
            "role_stats": ranking.group_breakdown(
                ((item.template.role, float(item.entry.total_score or 0)) for item in resolved),
                "role",
            ),
        }

    async def get_available_filters(self) -> Dict[str, List[Any]]:
        """Departments, roles, months and years that have at least one entry"""
        result = await self.session.execute(
            select(KpiEntry.employee_id, KpiEntry.template_id, KpiEntry.month, KpiEntry.year)
        )
        rows = result.all()
        employees = await self._employees_by_id([row.employee_id for row in rows])
        templates = await self._templates_by_id([row.template_id for row in rows])

        departments = {employees[row.employee_id].department for row in rows if row.employee_id in employees}
        roles = {templates[row.template_id].role for row in rows if row.template_id in templates}
        return {
            "departments": sorted(d for d in departments if d),
            "roles": sorted(r for r in roles if r),
            "months": sorted({row.month for row in rows}),
            "years": sorted({row.year for row in rows}),
        }

    # ---------- Single user ----------
    async def get_single_user_report(self, entry_id: int) -> Dict[str, Any]:
        """Where one entry stands in its cohort, with the message it would receive"""
        result = await self.session.execute(select(KpiEntry).where(KpiEntry.id == entry_id))
        entry = result.scalar_one_or_none()
        if not entry:
            raise EntryNotFoundError(f"Entry {entry_id} not found")

        employees = await self._employees_by_id([entry.employee_id])
        employee = employees.get(entry.employee_id)
        if not employee:
            raise EmployeeNotFoundError(f"Employee {entry.employee_id} for entry {entry_id} not found")
        templates = await self._templates_by_id([entry.template_id])
        template = templates.get(entry.template_id)
        if not template:
            raise TemplateNotFoundError(f"Template {entry.template_id} for entry {entry_id} not found")

        cohort = await self._cohort(template, entry.month, entry.year)
        ranked = ranking.rank_entries(cohort, key=lambda r: float(r.entry.total_score or 0))
        position = next(index for index, item in enumerate(ranked) if item.entry.id == entry.id)
        top, _, _ = ranking.split_tiers(ranked)
        tier = ranking.tier_of(position, len(ranked))
        max_marks = template.total_max_marks

        top_performers = [
            {"rank": index + 1, "name": item.employee.name, "score": float(item.entry.total_score or 0)}
            for index, item in enumerate(top)
        ]
        performers_text = top_performers_text(top_performers, max_marks) if top_performers else NO_TOP_PERFORMERS
        summary = kpi_summary(entry.metric_values)
        formatted_score = score_text(entry.total_score, max_marks)

        return {
            "entry_id": entry.id,
            "month": entry.month,
            "year": entry.year,
            "status": entry.status,
            "employee": {
                "id": employee.id,
                "name": employee.name,
                "contact": employee.contact,
                "department": employee.department,
                "department_role": employee.department_role,
            },
            "template": {"id": template.id, "name": template.name, "role": template.role},
            "rank": position + 1,
            "cohort_size": len(ranked),
            "tier": tier.value,
            "score": float(entry.total_score or 0),
            "total_max_marks": max_marks,
            "formatted_score": formatted_score,
            "kpi_summary": summary,
            "top_performers": top_performers,
            "whatsapp": {
                "destination": format_phone_number(employee.phone),
                "campaign": campaign_for(tier),
                "template_params": build_template_params(
                    tier, employee.name, formatted_score, position + 1, summary, performers_text
                ),
            },
        }

    # ---------- WhatsApp ranking ----------
    async def get_whatsapp_ranking(
        self,
        department: Optional[str],
        role: Optional[str],
        month: Optional[int] = None,
        year: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Full cohort ranking with contacts and tiers, as the notification batch sees it"""
        missing = [name for name, value in (("department", department), ("role", role)) if not value]
        if missing:
            raise MissingRequiredParametersError(missing)

        month, year = self._period(month, year, now)
        template = await TemplateService(self.session).find_cohort_template(department, role)
        ranked = ranking.rank_entries(
            await self._cohort(template, month, year), key=lambda r: float(r.entry.total_score or 0)
        )
        top_count, bottom_count = ranking.top_bottom_counts(len(ranked))
        max_marks = template.total_max_marks

        rows = []
        for index, item in enumerate(ranked):
            tier = ranking.tier_of(index, len(ranked))
            rows.append({
                "rank": index + 1,
                "entry_id": item.entry.id,
                "employee_id": item.employee.id,
                "name": item.employee.name,
                "phone": item.employee.phone,
                "destination": format_phone_number(item.employee.phone),
                "score": float(item.entry.total_score or 0),
                "formatted_score": score_text(item.entry.total_score, max_marks),
                "kpi_summary": kpi_summary(item.entry.metric_values),
                "tier": tier.value,
                "campaign": campaign_for(tier),
                "status": item.entry.status,
            })

        return {
            "filters": {"department": department, "role": role, "month": month, "year": year},
            "template_id": template.id,
            "total_max_marks": max_marks,
            "total": len(ranked),
            "top_count": top_count,
            "bottom_count": bottom_count,
            "ranking": rows,
        }

    # ---------- Orphans ----------
    async def _orphans(self) -> List[ranking.Orphaned]:
        result = await self.session.execute(select(KpiEntry).order_by(KpiEntry.id))
        entries = result.scalars().all()
        employees = await self._employees_by_id([entry.employee_id for entry in entries])
        templates = await self._templates_by_id([entry.template_id for entry in entries])
        return ranking.only_orphaned(ranking.join_entries(entries, employees, templates))

    async def get_orphaned_report(self) -> Dict[str, Any]:
        orphans = await self._orphans()
        return {
            "count": len(orphans),
            "entries": [
                {
                    "entry_id": orphan.entry.id,
                    "employee_id": orphan.entry.employee_id,
                    "template_id": orphan.entry.template_id,
                    "month": orphan.entry.month,
                    "year": orphan.entry.year,
                    "reason": orphan.reason,
                }
                for orphan in orphans
            ],
        }

    async def cleanup_orphaned(self) -> Dict[str, Any]:
        try:
            orphans = await self._orphans()
            entry_ids = [orphan.entry.id for orphan in orphans]
            if entry_ids:
                await self.session.execute(delete(KpiEntry).where(KpiEntry.id.in_(entry_ids)))
                await self.session.commit()
            logger.info(f"🧹 Removed {len(entry_ids)} orphaned entries")
            return {"deleted": len(entry_ids), "entry_ids": entry_ids}

        except HTTPException:
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error cleaning up orphaned entries: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error cleaning up orphaned entries")
