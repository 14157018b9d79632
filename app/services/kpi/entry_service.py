import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional
from datetime import datetime
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import (
    DuplicateEntryError, EmployeeNotFoundError, EntryNotFoundError,
    InvalidStatusTransitionError, TemplateNotFoundError
)
from app.models.hr.employee import Employee
from app.models.kpi.entry import KpiEntry, label_signature
from app.models.kpi.template import KpiTemplate
from app.models.shared.enums import EntryStatus
from app.schemas.kpi.entry_schema import EntryCreate, EntryUpdate
from app.services.kpi.ranking import resolve_period
from app.services.kpi.scoring import build_skeleton_values, score_entry

logger = logging.getLogger(__name__)

# Forward only; nothing leaves GENERATED
STATUS_TRANSITIONS = {
    EntryStatus.INITIATED: {EntryStatus.IN_PROGRESS, EntryStatus.GENERATED},
    EntryStatus.IN_PROGRESS: {EntryStatus.GENERATED},
    EntryStatus.GENERATED: set(),
}


def check_transition(current: EntryStatus, requested: EntryStatus) -> None:
    if current == requested:
        return
    if requested not in STATUS_TRANSITIONS.get(current, set()):
        raise InvalidStatusTransitionError(current.value, requested.value)


class EntryService:
    def __init__(self, session: AsyncSession):
        self.session = session

    # ---------- Helpers ----------
    async def _get_template(self, template_id: int) -> KpiTemplate:
        result = await self.session.execute(
            select(KpiTemplate).where(
                KpiTemplate.id == template_id,
                KpiTemplate.is_deleted == False
            )
        )
        template = result.scalar_one_or_none()
        if not template:
            raise TemplateNotFoundError()
        return template

    async def _ensure_employee(self, employee_id: int) -> Employee:
        result = await self.session.execute(
            select(Employee).where(
                Employee.id == employee_id,
                Employee.is_deleted == False
            )
        )
        employee = result.scalar_one_or_none()
        if not employee:
            raise EmployeeNotFoundError()
        return employee

    async def _commit_entry(self, entry: KpiEntry) -> KpiEntry:
        try:
            await self.session.flush()
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise DuplicateEntryError()
        await self.session.refresh(entry)
        return entry

    async def _list(self, *conditions, order_by=None) -> List[KpiEntry]:
        query = select(KpiEntry).where(*conditions)
        if order_by is None:
            order_by = (KpiEntry.created_at.desc(), KpiEntry.id.desc())
        result = await self.session.execute(query.order_by(*order_by))
        return result.scalars().all()

    # ---------- Create / Update / Delete ----------
    async def create_entry(self, data: EntryCreate, created_by: Optional[int] = None) -> KpiEntry:
        try:
            template = await self._get_template(data.template_id)
            await self._ensure_employee(data.employee_id)

            scored = score_entry(template.metrics or [], data.metric_values)
            metric_labels = [label.dict() for label in data.metric_labels]

            entry = KpiEntry(
                employee_id=data.employee_id,
                template_id=data.template_id,
                month=data.month,
                year=data.year,
                metric_labels=metric_labels,
                label_signature=label_signature(metric_labels),
                metric_values=scored.metric_values_as_dicts(),
                total_score=scored.total_score,
                status=data.status,
                data_source=data.data_source,
                created_by=created_by,
            )
            self.session.add(entry)
            entry = await self._commit_entry(entry)

            logger.info(
                f"📊 Entry created: {entry.id} employee={entry.employee_id} template={entry.template_id} "
                f"{entry.month}/{entry.year} score={entry.total_score:.2f}"
            )
            return entry

        except HTTPException:
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error creating entry: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error creating entry")

    async def update_entry(self, entry_id: int, data: EntryUpdate, updated_by: Optional[int] = None) -> KpiEntry:
        try:
            entry = await self.get_entry_or_404(entry_id)
            updates = data.dict(exclude_unset=True)

            if updates.get("metric_values") is not None:
                template = await self._get_template(entry.template_id)
                scored = score_entry(template.metrics or [], data.metric_values)
                entry.metric_values = scored.metric_values_as_dicts()
                entry.total_score = scored.total_score
                if entry.status == EntryStatus.INITIATED and updates.get("status") is None:
                    entry.status = EntryStatus.IN_PROGRESS

            if updates.get("metric_labels") is not None:
                entry.metric_labels = updates["metric_labels"]
                entry.label_signature = label_signature(updates["metric_labels"])

            if updates.get("status") is not None:
                check_transition(entry.status, data.status)
                entry.status = data.status

            for field in ("month", "year", "data_source"):
                if field in updates and updates[field] is not None:
                    setattr(entry, field, updates[field])

            entry.updated_by = updated_by
            entry.updated_at = datetime.utcnow()
            entry = await self._commit_entry(entry)

            logger.info(f"Entry updated: {entry.id} by user {updated_by}")
            return entry

        except HTTPException:
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error updating entry {entry_id}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error updating entry")

    async def update_entry_status(self, entry_id: int, new_status: EntryStatus, updated_by: Optional[int] = None) -> KpiEntry:
        try:
            entry = await self.get_entry_or_404(entry_id)
            check_transition(entry.status, new_status)

            entry.status = new_status
            entry.updated_by = updated_by
            entry.updated_at = datetime.utcnow()
            await self.session.commit()
            await self.session.refresh(entry)

            logger.info(f"Entry {entry.id} status -> {new_status.value}")
            return entry

        except HTTPException:
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error updating status of entry {entry_id}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error updating entry status")

    async def delete_entry(self, entry_id: int, deleted_by: Optional[int] = None) -> bool:
        try:
            entry = await self.get_entry_or_404(entry_id)
            await self.session.delete(entry)
            await self.session.commit()
            logger.info(f"Entry deleted: {entry_id} by user {deleted_by}")
            return True

        except HTTPException:
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error deleting entry {entry_id}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error deleting entry")

    # ---------- Getters ----------
    async def get_entry(self, entry_id: int) -> Optional[KpiEntry]:
        result = await self.session.execute(select(KpiEntry).where(KpiEntry.id == entry_id))
        return result.scalar_one_or_none()

    async def get_entry_or_404(self, entry_id: int) -> KpiEntry:
        entry = await self.get_entry(entry_id)
        if not entry:
            raise EntryNotFoundError(f"Entry {entry_id} not found")
        return entry

    async def get_entries(
        self,
        page_index: int = 1,
        page_size: int = 10,
        search: Optional[str] = None,
        employee_id: Optional[int] = None,
        template_id: Optional[int] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
        entry_status: Optional[EntryStatus] = None,
    ) -> Dict[str, Any]:
        """Paginated entries; search matches metric label text"""
        conditions = []
        if search:
            conditions.append(KpiEntry.label_signature.ilike(f"%{search}%"))
        if employee_id:
            conditions.append(KpiEntry.employee_id == employee_id)
        if template_id:
            conditions.append(KpiEntry.template_id == template_id)
        if month:
            conditions.append(KpiEntry.month == month)
        if year:
            conditions.append(KpiEntry.year == year)
        if entry_status:
            conditions.append(KpiEntry.status == entry_status)

        total_count = await self.session.scalar(
            select(func.count(KpiEntry.id)).where(*conditions)
        )

        skip = (page_index - 1) * page_size
        entries = await self.session.scalars(
            select(KpiEntry)
            .where(*conditions)
            .order_by(KpiEntry.created_at.desc(), KpiEntry.id.desc())
            .offset(skip)
            .limit(page_size)
        )

        return {
            "page_index": page_index,
            "page_size": page_size,
            "count": total_count or 0,
            "data": entries.all()
        }

    async def get_entries_by_employee(self, employee_id: int) -> List[KpiEntry]:
        return await self._list(KpiEntry.employee_id == employee_id)

    async def get_entries_by_template(self, template_id: int) -> List[KpiEntry]:
        return await self._list(KpiEntry.template_id == template_id)

    async def get_entries_by_month_year(self, month: int, year: int) -> List[KpiEntry]:
        return await self._list(KpiEntry.month == month, KpiEntry.year == year)

    async def get_entries_by_status(self, entry_status: EntryStatus) -> List[KpiEntry]:
        return await self._list(KpiEntry.status == entry_status)

    async def find_entry(self, employee_id: int, template_id: int, month: int, year: int) -> Optional[KpiEntry]:
        result = await self.session.execute(
            select(KpiEntry)
            .where(
                KpiEntry.employee_id == employee_id,
                KpiEntry.template_id == template_id,
                KpiEntry.month == month,
                KpiEntry.year == year,
            )
            .order_by(KpiEntry.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def entry_exists(self, employee_id: int, template_id: int, month: int, year: int) -> Dict[str, Any]:
        entry = await self.find_entry(employee_id, template_id, month, year)
        return {"exists": entry is not None, "entry_id": entry.id if entry else None}

    # ---------- Workflow ----------
    def _skeleton(self, employee_id: int, template: KpiTemplate, month: int, year: int,
                  created_by: Optional[int] = None) -> KpiEntry:
        metric_labels = [{"label": template.kpi_name or template.name}]
        return KpiEntry(
            employee_id=employee_id,
            template_id=template.id,
            month=month,
            year=year,
            metric_labels=metric_labels,
            label_signature=label_signature(metric_labels),
            metric_values=build_skeleton_values(template.metrics or []),
            total_score=0,
            status=EntryStatus.INITIATED,
            data_source="manual",
            created_by=created_by,
        )

    async def get_or_create_entry(
        self, employee_id: int, template_id: int, month: int, year: int, created_by: Optional[int] = None
    ) -> Dict[str, Any]:
        """Existing entry for the period, or a zero-valued one built from the template"""
        try:
            existing = await self.find_entry(employee_id, template_id, month, year)
            if existing:
                return {"created": False, "entry": existing}

            template = await self._get_template(template_id)
            await self._ensure_employee(employee_id)

            entry = self._skeleton(employee_id, template, month, year, created_by)
            self.session.add(entry)
            entry = await self._commit_entry(entry)

            logger.info(f"Entry skeleton created: {entry.id} employee={employee_id} template={template_id} {month}/{year}")
            return {"created": True, "entry": entry}

        except HTTPException:
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error in get-or-create for employee {employee_id}, template {template_id}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error preparing entry")

    async def generate_entries(
        self,
        template: KpiTemplate,
        month: Optional[int] = None,
        year: Optional[int] = None,
        created_by: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Create skeleton entries for every employee of the template's department and role"""
        if month is None or year is None:
            default_month, default_year = resolve_period(now or datetime.now())
            month = month or default_month
            year = year or default_year

        try:
            employees = await self.session.execute(
                select(Employee)
                .where(
                    Employee.department == template.department_slug,
                    Employee.department_role == template.role,
                    Employee.is_active == True,
                    Employee.is_deleted == False,
                )
                .order_by(Employee.id)
            )
            existing = await self.session.execute(
                select(KpiEntry.employee_id).where(
                    KpiEntry.template_id == template.id,
                    KpiEntry.month == month,
                    KpiEntry.year == year,
                )
            )
            already = set(existing.scalars().all())

            created, skipped = [], []
            for employee in employees.scalars().all():
                if employee.id in already:
                    skipped.append(employee.id)
                    continue
                entry = self._skeleton(employee.id, template, month, year, created_by)
                self.session.add(entry)
                created.append(entry)

            await self.session.commit()
            logger.info(
                f"Generated {len(created)} entries for template {template.id} ({month}/{year}), "
                f"{len(skipped)} already present"
            )
            return {
                "template_id": template.id,
                "month": month,
                "year": year,
                "created": len(created),
                "skipped": len(skipped),
                "entry_ids": [entry.id for entry in created],
            }

        except IntegrityError:
            await self.session.rollback()
            raise DuplicateEntryError("Some employees already have an entry with the same labels for this period")
        except HTTPException:
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error generating entries for template {template.id}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error generating entries")

    async def get_available_periods(self, employee_id: int, template_id: int) -> List[Dict[str, Any]]:
        result = await self.session.execute(
            select(KpiEntry.id, KpiEntry.month, KpiEntry.year, KpiEntry.status)
            .where(
                KpiEntry.employee_id == employee_id,
                KpiEntry.template_id == template_id,
            )
            .order_by(KpiEntry.year.desc(), KpiEntry.month.desc())
        )
        return [
            {"entry_id": row.id, "month": row.month, "year": row.year, "status": row.status}
            for row in result.all()
        ]

    async def get_employee_summary(self, employee_id: int) -> Dict[str, Dict[str, Any]]:
        """Entries of an employee grouped by template name, then by YYYY-MM"""
        result = await self.session.execute(
            select(KpiEntry, KpiTemplate.name)
            .outerjoin(KpiTemplate, KpiTemplate.id == KpiEntry.template_id)
            .where(KpiEntry.employee_id == employee_id)
            .order_by(KpiEntry.year.desc(), KpiEntry.month.desc())
        )
        summary: Dict[str, Dict[str, Any]] = OrderedDict()
        for entry, template_name in result.all():
            period = f"{entry.year}-{entry.month:02d}"
            summary.setdefault(template_name or "Unknown template", OrderedDict())[period] = {
                "entry_id": entry.id,
                "status": entry.status,
                "score": entry.total_score,
                "month": entry.month,
                "year": entry.year,
            }
        return summary

    async def search_entries(
        self,
        employee_id: Optional[int] = None,
        template_id: Optional[int] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
        labels: Optional[List[Dict[str, Optional[str]]]] = None,
    ) -> List[KpiEntry]:
        """
        Multi-criteria search.

        Labels match when any requested label is present; labels given with a
        value must match label and value together.
        """
        conditions = []
        if employee_id:
            conditions.append(KpiEntry.employee_id == employee_id)
        if template_id:
            conditions.append(KpiEntry.template_id == template_id)
        if month:
            conditions.append(KpiEntry.month == month)
        if year:
            conditions.append(KpiEntry.year == year)

        entries = await self._list(*conditions)
        if not labels:
            return entries

        wanted_labels = {item["label"] for item in labels}
        wanted_pairs = {(item["label"], item["value"]) for item in labels if item.get("value")}

        def matches(entry: KpiEntry) -> bool:
            present = [(item.get("label"), item.get("value")) for item in entry.metric_labels or []]
            if wanted_pairs:
                return any(pair in wanted_pairs for pair in present)
            return any(label in wanted_labels for label, _ in present)

        return [entry for entry in entries if matches(entry)]

    async def get_period_entries(self, template_id: int, month: int, year: int) -> List[KpiEntry]:
        """Entries of one template and period in retrieval (id) order"""
        return await self._list(
            KpiEntry.template_id == template_id,
            KpiEntry.month == month,
            KpiEntry.year == year,
            order_by=(KpiEntry.id,),
        )
