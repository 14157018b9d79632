import logging
from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import HTMLResponse
from fastapi.concurrency import run_in_threadpool
from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from app.api.dependencies import CurrentUser, require_permission
from app.core.database import get_async_session
from app.core.exceptions import EntryNotFoundError, InvalidInputError
from app.models.shared.enums import EntryStatus
from app.schemas.common.pagination import PaginatedResponse
from app.schemas.kpi.entry_schema import (
    EntryBulkGenerate, EntryCreate, EntryExistsResponse, EntryGetOrCreate, EntryGetOrCreateResponse,
    EntryResponse, EntrySearch, EntryStatusUpdate, EntryUpdate, NotificationRequest
)
from app.services.kpi.entry_service import EntryService
from app.services.kpi.statistics_service import StatisticsService
from app.services.kpi.template_service import TemplateService
from app.services.kpi import ranking
from app.services.reports.report_service import ReportService, report_filename
from app.utils.data_exporter import DataExportService, EXPORT_FIELD_MAPPINGS

router = APIRouter()
logger = logging.getLogger(__name__)

# ---------- Collection ----------
@router.get("/", response_model=PaginatedResponse[EntryResponse])
async def get_entries(
    page_index: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=1000),
    search: Optional[str] = Query(None, description="Matches metric label text"),
    employee_id: Optional[int] = Query(None),
    template_id: Optional[int] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000),
    status: Optional[EntryStatus] = Query(None),
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "list"))
):
    """Get entries with search, filters and pagination"""
    service = EntryService(session)
    return await service.get_entries(
        page_index=page_index,
        page_size=page_size,
        search=search,
        employee_id=employee_id,
        template_id=template_id,
        month=month,
        year=year,
        entry_status=status,
    )

@router.post("/", response_model=EntryResponse, status_code=201)
async def create_entry(
    entry: EntryCreate,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "create"))
):
    """Create a scored entry"""
    service = EntryService(session)
    return await service.create_entry(entry, current_user.id)

@router.post("/search", response_model=List[EntryResponse])
async def search_entries(
    criteria: EntrySearch,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "list"))
):
    """Search entries by employee, template, period and metric labels"""
    service = EntryService(session)
    return await service.search_entries(
        employee_id=criteria.employee_id,
        template_id=criteria.template_id,
        month=criteria.month,
        year=criteria.year,
        labels=[label.dict() for label in criteria.metric_labels],
    )

# ---------- Statistics ----------
@router.get("/statistics")
async def get_statistics(
    department: Optional[str] = Query(None),
    role: Optional[str] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000),
    page_index: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=1000),
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "list"))
) -> Dict[str, Any]:
    """Ranking and statistics of a department/role cohort (department and role required)"""
    service = StatisticsService(session)
    return await service.get_statistics(department, role, month, year, page_index, page_size)

@router.get("/all-department-stats")
async def get_all_department_stats(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000),
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "list"))
) -> Dict[str, Any]:
    service = StatisticsService(session)
    return await service.get_all_department_stats(month, year)

@router.get("/available-filters")
async def get_available_filters(
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "list"))
) -> Dict[str, Any]:
    service = StatisticsService(session)
    return await service.get_available_filters()

@router.get("/whatsapp-ranking")
async def get_whatsapp_ranking(
    department: Optional[str] = Query(None),
    role: Optional[str] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000),
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "list"))
) -> Dict[str, Any]:
    """Cohort ranking with contacts, tiers and campaigns"""
    service = StatisticsService(session)
    return await service.get_whatsapp_ranking(department, role, month, year)

@router.get("/single-user-report/{entry_id}")
async def get_single_user_report(
    entry_id: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "list"))
) -> Dict[str, Any]:
    service = StatisticsService(session)
    return await service.get_single_user_report(entry_id)

@router.get("/orphaned-report")
async def get_orphaned_report(
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "list"))
) -> Dict[str, Any]:
    """Entries whose employee or template no longer exists"""
    service = StatisticsService(session)
    return await service.get_orphaned_report()

@router.post("/cleanup-orphaned")
async def cleanup_orphaned(
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "delete"))
) -> Dict[str, Any]:
    service = StatisticsService(session)
    result = await service.cleanup_orphaned()
    logger.info(f"Orphan cleanup by user {current_user.id}: {result['deleted']} entries")
    return result

# ---------- Generation & notifications ----------
@router.post("/generate", status_code=201)
async def generate_entries(
    request: EntryBulkGenerate,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "create"))
) -> Dict[str, Any]:
    """Create zero-valued entries for every employee of a department/role"""
    template = await TemplateService(session).find_cohort_template(request.department, request.role)
    service = EntryService(session)
    return await service.generate_entries(template, request.month, request.year, current_user.id)

@router.post("/notify", status_code=202)
async def queue_notifications(
    request: NotificationRequest,
    current_user: CurrentUser = Depends(require_permission("kpi", "update"))
) -> Dict[str, Any]:
    """Queue the WhatsApp notification batch for a period"""
    from app.workers.celery_tasks.kpi_tasks import send_kpi_notifications

    task = send_kpi_notifications.delay(
        month=request.month, year=request.year, dry_run=request.dry_run, template_id=request.template_id
    )
    logger.info(f"KPI notification batch queued by user {current_user.id}: task {task.id}")
    return {"task_id": task.id, "status": "queued"}

# ---------- Reports ----------
@router.get("/pdf/{department}")
async def get_department_pdf(
    department: str,
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000),
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "list"))
):
    """Department performance report as a PDF download"""
    service = ReportService(session)
    report = await service.get_department_report(department, month, year)
    content = await run_in_threadpool(service.render_pdf, report)
    filename = report_filename(report["department"], report["month"], report["year"])
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )

@router.get("/pdf/{department}/preview", response_class=HTMLResponse)
async def preview_department_report(
    department: str,
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000),
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "list"))
):
    """Department performance report as HTML"""
    service = ReportService(session)
    report = await service.get_department_report(department, month, year)
    return HTMLResponse(service.render_html(report))

@router.get("/export")
async def export_ranking(
    department: Optional[str] = Query(None),
    role: Optional[str] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000),
    format: str = Query("csv", pattern="^(csv|excel)$"),
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "list"))
):
    """Full cohort ranking as CSV or Excel"""
    service = StatisticsService(session)
    stats = await service.get_statistics(department, role, month, year, page_index=1, page_size=1)
    total = stats["pagination"]["count"]
    if total > 1:
        stats = await service.get_statistics(department, role, month, year, page_index=1, page_size=total)

    exporter = DataExportService()
    columns = list(EXPORT_FIELD_MAPPINGS["kpi_ranking"].values())
    rows = exporter.prepare_data_for_export(stats["ranking"], EXPORT_FIELD_MAPPINGS["kpi_ranking"])
    filters = stats["filters"]
    filename = f"{filters['department']}_{filters['role']}_ranking_{filters['month']}_{filters['year']}"
    if format == "excel":
        return exporter.export_to_excel(rows, filename, columns=columns)
    return exporter.export_to_csv(rows, filename, columns=columns)

# ---------- Lookups ----------
@router.get("/employee/{employee_id}", response_model=List[EntryResponse])
async def get_entries_by_employee(
    employee_id: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "list"))
):
    service = EntryService(session)
    return await service.get_entries_by_employee(employee_id)

@router.get("/template/{template_id}", response_model=List[EntryResponse])
async def get_entries_by_template(
    template_id: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "list"))
):
    service = EntryService(session)
    return await service.get_entries_by_template(template_id)

@router.get("/month/{month}/year/{year}", response_model=List[EntryResponse])
async def get_entries_by_month_year(
    month: int,
    year: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "list"))
):
    if not 1 <= month <= 12:
        raise InvalidInputError("Month must be between 1 and 12")
    service = EntryService(session)
    return await service.get_entries_by_month_year(month, year)

@router.get("/status/{status}", response_model=List[EntryResponse])
async def get_entries_by_status(
    status: EntryStatus,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "list"))
):
    service = EntryService(session)
    return await service.get_entries_by_status(status)

@router.get("/check/{employee_id}/{template_id}/{month}/{year}", response_model=EntryExistsResponse)
async def check_entry_exists(
    employee_id: int,
    template_id: int,
    month: int,
    year: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "list"))
):
    service = EntryService(session)
    return await service.entry_exists(employee_id, template_id, month, year)

@router.get("/find/{employee_id}/{template_id}/{month}/{year}", response_model=EntryResponse)
async def find_entry(
    employee_id: int,
    template_id: int,
    month: int,
    year: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "list"))
):
    service = EntryService(session)
    entry = await service.find_entry(employee_id, template_id, month, year)
    if not entry:
        raise EntryNotFoundError()
    return entry

@router.post("/workflow", response_model=EntryGetOrCreateResponse)
async def get_or_create_entry(
    request: EntryGetOrCreate,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "create"))
):
    """Existing entry for the period, or a new zero-valued one"""
    service = EntryService(session)
    return await service.get_or_create_entry(
        request.employee_id, request.template_id, request.month, request.year, current_user.id
    )

@router.get("/available/{employee_id}/{template_id}")
async def get_available_periods(
    employee_id: int,
    template_id: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "list"))
) -> List[Dict[str, Any]]:
    """Months and years that already have an entry, newest first"""
    service = EntryService(session)
    return await service.get_available_periods(employee_id, template_id)

@router.get("/summary/{employee_id}")
async def get_employee_summary(
    employee_id: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "list"))
) -> Dict[str, Any]:
    service = EntryService(session)
    return await service.get_employee_summary(employee_id)

# ---------- Single entry ----------
@router.get("/{entry_id}", response_model=EntryResponse)
async def get_entry(
    entry_id: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "list"))
):
    service = EntryService(session)
    return await service.get_entry_or_404(entry_id)

@router.put("/{entry_id}", response_model=EntryResponse)
async def update_entry(
    entry_id: int,
    entry: EntryUpdate,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "update"))
):
    """Partial update; new metric values are rescored"""
    service = EntryService(session)
    return await service.update_entry(entry_id, entry, current_user.id)

@router.put("/{entry_id}/status", response_model=EntryResponse)
async def update_entry_status(
    entry_id: int,
    request: EntryStatusUpdate,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "update"))
):
    service = EntryService(session)
    return await service.update_entry_status(entry_id, request.status, current_user.id)

@router.delete("/{entry_id}")
async def delete_entry(
    entry_id: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: CurrentUser = Depends(require_permission("kpi", "delete"))
):
    service = EntryService(session)
    await service.delete_entry(entry_id, current_user.id)
    return {"message": "Entry deleted successfully"}
