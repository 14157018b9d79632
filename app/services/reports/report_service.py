# app/services/reports/report_service.py
import calendar
import logging
from collections import OrderedDict
from datetime import datetime
from io import BytesIO
from typing import Any, Dict, List, Optional
from xml.sax.saxutils import escape

from jinja2 import Environment, FileSystemLoader, select_autoescape
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import PageBreak, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import DepartmentNotFoundError
from app.models.hr.employee import Employee
from app.models.kpi.entry import KpiEntry
from app.models.kpi.template import KpiTemplate
from app.models.organization.department import Department
from app.services.communication.kpi_notification_service import score_text
from app.services.kpi import ranking
from app.services.kpi.scoring import kpi_summary

logger = logging.getLogger(__name__)


def report_filename(department: str, month: int, year: int) -> str:
    return f"{department}_Performance_Report_{month}_{year}.pdf"


class ReportService:
    """Department performance reports: HTML preview and PDF download"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.template_env = Environment(
            loader=FileSystemLoader(settings.REPORT_TEMPLATE_DIR),
            autoescape=select_autoescape(["html"]),
        )

    async def get_department_report(
        self,
        department: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Entries of a department for a period, grouped by employee role, best score first"""
        if month is None or year is None:
            default_month, default_year = ranking.resolve_period(now or datetime.now())
            month = month or default_month
            year = year or default_year

        result = await self.session.execute(
            select(Department).where(Department.slug == department, Department.is_deleted == False)
        )
        dept = result.scalar_one_or_none()
        if not dept:
            raise DepartmentNotFoundError(f"Department '{department}' not found")

        employees_result = await self.session.execute(
            select(Employee).where(Employee.department == department, Employee.is_deleted == False)
        )
        employees = {employee.id: employee for employee in employees_result.scalars().all()}

        entries: List[KpiEntry] = []
        templates: Dict[int, KpiTemplate] = {}
        if employees:
            entries_result = await self.session.execute(
                select(KpiEntry)
                .where(
                    KpiEntry.employee_id.in_(list(employees.keys())),
                    KpiEntry.month == month,
                    KpiEntry.year == year,
                )
                .order_by(KpiEntry.id)
            )
            entries = entries_result.scalars().all()
            template_ids = {entry.template_id for entry in entries}
            if template_ids:
                templates_result = await self.session.execute(
                    select(KpiTemplate).where(KpiTemplate.id.in_(template_ids), KpiTemplate.is_deleted == False)
                )
                templates = {template.id: template for template in templates_result.scalars().all()}

        resolved = ranking.only_resolved(ranking.join_entries(entries, employees, templates))

        grouped: "OrderedDict[str, List[ranking.Resolved]]" = OrderedDict()
        for item in resolved:
            grouped.setdefault(item.employee.department_role or "Unassigned", []).append(item)

        groups = []
        for role, items in grouped.items():
            ranked = ranking.rank_entries(items, key=lambda r: float(r.entry.total_score or 0))
            groups.append({
                "role": role,
                "rows": [
                    {
                        "rank": index + 1,
                        "name": item.employee.name,
                        "phone": item.employee.phone,
                        "template": item.template.name,
                        "kpi_summary": kpi_summary(item.entry.metric_values),
                        "score": float(item.entry.total_score or 0),
                        "formatted_score": score_text(item.entry.total_score, item.template.total_max_marks),
                        "status": getattr(item.entry.status, "value", item.entry.status),
                    }
                    for index, item in enumerate(ranked)
                ],
            })

        return {
            "department": dept.slug,
            "department_name": dept.name,
            "month": month,
            "month_name": calendar.month_name[month],
            "year": year,
            "generated_at": datetime.now().strftime("%Y-%m-%d %H:%M"),
            "groups": groups,
        }

    def render_html(self, report: Dict[str, Any]) -> str:
        template = self.template_env.get_template("department_report.html")
        return template.render(**report)

    def render_pdf(self, report: Dict[str, Any]) -> bytes:
        """One table per role, each role on its own page"""
        buffer = BytesIO()
        doc = SimpleDocTemplate(buffer, pagesize=landscape(A4), title=f"{report['department_name']} Performance Report")
        styles = getSampleStyleSheet()
        cell_style = styles["BodyText"]
        story = []

        story.append(Paragraph(escape(f"{report['department_name']} Performance Report"), styles["Heading1"]))
        story.append(Paragraph(f"Period: {report['month_name']} {report['year']}", styles["Normal"]))
        story.append(Paragraph(f"Generated: {report['generated_at']}", styles["Normal"]))
        story.append(Spacer(1, 12))

        if not report["groups"]:
            story.append(Paragraph("No entries found for this period.", styles["Normal"]))

        for index, group in enumerate(report["groups"]):
            if index > 0:
                story.append(PageBreak())
            story.append(Paragraph(escape(f"{group['role']} ({len(group['rows'])})"), styles["Heading2"]))
            story.append(Spacer(1, 6))

            table_data = [["Rank", "Name", "Phone", "KPI Summary", "Score", "Status"]]
            for row in group["rows"]:
                table_data.append([
                    str(row["rank"]),
                    Paragraph(escape(row["name"] or ""), cell_style),
                    row["phone"] or "",
                    Paragraph(escape(row["kpi_summary"]), cell_style),
                    row["formatted_score"],
                    row["status"],
                ])

            table = Table(table_data, repeatRows=1, colWidths=[40, 140, 90, 330, 90, 70])
            table.setStyle(TableStyle([
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#366092")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("ALIGN", (0, 1), (0, -1), "CENTER"),
                ("ALIGN", (4, 1), (4, -1), "RIGHT"),
            ]))
            story.append(table)

        doc.build(story)
        logger.info(
            f"📄 PDF report built for {report['department']} {report['month']}/{report['year']} "
            f"({len(report['groups'])} roles)"
        )
        return buffer.getvalue()
