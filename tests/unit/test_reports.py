import pytest

from app.core.exceptions import DepartmentNotFoundError
from app.models.hr.employee import Employee
from app.models.kpi.entry import KpiEntry, label_signature
from app.models.kpi.template import KpiTemplate
from app.models.organization.department import Department
from app.models.shared.enums import EntryStatus, TemplateFrequency
from app.services.reports.report_service import ReportService, report_filename

REPORT = {
    "department": "health",
    "department_name": "Health & Family Welfare",
    "month": 9,
    "month_name": "September",
    "year": 2025,
    "generated_at": "2025-10-01 09:00",
    "groups": [
        {"role": "health-worker", "rows": [
            {"rank": 1, "name": "Asha <A>", "phone": "9876543210", "template": "T", "kpi_summary": "A: 48.00 | B: 18.00",
             "score": 66.0, "formatted_score": "66.00 / 100.00", "status": "initiated"},
        ]},
        {"role": "supervisor", "rows": []},
    ],
}


def test_report_filename():
    assert report_filename("health", 9, 2025) == "health_Performance_Report_9_2025.pdf"


def test_render_html_escapes_and_lists_rows(db_session):
    html = ReportService(db_session).render_html(REPORT)
    assert "Health &amp; Family Welfare Performance Report" in html
    assert "Asha &lt;A&gt;" in html
    assert "66.00 / 100.00" in html
    assert "September 2025" in html


def test_render_pdf_returns_pdf_bytes(db_session):
    content = ReportService(db_session).render_pdf(REPORT)
    assert content.startswith(b"%PDF")


def test_render_pdf_without_entries(db_session):
    content = ReportService(db_session).render_pdf({**REPORT, "groups": []})
    assert content.startswith(b"%PDF")


async def test_department_report_groups_by_role(db_session):
    db_session.add(Department(name="Health", slug="health", is_active=True))
    template = KpiTemplate(
        name="T", description="d", role="health-worker", frequency=TemplateFrequency.MONTHLY,
        department_slug="health", metrics=[{"name": "A", "max_marks": 60}, {"name": "B", "max_marks": 40}],
    )
    db_session.add(template)
    await db_session.flush()

    people = [("Low", "health-worker", 10), ("High", "health-worker", 80), ("Lead", "supervisor", 50)]
    for name, role, score in people:
        employee = Employee(name=name, phone="9876543210", department="health", department_role=role, is_active=True)
        db_session.add(employee)
        await db_session.flush()
        labels = [{"label": "Field work"}]
        db_session.add(KpiEntry(
            employee_id=employee.id, template_id=template.id, month=9, year=2025, metric_labels=labels,
            label_signature=label_signature(labels), metric_values=[{"key": "A", "score": score}],
            total_score=score, status=EntryStatus.INITIATED,
        ))
    await db_session.commit()

    report = await ReportService(db_session).get_department_report("health", 9, 2025)

    assert report["month_name"] == "September"
    assert [group["role"] for group in report["groups"]] == ["health-worker", "supervisor"]
    assert [row["name"] for row in report["groups"][0]["rows"]] == ["High", "Low"]
    assert report["groups"][0]["rows"][0]["formatted_score"] == "80.00 / 100.00"


async def test_department_report_unknown_department(db_session):
    with pytest.raises(DepartmentNotFoundError):
        await ReportService(db_session).get_department_report("nowhere", 9, 2025)
