import pytest
from sqlalchemy import select, text

from app.models.communication.whatsapp_log import WhatsAppLog
from app.models.hr.employee import Employee
from app.models.kpi.entry import KpiEntry, label_signature
from app.models.kpi.template import KpiTemplate
from app.models.shared.enums import EntryStatus, TemplateFrequency
from app.services.communication.kpi_notification_service import KpiNotificationService


class FakeClient:
    def __init__(self, fail_for=(), raise_for=()):
        self.calls = []
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)

    async def send_campaign(self, campaign_name, destination, template_params):
        self.calls.append((campaign_name, destination, template_params))
        if destination in self.raise_for:
            raise RuntimeError("connection reset")
        if destination in self.fail_for:
            return {"status": "error", "code": 500, "provider_response": {"message": "rejected"}}
        return {"status": "ok", "provider_response": {"success": True}}


class FakeSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


async def _seed(session, people):
    """people: (name, phone, score) tuples; returns (template, entries)"""
    template = KpiTemplate(
        name="Health Worker KPI", description="d", role="health-worker", frequency=TemplateFrequency.MONTHLY,
        department_slug="health", metrics=[{"name": "A", "max_marks": 60}, {"name": "B", "max_marks": 40}],
    )
    session.add(template)
    await session.flush()

    entries = []
    for name, phone, score in people:
        employee = Employee(name=name, phone=phone, department="health", department_role="health-worker", is_active=True)
        session.add(employee)
        await session.flush()
        labels = [{"label": "Field work"}]
        entry = KpiEntry(
            employee_id=employee.id, template_id=template.id, month=9, year=2025,
            metric_labels=labels, label_signature=label_signature(labels),
            metric_values=[{"key": "A", "value": score, "score": score, "sub_metric_values": []}],
            total_score=score, status=EntryStatus.INITIATED,
        )
        session.add(entry)
        entries.append(entry)
    await session.commit()
    return template, entries


PEOPLE = [
    ("Middle", "9000000002", 70),
    ("Top", "9000000001", 90),
    ("Bottom", "9000000004", 20),
    ("NoPhone", "12345", 50),
]


async def test_batch_continues_after_a_failed_send(db_session):
    template, entries = await _seed(db_session, PEOPLE)
    client = FakeClient(fail_for={"919000000004"})
    sleep = FakeSleep()
    service = KpiNotificationService(db_session, client=client, delay_seconds=0.5, sleep=sleep)

    summary = await service.send_period_notifications(month=9, year=2025)

    assert (summary["sent"], summary["failed"], summary["skipped"]) == (2, 1, 1)
    # top first, then bottom, then middle; the invalid phone never reaches the client
    assert [call[1] for call in client.calls] == ["919000000001", "919000000004", "919000000002"]
    assert [call[0] for call in client.calls] == ["Top_Perfomer_API", "Bottom_Performer", "Medium_Perfomer_API"]
    assert sleep.calls == [0.5, 0.5, 0.5]

    bottom_params = client.calls[1][2]
    assert bottom_params == ["Bottom", "20.00 / 100.00", "4", "A: 20.00", "Rank 1 : Top - 90.00 / 100.00"]
    middle_params = client.calls[2][2]
    assert middle_params[2] == "2"

    statuses = {entry.employee_id: entry.status for entry in (await db_session.scalars(select(KpiEntry))).all()}
    by_name = {entry_name: entries[index].employee_id for index, (entry_name, _, _) in enumerate(PEOPLE)}
    assert statuses[by_name["Top"]] == EntryStatus.GENERATED
    assert statuses[by_name["Middle"]] == EntryStatus.GENERATED
    assert statuses[by_name["Bottom"]] == EntryStatus.INITIATED
    assert statuses[by_name["NoPhone"]] == EntryStatus.INITIATED

    logs = (await db_session.scalars(select(WhatsAppLog).order_by(WhatsAppLog.id))).all()
    assert [log.status for log in logs] == ["SENT", "FAILED", "SENT", "FAILED"]
    assert logs[-1].error_message == "invalid_phone"


async def test_exception_from_client_is_counted_as_failure(db_session):
    await _seed(db_session, PEOPLE[:2])
    client = FakeClient(raise_for={"919000000001"})
    service = KpiNotificationService(db_session, client=client, delay_seconds=0)

    summary = await service.send_period_notifications(month=9, year=2025)

    assert summary["failed"] == 1
    assert summary["sent"] == 1
    assert len(client.calls) == 2
    # nothing succeeded at the top, so the others get the placeholder line
    assert client.calls[1][2][-1] == "No top performers"


async def test_generated_entries_are_not_notified_again(db_session):
    await _seed(db_session, PEOPLE[:3])
    service = KpiNotificationService(db_session, client=FakeClient(), delay_seconds=0)

    first = await service.send_period_notifications(month=9, year=2025)
    second = await service.send_period_notifications(month=9, year=2025)

    assert first["sent"] == 3
    assert second["total_entries"] == 0
    assert second["sent"] == 0


async def test_dry_run_sends_nothing_and_keeps_status(db_session):
    await _seed(db_session, PEOPLE)
    client = FakeClient()
    sleep = FakeSleep()
    service = KpiNotificationService(db_session, client=client, delay_seconds=1, sleep=sleep)

    summary = await service.send_period_notifications(month=9, year=2025, dry_run=True)

    assert client.calls == []
    assert sleep.calls == []
    assert summary["dry_run"] is True
    assert summary["skipped"] == 1
    entries = (await db_session.scalars(select(KpiEntry))).all()
    assert all(entry.status == EntryStatus.INITIATED for entry in entries)
    logs = (await db_session.scalars(select(WhatsAppLog))).all()
    assert sorted(log.status for log in logs) == ["DRY_RUN", "DRY_RUN", "DRY_RUN", "FAILED"]


async def test_orphaned_entries_are_skipped(db_session):
    template, _ = await _seed(db_session, PEOPLE[:1])
    labels = [{"label": "x"}]
    db_session.add(KpiEntry(
        employee_id=999, template_id=template.id, month=9, year=2025, metric_labels=labels,
        label_signature=label_signature(labels), metric_values=[], total_score=10, status=EntryStatus.INITIATED,
    ))
    await db_session.commit()
    client = FakeClient()
    service = KpiNotificationService(db_session, client=client, delay_seconds=0)

    summary = await service.send_period_notifications(month=9, year=2025)

    assert summary["orphaned"] == 1
    assert summary["sent"] == 1
    assert len(client.calls) == 1


async def test_failed_log_writes_do_not_stop_the_batch(db_session):
    await _seed(db_session, PEOPLE)
    await db_session.execute(text("DROP TABLE whatsapp_logs"))
    await db_session.commit()
    client = FakeClient()
    service = KpiNotificationService(db_session, client=client, delay_seconds=0)

    summary = await service.send_period_notifications(month=9, year=2025)

    assert [call[1] for call in client.calls] == ["919000000001", "919000000004", "919000000002"]
    assert (summary["sent"], summary["failed"], summary["skipped"]) == (3, 0, 1)
    entries = (await db_session.scalars(select(KpiEntry))).all()
    assert sum(entry.status == EntryStatus.GENERATED for entry in entries) == 3
