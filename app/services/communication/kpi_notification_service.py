import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.communication.whatsapp_log import WhatsAppLog
from app.models.hr.employee import Employee
from app.models.kpi.entry import KpiEntry
from app.models.kpi.template import KpiTemplate
from app.models.shared.enums import EntryStatus, NotificationStatus, PerformanceTier
from app.services.communication.whatsapp_service import WhatsAppClient, format_phone_number
from app.services.kpi.ranking import (
    Resolved, join_entries, only_orphaned, only_resolved, rank_entries, resolve_period, split_tiers
)
from app.services.kpi.scoring import kpi_summary

logger = logging.getLogger(__name__)

NO_TOP_PERFORMERS = "No top performers"


def campaign_for(tier: PerformanceTier) -> str:
    return {
        PerformanceTier.TOP: settings.WHATSAPP_TOP_CAMPAIGN,
        PerformanceTier.BOTTOM: settings.WHATSAPP_BOTTOM_CAMPAIGN,
        PerformanceTier.MIDDLE: settings.WHATSAPP_MIDDLE_CAMPAIGN,
    }[tier]


def score_text(score: float, max_marks: float) -> str:
    return f"{float(score or 0):.2f} / {float(max_marks or 0):.2f}"


def top_performers_text(performers: List[Dict[str, Any]], max_marks: float) -> str:
    """One 'Rank r : name - score / max' line per top performer"""
    return "\n".join(
        f"Rank {item['rank']} : {item['name'] or 'Unknown'} - {score_text(item['score'], max_marks)}"
        for item in performers
    )


def build_template_params(
    tier: PerformanceTier,
    name: str,
    score: str,
    rank: int,
    summary: str,
    top_performers: Optional[str] = None,
) -> List[str]:
    params = [name, score, str(rank), summary]
    if tier != PerformanceTier.TOP:
        params.append(top_performers or NO_TOP_PERFORMERS)
    return params


@dataclass
class Recipient:
    """Plain copy of an entry and its employee; stays readable after a session rollback"""
    entry_id: int
    employee_id: int
    name: str
    phone: Optional[str]
    score: float
    metric_values: List[Dict[str, Any]]

    @classmethod
    def from_resolved(cls, resolved: Resolved) -> "Recipient":
        entry, employee = resolved.entry, resolved.employee
        return cls(
            entry_id=entry.id,
            employee_id=employee.id,
            name=employee.name,
            phone=employee.phone,
            score=float(entry.total_score or 0),
            metric_values=list(entry.metric_values or []),
        )


@dataclass
class Cohort:
    template_id: int
    template_name: str
    max_marks: float
    recipients: List[Recipient] = field(default_factory=list)


class KpiNotificationService:
    """Ranks each template's cohort for a period and sends tiered WhatsApp messages"""

    def __init__(
        self,
        session: AsyncSession,
        client: Optional[WhatsAppClient] = None,
        delay_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.session = session
        self.client = client or WhatsAppClient()
        self.delay_seconds = settings.WHATSAPP_SEND_DELAY_SECONDS if delay_seconds is None else delay_seconds
        self._sleep = sleep

    # ---------- Batch ----------
    async def send_period_notifications(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
        dry_run: bool = False,
        template_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Notify every not yet generated entry of the period, one template cohort at a time"""
        if month is None or year is None:
            default_month, default_year = resolve_period(now or datetime.now())
            month = month or default_month
            year = year or default_year

        query = select(KpiEntry).where(
            KpiEntry.month == month,
            KpiEntry.year == year,
            KpiEntry.status != EntryStatus.GENERATED,
        )
        if template_id:
            query = query.where(KpiEntry.template_id == template_id)
        result = await self.session.execute(query.order_by(KpiEntry.id))
        entries = result.scalars().all()
        logger.info(f"📨 KPI notifications for {month}/{year}: {len(entries)} pending entries (dry_run={dry_run})")

        employees = await self._employees_by_id([entry.employee_id for entry in entries])
        templates = await self._templates_by_id([entry.template_id for entry in entries])

        joined = join_entries(entries, employees, templates)
        orphans = only_orphaned(joined)
        for orphan in orphans:
            logger.warning(f"Skipping entry {orphan.entry.id}: {orphan.reason}")

        # Everything the sends need is copied out before the first write
        cohorts: "OrderedDict[int, Cohort]" = OrderedDict()
        for resolved in only_resolved(joined):
            template = resolved.template
            cohort = cohorts.get(template.id)
            if cohort is None:
                cohort = cohorts[template.id] = Cohort(template.id, template.name, template.total_max_marks)
            cohort.recipients.append(Recipient.from_resolved(resolved))

        summary = {
            "month": month,
            "year": year,
            "dry_run": dry_run,
            "total_entries": len(entries),
            "orphaned": len(orphans),
            "templates": [],
            "sent": 0,
            "failed": 0,
            "skipped": 0,
        }
        for cohort in cohorts.values():
            report = await self.notify_cohort(cohort, dry_run=dry_run)
            summary["templates"].append(report)
            for key in ("sent", "failed", "skipped"):
                summary[key] += report[key]

        logger.info(
            f"✅ KPI notifications done for {month}/{year}: sent={summary['sent']} "
            f"failed={summary['failed']} skipped={summary['skipped']}"
        )
        return summary

    async def notify_cohort(self, cohort: Cohort, dry_run: bool = False) -> Dict[str, Any]:
        """Top tier first, then bottom (worst first), then the middle"""
        ranked = rank_entries(cohort.recipients, key=lambda recipient: recipient.score)
        top, middle, bottom = split_tiers(ranked)
        total = len(ranked)
        max_marks = cohort.max_marks
        report = {
            "template_id": cohort.template_id,
            "template_name": cohort.template_name,
            "total": total,
            "top": len(top),
            "middle": len(middle),
            "bottom": len(bottom),
            "sent": 0,
            "failed": 0,
            "skipped": 0,
            "results": [],
        }
        logger.info(f"Template {cohort.template_name}: top {len(top)}, bottom {len(bottom)} of {total} entries")

        succeeded_top: List[Dict[str, Any]] = []
        for index, recipient in enumerate(top):
            outcome = await self._notify(PerformanceTier.TOP, recipient, index + 1, max_marks, None, dry_run)
            self._record(report, outcome)
            if outcome["outcome"] in ("sent", "dry_run"):
                succeeded_top.append({"rank": index + 1, "name": recipient.name, "score": recipient.score})

        performers = top_performers_text(succeeded_top, max_marks) if succeeded_top else NO_TOP_PERFORMERS

        for index, recipient in enumerate(reversed(bottom)):
            outcome = await self._notify(PerformanceTier.BOTTOM, recipient, total - index, max_marks, performers, dry_run)
            self._record(report, outcome)

        for index, recipient in enumerate(middle):
            outcome = await self._notify(PerformanceTier.MIDDLE, recipient, len(top) + 1 + index, max_marks, performers, dry_run)
            self._record(report, outcome)

        return report

    # ---------- Helpers ----------
    @staticmethod
    def _record(report: Dict[str, Any], outcome: Dict[str, Any]) -> None:
        report["results"].append(outcome)
        if outcome["outcome"] == "sent":
            report["sent"] += 1
        elif outcome["outcome"] == "failed":
            report["failed"] += 1
        elif outcome["outcome"] == "skipped":
            report["skipped"] += 1

    async def _notify(
        self,
        tier: PerformanceTier,
        recipient: Recipient,
        rank: int,
        max_marks: float,
        performers: Optional[str],
        dry_run: bool,
    ) -> Dict[str, Any]:
        campaign = campaign_for(tier)
        outcome = {
            "entry_id": recipient.entry_id,
            "employee_id": recipient.employee_id,
            "name": recipient.name,
            "tier": tier.value,
            "rank": rank,
            "campaign": campaign,
        }
        destination = None
        sent = False
        try:
            params = build_template_params(
                tier,
                recipient.name,
                score_text(recipient.score, max_marks),
                rank,
                kpi_summary(recipient.metric_values),
                performers,
            )
            outcome["template_params"] = params

            destination = format_phone_number(recipient.phone)
            if destination is None:
                logger.warning(f"Invalid phone for {recipient.name} ({recipient.phone}); entry {recipient.entry_id} skipped")
                await self._log(recipient, campaign, params, NotificationStatus.FAILED, error="invalid_phone")
                return {**outcome, "outcome": "skipped", "error": "invalid_phone"}

            if dry_run:
                logger.info(f"[DRY RUN] {campaign} -> {destination} rank {rank}: {recipient.name}")
                await self._log(recipient, campaign, params, NotificationStatus.DRY_RUN, phone=destination)
                return {**outcome, "outcome": "dry_run", "destination": destination}

            try:
                response = await self.client.send_campaign(campaign, destination, params)
            finally:
                if self.delay_seconds:
                    await self._sleep(self.delay_seconds)

            if response.get("status") == "ok":
                sent = True
                saved = await self._mark_generated(recipient.entry_id)
                await self._log(recipient, campaign, params, NotificationStatus.SENT,
                                phone=destination, response=response.get("provider_response"))
                logger.info(f"WhatsApp {campaign} sent to {recipient.name} (rank {rank}), entry {recipient.entry_id}")
                result = {**outcome, "outcome": "sent", "destination": destination}
                if not saved:
                    result["error"] = "status_not_saved"
                return result

            if response.get("status") == "disabled":
                return {**outcome, "outcome": "skipped", "destination": destination, "error": "disabled"}

            error = str(response.get("exception") or response.get("error") or response.get("code"))
            await self._log(recipient, campaign, params, NotificationStatus.FAILED,
                            phone=destination, response=response.get("provider_response"), error=error)
            return {**outcome, "outcome": "failed", "destination": destination, "error": error}

        except Exception as e:
            logger.error(f"Error notifying {recipient.name} for entry {recipient.entry_id} at rank {rank}: {e}")
            await self.session.rollback()
            return {**outcome, "outcome": "sent" if sent else "failed", "destination": destination, "error": str(e)}

    async def _mark_generated(self, entry_id: int) -> bool:
        """Commit the GENERATED status on its own; False when the write failed"""
        try:
            await self.session.execute(
                update(KpiEntry)
                .where(KpiEntry.id == entry_id)
                .values(status=EntryStatus.GENERATED, updated_at=datetime.utcnow())
            )
            await self.session.commit()
            return True
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Message sent but entry {entry_id} could not be marked generated: {e}")
            return False

    async def _log(
        self,
        recipient: Recipient,
        campaign: str,
        params: List[str],
        log_status: NotificationStatus,
        phone: Optional[str] = None,
        response: Optional[Any] = None,
        error: Optional[str] = None,
    ) -> bool:
        try:
            self.session.add(WhatsAppLog(
                recipient_phone=phone or recipient.phone or "",
                recipient_name=recipient.name,
                campaign_name=campaign,
                template_params=params,
                status=log_status.value,
                sent_at=datetime.utcnow() if log_status == NotificationStatus.SENT else None,
                provider_response=response,
                error_message=error,
                entry_id=recipient.entry_id,
            ))
            await self.session.commit()
            return True
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Could not write {log_status.value} log for entry {recipient.entry_id}: {e}")
            return False

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
