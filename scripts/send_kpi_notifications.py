"""
Monthly KPI WhatsApp notifications (async)
- Ranks every template cohort of the period
- Sends top / bottom / middle campaigns and marks entries generated
Run:  python scripts/send_kpi_notifications.py --month 9 --year 2025 [--dry-run] [--template-id 3]
"""

import os, sys
import argparse
import asyncio
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.core.database import async_session_maker, engine
from app.core.logging_config import setup_logging
from app.services.communication.kpi_notification_service import KpiNotificationService


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Send monthly KPI WhatsApp notifications")
    parser.add_argument("--month", type=int, help="1-12, defaults to the previous month")
    parser.add_argument("--year", type=int, help="defaults to the year of the previous month")
    parser.add_argument("--dry-run", action="store_true", help="log messages without sending")
    parser.add_argument("--template-id", type=int, help="only notify this template's cohort")
    return parser.parse_args(argv)

# ----------------------------------------------------------------------
# ASYNC ENTRY POINT
# ----------------------------------------------------------------------

async def main(argv=None):
    args = parse_args(argv)
    setup_logging()

    async with async_session_maker() as db:
        try:
            service = KpiNotificationService(db)
            summary = await service.send_period_notifications(
                month=args.month, year=args.year, dry_run=args.dry_run, template_id=args.template_id
            )
        except Exception as ex:
            await db.rollback()
            print(f"❌ Notification run failed: {ex}")
            raise
        finally:
            await engine.dispose()

    for report in summary["templates"]:
        print(
            f"• {report['template_name']}: {report['total']} entries, "
            f"sent {report['sent']}, failed {report['failed']}, skipped {report['skipped']}"
        )
    print(
        f"✅ {summary['month']}/{summary['year']} done (dry_run={summary['dry_run']}): "
        f"sent={summary['sent']} failed={summary['failed']} skipped={summary['skipped']} "
        f"orphaned={summary['orphaned']}"
    )
    return summary

if __name__ == "__main__":
    asyncio.run(main())
