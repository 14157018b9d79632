"""
KPI notification tasks
"""
import asyncio
import logging
from typing import Optional
from app.core.celery_app import celery_app
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool
from app.core.config import settings

logger = logging.getLogger(__name__)


def _task_engine():
    # Engine per run; each task runs on its own event loop
    return create_async_engine(settings.DATABASE_URL, echo=False, future=True, poolclass=NullPool)

def run_async_task(coro):
    """Helper function to run async coroutines in Celery tasks"""
    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        return loop.run_until_complete(coro)
    except Exception as e:
        logger.error(f"Error in async task: {e}")
        raise
    finally:
        asyncio.set_event_loop(None)
        loop.close()

async def _send_notifications(month: Optional[int], year: Optional[int], dry_run: bool, template_id: Optional[int]):
    # Import inside function to avoid circular imports
    from app.services.communication.kpi_notification_service import KpiNotificationService

    engine = _task_engine()
    try:
        session_maker = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
        async with session_maker() as db:
            service = KpiNotificationService(db)
            return await service.send_period_notifications(
                month=month, year=year, dry_run=dry_run, template_id=template_id
            )
    finally:
        await engine.dispose()

@celery_app.task
def send_kpi_notifications(month: Optional[int] = None, year: Optional[int] = None,
                           dry_run: bool = False, template_id: Optional[int] = None):
    """Rank every template cohort of the period and send the WhatsApp messages"""
    summary = run_async_task(_send_notifications(month, year, dry_run, template_id))
    logger.info(
        f"✅ KPI notifications {summary['month']}/{summary['year']}: "
        f"sent={summary['sent']} failed={summary['failed']} skipped={summary['skipped']}"
    )
    # Drop per-recipient details from the stored result
    return {key: value for key, value in summary.items() if key != "templates"}
