"""AdPulse — Scheduler Jobs.

APScheduler daily job that re-syncs the entity cache (ad accounts, then
campaigns and ads for every cached account) at the configured hour, so
dashboard reads rarely find a stale scope.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlmodel import Session

from adpulse.config import settings
from adpulse.connectors.meta.client import MetaClient
from adpulse.connectors.meta.rate_limiter import RequestScheduler, get_request_scheduler
from adpulse.database import engine
from adpulse.services.entities import AdAccountsService, AdsService, CampaignsService
from adpulse.core.logging import get_logger

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


async def sync_entity_cache(
    client: MetaClient, request_scheduler: RequestScheduler, session: Session
) -> dict:
    """Force-refresh every cached entity kind; returns error counts per kind."""
    accounts = await AdAccountsService(client, request_scheduler, session).list(
        force_refresh=True
    )
    account_ids = [account.account_id for account in accounts.data]
    campaigns = await CampaignsService(client, request_scheduler, session).list(
        account_ids, force_refresh=True
    )
    ads = await AdsService(client, request_scheduler, session).list(
        account_ids, force_refresh=True
    )
    summary = {
        "accounts": len(account_ids),
        "errors": {
            "ad_account": len(accounts.errors),
            "campaign": len(campaigns.errors),
            "ad": len(ads.errors),
        },
    }
    logger.info(f"Entity cache sync finished: {summary}")
    return summary


async def daily_sync_job():
    """Run the entity cache sync against the process-wide scheduler."""
    logger.info("Scheduled entity sync starting...")
    client = MetaClient()
    try:
        with Session(engine) as session:
            await sync_entity_cache(client, get_request_scheduler(), session)
    except Exception as e:
        logger.error(f"Scheduled entity sync failed: {e}")
    finally:
        await client.close()


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        daily_sync_job,
        "cron",
        hour=settings.sync_hour,
        minute=0,
        id="daily_entity_sync",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.start()
    logger.info(f"Scheduler started. Daily entity sync at {settings.sync_hour}:00 UTC")


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
