"""AdPulse — Shared FastAPI dependencies."""

from adpulse.connectors.meta.client import MetaClient
from adpulse.connectors.meta.rate_limiter import RequestScheduler, get_request_scheduler


async def get_meta_client():
    """Dependency — yields a Meta client, closed after the request."""
    client = MetaClient()
    try:
        yield client
    finally:
        await client.close()


def get_scheduler() -> RequestScheduler:
    """Dependency — the process-wide request scheduler."""
    return get_request_scheduler()
