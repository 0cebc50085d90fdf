"""ARQ worker entrypoint."""

import asyncio
import logging

from arq import cron
from arq.connections import RedisSettings

from plansync.core.config import get_settings
from plansync.workers.quota_sweep import enforce_all_quotas


def _redis_settings() -> RedisSettings:
    """Parse REDIS_URL into ARQ RedisSettings."""
    settings = get_settings()
    # redis://host:port/db
    url = settings.redis_url
    rest = url.split("://", 1)[1] if "://" in url else url
    host_port, _, db = rest.partition("/")
    host, _, port = host_port.partition(":")
    return RedisSettings(
        host=host or "localhost",
        port=int(port) if port else 6379,
        database=int(db) if db else 0,
    )


async def startup(ctx: dict) -> None:
    """Called when the worker starts."""
    from plansync.core.database import init_db
    logging.basicConfig(level=get_settings().log_level)
    await init_db()


async def shutdown(ctx: dict) -> None:
    """Called when the worker shuts down."""


class WorkerSettings:
    """ARQ worker configuration."""
    functions = [enforce_all_quotas]
    cron_jobs = [
        cron(enforce_all_quotas, minute={get_settings().quota_sweep_minute}, run_at_startup=False),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = _redis_settings()
    max_jobs = 10
    job_timeout = 300


if __name__ == "__main__":
    from arq import run_worker
    asyncio.run(run_worker(WorkerSettings))  # type: ignore[arg-type]
