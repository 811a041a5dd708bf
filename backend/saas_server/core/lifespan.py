"""Startup/shutdown of the background maintenance tasks."""

import asyncio
import logging

from saas_server.core.config import settings
from saas_server.core.database import async_session_maker
from saas_server.core.logging import setup_logging

_logger = logging.getLogger(__name__)


def task_done_callback(task: asyncio.Task[None]) -> None:
    """Log unhandled exceptions from background tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        _logger.error(f"Background task {task.get_name()} failed: {exc}")


async def startup(logger: logging.Logger) -> list[asyncio.Task]:
    """Configure logging, report insecure settings and start cleanup loops.

    Returns the managed background tasks, to be passed to ``shutdown``.
    """
    from saas_server.middleware.rate_limit_cleanup import rate_limit_cleanup_loop
    from saas_server.services.token_cleanup import token_cleanup_loop

    setup_logging(
        level=settings.log_level,
        format_type="structured" if not settings.debug else "dev",
    )

    for warning in settings.check_security_configuration():
        logger.warning(f"SECURITY: {warning}")

    tasks: list[asyncio.Task] = []

    rate_limit_task = asyncio.create_task(
        rate_limit_cleanup_loop(interval=settings.rate_limit_sweep_interval_seconds),
        name="rate-limit-cleanup",
    )
    rate_limit_task.add_done_callback(task_done_callback)
    tasks.append(rate_limit_task)

    token_task = asyncio.create_task(
        token_cleanup_loop(async_session_maker, interval=settings.token_cleanup_interval_seconds),
        name="token-cleanup",
    )
    token_task.add_done_callback(task_done_callback)
    tasks.append(token_task)

    return tasks


async def shutdown(tasks: list[asyncio.Task]) -> None:
    """Cancel managed background tasks and wait for them to finish."""
    for task in tasks:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
