"""Authorization and bookkeeping for scheduled jobs triggered over HTTP."""
import hmac
import logging
import time
from typing import Any, Callable, Dict

from fastapi import Request

from .errors import UnauthorizedError

logger = logging.getLogger(__name__)


def verify_cron_auth(request: Request) -> None:
    """Require `Authorization: Bearer <CRON_SECRET>`; development mode skips the check."""
    settings = request.app.state.settings
    if settings.is_development:
        logger.warning("Cron auth bypassed in development mode")
        return
    if not settings.cron_secret:
        logger.error("CRON_SECRET not configured")
        raise UnauthorizedError()
    header = request.headers.get("Authorization", "")
    if not hmac.compare_digest(header, f"Bearer {settings.cron_secret}"):
        logger.warning("Unauthorized cron request attempted")
        raise UnauthorizedError()


def run_cron_job(name: str, handler: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
    """Run a job, time it, and turn an unexpected failure into a failed summary."""
    start = time.monotonic()
    logger.info("Cron job started: %s", name)
    try:
        result = handler()
    except Exception as e:
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.exception("Cron job failed: %s", name)
        return {
            "success": False,
            "processed": 0,
            "errors": 1,
            "details": {"error": str(e)},
            "duration_ms": duration_ms,
        }
    duration_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        "Cron job completed: %s processed=%s errors=%s duration_ms=%s",
        name, result.get("processed"), result.get("errors"), duration_ms,
    )
    return {**result, "duration_ms": duration_ms}
