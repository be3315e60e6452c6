"""Scheduled jobs, triggered by the platform scheduler over HTTP.

Each job answers 200 when everything succeeded and 207 when some items
failed; the body is the job summary either way.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from .. import schemas
from ..config import Settings
from ..cron import run_cron_job, verify_cron_auth
from ..database import get_repositories
from ..notifications import Notifier
from ..payments import PaymentGateway
from ..repositories import Repositories
from ..services import alerts, inventory, payouts
from .deps import get_app_settings, get_gateway, get_notifier

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(verify_cron_auth)])

JOB_ROUTE = {
    "methods": ["GET", "POST"],
    "response_model": schemas.CronResult,
    "responses": {207: {"model": schemas.CronResult, "description": "Some items failed"}},
}


def cron_response(result) -> JSONResponse:
    summary = schemas.CronResult.model_validate(result)
    return JSONResponse(
        status_code=207 if summary.errors else 200,
        content=summary.model_dump(mode="json"),
        headers={"Cache-Control": "no-store"},
    )


@router.api_route("/process-payouts", **JOB_ROUTE)
def process_payouts(
    repos: Repositories = Depends(get_repositories),
    gateway: PaymentGateway = Depends(get_gateway),
    settings: Settings = Depends(get_app_settings),
):
    return cron_response(
        run_cron_job(
            "process-payouts",
            lambda: payouts.process_payouts(repos, gateway, hold_days=settings.payout_hold_days),
        )
    )


@router.api_route("/cleanup-reservations", **JOB_ROUTE)
def cleanup_reservations(repos: Repositories = Depends(get_repositories)):
    def job():
        released, errors = inventory.cleanup_expired_reservations(repos)
        return {
            "success": errors == 0,
            "processed": len(released),
            "errors": errors,
            "details": {"released_skus": released},
        }

    return cron_response(run_cron_job("cleanup-reservations", job))


@router.api_route("/send-price-alerts", **JOB_ROUTE)
def send_price_alerts(
    repos: Repositories = Depends(get_repositories),
    notifier: Notifier = Depends(get_notifier),
):
    return cron_response(run_cron_job("send-price-alerts", lambda: alerts.send_price_alerts(repos, notifier)))
