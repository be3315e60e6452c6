import logging
from typing import Optional

from fastapi import FastAPI

from .config import Settings, get_settings
from .database import build_backend
from .errors import register_error_handlers
from .notifications import Notifier
from .payments import PaymentGateway
from .routers import ALL_ROUTERS

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, backend=None) -> FastAPI:
    """Build the API.

    Tests pass their own `settings` and `backend`; otherwise both come from
    the environment.
    """
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Consignment Marketplace Orders Service")
    app.state.settings = settings
    app.state.backend = backend or build_backend(settings)
    app.state.gateway = PaymentGateway(settings)
    app.state.notifier = Notifier(settings)

    register_error_handlers(app)
    for router in ALL_ROUTERS:
        app.include_router(router)

    if settings.is_payment_demo:
        logger.warning("STRIPE_SECRET_KEY not set: checkout runs in demo mode")
    logger.info("Store backend: %s", app.state.backend.name)
    return app


app = create_app()
