"""Request-scoped access to the objects `create_app` puts on `app.state`."""
from fastapi import Request

from ..config import Settings
from ..notifications import Notifier
from ..payments import PaymentGateway


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_gateway(request: Request) -> PaymentGateway:
    return request.app.state.gateway


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


async def get_raw_body(request: Request) -> bytes:
    # signatures are computed over the exact bytes sent
    return await request.body()
