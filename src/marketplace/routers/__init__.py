"""HTTP routers, included by `create_app` in this order."""
from . import alerts, checkout, cron, disputes, health, orders, products, reviews, webhooks

ALL_ROUTERS = [
    health.router,
    products.router,
    checkout.router,
    orders.router,
    webhooks.router,
    alerts.router,
    disputes.router,
    reviews.router,
    cron.router,
]

__all__ = ["ALL_ROUTERS"]
