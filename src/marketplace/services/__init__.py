"""Business rules, one module per area. Every function takes the repositories first."""
from . import alerts, checkout, disputes, inventory, orders, payouts, reviews, webhooks

__all__ = ["alerts", "checkout", "disputes", "inventory", "orders", "payouts", "reviews", "webhooks"]
