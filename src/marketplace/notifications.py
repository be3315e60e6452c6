import logging
import smtplib
from email.message import EmailMessage

from .config import Settings
from .utils import mask_email

logger = logging.getLogger(__name__)


def _dollars(cents: int) -> str:
    return f"${cents / 100:,.2f}"


class Notifier:
    """Transactional email.

    Sends over SMTP when `SMTP_HOST` is set; otherwise only logs what would
    have been sent. Callers decide whether a failure matters.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def send_email(self, *, to_email: str, subject: str, body: str) -> None:
        if self.settings.is_email_demo:
            logger.info("Demo email to %s: %s", mask_email(to_email), subject)
            return

        msg = EmailMessage()
        msg["From"] = self.settings.email_from
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(body)

        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=10) as server:
            if self.settings.smtp_use_tls:
                server.starttls()
            if self.settings.smtp_username and self.settings.smtp_password:
                server.login(self.settings.smtp_username, self.settings.smtp_password)
            server.send_message(msg)

    def order_confirmation(self, to_email: str, order, product) -> None:
        self.send_email(
            to_email=to_email,
            subject=f"Order confirmed: {order.order_number}",
            body=(
                f"Thank you for your purchase.\n\n"
                f"{product.brand} - {product.title} (SKU {product.sku})\n"
                f"Total: {_dollars(order.total_cents)}\n\n"
                f"We'll let you know when your item ships."
            ),
        )

    def seller_order_notification(self, to_email: str, order, product, buyer_name: str) -> None:
        self.send_email(
            to_email=to_email,
            subject=f"New order {order.order_number}",
            body=(
                f"{buyer_name} purchased {product.brand} - {product.title} (SKU {product.sku}).\n"
                f"Sale price: {_dollars(order.subtotal_cents)}\n"
                f"Your payout after fees: {_dollars(order.total_cents - order.platform_fee_cents)}\n\n"
                f"Please ship within 3 business days."
            ),
        )

    def shipping_confirmation(self, to_email: str, order) -> None:
        self.send_email(
            to_email=to_email,
            subject=f"Your order {order.order_number} has shipped",
            body=(
                f"{order.product_title} is on its way.\n"
                f"Carrier: {order.carrier}\n"
                f"Tracking number: {order.tracking_number}"
            ),
        )

    def delivery_confirmation(self, to_email: str, order) -> None:
        self.send_email(
            to_email=to_email,
            subject=f"Your order {order.order_number} was delivered",
            body=(
                f"{order.product_title} has been delivered.\n"
                f"If something is wrong you can open a dispute until "
                f"{order.dispute_deadline:%Y-%m-%d}."
            ),
        )

    def price_alert(self, to_email: str, product, target_price_cents: int) -> None:
        self.send_email(
            to_email=to_email,
            subject=f"Price drop: {product.brand} - {product.title}",
            body=(
                f"{product.title} is now {_dollars(product.price_cents)}, "
                f"at or below your alert price of {_dollars(target_price_cents)}."
            ),
        )
