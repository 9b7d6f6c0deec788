from libs.common.config import get_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)


async def send_email(to_email: str, subject: str, body: str) -> bool:
    """
    Log-only email sender.
    Delivery goes through the notification service's SMTP relay in production;
    this service only records what it would have sent.
    """
    settings = get_settings()
    logger.info(
        "Sending email to %s: %s",
        to_email,
        subject,
        extra={
            "extra_fields": {
                "from_email": settings.EMAIL_FROM,
                "to_email": to_email,
                "body_length": len(body),
            }
        },
    )
    return True


async def send_order_confirmation(
    to_email: str, customer_name: str, order_code: str, total_amount
) -> bool:
    """Send the 'payment received' email for a confirmed order."""
    subject = f"Order {order_code} confirmed"
    body = (
        f"Hi {customer_name},\n\n"
        f"We have received payment for order {order_code} "
        f"({total_amount:,.0f} VND). We will let you know when it ships.\n\n"
        "SoNice"
    )
    return await send_email(to_email, subject, body)
