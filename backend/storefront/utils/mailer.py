from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol, Sequence

from ..models import Order, User
from .time import format_delivery_day

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderEmail:
    customer_name: str
    customer_email: str
    customer_phone: str
    order_number: str
    product_name: str
    product_image: str
    quantity: int
    total_price: Decimal
    delivery_dates: list[str]
    order_date: str
    status: str


class Mailer(Protocol):
    async def send_order_confirmation(self, email: OrderEmail) -> None: ...

    async def send_order_status_update(self, email: OrderEmail) -> None: ...


class LoggingMailer:
    """Hands order emails to the log instead of a mail relay."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self.log = log or logger

    async def send_order_confirmation(self, email: OrderEmail) -> None:
        self.log.info("order confirmation email %s", json.dumps(asdict(email), default=str))

    async def send_order_status_update(self, email: OrderEmail) -> None:
        self.log.info("order status email %s", json.dumps(asdict(email), default=str))


def order_number(order_id: int) -> str:
    return "#" + str(order_id).zfill(8)[-8:].upper()


def _delivery_days(slot_allocation: Sequence[dict[str, Any]]) -> list[str]:
    return [format_delivery_day(date.fromisoformat(entry["date"]["date"])) for entry in slot_allocation]


def build_order_email(order: Order, user: User) -> OrderEmail:
    created: datetime = order.created_at
    return OrderEmail(
        customer_name=user.name or "Valued Customer",
        customer_email=user.email or "",
        customer_phone=user.phone or "Not provided",
        order_number=order_number(order.id),
        product_name=order.product_name,
        product_image=order.product_image,
        quantity=order.quantity,
        total_price=order.total_price,
        delivery_dates=_delivery_days(order.slot_allocation),
        order_date=format_delivery_day(created.date()),
        status=str(order.status.value),
    )


async def send_quietly(mailer: Mailer, kind: str, email: OrderEmail) -> bool:
    """Dispatch one email; failures are logged and reported as False."""
    try:
        if kind == "confirmation":
            await mailer.send_order_confirmation(email)
        else:
            await mailer.send_order_status_update(email)
    except Exception:
        logger.exception("failed to send %s email for order %s", kind, email.order_number)
        return False
    return True
