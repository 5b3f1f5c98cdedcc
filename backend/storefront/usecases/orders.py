from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Sequence

from ..domain.errors import DateNotFoundError, NotFoundError, ValidationError
from ..domain.pricing import PriceBreakdown, Pricing, SlotUsage, calculate_unit_price, compute_price_breakdown
from ..domain.repositories import (
    AvailableDateRepository,
    CartRepository,
    OrderRepository,
    ProductRepository,
    UserRepository,
)
from ..domain.services import (
    AllocationRequest,
    allocation_requests,
    freeze_allocation,
    holds_slots,
    split_slots,
)
from ..models import AvailableDate, CartItem, Order, OrderStatus, PaymentStatus, User
from ..utils.mailer import Mailer, build_order_email, send_quietly
from ..utils.payments import verify_payment_signature
from ..utils.time import to_utc_day
from .allocation import release_slots, reserve_slots

logger = logging.getLogger(__name__)


def _utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class OrderDraft:
    product_id: int
    quantity: int
    size: str
    cloth_provided: bool
    allocations: list[AllocationRequest]
    material: str | None = None
    special_notes: str | None = None
    delivery_address: str | None = None
    payment_method_id: str | None = None


@dataclass
class PaymentOutcome:
    orders: list[Order]
    verified: bool
    previous_status: dict[int, OrderStatus] = field(default_factory=dict)

    @property
    def changed(self) -> list[Order]:
        return [order for order in self.orders if order.id in self.previous_status]


def _selected_days(rows: Sequence[AvailableDate]) -> list[str]:
    return sorted({row.date.isoformat() for row in rows})


async def create_order(
    product_repo: ProductRepository,
    date_repo: AvailableDateRepository,
    order_repo: OrderRepository,
    *,
    user_uid: str,
    draft: OrderDraft,
    strict_materials: bool = False,
) -> Order:
    """Price, reserve and persist one order. Run inside a single transaction."""
    if not draft.allocations:
        raise ValidationError("slot allocation is required")
    slots = sum(request.total for request in draft.allocations)
    if slots != draft.quantity:
        raise ValidationError(f"{draft.quantity} slot(s) are required for quantity {draft.quantity}, got {slots}")

    product = await product_repo.get(draft.product_id)
    if product is None or not product.is_active:
        raise NotFoundError("Product not found")
    unit_price = calculate_unit_price(
        Pricing.from_product(product),
        draft.material,
        draft.cloth_provided,
        strict_materials=strict_materials,
    )

    rows = await reserve_slots(date_repo, draft.allocations)
    breakdown = compute_price_breakdown(
        unit_price,
        [
            SlotUsage(
                normal_slots_used=request.normal_slots_used,
                emergency_slots_used=request.emergency_slots_used,
                emergency_slot_cost=rows[request.date_id].emergency_slot_cost,
            )
            for request in draft.allocations
        ],
    )
    order = Order(
        product_id=product.id,
        product_name=product.name,
        product_image=(product.images or [""])[0],
        product_description=product.description,
        user_uid=user_uid,
        quantity=draft.quantity,
        total_price=breakdown.total,
        size=draft.size,
        material=draft.material,
        special_notes=draft.special_notes,
        cloth_provided=draft.cloth_provided,
        delivery_address=draft.delivery_address,
        slot_allocation=[freeze_allocation(rows[r.date_id], r) for r in draft.allocations],
        normal_slots_total=sum(r.normal_slots_used for r in draft.allocations),
        emergency_slots_total=sum(r.emergency_slots_used for r in draft.allocations),
        price_breakdown=breakdown.as_dict(),
        selected_dates=_selected_days(list(rows.values())),
        from_cart=False,
        payment_method_id=draft.payment_method_id,
        payment_status=PaymentStatus.PENDING,
        status=OrderStatus.PENDING,
    )
    return await order_repo.add(order)


async def _item_allocations(date_repo: AvailableDateRepository, item: CartItem) -> list[AllocationRequest]:
    days = [to_utc_day(datetime.fromisoformat(value)) for value in item.selected_dates]
    if not days:
        raise ValidationError(f"Cart item {item.id} has no selected dates")
    rows: list[AvailableDate] = []
    for day in days:
        row = await date_repo.get_by_day(day)
        if row is None:
            raise DateNotFoundError(f"Available date not found for {day.isoformat()}")
        rows.append(row)
    normal = split_slots(item.normal_slots_total, len(rows))
    emergency = split_slots(item.emergency_slots_total, len(rows))
    return [
        AllocationRequest(date_id=row.id, normal_slots_used=n, emergency_slots_used=e)
        for row, n, e in zip(rows, normal, emergency)
    ]


async def create_orders_from_cart(
    cart_repo: CartRepository,
    date_repo: AvailableDateRepository,
    order_repo: OrderRepository,
    *,
    user_uid: str,
    payment_method_id: str | None = None,
) -> list[Order]:
    """One order per cart item, all reserved in the caller's transaction."""
    cart = await cart_repo.get_by_user(user_uid)
    if cart is None or not cart.items:
        raise ValidationError("Cart is empty")
    if not cart.delivery_address:
        raise ValidationError("Delivery address not set")

    orders: list[Order] = []
    for item in cart.items:
        requests = await _item_allocations(date_repo, item)
        rows = await reserve_slots(date_repo, requests)
        order = Order(
            product_id=item.product_id,
            product_name=item.product_name,
            product_image=item.product_image,
            product_description=item.product_description,
            user_uid=user_uid,
            quantity=item.quantity,
            total_price=item.total_price,
            size=item.size,
            material=item.material,
            special_notes=item.special_notes,
            cloth_provided=item.cloth_provided,
            delivery_address=cart.delivery_address,
            slot_allocation=[freeze_allocation(rows[r.date_id], r) for r in requests],
            normal_slots_total=item.normal_slots_total,
            emergency_slots_total=item.emergency_slots_total,
            price_breakdown=PriceBreakdown(
                base_price=item.base_price,
                normal_slots_cost=item.normal_slots_cost,
                emergency_slots_cost=item.emergency_slots_cost,
                emergency_charges=item.emergency_charges,
            ).as_dict(),
            selected_dates=list(item.selected_dates),
            from_cart=True,
            payment_method_id=payment_method_id,
            payment_status=PaymentStatus.PENDING,
            status=OrderStatus.PENDING,
        )
        orders.append(await order_repo.add(order))
    return orders


async def _owned_orders_for_update(
    order_repo: OrderRepository,
    order_ids: Sequence[int],
    user_uid: str | None,
) -> list[Order]:
    orders = list(await order_repo.get_many_for_update(order_ids))
    if user_uid is not None:
        orders = [order for order in orders if order.user_uid == user_uid]
    if not orders:
        raise NotFoundError("Order not found")
    return orders


async def _cancel_for_failed_payment(
    date_repo: AvailableDateRepository,
    order_repo: OrderRepository,
    orders: Sequence[Order],
) -> dict[int, OrderStatus]:
    previous: dict[int, OrderStatus] = {}
    for order in orders:
        # settled payments are never overturned by a failure callback
        if order.payment_status != PaymentStatus.PENDING:
            continue
        previous[order.id] = order.status
        if holds_slots(order.status):
            await release_slots(date_repo, allocation_requests(order.slot_allocation))
        order.status = OrderStatus.CANCELLED
        order.payment_status = PaymentStatus.FAILED
        await order_repo.save(order)
    return previous


async def mark_payment_failed(
    order_repo: OrderRepository,
    date_repo: AvailableDateRepository,
    *,
    order_ids: Sequence[int],
    user_uid: str | None = None,
) -> PaymentOutcome:
    """Cancel the listed orders still awaiting payment.

    Orders whose payment already completed or failed are left as they are, so
    repeating the call changes nothing further.
    """
    orders = await _owned_orders_for_update(order_repo, order_ids, user_uid)
    previous = await _cancel_for_failed_payment(date_repo, order_repo, orders)
    return PaymentOutcome(orders=orders, verified=False, previous_status=previous)


async def confirm_payment(
    order_repo: OrderRepository,
    date_repo: AvailableDateRepository,
    cart_repo: CartRepository,
    *,
    user_uid: str,
    order_ids: Sequence[int],
    gateway_order_id: str,
    gateway_payment_id: str,
    signature: str,
    secret: str,
) -> PaymentOutcome:
    """Apply a gateway callback.

    A bad signature cancels the orders and returns ``verified=False`` so the
    caller can commit the cancellation before reporting the failure.
    """
    orders = await _owned_orders_for_update(order_repo, order_ids, user_uid)
    if not verify_payment_signature(gateway_order_id, gateway_payment_id, signature, secret=secret):
        cancelled = await _cancel_for_failed_payment(date_repo, order_repo, orders)
        return PaymentOutcome(orders=orders, verified=False, previous_status=cancelled)

    previous: dict[int, OrderStatus] = {}
    now = _utc_now_naive()
    for order in orders:
        previous[order.id] = order.status
        if not holds_slots(order.status):
            await reserve_slots(date_repo, allocation_requests(order.slot_allocation))
        order.status = OrderStatus.CONFIRMED
        order.payment_status = PaymentStatus.COMPLETED
        order.gateway_order_id = gateway_order_id
        order.gateway_payment_id = gateway_payment_id
        order.gateway_signature = signature
        order.payment_completed_at = now
        await order_repo.save(order)

    if any(order.from_cart for order in orders):
        cart = await cart_repo.get_by_user(user_uid)
        if cart is not None:
            await cart_repo.clear(cart)
    return PaymentOutcome(orders=orders, verified=True, previous_status=previous)


async def update_order_status(
    order_repo: OrderRepository,
    date_repo: AvailableDateRepository,
    *,
    order_id: int,
    status: OrderStatus | None,
    payment_status: PaymentStatus | None,
) -> tuple[Order, OrderStatus]:
    """Admin overwrite of status and/or payment status.

    Any transition is allowed. Capacity follows the order: cancelling gives its
    slots back and reopening a cancelled order reserves them again.
    """
    if status is None and payment_status is None:
        raise ValidationError("Status or payment_status is required")
    orders = await order_repo.get_many_for_update([order_id])
    if not orders:
        raise NotFoundError("Order not found")
    order = orders[0]
    previous = order.status

    if status is not None and status != order.status:
        requests = allocation_requests(order.slot_allocation)
        if holds_slots(order.status) and not holds_slots(status):
            await release_slots(date_repo, requests)
        elif not holds_slots(order.status) and holds_slots(status):
            await reserve_slots(date_repo, requests)
        order.status = status

    if payment_status is not None:
        if payment_status == PaymentStatus.COMPLETED and order.payment_status != PaymentStatus.COMPLETED:
            order.payment_completed_at = _utc_now_naive()
        order.payment_status = payment_status

    return await order_repo.save(order), previous


async def list_user_orders(order_repo: OrderRepository, *, user_uid: str) -> Sequence[Order]:
    return await order_repo.list_by_user(user_uid)


async def get_user_order(order_repo: OrderRepository, *, order_id: int, user_uid: str) -> Order:
    order = await order_repo.get(order_id)
    if order is None or order.user_uid != user_uid:
        raise NotFoundError("Order not found")
    return order


async def list_orders_with_users(
    order_repo: OrderRepository,
    user_repo: UserRepository,
) -> list[tuple[Order, User | None]]:
    orders = await order_repo.list_all()
    users = {user.uid: user for user in await user_repo.list_by_uids(o.user_uid for o in orders)}
    return [(order, users.get(order.user_uid)) for order in orders]


async def send_order_emails(
    user_repo: UserRepository,
    mailer: Mailer,
    orders: Sequence[Order],
    *,
    kind: str,
) -> int:
    """Best-effort dispatch after the orders are committed. Returns emails sent."""
    users = {user.uid: user for user in await user_repo.list_by_uids(o.user_uid for o in orders)}
    sent = 0
    for order in orders:
        user = users.get(order.user_uid)
        if user is None or not user.email:
            logger.info("no email address for order %s; skipping %s email", order.id, kind)
            continue
        try:
            email = build_order_email(order, user)
        except (KeyError, ValueError):
            logger.exception("could not build %s email for order %s", kind, order.id)
            continue
        if await send_quietly(mailer, kind, email):
            sent += 1
    return sent
