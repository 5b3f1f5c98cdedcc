import logging
from typing import Any, Sequence

from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import AuthenticatedUser, get_current_user, get_mailer, get_session, translate_domain_errors
from ..domain.pricing import sum_totals, to_minor_units
from ..domain.services import AllocationRequest
from ..infrastructure.repositories import (
    SqlAlchemyAvailableDateRepository,
    SqlAlchemyCartRepository,
    SqlAlchemyOrderRepository,
    SqlAlchemyProductRepository,
    SqlAlchemyUserAddressRepository,
    SqlAlchemyUserRepository,
    SqlAlchemyUserSizeRepository,
)
from ..models import Order
from ..schemas import CartCheckout, Envelope, OrderCreate, OrderRead, PaymentFailure, PaymentRequest, PaymentVerify
from ..usecases import addresses as address_usecase
from ..usecases import orders as order_usecase
from ..usecases import sizes as size_usecase
from ..utils.audit_log import emit_audit_log
from ..utils.mailer import Mailer
from ..utils.payments import receipt_for

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


def _audit(**kwargs: Any) -> None:
    try:
        emit_audit_log(**kwargs)
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc


def _payment_request(orders: Sequence[Order]) -> PaymentRequest:
    amount = sum_totals([order.total_price for order in orders])
    order_ids = [order.id for order in orders]
    return PaymentRequest(
        order_ids=order_ids,
        amount=amount,
        amount_minor=to_minor_units(amount),
        currency=get_settings().currency,
        receipt=receipt_for(order_ids),
    )


async def _saved_details(session: AsyncSession, user_uid: str, payload: OrderCreate) -> tuple[str, str | None]:
    """Resolve saved size and address references into the text stored on the order."""
    size = payload.size or ""
    if payload.size_id is not None:
        saved_size = await size_usecase.get_size(
            SqlAlchemyUserSizeRepository(session), user_uid=user_uid, size_id=payload.size_id
        )
        size = saved_size.name
    delivery_address = payload.delivery_address
    if payload.address_id is not None:
        address = await address_usecase.get_address(
            SqlAlchemyUserAddressRepository(session), user_uid=user_uid, address_id=payload.address_id
        )
        delivery_address = address.one_line
    return size, delivery_address


async def _send_emails(session: AsyncSession, mailer: Mailer, orders: Sequence[Order], kind: str) -> None:
    try:
        await order_usecase.send_order_emails(SqlAlchemyUserRepository(session), mailer, orders, kind=kind)
    except SQLAlchemyError:
        logger.exception("could not load recipients for %s emails", kind)


@router.post("", response_model=Envelope[PaymentRequest], status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[PaymentRequest]:
    allocations = [
        AllocationRequest(
            date_id=item.date_id,
            normal_slots_used=item.normal_slots_used,
            emergency_slots_used=item.emergency_slots_used,
        )
        for item in payload.slot_allocation
    ]
    with translate_domain_errors():
        async with session.begin():
            size, delivery_address = await _saved_details(session, user.uid, payload)
            draft = order_usecase.OrderDraft(
                product_id=payload.product_id,
                quantity=payload.quantity,
                size=size,
                cloth_provided=payload.cloth_provided,
                material=payload.material,
                special_notes=payload.special_notes,
                delivery_address=delivery_address,
                payment_method_id=payload.payment_method_id,
                allocations=allocations,
            )
            order = await order_usecase.create_order(
                SqlAlchemyProductRepository(session),
                SqlAlchemyAvailableDateRepository(session),
                SqlAlchemyOrderRepository(session),
                user_uid=user.uid,
                draft=draft,
                strict_materials=get_settings().strict_materials,
            )

    _audit(
        action="order.created",
        initiator="user",
        user_uid=user.uid,
        order_id=order.id,
        status_to=order.status,
        extra={"total_price": order.total_price, "quantity": order.quantity},
    )
    return Envelope(data=_payment_request([order]))


@router.post("/from-cart", response_model=Envelope[PaymentRequest], status_code=status.HTTP_201_CREATED)
async def create_orders_from_cart(
    payload: CartCheckout,
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[PaymentRequest]:
    with translate_domain_errors():
        async with session.begin():
            orders = await order_usecase.create_orders_from_cart(
                SqlAlchemyCartRepository(session),
                SqlAlchemyAvailableDateRepository(session),
                SqlAlchemyOrderRepository(session),
                user_uid=user.uid,
                payment_method_id=payload.payment_method_id,
            )

    for order in orders:
        _audit(
            action="order.created",
            initiator="user",
            user_uid=user.uid,
            order_id=order.id,
            status_to=order.status,
            extra={"total_price": order.total_price, "from_cart": True},
        )
    return Envelope(data=_payment_request(orders))


@router.post("/verify-payment", response_model=Envelope[list[OrderRead]])
async def verify_payment(
    payload: PaymentVerify,
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
    mailer: Mailer = Depends(get_mailer),
) -> Envelope[list[OrderRead]]:
    with translate_domain_errors():
        async with session.begin():
            outcome = await order_usecase.confirm_payment(
                SqlAlchemyOrderRepository(session),
                SqlAlchemyAvailableDateRepository(session),
                SqlAlchemyCartRepository(session),
                user_uid=user.uid,
                order_ids=payload.order_ids,
                gateway_order_id=payload.gateway_order_id,
                gateway_payment_id=payload.gateway_payment_id,
                signature=payload.signature,
                secret=get_settings().payment_key_secret,
            )

    action = "order.payment_confirmed" if outcome.verified else "order.payment_failed"
    for order in outcome.changed:
        _audit(
            action=action,
            initiator="user",
            user_uid=user.uid,
            order_id=order.id,
            status_from=outcome.previous_status.get(order.id),
            status_to=order.status,
            payment_status=order.payment_status,
            extra={"gateway_order_id": payload.gateway_order_id},
        )
    if not outcome.verified:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payment signature")

    await _send_emails(session, mailer, outcome.orders, "confirmation")
    return Envelope(data=[OrderRead.from_db(order) for order in outcome.orders])


@router.post("/payment-failed", response_model=Envelope[list[OrderRead]])
async def payment_failed(
    payload: PaymentFailure,
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[list[OrderRead]]:
    with translate_domain_errors():
        async with session.begin():
            outcome = await order_usecase.mark_payment_failed(
                SqlAlchemyOrderRepository(session),
                SqlAlchemyAvailableDateRepository(session),
                order_ids=payload.order_ids,
                user_uid=user.uid,
            )

    for order in outcome.changed:
        _audit(
            action="order.payment_failed",
            initiator="user",
            user_uid=user.uid,
            order_id=order.id,
            status_from=outcome.previous_status.get(order.id),
            status_to=order.status,
            payment_status=order.payment_status,
        )
    return Envelope(data=[OrderRead.from_db(order) for order in outcome.orders])


@router.get("", response_model=Envelope[list[OrderRead]])
async def list_my_orders(
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[list[OrderRead]]:
    orders = await order_usecase.list_user_orders(SqlAlchemyOrderRepository(session), user_uid=user.uid)
    return Envelope(data=[OrderRead.from_db(order) for order in orders])


@router.get("/{order_id}", response_model=Envelope[OrderRead])
async def get_my_order(
    order_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[OrderRead]:
    with translate_domain_errors():
        order = await order_usecase.get_user_order(
            SqlAlchemyOrderRepository(session),
            order_id=order_id,
            user_uid=user.uid,
        )
    return Envelope(data=OrderRead.from_db(order))
