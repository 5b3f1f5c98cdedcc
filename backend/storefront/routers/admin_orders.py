import logging

from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import AuthenticatedUser, get_mailer, get_session, require_admin, translate_domain_errors
from ..infrastructure.repositories import (
    SqlAlchemyAvailableDateRepository,
    SqlAlchemyOrderRepository,
    SqlAlchemyUserRepository,
)
from ..schemas import Envelope, NotificationRead, OrderRead, OrderStatusUpdate
from ..usecases import notifications as notification_usecase
from ..usecases import orders as order_usecase
from ..utils.audit_log import emit_audit_log
from ..utils.mailer import Mailer
from ..utils.time import utc_today

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin", "orders"])


@router.get("/orders", response_model=Envelope[list[OrderRead]])
async def list_orders(
    session: AsyncSession = Depends(get_session),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Envelope[list[OrderRead]]:
    rows = await order_usecase.list_orders_with_users(
        SqlAlchemyOrderRepository(session),
        SqlAlchemyUserRepository(session),
    )
    return Envelope(data=[OrderRead.from_db(order, user) for order, user in rows])


@router.patch("/orders/{order_id}/status", response_model=Envelope[OrderRead])
async def update_order_status(
    payload: OrderStatusUpdate,
    order_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    admin: AuthenticatedUser = Depends(require_admin),
    mailer: Mailer = Depends(get_mailer),
) -> Envelope[OrderRead]:
    with translate_domain_errors():
        async with session.begin():
            order, previous = await order_usecase.update_order_status(
                SqlAlchemyOrderRepository(session),
                SqlAlchemyAvailableDateRepository(session),
                order_id=order_id,
                status=payload.status,
                payment_status=payload.payment_status,
            )

    try:
        emit_audit_log(
            action="order.status_changed",
            initiator="admin",
            user_uid=admin.uid,
            order_id=order.id,
            status_from=previous,
            status_to=order.status,
            payment_status=order.payment_status,
            extra={"customer_uid": order.user_uid},
        )
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc

    if payload.status is not None and order.status != previous:
        try:
            await order_usecase.send_order_emails(
                SqlAlchemyUserRepository(session), mailer, [order], kind="status_update"
            )
        except SQLAlchemyError:
            logger.exception("could not load recipient for order %s status email", order.id)
    return Envelope(data=OrderRead.from_db(order))


@router.get("/notifications", response_model=Envelope[list[NotificationRead]])
async def list_notifications(
    session: AsyncSession = Depends(get_session),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Envelope[list[NotificationRead]]:
    items = await notification_usecase.build_notifications(
        SqlAlchemyOrderRepository(session),
        SqlAlchemyUserRepository(session),
        today=utc_today(),
    )
    return Envelope(data=[NotificationRead.from_domain(item) for item in items])
