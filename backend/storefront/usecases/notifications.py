from datetime import date

from ..domain.repositories import OrderRepository, UserRepository
from ..domain.services import OPEN_STATUSES, Notification, build_notification, sort_notifications


async def build_notifications(
    order_repo: OrderRepository,
    user_repo: UserRepository,
    *,
    today: date,
) -> list[Notification]:
    """Delivery-deadline alerts for pending orders, most urgent first."""
    orders = [o for o in await order_repo.list_by_status(OPEN_STATUSES) if o.slot_allocation]
    users = {user.uid: user for user in await user_repo.list_by_uids(o.user_uid for o in orders)}
    items: list[Notification] = []
    for order in orders:
        earliest = min(date.fromisoformat(entry["date"]["date"]) for entry in order.slot_allocation)
        user = users.get(order.user_uid)
        notification = build_notification(
            order_id=order.id,
            status=order.status,
            product_name=order.product_name,
            customer_name=user.name if user else None,
            earliest_day=earliest,
            today=today,
        )
        if notification is not None:
            items.append(notification)
    return sort_notifications(items)
