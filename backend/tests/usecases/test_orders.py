from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Sequence

import pytest
from storefront.domain.errors import CapacityError, DateNotFoundError, NotFoundError, ValidationError
from storefront.domain.services import AllocationRequest
from storefront.models import (
    AvailableDate,
    Cart,
    CartItem,
    DiscountKind,
    Order,
    OrderStatus,
    PaymentStatus,
    Product,
)
from storefront.usecases import orders as uc
from storefront.utils.payments import payment_signature

NOW = datetime(2025, 3, 1, 9, 0, 0)
SECRET = "gateway-secret"


def _day(date_id: int, day: date, *, normal: int = 4, emergency: int = 1, cost: str = "200") -> AvailableDate:
    return AvailableDate(
        id=date_id,
        date=day,
        normal_slots=normal,
        emergency_slots=emergency,
        emergency_slot_cost=Decimal(cost),
        is_available=True,
        normal_booked_slots=0,
        emergency_booked_slots=0,
        created_at=NOW,
        updated_at=NOW,
    )


class FakeDateRepo:
    def __init__(self, *rows: AvailableDate) -> None:
        self.rows = {row.id: row for row in rows}

    async def get(self, date_id: int) -> AvailableDate | None:
        return self.rows.get(date_id)

    async def get_for_update(self, date_id: int) -> AvailableDate | None:
        return self.rows.get(date_id)

    async def get_by_day(self, day: date) -> AvailableDate | None:
        return next((row for row in self.rows.values() if row.date == day), None)

    async def reserve(self, date_id: int, *, normal: int, emergency: int) -> bool:
        row = self.rows.get(date_id)
        if row is None:
            return False
        if row.normal_booked_slots + normal > row.normal_slots:
            return False
        if row.emergency_booked_slots + emergency > row.emergency_slots:
            return False
        row.normal_booked_slots += normal
        row.emergency_booked_slots += emergency
        return True

    async def release(self, date_id: int, *, normal: int, emergency: int) -> None:
        row = self.rows[date_id]
        row.normal_booked_slots = max(0, row.normal_booked_slots - normal)
        row.emergency_booked_slots = max(0, row.emergency_booked_slots - emergency)


class FakeOrderRepo:
    def __init__(self, *orders: Order) -> None:
        self.orders = {order.id: order for order in orders}
        self.saved: list[int] = []

    async def add(self, order: Order) -> Order:
        order.id = len(self.orders) + 1
        order.created_at = NOW
        order.updated_at = NOW
        self.orders[order.id] = order
        return order

    async def get(self, order_id: int) -> Order | None:
        return self.orders.get(order_id)

    async def get_many_for_update(self, order_ids: Iterable[int]) -> Sequence[Order]:
        return [self.orders[i] for i in sorted(set(order_ids)) if i in self.orders]

    async def save(self, order: Order) -> Order:
        self.saved.append(order.id)
        return order


class FakeProductRepo:
    def __init__(self, product: Product | None) -> None:
        self.product = product

    async def get(self, product_id: int) -> Product | None:
        if self.product is not None and self.product.id == product_id:
            return self.product
        return None


class FakeCartRepo:
    def __init__(self, cart: Cart | None) -> None:
        self.cart = cart
        self.cleared = False

    async def get_by_user(self, user_uid: str) -> Cart | None:
        return self.cart

    async def clear(self, cart: Cart) -> Cart:
        self.cleared = True
        cart.items.clear()
        return cart


def _product(discount: str = "0.1") -> Product:
    return Product(
        id=1,
        name="Kurta",
        description="Cotton kurta",
        denomination="Men",
        base_price=Decimal("1000"),
        discount_kind=DiscountKind.PERCENTAGE,
        discount_value=Decimal(discount),
        materials=[{"name": "Silk", "additional_cost": "250", "is_available": True}],
        images=["https://img/kurta.png"],
        colors=[],
        show_cloths_provided=True,
        is_active=True,
        created_at=NOW,
        updated_at=NOW,
    )


def _draft(*allocations: AllocationRequest, quantity: int | None = None, cloth: bool = True) -> uc.OrderDraft:
    return uc.OrderDraft(
        product_id=1,
        quantity=quantity if quantity is not None else sum(a.total for a in allocations),
        size="M",
        cloth_provided=cloth,
        allocations=list(allocations),
        delivery_address="12 Main Road",
    )


async def _place(date_repo: FakeDateRepo, order_repo: FakeOrderRepo, draft: uc.OrderDraft) -> Order:
    return await uc.create_order(
        FakeProductRepo(_product()),
        date_repo,
        order_repo,
        user_uid="user-1",
        draft=draft,
    )


@pytest.mark.asyncio
async def test_create_order_prices_reserves_and_freezes_allocation() -> None:
    day = _day(1, date(2025, 3, 10))
    date_repo = FakeDateRepo(day)
    order_repo = FakeOrderRepo()

    order = await _place(
        date_repo,
        order_repo,
        _draft(AllocationRequest(date_id=1, normal_slots_used=2, emergency_slots_used=1)),
    )

    assert order.total_price == Decimal("2900.00")
    assert order.price_breakdown["emergency_charges"] == "200.00"
    assert order.status == OrderStatus.PENDING
    assert order.payment_status == PaymentStatus.PENDING
    assert day.normal_booked_slots == 2
    assert day.emergency_booked_slots == 1
    assert order.slot_allocation[0]["date"]["date"] == "2025-03-10"
    assert order.slot_allocation[0]["total_slots_used"] == 3
    assert order.selected_dates == ["2025-03-10"]


@pytest.mark.asyncio
async def test_create_order_requires_slots_to_match_quantity() -> None:
    date_repo = FakeDateRepo(_day(1, date(2025, 3, 10)))
    draft = _draft(AllocationRequest(date_id=1, normal_slots_used=1, emergency_slots_used=0), quantity=2)
    with pytest.raises(ValidationError):
        await _place(date_repo, FakeOrderRepo(), draft)


@pytest.mark.asyncio
async def test_create_order_rejects_overbooking_and_keeps_counters() -> None:
    day = _day(1, date(2025, 3, 10), normal=2)
    day.normal_booked_slots = 1
    date_repo = FakeDateRepo(day)
    order_repo = FakeOrderRepo()
    with pytest.raises(CapacityError):
        await _place(
            date_repo,
            order_repo,
            _draft(AllocationRequest(date_id=1, normal_slots_used=2, emergency_slots_used=0)),
        )
    assert day.normal_booked_slots == 1
    assert order_repo.orders == {}


@pytest.mark.asyncio
async def test_create_order_with_missing_day_names_it() -> None:
    with pytest.raises(DateNotFoundError) as excinfo:
        await _place(
            FakeDateRepo(),
            FakeOrderRepo(),
            _draft(AllocationRequest(date_id=42, normal_slots_used=1, emergency_slots_used=0)),
        )
    assert "42" in str(excinfo.value)


@pytest.mark.asyncio
async def test_create_order_rejects_inactive_product() -> None:
    product = _product()
    product.is_active = False
    with pytest.raises(NotFoundError):
        await uc.create_order(
            FakeProductRepo(product),
            FakeDateRepo(_day(1, date(2025, 3, 10))),
            FakeOrderRepo(),
            user_uid="user-1",
            draft=_draft(AllocationRequest(date_id=1, normal_slots_used=1, emergency_slots_used=0)),
        )


@pytest.mark.asyncio
async def test_second_booking_for_last_slot_fails() -> None:
    day = _day(1, date(2025, 3, 10), normal=1, emergency=0)
    date_repo = FakeDateRepo(day)
    order_repo = FakeOrderRepo()
    request = AllocationRequest(date_id=1, normal_slots_used=1, emergency_slots_used=0)

    await _place(date_repo, order_repo, _draft(request))
    with pytest.raises(CapacityError):
        await _place(date_repo, order_repo, _draft(request))
    assert day.normal_booked_slots == 1


def _cart_item(selected: list[str], normal: int, emergency: int) -> CartItem:
    return CartItem(
        id=9,
        product_id=1,
        product_name="Kurta",
        product_image="",
        product_description="Cotton kurta",
        quantity=normal + emergency,
        size="L",
        material="Silk",
        cloth_provided=False,
        special_notes=None,
        selected_dates=selected,
        normal_slots_total=normal,
        emergency_slots_total=emergency,
        base_price=Decimal("1250.00"),
        normal_slots_cost=Decimal("1250.00") * normal,
        emergency_slots_cost=Decimal("0"),
        emergency_charges=Decimal("0"),
        total_price=Decimal("1250.00") * (normal + emergency),
    )


def _cart(*items: CartItem, address: str | None = "12 Main Road") -> Cart:
    return Cart(id=3, user_uid="user-1", delivery_address=address, items=list(items), created_at=NOW, updated_at=NOW)


@pytest.mark.asyncio
async def test_cart_checkout_splits_slots_across_days() -> None:
    first = _day(1, date(2025, 3, 10))
    second = _day(2, date(2025, 3, 11))
    date_repo = FakeDateRepo(first, second)
    cart_repo = FakeCartRepo(_cart(_cart_item(["2025-03-10", "2025-03-11"], normal=3, emergency=0)))

    orders = await uc.create_orders_from_cart(
        cart_repo,
        date_repo,
        FakeOrderRepo(),
        user_uid="user-1",
    )

    assert len(orders) == 1
    assert orders[0].from_cart is True
    assert orders[0].total_price == Decimal("3750.00")
    assert first.normal_booked_slots == 2
    assert second.normal_booked_slots == 1
    assert sum(entry["normal_slots_used"] for entry in orders[0].slot_allocation) == 3
    assert orders[0].price_breakdown == {
        "base_price": "1250.00",
        "normal_slots_cost": "3750.00",
        "emergency_slots_cost": "0",
        "emergency_charges": "0",
    }
    assert cart_repo.cleared is False


@pytest.mark.asyncio
async def test_cart_checkout_requires_items_and_address() -> None:
    with pytest.raises(ValidationError):
        await uc.create_orders_from_cart(FakeCartRepo(_cart()), FakeDateRepo(), FakeOrderRepo(), user_uid="user-1")
    with pytest.raises(ValidationError):
        await uc.create_orders_from_cart(
            FakeCartRepo(_cart(_cart_item(["2025-03-10"], 1, 0), address=None)),
            FakeDateRepo(),
            FakeOrderRepo(),
            user_uid="user-1",
        )


@pytest.mark.asyncio
async def test_cart_checkout_with_unknown_day_fails() -> None:
    with pytest.raises(DateNotFoundError):
        await uc.create_orders_from_cart(
            FakeCartRepo(_cart(_cart_item(["2025-04-01"], 1, 0))),
            FakeDateRepo(_day(1, date(2025, 3, 10))),
            FakeOrderRepo(),
            user_uid="user-1",
        )


async def _pending_order(date_repo: FakeDateRepo, order_repo: FakeOrderRepo) -> Order:
    order = await _place(
        date_repo,
        order_repo,
        _draft(AllocationRequest(date_id=1, normal_slots_used=1, emergency_slots_used=1)),
    )
    order.from_cart = True
    return order


@pytest.mark.asyncio
async def test_confirm_payment_with_valid_signature() -> None:
    day = _day(1, date(2025, 3, 10))
    date_repo = FakeDateRepo(day)
    order_repo = FakeOrderRepo()
    cart_repo = FakeCartRepo(_cart(_cart_item(["2025-03-10"], 1, 0)))
    order = await _pending_order(date_repo, order_repo)

    outcome = await uc.confirm_payment(
        order_repo,
        date_repo,
        cart_repo,
        user_uid="user-1",
        order_ids=[order.id],
        gateway_order_id="gw_1",
        gateway_payment_id="pay_1",
        signature=payment_signature("gw_1", "pay_1", secret=SECRET),
        secret=SECRET,
    )

    assert outcome.verified is True
    assert order.status == OrderStatus.CONFIRMED
    assert order.payment_status == PaymentStatus.COMPLETED
    assert order.payment_completed_at is not None
    assert order.gateway_payment_id == "pay_1"
    assert outcome.previous_status[order.id] == OrderStatus.PENDING
    assert cart_repo.cleared is True
    # confirming does not book the same slots twice
    assert day.normal_booked_slots == 1
    assert day.emergency_booked_slots == 1


@pytest.mark.asyncio
async def test_confirm_payment_with_bad_signature_cancels_and_releases() -> None:
    day = _day(1, date(2025, 3, 10))
    date_repo = FakeDateRepo(day)
    order_repo = FakeOrderRepo()
    cart_repo = FakeCartRepo(_cart(_cart_item(["2025-03-10"], 1, 0)))
    order = await _pending_order(date_repo, order_repo)

    outcome = await uc.confirm_payment(
        order_repo,
        date_repo,
        cart_repo,
        user_uid="user-1",
        order_ids=[order.id],
        gateway_order_id="gw_1",
        gateway_payment_id="pay_1",
        signature="forged",
        secret=SECRET,
    )

    assert outcome.verified is False
    assert order.status == OrderStatus.CANCELLED
    assert order.payment_status == PaymentStatus.FAILED
    assert day.normal_booked_slots == 0
    assert day.emergency_booked_slots == 0
    assert cart_repo.cleared is False


@pytest.mark.asyncio
async def test_confirm_payment_ignores_orders_of_other_users() -> None:
    date_repo = FakeDateRepo(_day(1, date(2025, 3, 10)))
    order_repo = FakeOrderRepo()
    order = await _pending_order(date_repo, order_repo)
    with pytest.raises(NotFoundError):
        await uc.confirm_payment(
            order_repo,
            date_repo,
            FakeCartRepo(None),
            user_uid="someone-else",
            order_ids=[order.id],
            gateway_order_id="gw_1",
            gateway_payment_id="pay_1",
            signature=payment_signature("gw_1", "pay_1", secret=SECRET),
            secret=SECRET,
        )


@pytest.mark.asyncio
async def test_payment_failed_is_idempotent() -> None:
    day = _day(1, date(2025, 3, 10))
    date_repo = FakeDateRepo(day)
    order_repo = FakeOrderRepo()
    order = await _pending_order(date_repo, order_repo)

    await uc.mark_payment_failed(order_repo, date_repo, order_ids=[order.id], user_uid="user-1")
    await uc.mark_payment_failed(order_repo, date_repo, order_ids=[order.id], user_uid="user-1")

    assert order.status == OrderStatus.CANCELLED
    assert order.payment_status == PaymentStatus.FAILED
    assert day.normal_booked_slots == 0


@pytest.mark.asyncio
async def test_payment_failed_leaves_paid_orders_and_their_slots_alone() -> None:
    day = _day(1, date(2025, 3, 10))
    date_repo = FakeDateRepo(day)
    order_repo = FakeOrderRepo()
    cart_repo = FakeCartRepo(_cart(_cart_item(["2025-03-10"], 1, 0)))
    order = await _pending_order(date_repo, order_repo)
    await uc.confirm_payment(
        order_repo,
        date_repo,
        cart_repo,
        user_uid="user-1",
        order_ids=[order.id],
        gateway_order_id="gw_1",
        gateway_payment_id="pay_1",
        signature=payment_signature("gw_1", "pay_1", secret=SECRET),
        secret=SECRET,
    )

    outcome = await uc.mark_payment_failed(order_repo, date_repo, order_ids=[order.id], user_uid="user-1")

    assert outcome.changed == []
    assert order.status == OrderStatus.CONFIRMED
    assert order.payment_status == PaymentStatus.COMPLETED
    assert (day.normal_booked_slots, day.emergency_booked_slots) == (1, 1)


@pytest.mark.asyncio
async def test_forged_signature_does_not_cancel_a_paid_order() -> None:
    day = _day(1, date(2025, 3, 10))
    date_repo = FakeDateRepo(day)
    order_repo = FakeOrderRepo()
    order = await _pending_order(date_repo, order_repo)
    order.status = OrderStatus.CONFIRMED
    order.payment_status = PaymentStatus.COMPLETED

    outcome = await uc.confirm_payment(
        order_repo,
        date_repo,
        FakeCartRepo(None),
        user_uid="user-1",
        order_ids=[order.id],
        gateway_order_id="gw_1",
        gateway_payment_id="pay_1",
        signature="forged",
        secret=SECRET,
    )

    assert outcome.verified is False
    assert outcome.changed == []
    assert order.status == OrderStatus.CONFIRMED
    assert day.normal_booked_slots == 1


@pytest.mark.asyncio
async def test_payment_failed_unknown_order_is_not_found() -> None:
    with pytest.raises(NotFoundError):
        await uc.mark_payment_failed(FakeOrderRepo(), FakeDateRepo(), order_ids=[404])


@pytest.mark.asyncio
async def test_admin_cancel_releases_and_reopen_reserves_again() -> None:
    day = _day(1, date(2025, 3, 10))
    date_repo = FakeDateRepo(day)
    order_repo = FakeOrderRepo()
    order = await _pending_order(date_repo, order_repo)

    _, previous = await uc.update_order_status(
        order_repo, date_repo, order_id=order.id, status=OrderStatus.CANCELLED, payment_status=None
    )
    assert previous == OrderStatus.PENDING
    assert day.normal_booked_slots == 0

    await uc.update_order_status(
        order_repo, date_repo, order_id=order.id, status=OrderStatus.PROCESSING, payment_status=None
    )
    assert order.status == OrderStatus.PROCESSING
    assert day.normal_booked_slots == 1
    assert day.emergency_booked_slots == 1


@pytest.mark.asyncio
async def test_admin_reopen_fails_when_day_filled_up() -> None:
    day = _day(1, date(2025, 3, 10))
    date_repo = FakeDateRepo(day)
    order_repo = FakeOrderRepo()
    order = await _pending_order(date_repo, order_repo)
    await uc.update_order_status(
        order_repo, date_repo, order_id=order.id, status=OrderStatus.CANCELLED, payment_status=None
    )
    day.emergency_booked_slots = day.emergency_slots

    with pytest.raises(CapacityError):
        await uc.update_order_status(
            order_repo, date_repo, order_id=order.id, status=OrderStatus.CONFIRMED, payment_status=None
        )


@pytest.mark.asyncio
async def test_admin_payment_completed_stamps_time() -> None:
    date_repo = FakeDateRepo(_day(1, date(2025, 3, 10)))
    order_repo = FakeOrderRepo()
    order = await _pending_order(date_repo, order_repo)

    await uc.update_order_status(
        order_repo, date_repo, order_id=order.id, status=None, payment_status=PaymentStatus.COMPLETED
    )
    assert order.payment_status == PaymentStatus.COMPLETED
    assert order.payment_completed_at is not None
    assert order.status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_admin_update_requires_a_field() -> None:
    with pytest.raises(ValidationError):
        await uc.update_order_status(FakeOrderRepo(), FakeDateRepo(), order_id=1, status=None, payment_status=None)


@pytest.mark.asyncio
async def test_get_user_order_hides_other_users_orders() -> None:
    date_repo = FakeDateRepo(_day(1, date(2025, 3, 10)))
    order_repo = FakeOrderRepo()
    order = await _pending_order(date_repo, order_repo)
    assert await uc.get_user_order(order_repo, order_id=order.id, user_uid="user-1") is order
    with pytest.raises(NotFoundError):
        await uc.get_user_order(order_repo, order_id=order.id, user_uid="user-2")
