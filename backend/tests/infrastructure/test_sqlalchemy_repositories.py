from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool
from storefront.database import Database
from storefront.domain.errors import CapacityError
from storefront.infrastructure.repositories import (
    SqlAlchemyAvailableDateRepository,
    SqlAlchemyCartRepository,
    SqlAlchemyOrderRepository,
    SqlAlchemyProductRepository,
    SqlAlchemyUserAddressRepository,
    SqlAlchemyUserSizeRepository,
)
from storefront.models import AvailableDate, CartItem, DiscountKind, Order, Product
from storefront.usecases import addresses as address_usecase
from storefront.usecases import orders as order_usecase
from storefront.usecases import sizes as size_usecase


async def _database() -> Database:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    database = Database(engine)
    await database.create_all()
    return database


async def _seed_day(database: Database, day: date, *, normal: int = 4, emergency: int = 1) -> int:
    async with database.sessionmaker() as session:
        async with session.begin():
            row = await SqlAlchemyAvailableDateRepository(session).create(
                day=day,
                normal_slots=normal,
                emergency_slots=emergency,
                emergency_slot_cost=Decimal("100"),
                is_available=True,
            )
        return row.id


async def _load(database: Database, date_id: int) -> AvailableDate:
    async with database.sessionmaker() as session:
        row = await session.get(AvailableDate, date_id)
        assert row is not None
        return row


@pytest.mark.asyncio
async def test_reserve_never_exceeds_capacity() -> None:
    database = await _database()
    date_id = await _seed_day(database, date(2025, 3, 10), normal=4, emergency=1)

    results = []
    for _ in range(5):
        async with database.sessionmaker() as session:
            async with session.begin():
                results.append(
                    await SqlAlchemyAvailableDateRepository(session).reserve(date_id, normal=1, emergency=0)
                )

    assert results == [True, True, True, True, False]
    row = await _load(database, date_id)
    assert row.normal_booked_slots == 4
    assert row.emergency_booked_slots == 0
    await database.dispose()


@pytest.mark.asyncio
async def test_reserve_checks_both_pools_together() -> None:
    database = await _database()
    date_id = await _seed_day(database, date(2025, 3, 10), normal=4, emergency=1)

    async with database.sessionmaker() as session:
        async with session.begin():
            repo = SqlAlchemyAvailableDateRepository(session)
            assert await repo.reserve(date_id, normal=2, emergency=2) is False
            assert await repo.reserve(date_id, normal=2, emergency=1) is True

    row = await _load(database, date_id)
    assert (row.normal_booked_slots, row.emergency_booked_slots) == (2, 1)
    await database.dispose()


@pytest.mark.asyncio
async def test_release_is_floored_at_zero() -> None:
    database = await _database()
    date_id = await _seed_day(database, date(2025, 3, 10))

    async with database.sessionmaker() as session:
        async with session.begin():
            repo = SqlAlchemyAvailableDateRepository(session)
            await repo.reserve(date_id, normal=1, emergency=0)
            await repo.release(date_id, normal=3, emergency=1)

    row = await _load(database, date_id)
    assert (row.normal_booked_slots, row.emergency_booked_slots) == (0, 0)
    await database.dispose()


@pytest.mark.asyncio
async def test_upsert_is_idempotent_and_keeps_booked_counts() -> None:
    database = await _database()
    date_id = await _seed_day(database, date(2025, 3, 10))
    async with database.sessionmaker() as session:
        async with session.begin():
            await SqlAlchemyAvailableDateRepository(session).reserve(date_id, normal=2, emergency=0)

    for _ in range(2):
        async with database.sessionmaker() as session:
            async with session.begin():
                await SqlAlchemyAvailableDateRepository(session).upsert(
                    day=date(2025, 3, 10),
                    normal_slots=6,
                    emergency_slots=2,
                    emergency_slot_cost=Decimal("300"),
                    is_available=True,
                )

    async with database.sessionmaker() as session:
        rows = await SqlAlchemyAvailableDateRepository(session).list_range(
            date(2025, 3, 1), date(2025, 3, 31), only_available=False
        )
    assert len(rows) == 1
    assert rows[0].id == date_id
    assert rows[0].normal_slots == 6
    assert rows[0].emergency_slot_cost == Decimal("300")
    assert rows[0].normal_booked_slots == 2
    await database.dispose()


@pytest.mark.asyncio
async def test_public_listing_hides_unavailable_days_and_sorts() -> None:
    database = await _database()
    later = await _seed_day(database, date(2025, 3, 12))
    closed = await _seed_day(database, date(2025, 3, 11))
    earlier = await _seed_day(database, date(2025, 3, 10))
    async with database.sessionmaker() as session:
        async with session.begin():
            repo = SqlAlchemyAvailableDateRepository(session)
            row = await repo.get(closed)
            assert row is not None
            await repo.update(row, {"is_available": False})

    async with database.sessionmaker() as session:
        repo = SqlAlchemyAvailableDateRepository(session)
        public = await repo.list_range(date(2025, 3, 1), None, only_available=True)
        everything = await repo.list_range(date(2025, 3, 1), None, only_available=False)

    assert [r.id for r in public] == [earlier, later]
    assert [r.id for r in everything] == [earlier, closed, later]
    await database.dispose()


@pytest.mark.asyncio
async def test_cleanup_deletes_only_days_before_cutoff() -> None:
    database = await _database()
    await _seed_day(database, date(2025, 3, 8))
    await _seed_day(database, date(2025, 3, 9))
    kept = await _seed_day(database, date(2025, 3, 10))

    async with database.sessionmaker() as session:
        async with session.begin():
            deleted = await SqlAlchemyAvailableDateRepository(session).delete_before(date(2025, 3, 10))

    async with database.sessionmaker() as session:
        remaining = await SqlAlchemyAvailableDateRepository(session).list_range(
            date(2025, 1, 1), None, only_available=False
        )
    assert deleted == 2
    assert [r.id for r in remaining] == [kept]
    await database.dispose()


@pytest.mark.asyncio
async def test_product_search_filters_and_counts() -> None:
    database = await _database()
    async with database.sessionmaker() as session:
        async with session.begin():
            repo = SqlAlchemyProductRepository(session)
            for name, denomination, price, active in [
                ("Silk Kurta", "Men", "1500", True),
                ("Cotton Kurta", "Men", "900", True),
                ("Lehenga", "Women", "5000", True),
                ("Old Kurta", "Men", "700", False),
            ]:
                await repo.add(
                    Product(
                        name=name,
                        description=f"{name} stitched to measure",
                        denomination=denomination,
                        base_price=Decimal(price),
                        discount_kind=DiscountKind.PERCENTAGE,
                        discount_value=Decimal("0"),
                        materials=[{"name": "Cotton", "additional_cost": "0", "is_available": True}],
                        images=[],
                        colors=[],
                        show_cloths_provided=True,
                        is_active=active,
                    )
                )

    async with database.sessionmaker() as session:
        items, total = await SqlAlchemyProductRepository(session).search(
            denomination="Men",
            min_price=Decimal("800"),
            max_price=None,
            search="kurta",
            include_inactive=False,
            sort_by="base_price",
            descending=False,
            offset=0,
            limit=10,
        )
    assert total == 2
    assert [p.name for p in items] == ["Cotton Kurta", "Silk Kurta"]
    await database.dispose()
def _cart_item(selected: list[str], *, normal: int = 2) -> CartItem:
    return CartItem(
        product_id=1,
        product_name="Kurta",
        quantity=normal,
        size="M",
        cloth_provided=False,
        selected_dates=selected,
        normal_slots_total=normal,
        emergency_slots_total=0,
        base_price=Decimal("900"),
        normal_slots_cost=Decimal("900") * normal,
        emergency_slots_cost=Decimal("0"),
        emergency_charges=Decimal("0"),
        total_price=Decimal("900") * normal,
    )


async def _seed_cart(database: Database, *items: CartItem) -> None:
    async with database.sessionmaker() as session:
        async with session.begin():
            repo = SqlAlchemyCartRepository(session)
            cart = await repo.create("uid-1")
            cart.delivery_address = "12 Main Road"
            for item in items:
                await repo.add_item(cart, item)


@pytest.mark.asyncio
async def test_cart_items_persist_and_clear() -> None:
    database = await _database()
    await _seed_cart(database, _cart_item(["2025-03-10"]))

    async with database.sessionmaker() as session:
        async with session.begin():
            repo = SqlAlchemyCartRepository(session)
            cart = await repo.get_by_user("uid-1")
            assert cart is not None
            assert [item.product_name for item in cart.items] == ["Kurta"]
            await repo.clear(cart)

    async with database.sessionmaker() as session:
        cart = await SqlAlchemyCartRepository(session).get_by_user("uid-1")
        assert cart is not None
        assert cart.items == []
    await database.dispose()


async def _checkout(database: Database) -> list[Order]:
    async with database.sessionmaker() as session:
        async with session.begin():
            return await order_usecase.create_orders_from_cart(
                SqlAlchemyCartRepository(session),
                SqlAlchemyAvailableDateRepository(session),
                SqlAlchemyOrderRepository(session),
                user_uid="uid-1",
            )


@pytest.mark.asyncio
async def test_cart_checkout_sees_earlier_items_booked_on_the_same_day() -> None:
    database = await _database()
    date_id = await _seed_day(database, date(2025, 3, 10), normal=4)
    await _seed_cart(database, _cart_item(["2025-03-10"], normal=1), _cart_item(["2025-03-10"], normal=1))

    orders = await _checkout(database)

    frozen = [order.slot_allocation[0]["date"]["normal_booked_slots"] for order in orders]
    assert frozen == [0, 1]
    row = await _load(database, date_id)
    assert row.normal_booked_slots == 2
    await database.dispose()


@pytest.mark.asyncio
async def test_cart_checkout_reports_which_pool_ran_out() -> None:
    database = await _database()
    date_id = await _seed_day(database, date(2025, 3, 10), normal=1)
    await _seed_cart(database, _cart_item(["2025-03-10"], normal=1), _cart_item(["2025-03-10"], normal=1))

    with pytest.raises(CapacityError) as excinfo:
        await _checkout(database)

    assert str(excinfo.value) == "Not enough normal slots available for 2025-03-10"
    row = await _load(database, date_id)
    assert row.normal_booked_slots == 0
    await database.dispose()


async def _add_address(database: Database, user_uid: str, label: str, *, is_default: bool) -> int:
    draft = address_usecase.AddressDraft(
        label=label,
        full_name="Amina Yusuf",
        street="12 Cedar Lane",
        city="Dearborn",
        state="MI",
        zip_code="48124",
        is_default=is_default,
    )
    async with database.sessionmaker() as session:
        async with session.begin():
            row = await address_usecase.create_address(
                SqlAlchemyUserAddressRepository(session),
                user_uid=user_uid,
                draft=draft,
            )
        return row.id


@pytest.mark.asyncio
async def test_only_one_default_address_per_user_is_stored() -> None:
    database = await _database()
    home = await _add_address(database, "u1", "Home", is_default=True)
    await _add_address(database, "u2", "Theirs", is_default=True)
    work = await _add_address(database, "u1", "Work", is_default=True)

    async with database.sessionmaker() as session:
        rows = await SqlAlchemyUserAddressRepository(session).list_by_user("u1")
    assert [(row.label, row.is_default) for row in rows] == [("Work", True), ("Home", False)]

    async with database.sessionmaker() as session:
        async with session.begin():
            promoted = await address_usecase.update_address(
                SqlAlchemyUserAddressRepository(session),
                user_uid="u1",
                address_id=home,
                changes={"is_default": True},
            )
        assert promoted.is_default is True

    async with database.sessionmaker() as session:
        repo = SqlAlchemyUserAddressRepository(session)
        defaults = {row.id: row.is_default for row in await repo.list_by_user("u1")}
        theirs = await repo.list_by_user("u2")
    assert defaults == {home: True, work: False}
    assert theirs[0].is_default is True


@pytest.mark.asyncio
async def test_size_defaults_are_cleared_within_the_same_type_only() -> None:
    database = await _database()
    measurements = {"chest": "42", "length": "58"}
    async with database.sessionmaker() as session:
        async with session.begin():
            repo = SqlAlchemyUserSizeRepository(session)
            for name, size_type in (("Thobe", "thobe"), ("Mine", "general"), ("Son", "general")):
                await size_usecase.create_size(
                    repo,
                    user_uid="u1",
                    draft=size_usecase.SizeDraft(
                        name=name,
                        measurements=measurements,
                        size_type=size_type,
                        is_default=True,
                    ),
                )

    async with database.sessionmaker() as session:
        rows = await SqlAlchemyUserSizeRepository(session).list_by_user("u1")
    assert {row.name: row.is_default for row in rows} == {"Thobe": True, "Mine": False, "Son": True}
    assert rows[0].measurements["waist"] == ""
