from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Sequence

from sqlalchemy import Select, case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.repositories import (
    AvailableDateRepository,
    CartRepository,
    ContactRepository,
    OrderRepository,
    ProductRepository,
    UserAddressRepository,
    UserRepository,
    UserSizeRepository,
)
from ..models import (
    AvailableDate,
    Cart,
    CartItem,
    Contact,
    ContactPriority,
    ContactStatus,
    Order,
    OrderStatus,
    Product,
    User,
    UserAddress,
    UserRole,
    UserSize,
)


def _utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SqlAlchemyAvailableDateRepository(AvailableDateRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, date_id: int) -> AvailableDate | None:
        return await self.session.get(AvailableDate, date_id)

    async def get_for_update(self, date_id: int) -> AvailableDate | None:
        result = await self.session.scalar(
            select(AvailableDate)
            .where(AvailableDate.id == date_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result if isinstance(result, AvailableDate) else None

    async def get_by_day(self, day: date) -> AvailableDate | None:
        result = await self.session.scalar(
            select(AvailableDate).where(AvailableDate.date == day).execution_options(populate_existing=True)
        )
        return result if isinstance(result, AvailableDate) else None

    async def list_range(
        self,
        start: date,
        end: date | None,
        *,
        only_available: bool,
    ) -> Sequence[AvailableDate]:
        stmt: Select[tuple[AvailableDate]] = select(AvailableDate).where(AvailableDate.date >= start)
        if end is not None:
            stmt = stmt.where(AvailableDate.date <= end)
        if only_available:
            stmt = stmt.where(AvailableDate.is_available.is_(True))
        rows = await self.session.scalars(stmt.order_by(AvailableDate.date.asc()))
        return list(rows.all())

    async def create(
        self,
        *,
        day: date,
        normal_slots: int,
        emergency_slots: int,
        emergency_slot_cost: Decimal,
        is_available: bool,
    ) -> AvailableDate:
        now = _utc_now_naive()
        row = AvailableDate(
            date=day,
            normal_slots=normal_slots,
            emergency_slots=emergency_slots,
            emergency_slot_cost=emergency_slot_cost,
            is_available=is_available,
            normal_booked_slots=0,
            emergency_booked_slots=0,
            created_at=now,
            updated_at=now,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def upsert(
        self,
        *,
        day: date,
        normal_slots: int,
        emergency_slots: int,
        emergency_slot_cost: Decimal,
        is_available: bool,
    ) -> AvailableDate:
        existing = await self.session.scalar(
            select(AvailableDate).where(AvailableDate.date == day).with_for_update()
        )
        if existing is None:
            return await self.create(
                day=day,
                normal_slots=normal_slots,
                emergency_slots=emergency_slots,
                emergency_slot_cost=emergency_slot_cost,
                is_available=is_available,
            )
        return await self.update(
            existing,
            {
                "normal_slots": normal_slots,
                "emergency_slots": emergency_slots,
                "emergency_slot_cost": emergency_slot_cost,
                "is_available": is_available,
            },
        )

    async def update(self, row: AvailableDate, changes: dict[str, Any]) -> AvailableDate:
        for key, value in changes.items():
            setattr(row, key, value)
        row.updated_at = _utc_now_naive()
        self.session.add(row)
        await self.session.flush()
        return row

    async def delete(self, row: AvailableDate) -> None:
        await self.session.delete(row)
        await self.session.flush()

    async def delete_before(self, cutoff: date) -> int:
        result = await self.session.execute(
            delete(AvailableDate).where(AvailableDate.date < cutoff).execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)

    async def reserve(self, date_id: int, *, normal: int, emergency: int) -> bool:
        """Increment both booked counters in one statement, only if capacity allows.

        Loaded rows keep their old counters; ``get_for_update`` and ``get_by_day``
        reload them.
        """
        stmt = (
            update(AvailableDate)
            .where(
                AvailableDate.id == date_id,
                AvailableDate.normal_booked_slots + normal <= AvailableDate.normal_slots,
                AvailableDate.emergency_booked_slots + emergency <= AvailableDate.emergency_slots,
            )
            .values(
                normal_booked_slots=AvailableDate.normal_booked_slots + normal,
                emergency_booked_slots=AvailableDate.emergency_booked_slots + emergency,
                updated_at=_utc_now_naive(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def release(self, date_id: int, *, normal: int, emergency: int) -> None:
        stmt = (
            update(AvailableDate)
            .where(AvailableDate.id == date_id)
            .values(
                normal_booked_slots=case(
                    (AvailableDate.normal_booked_slots >= normal, AvailableDate.normal_booked_slots - normal),
                    else_=0,
                ),
                emergency_booked_slots=case(
                    (
                        AvailableDate.emergency_booked_slots >= emergency,
                        AvailableDate.emergency_booked_slots - emergency,
                    ),
                    else_=0,
                ),
                updated_at=_utc_now_naive(),
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)


class SqlAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, order: Order) -> Order:
        now = _utc_now_naive()
        order.created_at = now
        order.updated_at = now
        self.session.add(order)
        await self.session.flush()
        return order

    async def get(self, order_id: int) -> Order | None:
        return await self.session.get(Order, order_id)

    async def get_many_for_update(self, order_ids: Iterable[int]) -> Sequence[Order]:
        stmt = select(Order).where(Order.id.in_(list(order_ids))).order_by(Order.id).with_for_update()
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def list_all(self) -> Sequence[Order]:
        rows = await self.session.scalars(select(Order).order_by(Order.created_at.desc(), Order.id.desc()))
        return list(rows.all())

    async def list_by_user(self, user_uid: str) -> Sequence[Order]:
        stmt = select(Order).where(Order.user_uid == user_uid).order_by(Order.created_at.desc(), Order.id.desc())
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def list_by_status(self, statuses: Iterable[OrderStatus]) -> Sequence[Order]:
        stmt = (
            select(Order)
            .where(Order.status.in_(list(statuses)))
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def save(self, order: Order) -> Order:
        order.updated_at = _utc_now_naive()
        self.session.add(order)
        await self.session.flush()
        return order


class SqlAlchemyCartRepository(CartRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_user(self, user_uid: str) -> Cart | None:
        result = await self.session.scalar(select(Cart).where(Cart.user_uid == user_uid))
        return result if isinstance(result, Cart) else None

    async def create(self, user_uid: str) -> Cart:
        now = _utc_now_naive()
        cart = Cart(user_uid=user_uid, items=[], created_at=now, updated_at=now)
        self.session.add(cart)
        await self.session.flush()
        return cart

    async def add_item(self, cart: Cart, item: CartItem) -> Cart:
        cart.items.append(item)
        return await self.save(cart)

    async def remove_item(self, cart: Cart, item: CartItem) -> Cart:
        cart.items.remove(item)
        return await self.save(cart)

    async def clear(self, cart: Cart) -> Cart:
        cart.items.clear()
        return await self.save(cart)

    async def save(self, cart: Cart) -> Cart:
        cart.updated_at = _utc_now_naive()
        self.session.add(cart)
        await self.session.flush()
        return cart


_PRODUCT_SORT_COLUMNS = {
    "created_at": Product.created_at,
    "name": Product.name,
    "base_price": Product.base_price,
}


class SqlAlchemyProductRepository(ProductRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, product_id: int) -> Product | None:
        return await self.session.get(Product, product_id)

    async def search(
        self,
        *,
        denomination: str | None,
        min_price: Decimal | None,
        max_price: Decimal | None,
        search: str | None,
        include_inactive: bool,
        sort_by: str,
        descending: bool,
        offset: int,
        limit: int,
    ) -> tuple[Sequence[Product], int]:
        conditions: list[Any] = []
        if not include_inactive:
            conditions.append(Product.is_active.is_(True))
        if denomination:
            conditions.append(Product.denomination == denomination)
        if min_price is not None:
            conditions.append(Product.base_price >= min_price)
        if max_price is not None:
            conditions.append(Product.base_price <= max_price)
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(
                    Product.name.ilike(pattern),
                    Product.description.ilike(pattern),
                    Product.denomination.ilike(pattern),
                )
            )

        column = _PRODUCT_SORT_COLUMNS.get(sort_by, Product.created_at)
        order = column.desc() if descending else column.asc()
        stmt = select(Product).where(*conditions).order_by(order, Product.id).offset(offset).limit(limit)
        rows = await self.session.scalars(stmt)
        total = await self.session.scalar(select(func.count(Product.id)).where(*conditions))
        return list(rows.all()), int(total or 0)

    async def add(self, product: Product) -> Product:
        now = _utc_now_naive()
        product.created_at = now
        product.updated_at = now
        self.session.add(product)
        await self.session.flush()
        return product

    async def save(self, product: Product) -> Product:
        product.updated_at = _utc_now_naive()
        self.session.add(product)
        await self.session.flush()
        return product

    async def delete(self, product: Product) -> None:
        await self.session.delete(product)
        await self.session.flush()


class SqlAlchemyContactRepository(ContactRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, contact: Contact) -> Contact:
        now = _utc_now_naive()
        contact.created_at = now
        contact.updated_at = now
        self.session.add(contact)
        await self.session.flush()
        return contact

    async def get(self, contact_id: int) -> Contact | None:
        return await self.session.get(Contact, contact_id)

    async def search(
        self,
        *,
        status: ContactStatus | None,
        priority: ContactPriority | None,
        offset: int,
        limit: int,
    ) -> tuple[Sequence[Contact], int]:
        conditions: list[Any] = []
        if status is not None:
            conditions.append(Contact.status == status)
        if priority is not None:
            conditions.append(Contact.priority == priority)
        stmt = (
            select(Contact)
            .where(*conditions)
            .order_by(Contact.created_at.desc(), Contact.id.desc())
            .offset(offset)
            .limit(limit)
        )
        rows = await self.session.scalars(stmt)
        total = await self.session.scalar(select(func.count(Contact.id)).where(*conditions))
        return list(rows.all()), int(total or 0)

    async def save(self, contact: Contact) -> Contact:
        contact.updated_at = _utc_now_naive()
        self.session.add(contact)
        await self.session.flush()
        return contact

    async def delete(self, contact: Contact) -> None:
        await self.session.delete(contact)
        await self.session.flush()


class SqlAlchemyUserRepository(UserRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_uid(self, uid: str) -> User | None:
        result = await self.session.scalar(select(User).where(User.uid == uid))
        return result if isinstance(result, User) else None

    async def get(self, user_id: int) -> User | None:
        return await self.session.get(User, user_id)

    async def list_by_uids(self, uids: Iterable[str]) -> Sequence[User]:
        wanted = list(set(uids))
        if not wanted:
            return []
        rows = await self.session.scalars(select(User).where(User.uid.in_(wanted)))
        return list(rows.all())

    async def list_all(self, *, role: UserRole | None = None) -> Sequence[User]:
        stmt = select(User).order_by(User.created_at.desc(), User.id.desc())
        if role is not None:
            stmt = stmt.where(User.role == role)
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def save(self, user: User) -> User:
        user.updated_at = _utc_now_naive()
        self.session.add(user)
        await self.session.flush()
        return user


class SqlAlchemyUserAddressRepository(UserAddressRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_by_user(self, user_uid: str) -> Sequence[UserAddress]:
        stmt = (
            select(UserAddress)
            .where(UserAddress.user_uid == user_uid)
            .order_by(UserAddress.is_default.desc(), UserAddress.created_at.desc(), UserAddress.id.desc())
        )
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def get(self, address_id: int) -> UserAddress | None:
        return await self.session.get(UserAddress, address_id)

    async def add(self, address: UserAddress) -> UserAddress:
        now = _utc_now_naive()
        address.created_at = now
        address.updated_at = now
        self.session.add(address)
        await self.session.flush()
        return address

    async def save(self, address: UserAddress) -> UserAddress:
        address.updated_at = _utc_now_naive()
        self.session.add(address)
        await self.session.flush()
        return address

    async def delete(self, address: UserAddress) -> None:
        await self.session.delete(address)
        await self.session.flush()

    async def clear_default(self, user_uid: str, *, keep_id: int | None = None) -> None:
        stmt = update(UserAddress).where(UserAddress.user_uid == user_uid, UserAddress.is_default.is_(True))
        if keep_id is not None:
            stmt = stmt.where(UserAddress.id != keep_id)
        await self.session.execute(stmt.values(is_default=False).execution_options(synchronize_session="fetch"))


class SqlAlchemyUserSizeRepository(UserSizeRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_by_user(self, user_uid: str, *, size_type: str | None = None) -> Sequence[UserSize]:
        stmt = select(UserSize).where(UserSize.user_uid == user_uid)
        if size_type:
            stmt = stmt.where(UserSize.size_type == size_type)
        rows = await self.session.scalars(
            stmt.order_by(UserSize.is_default.desc(), UserSize.created_at.desc(), UserSize.id.desc())
        )
        return list(rows.all())

    async def get(self, size_id: int) -> UserSize | None:
        return await self.session.get(UserSize, size_id)

    async def add(self, size: UserSize) -> UserSize:
        now = _utc_now_naive()
        size.created_at = now
        size.updated_at = now
        self.session.add(size)
        await self.session.flush()
        return size

    async def save(self, size: UserSize) -> UserSize:
        size.updated_at = _utc_now_naive()
        self.session.add(size)
        await self.session.flush()
        return size

    async def delete(self, size: UserSize) -> None:
        await self.session.delete(size)
        await self.session.flush()

    async def clear_default(self, user_uid: str, size_type: str, *, keep_id: int | None = None) -> None:
        stmt = update(UserSize).where(
            UserSize.user_uid == user_uid,
            UserSize.size_type == size_type,
            UserSize.is_default.is_(True),
        )
        if keep_id is not None:
            stmt = stmt.where(UserSize.id != keep_id)
        await self.session.execute(stmt.values(is_default=False).execution_options(synchronize_session="fetch"))
