from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Protocol, Sequence

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


class AvailableDateRepository(Protocol):
    async def get(self, date_id: int) -> AvailableDate | None: ...

    async def get_for_update(self, date_id: int) -> AvailableDate | None: ...

    async def get_by_day(self, day: date) -> AvailableDate | None: ...

    async def list_range(
        self,
        start: date,
        end: date | None,
        *,
        only_available: bool,
    ) -> Sequence[AvailableDate]: ...

    async def create(
        self,
        *,
        day: date,
        normal_slots: int,
        emergency_slots: int,
        emergency_slot_cost: Decimal,
        is_available: bool,
    ) -> AvailableDate: ...

    async def upsert(
        self,
        *,
        day: date,
        normal_slots: int,
        emergency_slots: int,
        emergency_slot_cost: Decimal,
        is_available: bool,
    ) -> AvailableDate: ...

    async def update(self, row: AvailableDate, changes: dict[str, Any]) -> AvailableDate: ...

    async def delete(self, row: AvailableDate) -> None: ...

    async def delete_before(self, cutoff: date) -> int: ...

    async def reserve(self, date_id: int, *, normal: int, emergency: int) -> bool: ...

    async def release(self, date_id: int, *, normal: int, emergency: int) -> None: ...


class OrderRepository(Protocol):
    async def add(self, order: Order) -> Order: ...

    async def get(self, order_id: int) -> Order | None: ...

    async def get_many_for_update(self, order_ids: Iterable[int]) -> Sequence[Order]: ...

    async def list_all(self) -> Sequence[Order]: ...

    async def list_by_user(self, user_uid: str) -> Sequence[Order]: ...

    async def list_by_status(self, statuses: Iterable[OrderStatus]) -> Sequence[Order]: ...

    async def save(self, order: Order) -> Order: ...


class CartRepository(Protocol):
    async def get_by_user(self, user_uid: str) -> Cart | None: ...

    async def create(self, user_uid: str) -> Cart: ...

    async def add_item(self, cart: Cart, item: CartItem) -> Cart: ...

    async def remove_item(self, cart: Cart, item: CartItem) -> Cart: ...

    async def clear(self, cart: Cart) -> Cart: ...

    async def save(self, cart: Cart) -> Cart: ...


class ProductRepository(Protocol):
    async def get(self, product_id: int) -> Product | None: ...

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
    ) -> tuple[Sequence[Product], int]: ...

    async def add(self, product: Product) -> Product: ...

    async def save(self, product: Product) -> Product: ...

    async def delete(self, product: Product) -> None: ...


class ContactRepository(Protocol):
    async def add(self, contact: Contact) -> Contact: ...

    async def get(self, contact_id: int) -> Contact | None: ...

    async def search(
        self,
        *,
        status: ContactStatus | None,
        priority: ContactPriority | None,
        offset: int,
        limit: int,
    ) -> tuple[Sequence[Contact], int]: ...

    async def save(self, contact: Contact) -> Contact: ...

    async def delete(self, contact: Contact) -> None: ...


class UserRepository(Protocol):
    async def get_by_uid(self, uid: str) -> User | None: ...

    async def get(self, user_id: int) -> User | None: ...

    async def list_by_uids(self, uids: Iterable[str]) -> Sequence[User]: ...

    async def list_all(self, *, role: UserRole | None = None) -> Sequence[User]: ...

    async def save(self, user: User) -> User: ...


class UserAddressRepository(Protocol):
    async def list_by_user(self, user_uid: str) -> Sequence[UserAddress]: ...

    async def get(self, address_id: int) -> UserAddress | None: ...

    async def add(self, address: UserAddress) -> UserAddress: ...

    async def save(self, address: UserAddress) -> UserAddress: ...

    async def delete(self, address: UserAddress) -> None: ...

    async def clear_default(self, user_uid: str, *, keep_id: int | None = None) -> None: ...


class UserSizeRepository(Protocol):
    async def list_by_user(self, user_uid: str, *, size_type: str | None = None) -> Sequence[UserSize]: ...

    async def get(self, size_id: int) -> UserSize | None: ...

    async def add(self, size: UserSize) -> UserSize: ...

    async def save(self, size: UserSize) -> UserSize: ...

    async def delete(self, size: UserSize) -> None: ...

    async def clear_default(self, user_uid: str, size_type: str, *, keep_id: int | None = None) -> None: ...
