from __future__ import annotations

import datetime as dt
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any, Optional

from sqlalchemy import JSON, CheckConstraint, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.sqltypes import BigInteger, Boolean, Date, DateTime, Integer, Numeric, String, Text

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigId = BigInteger().with_variant(Integer(), "sqlite")
Money = Numeric(12, 2)


class Base(DeclarativeBase):
    pass


def _enum(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        values_callable=lambda cls: [e.value for e in cls],
        native_enum=False,
    )


class UserRole(StrEnum):
    CUSTOMER = "customer"
    ADMIN = "admin"


class OrderStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class DiscountKind(StrEnum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class ContactStatus(StrEnum):
    UNREAD = "unread"
    READ = "read"
    REPLIED = "replied"


class ContactPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("uid", name="uq_users_uid"),
        UniqueConstraint("email", name="uq_users_email"),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    uid: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    role: Mapped[UserRole] = mapped_column(_enum(UserRole), nullable=False, default=UserRole.CUSTOMER)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class AvailableDate(Base):
    __tablename__ = "available_dates"
    __table_args__ = (
        UniqueConstraint("date", name="uq_available_dates_date"),
        CheckConstraint("normal_slots >= 0", name="chk_ad_normal_slots"),
        CheckConstraint("emergency_slots >= 0", name="chk_ad_emergency_slots"),
        CheckConstraint("emergency_slot_cost >= 0", name="chk_ad_emergency_cost"),
        CheckConstraint(
            "normal_booked_slots >= 0 AND normal_booked_slots <= normal_slots",
            name="chk_ad_normal_booked",
        ),
        CheckConstraint(
            "emergency_booked_slots >= 0 AND emergency_booked_slots <= emergency_slots",
            name="chk_ad_emergency_booked",
        ),
        Index("idx_ad_available_date", "is_available", "date"),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    normal_slots: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    emergency_slots: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    emergency_slot_cost: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    normal_booked_slots: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    emergency_booked_slots: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    @property
    def remaining_normal_slots(self) -> int:
        return self.normal_slots - self.normal_booked_slots

    @property
    def remaining_emergency_slots(self) -> int:
        return self.emergency_slots - self.emergency_booked_slots

    @property
    def total_slots(self) -> int:
        return self.normal_slots + self.emergency_slots

    @property
    def total_booked_slots(self) -> int:
        return self.normal_booked_slots + self.emergency_booked_slots


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("base_price >= 0", name="chk_products_base_price"),
        CheckConstraint("discount_value >= 0", name="chk_products_discount"),
        Index("idx_products_denomination", "denomination", "base_price"),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    denomination: Mapped[str] = mapped_column(String(100), nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    discount_kind: Mapped[DiscountKind] = mapped_column(
        _enum(DiscountKind), nullable=False, default=DiscountKind.PERCENTAGE
    )
    discount_value: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    # [{"name": str, "additional_cost": str, "is_available": bool}]
    materials: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    images: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    colors: Mapped[list[dict[str, str]]] = mapped_column(JSON, nullable=False, default=list)
    show_cloths_provided: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="chk_orders_quantity"),
        CheckConstraint("total_price >= 0", name="chk_orders_total"),
        Index("idx_orders_user", "user_uid"),
        Index("idx_orders_status", "status"),
        Index("idx_orders_gateway", "gateway_order_id"),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_image: Mapped[str] = mapped_column(String(1024), nullable=False, default="")
    product_description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    user_uid: Mapped[str] = mapped_column(String(128), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    size: Mapped[str] = mapped_column(String(100), nullable=False)
    material: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    special_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cloth_provided: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    delivery_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Frozen copies of the ledger rows at purchase time plus the counts used.
    slot_allocation: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    normal_slots_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    emergency_slots_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    price_breakdown: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    selected_dates: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    from_cart: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payment_method_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    gateway_order_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    gateway_payment_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    gateway_signature: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payment_status: Mapped[PaymentStatus] = mapped_column(
        _enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING
    )
    payment_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    status: Mapped[OrderStatus] = mapped_column(_enum(OrderStatus), nullable=False, default=OrderStatus.PENDING)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class Cart(Base):
    __tablename__ = "carts"
    __table_args__ = (UniqueConstraint("user_uid", name="uq_carts_user"),)

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    user_uid: Mapped[str] = mapped_column(String(128), nullable=False)
    delivery_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    items: Mapped[list["CartItem"]] = relationship(
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
        lazy="selectin",
    )


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="chk_cart_items_quantity"),
        Index("idx_cart_items_cart", "cart_id"),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    cart_id: Mapped[int] = mapped_column(ForeignKey("carts.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_image: Mapped[str] = mapped_column(String(1024), nullable=False, default="")
    product_description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    size: Mapped[str] = mapped_column(String(100), nullable=False)
    material: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    cloth_provided: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    special_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    selected_dates: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    normal_slots_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    emergency_slots_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    base_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    normal_slots_cost: Mapped[Decimal] = mapped_column(Money, nullable=False)
    emergency_slots_cost: Mapped[Decimal] = mapped_column(Money, nullable=False)
    emergency_charges: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Money, nullable=False)

    cart: Mapped["Cart"] = relationship(back_populates="items")


class Contact(Base):
    __tablename__ = "contacts"
    __table_args__ = (
        Index("idx_contacts_status", "status"),
        Index("idx_contacts_priority", "priority"),
        Index("idx_contacts_created", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ContactStatus] = mapped_column(
        _enum(ContactStatus), nullable=False, default=ContactStatus.UNREAD
    )
    priority: Mapped[ContactPriority] = mapped_column(
        _enum(ContactPriority), nullable=False, default=ContactPriority.MEDIUM
    )
    admin_notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    replied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class UserAddress(Base):
    __tablename__ = "user_addresses"
    __table_args__ = (Index("idx_user_addresses_user", "user_uid"),)

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    user_uid: Mapped[str] = mapped_column(String(128), nullable=False)
    label: Mapped[str] = mapped_column(String(100), nullable=False)
    full_name: Mapped[str] = mapped_column(String(100), nullable=False)
    street: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(100), nullable=False)
    zip_code: Mapped[str] = mapped_column(String(20), nullable=False)
    country: Mapped[str] = mapped_column(String(100), nullable=False, default="USA")
    phone_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    @property
    def one_line(self) -> str:
        """Address as stored on a cart or an order."""
        return ", ".join(
            part
            for part in (
                self.full_name,
                self.street,
                self.city,
                f"{self.state} {self.zip_code}",
                self.country,
                self.phone_number,
            )
            if part
        )


class UserSize(Base):
    __tablename__ = "user_sizes"
    __table_args__ = (Index("idx_user_sizes_user_type", "user_uid", "size_type"),)

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    user_uid: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    size_type: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    # chest, length, shoulders, sleeves, neck, waist, back_pleat_length
    measurements: Mapped[dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
