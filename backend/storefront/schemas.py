from datetime import date, datetime
from decimal import Decimal
from typing import Any, Generic, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_serializer, field_validator, model_validator

from .domain.pricing import ClothDiscount, Pricing, display_price
from .domain.services import Notification
from .models import (
    AvailableDate,
    Cart,
    CartItem,
    Contact,
    ContactPriority,
    ContactStatus,
    DiscountKind,
    Order,
    OrderStatus,
    PaymentStatus,
    Product,
    User,
    UserAddress,
    UserRole,
    UserSize,
)
from .utils.time import to_utc_day

T = TypeVar("T")

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
COLOR_CODE_PATTERN = r"^#[0-9A-Fa-f]{6}$"


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: T


class Paginated(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int
    pages: int


def _coerce_day(value: Any) -> Any:
    """Accept a bare date or a full timestamp; timestamps collapse to their UTC day."""
    if isinstance(value, str) and "T" in value:
        return to_utc_day(datetime.fromisoformat(value))
    if isinstance(value, datetime):
        return to_utc_day(value)
    return value


def _money(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


# Availability ledger


class AvailableDateRead(BaseModel):
    id: int
    date: date
    normal_slots: int
    emergency_slots: int
    emergency_slot_cost: Decimal
    is_available: bool
    normal_booked_slots: int
    emergency_booked_slots: int
    remaining_normal_slots: int
    remaining_emergency_slots: int
    total_slots: int
    total_booked_slots: int
    created_at: datetime
    updated_at: datetime

    @field_serializer("emergency_slot_cost")
    def _ser_money(self, value: Decimal) -> Optional[float]:
        return _money(value)

    @classmethod
    def from_db(cls, row: AvailableDate) -> "AvailableDateRead":
        return cls(
            id=row.id,
            date=row.date,
            normal_slots=row.normal_slots,
            emergency_slots=row.emergency_slots,
            emergency_slot_cost=row.emergency_slot_cost,
            is_available=row.is_available,
            normal_booked_slots=row.normal_booked_slots,
            emergency_booked_slots=row.emergency_booked_slots,
            remaining_normal_slots=row.remaining_normal_slots,
            remaining_emergency_slots=row.remaining_emergency_slots,
            total_slots=row.total_slots,
            total_booked_slots=row.total_booked_slots,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


class AvailableDateCreate(BaseModel):
    date: date
    normal_slots: int = Field(default=4, ge=0)
    emergency_slots: int = Field(default=1, ge=0)
    emergency_slot_cost: Decimal = Field(default=Decimal("0"), ge=0)
    is_available: bool = True

    @field_validator("date", mode="before")
    @classmethod
    def _day(cls, value: Any) -> Any:
        return _coerce_day(value)


class AvailableDateUpdate(BaseModel):
    normal_slots: Optional[int] = Field(default=None, ge=0)
    emergency_slots: Optional[int] = Field(default=None, ge=0)
    emergency_slot_cost: Optional[Decimal] = Field(default=None, ge=0)
    is_available: Optional[bool] = None


class AvailableDateBulk(BaseModel):
    dates: list[AvailableDateCreate] = Field(min_length=1)


class AvailableDateCleanup(BaseModel):
    before_date: date

    @field_validator("before_date", mode="before")
    @classmethod
    def _day(cls, value: Any) -> Any:
        return _coerce_day(value)


class CleanupResult(BaseModel):
    deleted_count: int


# Orders


class SlotAllocationIn(BaseModel):
    date_id: int = Field(ge=1)
    normal_slots_used: int = Field(default=0, ge=0)
    emergency_slots_used: int = Field(default=0, ge=0)


class OrderCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    product_id: int = Field(ge=1)
    quantity: int = Field(ge=1)
    size: Optional[str] = Field(default=None, min_length=1, max_length=100)
    size_id: Optional[int] = Field(default=None, ge=1)
    material: Optional[str] = Field(default=None, max_length=100)
    cloth_provided: bool = False
    special_notes: Optional[str] = Field(default=None, max_length=1000)
    delivery_address: Optional[str] = Field(default=None, max_length=1000)
    slot_allocation: list[SlotAllocationIn] = Field(min_length=1)
    address_id: Optional[int] = Field(default=None, ge=1)
    payment_method_id: Optional[str] = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def _size_given(self) -> "OrderCreate":
        if self.size is None and self.size_id is None:
            raise ValueError("size or size_id is required")
        return self


class CartCheckout(BaseModel):
    payment_method_id: Optional[str] = Field(default=None, max_length=255)


class PaymentRequest(BaseModel):
    """Amount to charge for freshly created orders; the gateway works in minor units."""

    order_ids: list[int]
    amount: Decimal
    amount_minor: int
    currency: str
    receipt: str

    @field_serializer("amount")
    def _ser_money(self, value: Decimal) -> Optional[float]:
        return _money(value)


class PaymentVerify(BaseModel):
    order_ids: list[int] = Field(min_length=1)
    gateway_order_id: str = Field(min_length=1)
    gateway_payment_id: str = Field(min_length=1)
    signature: str = Field(min_length=1)


class PaymentFailure(BaseModel):
    order_ids: list[int] = Field(min_length=1)


class OrderStatusUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None


class CustomerRead(BaseModel):
    uid: str
    name: str
    email: Optional[str]
    phone: Optional[str]


class OrderRead(BaseModel):
    id: int
    product_id: int
    product_name: str
    product_image: str
    product_description: str
    user_uid: str
    quantity: int
    total_price: Decimal
    size: str
    material: Optional[str]
    special_notes: Optional[str]
    cloth_provided: bool
    delivery_address: Optional[str]
    slot_allocation: list[dict[str, Any]]
    normal_slots_total: int
    emergency_slots_total: int
    price_breakdown: dict[str, Any]
    selected_dates: list[str]
    from_cart: bool
    payment_method_id: Optional[str]
    gateway_order_id: Optional[str]
    gateway_payment_id: Optional[str]
    payment_status: PaymentStatus
    payment_completed_at: Optional[datetime]
    status: OrderStatus
    created_at: datetime
    updated_at: datetime
    customer: Optional[CustomerRead] = None

    @field_serializer("total_price")
    def _ser_money(self, value: Decimal) -> Optional[float]:
        return _money(value)

    @classmethod
    def from_db(cls, order: Order, user: Optional[User] = None) -> "OrderRead":
        customer = None
        if user is not None:
            customer = CustomerRead(uid=user.uid, name=user.name, email=user.email, phone=user.phone)
        return cls(
            id=order.id,
            product_id=order.product_id,
            product_name=order.product_name,
            product_image=order.product_image,
            product_description=order.product_description,
            user_uid=order.user_uid,
            quantity=order.quantity,
            total_price=order.total_price,
            size=order.size,
            material=order.material,
            special_notes=order.special_notes,
            cloth_provided=order.cloth_provided,
            delivery_address=order.delivery_address,
            slot_allocation=order.slot_allocation,
            normal_slots_total=order.normal_slots_total,
            emergency_slots_total=order.emergency_slots_total,
            price_breakdown=order.price_breakdown,
            selected_dates=order.selected_dates,
            from_cart=order.from_cart,
            payment_method_id=order.payment_method_id,
            gateway_order_id=order.gateway_order_id,
            gateway_payment_id=order.gateway_payment_id,
            payment_status=order.payment_status,
            payment_completed_at=order.payment_completed_at,
            status=order.status,
            created_at=order.created_at,
            updated_at=order.updated_at,
            customer=customer,
        )


class NotificationRead(BaseModel):
    id: str
    type: str
    title: str
    message: str
    order_id: int
    days_left: int
    status: str

    @classmethod
    def from_domain(cls, item: Notification) -> "NotificationRead":
        return cls(
            id=item.id,
            type=item.type,
            title=item.title,
            message=item.message,
            order_id=item.order_id,
            days_left=item.days_left,
            status=item.status,
        )


# Cart


class CartItemCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    product_id: int = Field(ge=1)
    quantity: int = Field(ge=1)
    size: str = Field(min_length=1, max_length=100)
    material: Optional[str] = Field(default=None, max_length=100)
    cloth_provided: bool = False
    special_notes: Optional[str] = Field(default=None, max_length=1000)
    selected_dates: list[date] = Field(min_length=1)
    normal_slots_total: int = Field(default=0, ge=0)
    emergency_slots_total: int = Field(default=0, ge=0)

    @field_validator("selected_dates", mode="before")
    @classmethod
    def _days(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [_coerce_day(item) for item in value]
        return value


class CartUpdate(BaseModel):
    delivery_address: Optional[str] = Field(default=None, max_length=1000)
    # saved address to copy onto the cart; wins over delivery_address
    address_id: Optional[int] = Field(default=None, ge=1)
    item_id: Optional[int] = Field(default=None, ge=1)
    quantity: Optional[int] = Field(default=None, ge=0)


class CartItemRead(BaseModel):
    id: int
    product_id: int
    product_name: str
    product_image: str
    quantity: int
    size: str
    material: Optional[str]
    cloth_provided: bool
    special_notes: Optional[str]
    selected_dates: list[str]
    normal_slots_total: int
    emergency_slots_total: int
    base_price: Decimal
    normal_slots_cost: Decimal
    emergency_slots_cost: Decimal
    emergency_charges: Decimal
    total_price: Decimal

    @field_serializer(
        "base_price",
        "normal_slots_cost",
        "emergency_slots_cost",
        "emergency_charges",
        "total_price",
    )
    def _ser_money(self, value: Decimal) -> Optional[float]:
        return _money(value)

    @classmethod
    def from_db(cls, item: CartItem) -> "CartItemRead":
        return cls(
            id=item.id,
            product_id=item.product_id,
            product_name=item.product_name,
            product_image=item.product_image,
            quantity=item.quantity,
            size=item.size,
            material=item.material,
            cloth_provided=item.cloth_provided,
            special_notes=item.special_notes,
            selected_dates=item.selected_dates,
            normal_slots_total=item.normal_slots_total,
            emergency_slots_total=item.emergency_slots_total,
            base_price=item.base_price,
            normal_slots_cost=item.normal_slots_cost,
            emergency_slots_cost=item.emergency_slots_cost,
            emergency_charges=item.emergency_charges,
            total_price=item.total_price,
        )


class CartRead(BaseModel):
    id: int
    user_uid: str
    delivery_address: Optional[str]
    items: list[CartItemRead]
    total_items: int
    total_price: Decimal

    @field_serializer("total_price")
    def _ser_money(self, value: Decimal) -> Optional[float]:
        return _money(value)

    @classmethod
    def from_db(cls, cart: Cart) -> "CartRead":
        items = [CartItemRead.from_db(item) for item in cart.items]
        return cls(
            id=cart.id,
            user_uid=cart.user_uid,
            delivery_address=cart.delivery_address,
            items=items,
            total_items=sum(item.quantity for item in items),
            total_price=sum((item.total_price for item in items), Decimal("0")),
        )


# Catalog


class DiscountIn(BaseModel):
    kind: DiscountKind
    value: Decimal = Field(ge=0)

    @field_validator("value")
    @classmethod
    def _fraction(cls, value: Decimal, info: ValidationInfo) -> Decimal:
        if info.data.get("kind") == DiscountKind.PERCENTAGE and value > 1:
            raise ValueError("percentage discount must be a fraction between 0 and 1")
        return value

    def to_domain(self) -> ClothDiscount:
        return ClothDiscount(kind=self.kind, value=self.value)


class MaterialIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    additional_cost: Decimal = Field(default=Decimal("0"), ge=0)
    is_available: bool = True

    def to_json(self) -> dict[str, Any]:
        return {"name": self.name, "additional_cost": str(self.additional_cost), "is_available": self.is_available}


class ColorIn(BaseModel):
    color: str = Field(min_length=1, max_length=50)
    color_code: str = Field(pattern=COLOR_CODE_PATTERN)


def _discount(value: Union[DiscountIn, Decimal]) -> ClothDiscount:
    # Bare numbers are the legacy storage format.
    if isinstance(value, DiscountIn):
        return value.to_domain()
    return ClothDiscount.from_legacy(value)


class ProductCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    denomination: str = Field(min_length=1, max_length=100)
    base_price: Decimal = Field(ge=0)
    cloth_discount: Union[DiscountIn, Decimal] = Decimal("0")
    materials: list[MaterialIn] = Field(min_length=1)
    images: list[str] = Field(default_factory=list)
    colors: list[ColorIn] = Field(default_factory=list)
    show_cloths_provided: bool = True
    is_active: bool = True

    def to_fields(self) -> dict[str, Any]:
        discount = _discount(self.cloth_discount)
        return {
            "name": self.name,
            "description": self.description,
            "denomination": self.denomination,
            "base_price": self.base_price,
            "discount_kind": discount.kind,
            "discount_value": discount.value,
            "materials": [m.to_json() for m in self.materials],
            "images": list(self.images),
            "colors": [c.model_dump() for c in self.colors],
            "show_cloths_provided": self.show_cloths_provided,
            "is_active": self.is_active,
        }


class ProductUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, min_length=1)
    denomination: Optional[str] = Field(default=None, min_length=1, max_length=100)
    base_price: Optional[Decimal] = Field(default=None, ge=0)
    cloth_discount: Optional[Union[DiscountIn, Decimal]] = None
    materials: Optional[list[MaterialIn]] = None
    images: Optional[list[str]] = None
    colors: Optional[list[ColorIn]] = None
    show_cloths_provided: Optional[bool] = None
    is_active: Optional[bool] = None

    def to_changes(self) -> dict[str, Any]:
        changes: dict[str, Any] = {}
        for key in ("name", "description", "denomination", "base_price", "images", "show_cloths_provided", "is_active"):
            value = getattr(self, key)
            if value is not None:
                changes[key] = value
        if self.cloth_discount is not None:
            discount = _discount(self.cloth_discount)
            changes["discount_kind"] = discount.kind
            changes["discount_value"] = discount.value
        if self.materials is not None:
            changes["materials"] = [m.to_json() for m in self.materials]
        if self.colors is not None:
            changes["colors"] = [c.model_dump() for c in self.colors]
        return changes


class ProductRead(BaseModel):
    id: int
    name: str
    description: str
    denomination: str
    base_price: Decimal
    display_price: Decimal
    cloth_discount: dict[str, Any]
    materials: list[dict[str, Any]]
    images: list[str]
    colors: list[dict[str, str]]
    show_cloths_provided: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @field_serializer("base_price", "display_price")
    def _ser_money(self, value: Decimal) -> Optional[float]:
        return _money(value)

    @classmethod
    def from_db(cls, product: Product) -> "ProductRead":
        return cls(
            id=product.id,
            name=product.name,
            description=product.description,
            denomination=product.denomination,
            base_price=product.base_price,
            display_price=display_price(Pricing.from_product(product)),
            cloth_discount={"kind": product.discount_kind.value, "value": float(product.discount_value)},
            materials=[
                {
                    "name": m["name"],
                    "additional_cost": float(m.get("additional_cost", 0)),
                    "is_available": bool(m.get("is_available", True)),
                }
                for m in product.materials or []
            ],
            images=list(product.images or []),
            colors=list(product.colors or []),
            show_cloths_provided=product.show_cloths_provided,
            is_active=product.is_active,
            created_at=product.created_at,
            updated_at=product.updated_at,
        )


class PriceQuoteRequest(BaseModel):
    material: Optional[str] = None
    cloth_provided: bool = False


class PriceQuote(BaseModel):
    product_id: int
    unit_price: Decimal

    @field_serializer("unit_price")
    def _ser_money(self, value: Decimal) -> Optional[float]:
        return _money(value)


# Contacts


class ContactCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=100)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    phone: Optional[str] = Field(default=None, min_length=10, max_length=20)
    message: str = Field(min_length=5, max_length=1000)

    @field_validator("email")
    @classmethod
    def _lower(cls, value: str) -> str:
        return value.lower()


class ContactUpdate(BaseModel):
    status: Optional[ContactStatus] = None
    priority: Optional[ContactPriority] = None
    admin_notes: Optional[str] = Field(default=None, max_length=500)
    replied_at: Optional[datetime] = None


class ContactRead(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str]
    message: str
    status: ContactStatus
    priority: ContactPriority
    admin_notes: Optional[str]
    replied_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_db(cls, contact: Contact) -> "ContactRead":
        return cls(
            id=contact.id,
            name=contact.name,
            email=contact.email,
            phone=contact.phone,
            message=contact.message,
            status=contact.status,
            priority=contact.priority,
            admin_notes=contact.admin_notes,
            replied_at=contact.replied_at,
            created_at=contact.created_at,
            updated_at=contact.updated_at,
        )


# Users


class UserRead(BaseModel):
    id: int
    uid: str
    email: Optional[str]
    name: str
    phone: Optional[str]
    role: UserRole
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_db(cls, user: User) -> "UserRead":
        return cls(
            id=user.id,
            uid=user.uid,
            email=user.email,
            name=user.name,
            phone=user.phone,
            role=user.role,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class UserRoleUpdate(BaseModel):
    role: UserRole


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)


# Saved addresses and sizes


class AddressCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    label: str = Field(min_length=1, max_length=100)
    full_name: str = Field(min_length=1, max_length=100)
    street: str = Field(min_length=1, max_length=255)
    city: str = Field(min_length=1, max_length=100)
    state: str = Field(min_length=1, max_length=100)
    zip_code: str = Field(min_length=1, max_length=20)
    country: str = Field(default="USA", max_length=100)
    phone_number: Optional[str] = Field(default=None, max_length=20)
    is_default: bool = False


class AddressUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    label: Optional[str] = Field(default=None, min_length=1, max_length=100)
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    street: Optional[str] = Field(default=None, min_length=1, max_length=255)
    city: Optional[str] = Field(default=None, min_length=1, max_length=100)
    state: Optional[str] = Field(default=None, min_length=1, max_length=100)
    zip_code: Optional[str] = Field(default=None, min_length=1, max_length=20)
    country: Optional[str] = Field(default=None, max_length=100)
    phone_number: Optional[str] = Field(default=None, max_length=20)
    is_default: Optional[bool] = None


class AddressRead(BaseModel):
    id: int
    label: str
    full_name: str
    street: str
    city: str
    state: str
    zip_code: str
    country: str
    phone_number: Optional[str]
    is_default: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_db(cls, address: UserAddress) -> "AddressRead":
        return cls(
            id=address.id,
            label=address.label,
            full_name=address.full_name,
            street=address.street,
            city=address.city,
            state=address.state,
            zip_code=address.zip_code,
            country=address.country,
            phone_number=address.phone_number,
            is_default=address.is_default,
            created_at=address.created_at,
            updated_at=address.updated_at,
        )


class MeasurementsIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    chest: str = Field(min_length=1, max_length=20)
    length: str = Field(min_length=1, max_length=20)
    shoulders: str = Field(default="", max_length=20)
    sleeves: str = Field(default="", max_length=20)
    neck: str = Field(default="", max_length=20)
    waist: str = Field(default="", max_length=20)
    back_pleat_length: str = Field(default="", max_length=20)


class SizeCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    size_type: str = Field(default="general", max_length=50)
    measurements: MeasurementsIn
    is_default: bool = False


class SizeUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    size_type: Optional[str] = Field(default=None, max_length=50)
    measurements: Optional[MeasurementsIn] = None
    is_default: Optional[bool] = None


class SizeRead(BaseModel):
    id: int
    name: str
    size_type: str
    measurements: dict[str, str]
    is_default: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_db(cls, size: UserSize) -> "SizeRead":
        return cls(
            id=size.id,
            name=size.name,
            size_type=size.size_type,
            measurements=dict(size.measurements),
            is_default=size.is_default,
            created_at=size.created_at,
            updated_at=size.updated_at,
        )
