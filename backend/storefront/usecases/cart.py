from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from ..domain.errors import DateNotFoundError, NotFoundError, ValidationError
from ..domain.pricing import ZERO, Pricing, SlotUsage, calculate_unit_price, compute_price_breakdown, quantize
from ..domain.repositories import AvailableDateRepository, CartRepository, ProductRepository
from ..domain.services import split_slots
from ..models import Cart, CartItem


@dataclass(frozen=True)
class CartItemDraft:
    product_id: int
    quantity: int
    size: str
    cloth_provided: bool
    selected_dates: list[date]
    normal_slots_total: int
    emergency_slots_total: int
    material: str | None = None
    special_notes: str | None = None


async def get_cart(cart_repo: CartRepository, *, user_uid: str) -> Cart:
    cart = await cart_repo.get_by_user(user_uid)
    if cart is None:
        cart = await cart_repo.create(user_uid)
    return cart


async def add_item(
    cart_repo: CartRepository,
    product_repo: ProductRepository,
    date_repo: AvailableDateRepository,
    *,
    user_uid: str,
    draft: CartItemDraft,
    strict_materials: bool = False,
) -> Cart:
    """Price an item on the server and append it. Capacity is checked at checkout."""
    if draft.normal_slots_total + draft.emergency_slots_total != draft.quantity:
        raise ValidationError("slot totals must add up to the quantity")
    days = sorted(set(draft.selected_dates))
    if not days:
        raise ValidationError("at least one date is required")

    product = await product_repo.get(draft.product_id)
    if product is None or not product.is_active:
        raise NotFoundError("Product not found")
    unit_price = calculate_unit_price(
        Pricing.from_product(product),
        draft.material,
        draft.cloth_provided,
        strict_materials=strict_materials,
    )

    usages: list[SlotUsage] = []
    normal = split_slots(draft.normal_slots_total, len(days))
    emergency = split_slots(draft.emergency_slots_total, len(days))
    for day, n, e in zip(days, normal, emergency):
        row = await date_repo.get_by_day(day)
        if row is None:
            raise DateNotFoundError(f"Available date not found for {day.isoformat()}")
        usages.append(SlotUsage(normal_slots_used=n, emergency_slots_used=e, emergency_slot_cost=row.emergency_slot_cost))
    breakdown = compute_price_breakdown(unit_price, usages)

    cart = await get_cart(cart_repo, user_uid=user_uid)
    item = CartItem(
        product_id=product.id,
        product_name=product.name,
        product_image=(product.images or [""])[0],
        product_description=product.description,
        quantity=draft.quantity,
        size=draft.size,
        material=draft.material,
        cloth_provided=draft.cloth_provided,
        special_notes=draft.special_notes,
        selected_dates=[day.isoformat() for day in days],
        normal_slots_total=draft.normal_slots_total,
        emergency_slots_total=draft.emergency_slots_total,
        base_price=breakdown.base_price,
        normal_slots_cost=breakdown.normal_slots_cost,
        emergency_slots_cost=breakdown.emergency_slots_cost,
        emergency_charges=breakdown.emergency_charges,
        total_price=breakdown.total,
    )
    return await cart_repo.add_item(cart, item)


def _find_item(cart: Cart, item_id: int) -> CartItem:
    for item in cart.items:
        if item.id == item_id:
            return item
    raise NotFoundError("Cart item not found")


def rescale_item(item: CartItem, quantity: int) -> None:
    """Change an item's quantity keeping its per-slot prices.

    Emergency slots are kept up to the new quantity; the rest become normal.
    """
    per_emergency_charge = (
        item.emergency_charges / item.emergency_slots_total if item.emergency_slots_total else ZERO
    )
    emergency = min(item.emergency_slots_total, quantity)
    normal = quantity - emergency
    unit = Decimal(item.base_price)
    item.quantity = quantity
    item.normal_slots_total = normal
    item.emergency_slots_total = emergency
    item.normal_slots_cost = quantize(normal * unit)
    item.emergency_charges = quantize(emergency * per_emergency_charge)
    item.emergency_slots_cost = quantize(emergency * unit + item.emergency_charges)
    item.total_price = quantize(item.normal_slots_cost + item.emergency_slots_cost)


async def update_cart(
    cart_repo: CartRepository,
    *,
    user_uid: str,
    delivery_address: str | None = None,
    item_id: int | None = None,
    quantity: int | None = None,
) -> Cart:
    """Set the delivery address and/or an item's quantity; quantity 0 removes the item."""
    if delivery_address is None and item_id is None:
        raise ValidationError("delivery_address or item_id is required")
    if item_id is not None and quantity is None:
        raise ValidationError("quantity is required when item_id is given")

    cart = await get_cart(cart_repo, user_uid=user_uid)
    if delivery_address is not None:
        cart.delivery_address = delivery_address.strip() or None
    if item_id is not None and quantity is not None:
        if quantity < 0:
            raise ValidationError("quantity must not be negative")
        item = _find_item(cart, item_id)
        if quantity == 0:
            return await cart_repo.remove_item(cart, item)
        rescale_item(item, quantity)
    return await cart_repo.save(cart)


async def remove_item(cart_repo: CartRepository, *, user_uid: str, item_id: int) -> Cart:
    cart = await cart_repo.get_by_user(user_uid)
    if cart is None:
        raise NotFoundError("Cart item not found")
    return await cart_repo.remove_item(cart, _find_item(cart, item_id))


async def clear_cart(cart_repo: CartRepository, *, user_uid: str) -> Cart:
    cart = await get_cart(cart_repo, user_uid=user_uid)
    return await cart_repo.clear(cart)
