from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

from ..models import DiscountKind, Product
from .errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0")


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ClothDiscount:
    kind: DiscountKind
    value: Decimal

    @classmethod
    def from_legacy(cls, value: Decimal | float | int) -> "ClothDiscount":
        """Convert a bare stored number: <= 1 is a fraction, otherwise a flat amount."""
        amount = Decimal(str(value))
        if amount <= 1:
            return cls(kind=DiscountKind.PERCENTAGE, value=amount)
        return cls(kind=DiscountKind.FIXED, value=amount)

    def apply(self, price: Decimal) -> Decimal:
        if self.value <= 0:
            return price
        if self.kind == DiscountKind.PERCENTAGE:
            return price * (1 - self.value)
        return max(ZERO, price - self.value)


@dataclass(frozen=True)
class Material:
    name: str
    additional_cost: Decimal
    is_available: bool = True


@dataclass(frozen=True)
class Pricing:
    base_price: Decimal
    discount: ClothDiscount
    materials: tuple[Material, ...] = field(default_factory=tuple)

    @classmethod
    def from_product(cls, product: Product) -> "Pricing":
        return cls(
            base_price=Decimal(str(product.base_price)),
            discount=ClothDiscount(kind=product.discount_kind, value=Decimal(str(product.discount_value))),
            materials=tuple(
                Material(
                    name=m["name"],
                    additional_cost=Decimal(str(m.get("additional_cost", 0))),
                    is_available=bool(m.get("is_available", True)),
                )
                for m in product.materials or []
            ),
        )

    def find_material(self, name: str | None) -> Material | None:
        if name is None:
            return None
        for material in self.materials:
            if material.name == name:
                return material
        return None


def calculate_unit_price(
    pricing: Pricing,
    material_name: str | None,
    cloth_provided: bool,
    *,
    strict_materials: bool = False,
) -> Decimal:
    """Price of one garment, rounded to 2 decimal places.

    A customer supplying their own cloth gets the product's cloth discount;
    otherwise the chosen material's surcharge is added. An unknown material
    charges the base price unless ``strict_materials`` is set.
    """
    price = pricing.base_price
    if cloth_provided:
        price = pricing.discount.apply(price)
    else:
        material = pricing.find_material(material_name)
        if material is not None:
            price += material.additional_cost
        elif strict_materials:
            raise ValidationError(f"unknown material: {material_name}")
    return quantize(price)


def display_price(pricing: Pricing) -> Decimal:
    """Lowest price a customer can see for the product."""
    if not pricing.materials:
        return quantize(pricing.base_price)
    return quantize(pricing.base_price + min(m.additional_cost for m in pricing.materials))


@dataclass(frozen=True)
class SlotUsage:
    normal_slots_used: int
    emergency_slots_used: int
    emergency_slot_cost: Decimal


@dataclass(frozen=True)
class PriceBreakdown:
    base_price: Decimal
    normal_slots_cost: Decimal
    emergency_slots_cost: Decimal
    emergency_charges: Decimal

    @property
    def total(self) -> Decimal:
        return quantize(self.normal_slots_cost + self.emergency_slots_cost)

    def as_dict(self) -> dict[str, str]:
        return {
            "base_price": str(self.base_price),
            "normal_slots_cost": str(self.normal_slots_cost),
            "emergency_slots_cost": str(self.emergency_slots_cost),
            "emergency_charges": str(self.emergency_charges),
        }


def compute_price_breakdown(unit_price: Decimal, usages: Iterable[SlotUsage]) -> PriceBreakdown:
    normal_total = 0
    emergency_cost = ZERO
    emergency_charges = ZERO
    for usage in usages:
        normal_total += usage.normal_slots_used
        emergency_cost += usage.emergency_slots_used * (unit_price + usage.emergency_slot_cost)
        emergency_charges += usage.emergency_slots_used * usage.emergency_slot_cost
    return PriceBreakdown(
        base_price=quantize(unit_price),
        normal_slots_cost=quantize(normal_total * unit_price),
        emergency_slots_cost=quantize(emergency_cost),
        emergency_charges=quantize(emergency_charges),
    )


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def sum_totals(totals: Sequence[Decimal]) -> Decimal:
    return quantize(sum(totals, ZERO))
