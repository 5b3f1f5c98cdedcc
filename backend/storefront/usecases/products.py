from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Sequence

from ..domain.errors import NotFoundError, ValidationError
from ..domain.pricing import Pricing, calculate_unit_price
from ..domain.repositories import ProductRepository
from ..models import Product

SORT_FIELDS = ("created_at", "name", "base_price")


@dataclass(frozen=True)
class ProductQuery:
    denomination: str | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    search: str | None = None
    sort_by: str = "created_at"
    descending: bool = True
    page: int = 1
    limit: int = 12


@dataclass(frozen=True)
class Page:
    items: Sequence[Product]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0


async def list_products(
    product_repo: ProductRepository,
    query: ProductQuery,
    *,
    include_inactive: bool = False,
) -> Page:
    if query.sort_by not in SORT_FIELDS:
        raise ValidationError(f"sort_by must be one of {', '.join(SORT_FIELDS)}")
    if query.page < 1 or query.limit < 1:
        raise ValidationError("page and limit must be positive")
    if query.min_price is not None and query.max_price is not None and query.min_price > query.max_price:
        raise ValidationError("min_price must not exceed max_price")
    items, total = await product_repo.search(
        denomination=query.denomination,
        min_price=query.min_price,
        max_price=query.max_price,
        search=query.search.strip() if query.search else None,
        include_inactive=include_inactive,
        sort_by=query.sort_by,
        descending=query.descending,
        offset=(query.page - 1) * query.limit,
        limit=query.limit,
    )
    return Page(items=items, total=total, page=query.page, limit=query.limit)


async def get_product(product_repo: ProductRepository, *, product_id: int, include_inactive: bool = False) -> Product:
    product = await product_repo.get(product_id)
    if product is None or (not product.is_active and not include_inactive):
        raise NotFoundError("Product not found")
    return product


async def create_product(product_repo: ProductRepository, fields: dict[str, Any]) -> Product:
    if not fields.get("materials"):
        raise ValidationError("at least one material is required")
    return await product_repo.add(Product(**fields))


async def update_product(product_repo: ProductRepository, *, product_id: int, changes: dict[str, Any]) -> Product:
    product = await get_product(product_repo, product_id=product_id, include_inactive=True)
    if "materials" in changes and not changes["materials"]:
        raise ValidationError("at least one material is required")
    for key, value in changes.items():
        setattr(product, key, value)
    return await product_repo.save(product)


async def delete_product(product_repo: ProductRepository, *, product_id: int) -> Product:
    product = await get_product(product_repo, product_id=product_id, include_inactive=True)
    await product_repo.delete(product)
    return product


async def quote_price(
    product_repo: ProductRepository,
    *,
    product_id: int,
    material: str | None,
    cloth_provided: bool,
    strict_materials: bool = False,
) -> Decimal:
    product = await get_product(product_repo, product_id=product_id)
    return calculate_unit_price(
        Pricing.from_product(product),
        material,
        cloth_provided,
        strict_materials=strict_materials,
    )
