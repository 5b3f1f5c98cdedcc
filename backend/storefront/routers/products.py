from decimal import Decimal
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import AuthenticatedUser, get_session, require_admin, translate_domain_errors
from ..infrastructure.repositories import SqlAlchemyProductRepository
from ..schemas import Envelope, Paginated, PriceQuote, PriceQuoteRequest, ProductCreate, ProductRead, ProductUpdate
from ..usecases import products as product_usecase

router = APIRouter(prefix="/products", tags=["products"])
admin_router = APIRouter(prefix="/admin/products", tags=["admin", "products"])


def _paginated(page: product_usecase.Page) -> Paginated[ProductRead]:
    return Paginated[ProductRead](
        items=[ProductRead.from_db(product) for product in page.items],
        total=page.total,
        page=page.page,
        limit=page.limit,
        pages=page.pages,
    )


@router.get("", response_model=Envelope[Paginated[ProductRead]])
async def list_products(
    denomination: Optional[str] = Query(default=None),
    min_price: Optional[Decimal] = Query(default=None, ge=0),
    max_price: Optional[Decimal] = Query(default=None, ge=0),
    search: Optional[str] = Query(default=None, max_length=100),
    sort_by: str = Query(default="created_at"),
    sort_order: Literal["asc", "desc"] = Query(default="desc"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> Envelope[Paginated[ProductRead]]:
    query = product_usecase.ProductQuery(
        denomination=denomination,
        min_price=min_price,
        max_price=max_price,
        search=search,
        sort_by=sort_by,
        descending=sort_order == "desc",
        page=page,
        limit=limit,
    )
    with translate_domain_errors():
        result = await product_usecase.list_products(SqlAlchemyProductRepository(session), query)
    return Envelope(data=_paginated(result))


@router.get("/denomination/{denomination}", response_model=Envelope[Paginated[ProductRead]])
async def list_by_denomination(
    denomination: str = Path(..., min_length=1),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> Envelope[Paginated[ProductRead]]:
    query = product_usecase.ProductQuery(denomination=denomination, page=page, limit=limit)
    with translate_domain_errors():
        result = await product_usecase.list_products(SqlAlchemyProductRepository(session), query)
    return Envelope(data=_paginated(result))


@router.get("/{product_id}", response_model=Envelope[ProductRead])
async def get_product(
    product_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> Envelope[ProductRead]:
    with translate_domain_errors():
        product = await product_usecase.get_product(SqlAlchemyProductRepository(session), product_id=product_id)
    return Envelope(data=ProductRead.from_db(product))


@router.post("/{product_id}/price", response_model=Envelope[PriceQuote])
async def quote_price(
    payload: PriceQuoteRequest,
    product_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> Envelope[PriceQuote]:
    with translate_domain_errors():
        unit_price = await product_usecase.quote_price(
            SqlAlchemyProductRepository(session),
            product_id=product_id,
            material=payload.material,
            cloth_provided=payload.cloth_provided,
            strict_materials=get_settings().strict_materials,
        )
    return Envelope(data=PriceQuote(product_id=product_id, unit_price=unit_price))


@admin_router.get("", response_model=Envelope[Paginated[ProductRead]])
async def list_all_products(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Envelope[Paginated[ProductRead]]:
    query = product_usecase.ProductQuery(page=page, limit=limit)
    with translate_domain_errors():
        result = await product_usecase.list_products(
            SqlAlchemyProductRepository(session),
            query,
            include_inactive=True,
        )
    return Envelope(data=_paginated(result))


@admin_router.post("", response_model=Envelope[ProductRead], status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    session: AsyncSession = Depends(get_session),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Envelope[ProductRead]:
    with translate_domain_errors():
        async with session.begin():
            product = await product_usecase.create_product(SqlAlchemyProductRepository(session), payload.to_fields())
    return Envelope(data=ProductRead.from_db(product))


@admin_router.patch("/{product_id}", response_model=Envelope[ProductRead])
async def update_product(
    payload: ProductUpdate,
    product_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Envelope[ProductRead]:
    with translate_domain_errors():
        async with session.begin():
            product = await product_usecase.update_product(
                SqlAlchemyProductRepository(session),
                product_id=product_id,
                changes=payload.to_changes(),
            )
    return Envelope(data=ProductRead.from_db(product))


@admin_router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    admin: AuthenticatedUser = Depends(require_admin),
) -> None:
    with translate_domain_errors():
        async with session.begin():
            await product_usecase.delete_product(SqlAlchemyProductRepository(session), product_id=product_id)
