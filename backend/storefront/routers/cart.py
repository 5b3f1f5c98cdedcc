from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import AuthenticatedUser, get_current_user, get_session, translate_domain_errors
from ..infrastructure.repositories import (
    SqlAlchemyAvailableDateRepository,
    SqlAlchemyCartRepository,
    SqlAlchemyProductRepository,
    SqlAlchemyUserAddressRepository,
)
from ..schemas import CartItemCreate, CartRead, CartUpdate, Envelope
from ..usecases import addresses as address_usecase
from ..usecases import cart as cart_usecase

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=Envelope[CartRead])
async def get_cart(
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[CartRead]:
    async with session.begin():
        cart = await cart_usecase.get_cart(SqlAlchemyCartRepository(session), user_uid=user.uid)
    return Envelope(data=CartRead.from_db(cart))


@router.post("/items", response_model=Envelope[CartRead], status_code=status.HTTP_201_CREATED)
async def add_cart_item(
    payload: CartItemCreate,
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[CartRead]:
    draft = cart_usecase.CartItemDraft(
        product_id=payload.product_id,
        quantity=payload.quantity,
        size=payload.size,
        cloth_provided=payload.cloth_provided,
        selected_dates=list(payload.selected_dates),
        normal_slots_total=payload.normal_slots_total,
        emergency_slots_total=payload.emergency_slots_total,
        material=payload.material,
        special_notes=payload.special_notes,
    )
    with translate_domain_errors():
        async with session.begin():
            cart = await cart_usecase.add_item(
                SqlAlchemyCartRepository(session),
                SqlAlchemyProductRepository(session),
                SqlAlchemyAvailableDateRepository(session),
                user_uid=user.uid,
                draft=draft,
                strict_materials=get_settings().strict_materials,
            )
    return Envelope(data=CartRead.from_db(cart))


@router.patch("", response_model=Envelope[CartRead])
async def update_cart(
    payload: CartUpdate,
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[CartRead]:
    with translate_domain_errors():
        async with session.begin():
            delivery_address = payload.delivery_address
            if payload.address_id is not None:
                address = await address_usecase.get_address(
                    SqlAlchemyUserAddressRepository(session),
                    user_uid=user.uid,
                    address_id=payload.address_id,
                )
                delivery_address = address.one_line
            cart = await cart_usecase.update_cart(
                SqlAlchemyCartRepository(session),
                user_uid=user.uid,
                delivery_address=delivery_address,
                item_id=payload.item_id,
                quantity=payload.quantity,
            )
    return Envelope(data=CartRead.from_db(cart))


@router.delete("/items/{item_id}", response_model=Envelope[CartRead])
async def remove_cart_item(
    item_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[CartRead]:
    with translate_domain_errors():
        async with session.begin():
            cart = await cart_usecase.remove_item(SqlAlchemyCartRepository(session), user_uid=user.uid, item_id=item_id)
    return Envelope(data=CartRead.from_db(cart))


@router.delete("", response_model=Envelope[CartRead])
async def clear_cart(
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[CartRead]:
    async with session.begin():
        cart = await cart_usecase.clear_cart(SqlAlchemyCartRepository(session), user_uid=user.uid)
    return Envelope(data=CartRead.from_db(cart))
