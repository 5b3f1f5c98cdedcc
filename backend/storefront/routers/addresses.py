from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import AuthenticatedUser, get_current_user, get_session, translate_domain_errors
from ..infrastructure.repositories import SqlAlchemyUserAddressRepository
from ..schemas import AddressCreate, AddressRead, AddressUpdate, Envelope
from ..usecases import addresses as address_usecase

router = APIRouter(prefix="/users/me/addresses", tags=["users", "addresses"])


@router.get("", response_model=Envelope[list[AddressRead]])
async def list_addresses(
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[list[AddressRead]]:
    rows = await address_usecase.list_addresses(SqlAlchemyUserAddressRepository(session), user_uid=user.uid)
    return Envelope(data=[AddressRead.from_db(row) for row in rows])


@router.post("", response_model=Envelope[AddressRead], status_code=status.HTTP_201_CREATED)
async def create_address(
    payload: AddressCreate,
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[AddressRead]:
    draft = address_usecase.AddressDraft(**payload.model_dump())
    with translate_domain_errors():
        async with session.begin():
            row = await address_usecase.create_address(
                SqlAlchemyUserAddressRepository(session),
                user_uid=user.uid,
                draft=draft,
            )
    return Envelope(data=AddressRead.from_db(row))


@router.get("/{address_id}", response_model=Envelope[AddressRead])
async def get_address(
    address_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[AddressRead]:
    with translate_domain_errors():
        row = await address_usecase.get_address(
            SqlAlchemyUserAddressRepository(session),
            user_uid=user.uid,
            address_id=address_id,
        )
    return Envelope(data=AddressRead.from_db(row))


@router.patch("/{address_id}", response_model=Envelope[AddressRead])
async def update_address(
    payload: AddressUpdate,
    address_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[AddressRead]:
    with translate_domain_errors():
        async with session.begin():
            row = await address_usecase.update_address(
                SqlAlchemyUserAddressRepository(session),
                user_uid=user.uid,
                address_id=address_id,
                changes=payload.model_dump(exclude_unset=True),
            )
    return Envelope(data=AddressRead.from_db(row))


@router.delete("/{address_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_address(
    address_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> None:
    with translate_domain_errors():
        async with session.begin():
            await address_usecase.delete_address(
                SqlAlchemyUserAddressRepository(session),
                user_uid=user.uid,
                address_id=address_id,
            )
