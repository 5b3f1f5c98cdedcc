from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import AuthenticatedUser, get_session, require_admin, translate_domain_errors
from ..infrastructure.repositories import SqlAlchemyContactRepository
from ..models import ContactPriority, ContactStatus
from ..schemas import ContactCreate, ContactRead, ContactUpdate, Envelope, Paginated
from ..usecases import contacts as contact_usecase

router = APIRouter(prefix="/contacts", tags=["contacts"])
admin_router = APIRouter(prefix="/admin/contacts", tags=["admin", "contacts"])


@router.post("", response_model=Envelope[ContactRead], status_code=status.HTTP_201_CREATED)
async def submit_contact(
    payload: ContactCreate,
    session: AsyncSession = Depends(get_session),
) -> Envelope[ContactRead]:
    async with session.begin():
        contact = await contact_usecase.submit_contact(
            SqlAlchemyContactRepository(session),
            name=payload.name,
            email=payload.email,
            phone=payload.phone,
            message=payload.message,
        )
    return Envelope(data=ContactRead.from_db(contact))


@admin_router.get("", response_model=Envelope[Paginated[ContactRead]])
async def list_contacts(
    status_filter: Optional[ContactStatus] = Query(default=None, alias="status"),
    priority: Optional[ContactPriority] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Envelope[Paginated[ContactRead]]:
    with translate_domain_errors():
        items, total = await contact_usecase.list_contacts(
            SqlAlchemyContactRepository(session),
            status=status_filter,
            priority=priority,
            page=page,
            limit=limit,
        )
    return Envelope(
        data=Paginated[ContactRead](
            items=[ContactRead.from_db(contact) for contact in items],
            total=total,
            page=page,
            limit=limit,
            pages=(total + limit - 1) // limit,
        )
    )


@admin_router.get("/{contact_id}", response_model=Envelope[ContactRead])
async def get_contact(
    contact_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Envelope[ContactRead]:
    with translate_domain_errors():
        async with session.begin():
            contact = await contact_usecase.get_contact(SqlAlchemyContactRepository(session), contact_id=contact_id)
    return Envelope(data=ContactRead.from_db(contact))


@admin_router.patch("/{contact_id}", response_model=Envelope[ContactRead])
async def update_contact(
    payload: ContactUpdate,
    contact_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Envelope[ContactRead]:
    with translate_domain_errors():
        async with session.begin():
            contact = await contact_usecase.update_contact(
                SqlAlchemyContactRepository(session),
                contact_id=contact_id,
                status=payload.status,
                priority=payload.priority,
                admin_notes=payload.admin_notes,
                replied_at=payload.replied_at,
            )
    return Envelope(data=ContactRead.from_db(contact))


@admin_router.delete("/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_contact(
    contact_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    admin: AuthenticatedUser = Depends(require_admin),
) -> None:
    with translate_domain_errors():
        async with session.begin():
            await contact_usecase.delete_contact(SqlAlchemyContactRepository(session), contact_id=contact_id)
