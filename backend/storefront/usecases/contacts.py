from __future__ import annotations

from datetime import datetime
from typing import Sequence

from ..domain.errors import NotFoundError, ValidationError
from ..domain.repositories import ContactRepository
from ..models import Contact, ContactPriority, ContactStatus


async def submit_contact(
    contact_repo: ContactRepository,
    *,
    name: str,
    email: str,
    message: str,
    phone: str | None = None,
) -> Contact:
    contact = Contact(
        name=name.strip(),
        email=email.strip().lower(),
        phone=phone.strip() if phone else None,
        message=message.strip(),
        status=ContactStatus.UNREAD,
        priority=ContactPriority.MEDIUM,
    )
    return await contact_repo.add(contact)


async def list_contacts(
    contact_repo: ContactRepository,
    *,
    status: ContactStatus | None,
    priority: ContactPriority | None,
    page: int,
    limit: int,
) -> tuple[Sequence[Contact], int]:
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")
    return await contact_repo.search(status=status, priority=priority, offset=(page - 1) * limit, limit=limit)


async def get_contact(contact_repo: ContactRepository, *, contact_id: int) -> Contact:
    """Fetch an enquiry for an admin; opening an unread one marks it read."""
    contact = await contact_repo.get(contact_id)
    if contact is None:
        raise NotFoundError("Contact not found")
    if contact.status == ContactStatus.UNREAD:
        contact.status = ContactStatus.READ
        contact = await contact_repo.save(contact)
    return contact


async def update_contact(
    contact_repo: ContactRepository,
    *,
    contact_id: int,
    status: ContactStatus | None = None,
    priority: ContactPriority | None = None,
    admin_notes: str | None = None,
    replied_at: datetime | None = None,
) -> Contact:
    contact = await contact_repo.get(contact_id)
    if contact is None:
        raise NotFoundError("Contact not found")
    if status is not None:
        contact.status = status
    if priority is not None:
        contact.priority = priority
    if admin_notes is not None:
        contact.admin_notes = admin_notes.strip()
    if replied_at is not None:
        contact.replied_at = replied_at
    return await contact_repo.save(contact)


async def delete_contact(contact_repo: ContactRepository, *, contact_id: int) -> None:
    contact = await contact_repo.get(contact_id)
    if contact is None:
        raise NotFoundError("Contact not found")
    await contact_repo.delete(contact)
