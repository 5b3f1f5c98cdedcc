from dataclasses import dataclass
from typing import Any, Sequence

from ..domain.errors import NotFoundError, ValidationError
from ..domain.repositories import UserAddressRepository
from ..models import UserAddress

REQUIRED_FIELDS = ("label", "full_name", "street", "city", "state", "zip_code")
EDITABLE_FIELDS = REQUIRED_FIELDS + ("country", "phone_number", "is_default")


@dataclass(frozen=True)
class AddressDraft:
    label: str
    full_name: str
    street: str
    city: str
    state: str
    zip_code: str
    country: str = "USA"
    phone_number: str | None = None
    is_default: bool = False


def _clean(field: str, value: Any) -> Any:
    if not isinstance(value, str):
        return value
    value = value.strip()
    if field in REQUIRED_FIELDS and not value:
        raise ValidationError(f"{field} must not be empty")
    if field == "country":
        return value or "USA"
    if field == "phone_number":
        return value or None
    return value


async def list_addresses(repo: UserAddressRepository, *, user_uid: str) -> Sequence[UserAddress]:
    """Default address first, then newest."""
    return await repo.list_by_user(user_uid)


async def get_address(repo: UserAddressRepository, *, user_uid: str, address_id: int) -> UserAddress:
    address = await repo.get(address_id)
    if address is None or address.user_uid != user_uid:
        raise NotFoundError("Address not found")
    return address


async def create_address(repo: UserAddressRepository, *, user_uid: str, draft: AddressDraft) -> UserAddress:
    fields = {name: _clean(name, getattr(draft, name)) for name in EDITABLE_FIELDS}
    if draft.is_default:
        await repo.clear_default(user_uid)
    return await repo.add(UserAddress(user_uid=user_uid, **fields))


async def update_address(
    repo: UserAddressRepository,
    *,
    user_uid: str,
    address_id: int,
    changes: dict[str, Any],
) -> UserAddress:
    """Change only the given fields. Making an address the default clears the previous one."""
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown address fields: {', '.join(sorted(unknown))}")
    address = await get_address(repo, user_uid=user_uid, address_id=address_id)
    # phone_number may be cleared with null; other fields ignore it
    cleaned = {
        name: _clean(name, value)
        for name, value in changes.items()
        if value is not None or name == "phone_number"
    }
    if cleaned.get("is_default"):
        await repo.clear_default(user_uid, keep_id=address.id)
    for name, value in cleaned.items():
        setattr(address, name, value)
    return await repo.save(address)


async def delete_address(repo: UserAddressRepository, *, user_uid: str, address_id: int) -> None:
    address = await get_address(repo, user_uid=user_uid, address_id=address_id)
    await repo.delete(address)
