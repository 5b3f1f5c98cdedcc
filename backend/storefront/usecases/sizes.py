from dataclasses import dataclass
from typing import Mapping, Sequence

from ..domain.errors import NotFoundError, ValidationError
from ..domain.repositories import UserSizeRepository
from ..models import UserSize

DEFAULT_SIZE_TYPE = "general"
MEASUREMENT_FIELDS = ("chest", "length", "shoulders", "sleeves", "neck", "waist", "back_pleat_length")
REQUIRED_MEASUREMENTS = ("chest", "length")


@dataclass(frozen=True)
class SizeDraft:
    name: str
    measurements: Mapping[str, str]
    size_type: str = DEFAULT_SIZE_TYPE
    is_default: bool = False


def normalize_measurements(values: Mapping[str, str | None]) -> dict[str, str]:
    """Full measurement set; chest and length are required, the rest default to blank."""
    unknown = set(values) - set(MEASUREMENT_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown measurements: {', '.join(sorted(unknown))}")
    cleaned = {name: (values.get(name) or "").strip() for name in MEASUREMENT_FIELDS}
    missing = [name for name in REQUIRED_MEASUREMENTS if not cleaned[name]]
    if missing:
        raise ValidationError(f"Missing measurements: {', '.join(missing)}")
    return cleaned


def _name(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValidationError("name must not be empty")
    return value


async def list_sizes(
    repo: UserSizeRepository,
    *,
    user_uid: str,
    size_type: str | None = None,
) -> Sequence[UserSize]:
    return await repo.list_by_user(user_uid, size_type=size_type)


async def get_size(repo: UserSizeRepository, *, user_uid: str, size_id: int) -> UserSize:
    size = await repo.get(size_id)
    if size is None or size.user_uid != user_uid:
        raise NotFoundError("Size not found")
    return size


async def create_size(repo: UserSizeRepository, *, user_uid: str, draft: SizeDraft) -> UserSize:
    size_type = draft.size_type.strip() or DEFAULT_SIZE_TYPE
    size = UserSize(
        user_uid=user_uid,
        name=_name(draft.name),
        size_type=size_type,
        measurements=normalize_measurements(draft.measurements),
        is_default=draft.is_default,
    )
    if draft.is_default:
        await repo.clear_default(user_uid, size_type)
    return await repo.add(size)


async def update_size(
    repo: UserSizeRepository,
    *,
    user_uid: str,
    size_id: int,
    name: str | None = None,
    size_type: str | None = None,
    measurements: Mapping[str, str | None] | None = None,
    is_default: bool | None = None,
) -> UserSize:
    """Defaults are kept per size type: one default per user and type."""
    size = await get_size(repo, user_uid=user_uid, size_id=size_id)
    if name is not None:
        size.name = _name(name)
    if size_type is not None:
        size.size_type = size_type.strip() or DEFAULT_SIZE_TYPE
    if measurements is not None:
        size.measurements = normalize_measurements(measurements)
    if is_default is not None:
        size.is_default = is_default
    if size.is_default:
        await repo.clear_default(user_uid, size.size_type, keep_id=size.id)
    return await repo.save(size)


async def delete_size(repo: UserSizeRepository, *, user_uid: str, size_id: int) -> None:
    size = await get_size(repo, user_uid=user_uid, size_id=size_id)
    await repo.delete(size)
