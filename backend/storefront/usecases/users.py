from typing import Sequence

from ..domain.errors import NotFoundError, ValidationError
from ..domain.repositories import UserRepository
from ..models import User, UserRole


async def list_users(user_repo: UserRepository, *, role: UserRole | None = None) -> Sequence[User]:
    return await user_repo.list_all(role=role)


async def update_role(user_repo: UserRepository, *, user_id: int, role: UserRole, acting_uid: str) -> User:
    user = await user_repo.get(user_id)
    if user is None:
        raise NotFoundError("User not found")
    if user.uid == acting_uid and role != UserRole.ADMIN:
        raise ValidationError("admins cannot remove their own admin role")
    user.role = role
    return await user_repo.save(user)


async def get_profile(user_repo: UserRepository, *, uid: str) -> User:
    user = await user_repo.get_by_uid(uid)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def update_profile(
    user_repo: UserRepository,
    *,
    uid: str,
    name: str | None = None,
    phone: str | None = None,
) -> User:
    user = await get_profile(user_repo, uid=uid)
    if name is not None:
        if not name.strip():
            raise ValidationError("name must not be empty")
        user.name = name.strip()
    if phone is not None:
        user.phone = phone.strip() or None
    return await user_repo.save(user)
