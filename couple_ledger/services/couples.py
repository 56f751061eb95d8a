"""
User Profiles and Couples

Every record belongs to a group. Two linked users share the couple's
group; a user with no partner works in a personal group of their own.
Couple membership is fixed once created.
"""

from typing import Any, Optional

from couple_ledger.models.finance import AuthUser, Couple, UserProfile
from couple_ledger.services.storage import (
    CollectionStorageInterface,
    DuplicateError,
    NotFoundError,
)


def personal_group_id(uid: str) -> str:
    return f"personal_{uid}"


def resolve_group_id(user: AuthUser) -> str:
    """The group a user's records live in."""
    return user.group_id or personal_group_id(user.uid)


class UserProfileService:
    """User documents, keyed by the auth UID."""

    def __init__(self, storage: CollectionStorageInterface):
        self._storage = storage

    async def get(self, uid: str) -> Optional[UserProfile]:
        doc = await self._storage.get(uid)
        if doc is None:
            return None
        return UserProfile.model_validate({**doc, "uid": uid})

    async def create(
        self,
        uid: str,
        email: str = "",
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> UserProfile:
        """Create the profile document the first time a user signs in."""
        profile = UserProfile(
            uid=uid,
            email=email,
            display_name=display_name,
            photo_url=photo_url,
        )
        await self._storage.set(
            uid,
            profile.model_dump(mode="json", exclude={"created_at", "updated_at"}),
        )
        return profile

    async def update(self, uid: str, **fields: Any) -> None:
        """
        Raises:
            NotFoundError: If the user has no profile
        """
        await self._storage.update(uid, fields)


class CoupleService:
    """Creates couples and finds the couple a user belongs to."""

    def __init__(
        self,
        couple_storage: CollectionStorageInterface,
        profiles: UserProfileService,
    ):
        self._storage = couple_storage
        self._profiles = profiles

    async def create_couple_and_link_users(self, uid1: str, uid2: str) -> str:
        """
        Create a couple and point both users' profiles at its group.

        Returns:
            The couple ID, which is also the shared group ID

        Raises:
            ValueError: If both IDs are the same user
            NotFoundError: If either user has no profile
            DuplicateError: If either user is already in a couple
        """
        couple = Couple(members=[uid1, uid2])

        for uid in couple.members:
            if await self._profiles.get(uid) is None:
                raise NotFoundError(f"User not found: {uid}")
            if await self.find_couple_by_member_id(uid) is not None:
                raise DuplicateError(f"User is already part of a couple: {uid}")

        couple_id = await self._storage.add(
            couple.model_dump(mode="json", exclude={"id", "created_at"})
        )
        for uid in couple.members:
            await self._profiles.update(uid, group_id=couple_id)

        return couple_id

    async def get_couple_by_id(self, couple_id: str) -> Optional[Couple]:
        doc = await self._storage.get(couple_id)
        return Couple.model_validate(doc) if doc else None

    async def find_couple_by_member_id(self, uid: str) -> Optional[Couple]:
        docs = await self._storage.list_where_contains("members", uid)
        return Couple.model_validate(docs[0]) if docs else None
