"""User directory: profiles, emails and global role membership."""

import logging
import threading
import uuid
from copy import copy
from datetime import datetime, timezone

from escrow_engine.exceptions import EntityNotFoundError, ValidationError
from escrow_engine.models.escrow import Profile, Role

logger = logging.getLogger(__name__)

ASSIGNABLE_ROLES = (Role.BUYER, Role.SELLER, Role.ADMIN)


class UserDirectory:
    """Registered profiles keyed by id, with a case-insensitive email index.

    Authentication lives outside the engine; the directory only answers
    "who is this id" and "which roles does it hold".
    """

    def __init__(self) -> None:
        self._profiles: dict[str, Profile] = {}
        self._email_index: dict[str, str] = {}
        self._lock = threading.Lock()

    def register(
        self,
        display_name: str,
        email: str,
        roles: set[Role] | None = None,
        profile_id: str | None = None,
    ) -> Profile:
        """Register a new profile.

        Raises
        ------
        ValidationError
            If the name or email is missing or the email is already taken.
        """
        if not display_name or not display_name.strip():
            raise ValidationError("Display name is required", field="display_name")
        if not email or "@" not in email:
            raise ValidationError("Valid email required", field="email")

        key = email.strip().lower()
        profile = Profile(
            profile_id=profile_id or uuid.uuid4().hex,
            display_name=display_name.strip(),
            email=email.strip(),
            created_at=datetime.now(timezone.utc),
            roles=set(roles or ()),
        )
        self._check_roles(profile.roles)

        with self._lock:
            if key in self._email_index:
                raise ValidationError(f"Email {email} is already registered", field="email")
            if profile.profile_id in self._profiles:
                raise ValidationError(f"Profile {profile.profile_id} already exists", field="profile_id")
            self._profiles[profile.profile_id] = profile
            self._email_index[key] = profile.profile_id

        logger.debug("Registered profile %s (%s)", profile.profile_id, profile.email)
        return copy(profile)

    def get(self, profile_id: str) -> Profile:
        with self._lock:
            profile = self._profiles.get(profile_id)
            if profile is None:
                raise EntityNotFoundError(f"Profile {profile_id} not found")
            return self._snapshot(profile)

    def find(self, profile_id: str) -> Profile | None:
        try:
            return self.get(profile_id)
        except EntityNotFoundError:
            return None

    def find_by_email(self, email: str) -> Profile | None:
        with self._lock:
            profile_id = self._email_index.get(email.strip().lower())
            if profile_id is None:
                return None
            return self._snapshot(self._profiles[profile_id])

    def has_role(self, profile_id: str, role: Role) -> bool:
        with self._lock:
            profile = self._profiles.get(profile_id)
            return profile is not None and role in profile.roles

    def grant_role(self, profile_id: str, role: Role) -> Profile:
        """Add a role; granting a held role is a no-op."""
        self._check_roles({role})
        with self._lock:
            profile = self._require(profile_id)
            if role not in profile.roles:
                profile.roles.add(role)
                logger.info("Granted role %s to %s", role.value, profile_id)
            return self._snapshot(profile)

    def revoke_role(self, profile_id: str, role: Role) -> Profile:
        """Remove a role; revoking an absent role is a no-op."""
        with self._lock:
            profile = self._require(profile_id)
            if role in profile.roles:
                profile.roles.discard(role)
                logger.info("Revoked role %s from %s", role.value, profile_id)
            return self._snapshot(profile)

    def list_profiles(self) -> list[Profile]:
        """All profiles, newest first."""
        with self._lock:
            profiles = [self._snapshot(p) for p in self._profiles.values()]
        profiles.sort(key=lambda p: p.created_at, reverse=True)
        return profiles

    def _require(self, profile_id: str) -> Profile:
        profile = self._profiles.get(profile_id)
        if profile is None:
            raise EntityNotFoundError(f"Profile {profile_id} not found")
        return profile

    @staticmethod
    def _snapshot(profile: Profile) -> Profile:
        snapshot = copy(profile)
        snapshot.roles = set(profile.roles)
        return snapshot

    @staticmethod
    def _check_roles(roles: set[Role]) -> None:
        for role in roles:
            if role not in ASSIGNABLE_ROLES:
                raise ValidationError(f"Role {role} cannot be assigned", field="roles")

    def __len__(self) -> int:
        return len(self._profiles)
