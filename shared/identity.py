"""Authenticated caller as resolved by the auth collaborator."""

from dataclasses import dataclass
from uuid import UUID

from database.models import UserRole


@dataclass(frozen=True)
class Identity:
    user_id: UUID
    role: UserRole = UserRole.CUSTOMER
    provider_id: UUID | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def acts_for_provider(self, provider_id: UUID) -> bool:
        """True for admins and for the provider itself."""
        return self.is_admin or (self.provider_id is not None and self.provider_id == provider_id)
