from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class IdentityProvider(ABC):
    @abstractmethod
    def update_public_metadata(self, user_id: str, metadata: dict[str, Any]) -> None:
        """Merge metadata into the user's public metadata at the provider."""

    @abstractmethod
    def list_users(self, *, limit: int, offset: int) -> list[dict[str, Any]]:
        """Return one page of users, oldest first, in the provider's user object shape."""
