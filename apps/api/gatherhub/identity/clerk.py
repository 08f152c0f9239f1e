from __future__ import annotations

from typing import Any

import httpx
import structlog

from gatherhub.identity.base import IdentityProvider
from gatherhub.services.error_codes import ErrorCode
from gatherhub.services.exceptions import ExternalServiceError

logger = structlog.get_logger()


class ClerkIdentityProvider(IdentityProvider):
    def __init__(self, api_url: str, secret_key: str | None, timeout: float = 10.0) -> None:
        self._api_url = api_url.rstrip("/")
        self._secret_key = secret_key
        self._timeout = timeout

    def _require_secret_key(self) -> None:
        if not self._secret_key:
            raise ExternalServiceError(
                ErrorCode.IDENTITY_PROVIDER_ERROR.value,
                "identity provider secret key is not configured",
            )

    def update_public_metadata(self, user_id: str, metadata: dict[str, Any]) -> None:
        self._require_secret_key()
        try:
            resp = httpx.patch(
                f"{self._api_url}/users/{user_id}/metadata",
                json={"public_metadata": metadata},
                headers={"Authorization": f"Bearer {self._secret_key}"},
                timeout=self._timeout,
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("identity_metadata_update_failed", user_id=user_id, error=str(exc))
            raise ExternalServiceError(
                ErrorCode.IDENTITY_PROVIDER_ERROR.value,
                "failed to update user metadata",
            ) from exc

        logger.info("identity_metadata_updated", user_id=user_id, keys=sorted(metadata))

    def list_users(self, *, limit: int, offset: int) -> list[dict[str, Any]]:
        self._require_secret_key()
        try:
            resp = httpx.get(
                f"{self._api_url}/users",
                params={"limit": limit, "offset": offset, "order_by": "+created_at"},
                headers={"Authorization": f"Bearer {self._secret_key}"},
                timeout=self._timeout,
            )
            resp.raise_for_status()
            users = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("identity_user_list_failed", offset=offset, error=str(exc))
            raise ExternalServiceError(
                ErrorCode.IDENTITY_PROVIDER_ERROR.value,
                "failed to list users",
            ) from exc

        if not isinstance(users, list):
            raise ExternalServiceError(
                ErrorCode.IDENTITY_PROVIDER_ERROR.value,
                "unexpected user list response",
            )
        return users


class LocalIdentityProvider(IdentityProvider):
    """Keeps role changes in the local mirror only; for development."""

    def update_public_metadata(self, user_id: str, metadata: dict[str, Any]) -> None:
        logger.info("identity_metadata_update_skipped", user_id=user_id, metadata=metadata)

    def list_users(self, *, limit: int, offset: int) -> list[dict[str, Any]]:
        return []
