"""Best-effort sharing of uploaded files and folders.

Both grants run through the retry executor; any failure is logged and
swallowed so a missing permission never fails a store operation.
"""

from __future__ import annotations

from loguru import logger

from weddingbot.errors import ProviderError, RetriesExhaustedError
from weddingbot.storage.drive.base import PUBLIC_READER, RemoteStore, owner_writer
from weddingbot.storage.retry import (
    OWNER_SHARE_POLICY,
    PUBLIC_PERMISSION_POLICY,
    RetryExecutor,
)


class PermissionGranter:
    def __init__(
        self,
        store: RemoteStore,
        retry: RetryExecutor,
        owner_email: str | None = None,
        skip_owner_sharing: bool = False,
    ) -> None:
        self._store = store
        self._retry = retry
        self._owner_email = owner_email
        self._skip_owner_sharing = skip_owner_sharing

    async def make_public(self, file_id: str) -> bool:
        """Anyone with the link can view ``file_id``."""
        try:
            await self._retry.execute(
                lambda: self._store.set_permission(file_id, PUBLIC_READER),
                PUBLIC_PERMISSION_POLICY,
                label=f"make-public {file_id}",
            )
        except ProviderError as exc:
            logger.warning("Could not make {} public: {}", file_id, exc)
            return False
        logger.debug("📖 {} is publicly viewable", file_id)
        return True

    async def share_with_owner(self, file_id: str) -> bool:
        """Give the owner writer access so they can manage the file."""
        if not self._owner_email:
            logger.debug("No owner email configured - {} not shared with owner", file_id)
            return False
        if self._skip_owner_sharing:
            logger.debug("Skipping owner sharing for {} (SKIP_OWNER_SHARING=true)", file_id)
            return False

        try:
            await self._retry.execute(
                lambda: self._store.set_permission(file_id, owner_writer(self._owner_email)),
                OWNER_SHARE_POLICY,
                label=f"share-owner {file_id}",
            )
        except RetriesExhaustedError:
            logger.warning(
                "Sharing quota exceeded - {} uploaded but not shared with {}; "
                "it stays reachable through its public link",
                file_id,
                self._owner_email,
            )
            return False
        except ProviderError as exc:
            logger.warning("Could not share {} with {}: {}", file_id, self._owner_email, exc)
            return False
        logger.debug("📝 Shared {} with {} as writer", file_id, self._owner_email)
        return True
