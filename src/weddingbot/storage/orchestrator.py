"""Persist accepted media locally and/or on the remote store.

Flow per file:
    1. Build a sortable filename from capture time + sanitized sender name
    2. Write ``<media_dir>/<bucket>/<filename>`` when saving locally
    3. Resolve the remote bucket folder, upload (from the local copy, or from
       a temp file that is always removed afterwards)
    4. Best-effort public link + owner sharing
    5. Optionally delete the local copy once the upload succeeded
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from loguru import logger

from weddingbot.config import StorageConfig
from weddingbot.constants import (
    BUCKETS,
    FALLBACK_MIME_TYPE,
    FILENAME_PLACEHOLDER,
    FILENAME_TIME_FORMAT,
    ROLE_QR,
    UPLOAD_MIME_TYPES,
)
from weddingbot.errors import ConfigurationError, LocalIOFailure
from weddingbot.handler.messages import MediaPayload, Sender
from weddingbot.intake.validator import Accepted
from weddingbot.storage.drive.base import RemoteFile, RemoteStore
from weddingbot.storage.folders import FolderResolver
from weddingbot.storage.permissions import PermissionGranter
from weddingbot.storage.retry import UPLOAD_POLICY, RetryExecutor

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]")


@dataclass(frozen=True)
class StoredLocation:
    filename: str
    bucket: str
    local_path: Path | None = None  # None when not kept locally
    remote: RemoteFile | None = None


def sanitize_name(name: str) -> str:
    return _UNSAFE_CHARS.sub(FILENAME_PLACEHOLDER, name)


def build_filename(captured_at: datetime, sender: Sender, extension: str) -> str:
    """``2026-06-20_18-42-07_Ana-Maria.jpeg``

    Two guests with the same sanitized name sending in the same second get
    the same filename; the later local write replaces the earlier one.
    """
    return f"{captured_at.strftime(FILENAME_TIME_FORMAT)}_{sanitize_name(sender.label)}.{extension}"


def upload_mime_type(filename: str) -> str:
    return UPLOAD_MIME_TYPES.get(Path(filename).suffix.lower(), FALLBACK_MIME_TYPE)


class StorageOrchestrator:
    """Owns every write of guest media, local and remote."""

    def __init__(
        self,
        config: StorageConfig,
        store: RemoteStore | None = None,
        resolver: FolderResolver | None = None,
        retry: RetryExecutor | None = None,
        permissions: PermissionGranter | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._resolver = resolver
        self._retry = retry or RetryExecutor()
        self._permissions = permissions

        if config.google_drive_enabled and (store is None or resolver is None):
            raise ConfigurationError("Remote storage is enabled but no remote store was provided")

    @property
    def remote_enabled(self) -> bool:
        return self._config.google_drive_enabled and self._store is not None

    def ensure_local_folders(self) -> None:
        """Create ``media/photos`` and ``media/videos`` when saving locally."""
        if not self._config.save_locally:
            return
        try:
            for bucket in BUCKETS:
                (self._config.media_dir / bucket).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise LocalIOFailure(f"Cannot create media folders under {self._config.media_dir}: {exc}") from exc

    async def store(
        self,
        media: MediaPayload,
        sender: Sender,
        accepted: Accepted,
        captured_at: datetime,
    ) -> StoredLocation:
        """Persist one accepted file. Raises on local IO or upload failure."""
        filename = build_filename(captured_at, sender, accepted.extension)
        local_path: Path | None = None
        remote: RemoteFile | None = None

        if self._config.save_locally:
            local_path = self._config.media_dir / accepted.bucket / filename
            self._write(local_path, media.data)
            logger.info("💾 Saved locally: {}", local_path)

        if self.remote_enabled:
            folder_id = await self._resolver.resolve(accepted.bucket)
            if local_path is not None:
                remote = await self._upload(folder_id, filename, local_path)
            else:
                remote = await self._upload_via_temp(folder_id, filename, media.data)
            logger.info("☁️ Uploaded to Drive: {} ({})", filename, remote.view_link or remote.id)

            if local_path is not None and self._config.delete_after_upload:
                try:
                    self._remove(local_path)
                except LocalIOFailure as exc:
                    # the upload already succeeded; the local copy just stays
                    logger.warning("⚠️ Could not delete local file after upload: {}", exc)
                else:
                    logger.info("🗑️ Deleted local file after upload: {}", filename)
                    local_path = None

        return StoredLocation(
            filename=filename,
            bucket=accepted.bucket,
            local_path=local_path,
            remote=remote,
        )

    async def upload_qr(self, path: Path) -> RemoteFile:
        """Upload an already rendered QR image into the top-level QR folder."""
        if not self.remote_enabled:
            raise ConfigurationError("QR upload needs Google Drive enabled")
        if not path.is_file():
            raise LocalIOFailure(f"QR image not found: {path}")

        folder_id = await self._resolver.resolve(ROLE_QR)
        remote = await self._retry.execute(
            lambda: self._store.upload_file(folder_id, path.name, upload_mime_type(path.name), path),
            UPLOAD_POLICY,
            label=f"upload {path.name}",
        )
        if self._permissions is not None:
            await self._permissions.make_public(remote.id)
        logger.info("☁️ QR uploaded to Drive: {} ({})", remote.name, remote.view_link or remote.id)
        return remote

    async def close(self) -> None:
        if self._store is not None:
            await self._store.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _upload(self, folder_id: str, filename: str, path: Path) -> RemoteFile:
        remote = await self._retry.execute(
            lambda: self._store.upload_file(folder_id, filename, upload_mime_type(filename), path),
            UPLOAD_POLICY,
            label=f"upload {filename}",
        )
        if self._permissions is not None:
            await self._permissions.make_public(remote.id)
            await self._permissions.share_with_owner(remote.id)
        return remote

    async def _upload_via_temp(self, folder_id: str, filename: str, data: bytes) -> RemoteFile:
        # unique directory per upload: concurrent identical filenames must not collide
        temp_path = self._config.temp_dir / uuid.uuid4().hex / filename
        self._write(temp_path, data)
        try:
            return await self._upload(folder_id, filename, temp_path)
        finally:
            try:
                temp_path.unlink(missing_ok=True)
                temp_path.parent.rmdir()
            except OSError as exc:
                logger.warning("Could not clean up temp file {}: {}", temp_path, exc)

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise LocalIOFailure(f"Cannot write {path}: {exc}") from exc

    @staticmethod
    def _remove(path: Path) -> None:
        try:
            path.unlink()
        except OSError as exc:
            raise LocalIOFailure(f"Cannot remove {path}: {exc}") from exc
