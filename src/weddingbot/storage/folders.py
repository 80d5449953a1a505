"""Idempotent resolution of the remote folder tree.

Layout on the remote store::

    <root: "Wedding Photos & Videos - 2026">
        Photos/
        Videos/
    qr-codes/            (top level, independent of the root)

Resolution order for every role: cached id (only trusted after a liveness
check) -> search by deterministic name -> create. Creating only when the
search comes back empty keeps restarts from growing duplicate trees.
Resolved ids are written back to a JSON file so the next process can skip
the search.

``FolderResolver.resolve`` holds an ``asyncio.Lock``: concurrent first-use
calls under a cold cache wait for the first one instead of racing to create
the same folder twice.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger

from weddingbot.constants import (
    QR_FOLDER_NAME,
    ROLE_QR,
    ROLE_ROOT,
    SUBFOLDER_NAMES,
)

ROLES = (ROLE_ROOT, *SUBFOLDER_NAMES, ROLE_QR)

# Key names written by earlier releases of the cache file
_LEGACY_KEYS = {
    "mainFolderId": ROLE_ROOT,
    "photosFolderId": "photos",
    "videosFolderId": "videos",
    "qrFolderId": ROLE_QR,
}


class FolderCache:
    """Role -> remote folder id, plus which ids were confirmed this process."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._ids: dict[str, str] = {}
        self._verified: set[str] = set()

    def get(self, role: str) -> str | None:
        return self._ids.get(role)

    def is_verified(self, role: str) -> bool:
        return role in self._verified and role in self._ids

    def set(self, role: str, folder_id: str, verified: bool = True) -> None:
        self._ids[role] = folder_id
        if verified:
            self._verified.add(role)
        else:
            self._verified.discard(role)

    def discard(self, role: str) -> None:
        self._ids.pop(role, None)
        self._verified.discard(role)

    def as_dict(self) -> dict[str, str]:
        return dict(self._ids)

    # ------------------------------------------------------------------
    # Durable copy
    # ------------------------------------------------------------------

    def load(self) -> bool:
        """Read ids from disk as *unverified* entries. Returns True if any were found."""
        if self._path is None or not self._path.is_file():
            logger.debug("No cached folder ids found, will search remote folders")
            return False

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable folder cache {}: {}", self._path, exc)
            return False

        folders = data.get("folders", {}) if isinstance(data, dict) else None
        if not isinstance(folders, dict):
            logger.warning("Ignoring folder cache {} with unexpected layout", self._path)
            return False

        folders = dict(folders)
        for legacy_key, role in _LEGACY_KEYS.items():
            if data.get(legacy_key) and role not in folders:
                folders[role] = data[legacy_key]

        for role, folder_id in folders.items():
            if role in ROLES and isinstance(folder_id, str) and folder_id:
                self.set(role, folder_id, verified=False)

        logger.info("📁 Loaded {} cached folder ids from {}", len(self._ids), self._path)
        return bool(self._ids)

    def save(self) -> None:
        """Write the current ids to disk. Failures are logged, never raised."""
        if self._path is None:
            return

        payload = {
            "folders": self._ids,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.error("Error saving folder ids to {}: {}", self._path, exc)
            return
        logger.debug("💾 Saved folder ids to {}", self._path)


class FolderResolver:
    """Turns a folder role into a remote folder id, creating folders at most once."""

    def __init__(
        self,
        store,
        cache: FolderCache,
        permissions,
        root_folder_template: str,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """
        Args:
            store:       RemoteStore to query and create folders on.
            cache:       Session-owned FolderCache (may be pre-loaded from disk).
            permissions: PermissionGranter used for best-effort sharing of new folders.
            root_folder_template: Root folder name, ``{year}`` is substituted.
            clock:       Source of "now" for the year in the root folder name.
        """
        self._store = store
        self._cache = cache
        self._permissions = permissions
        self._root_template = root_folder_template
        self._clock = clock
        self._lock = asyncio.Lock()

    @property
    def root_folder_name(self) -> str:
        return self._root_template.format(year=self._clock().year)

    async def resolve(self, role: str) -> str:
        """Return the folder id for ``role`` (root, photos, videos or qr)."""
        if role not in ROLES:
            raise ValueError(f"Unknown folder role: {role!r}")

        async with self._lock:
            before = self._cache.as_dict()
            if role == ROLE_QR:
                folder_id = await self._resolve_qr()
            elif role == ROLE_ROOT:
                folder_id = await self._resolve_root()
            else:
                folder_id = await self._resolve_subfolder(role)

            if self._cache.as_dict() != before:
                self._cache.save()
        return folder_id

    # ------------------------------------------------------------------
    # Per-role resolution
    # ------------------------------------------------------------------

    async def _cached(self, role: str) -> str | None:
        """Cached id for ``role`` if it passes (or already passed) the liveness check."""
        folder_id = self._cache.get(role)
        if folder_id is None:
            return None
        if self._cache.is_verified(role):
            return folder_id

        if await self._store.exists(folder_id):
            self._cache.set(role, folder_id, verified=True)
            logger.info("📁 Using cached {} folder {}", role, folder_id)
            return folder_id

        logger.warning("⚠️ Cached {} folder {} no longer exists", role, folder_id)
        self._cache.discard(role)
        return None

    async def _resolve_root(self) -> str:
        folder_id = await self._cached(ROLE_ROOT)
        if folder_id is not None:
            return folder_id

        # Subfolder ids cached under a vanished root are meaningless now
        for role in SUBFOLDER_NAMES:
            self._cache.discard(role)

        name = self.root_folder_name
        matches = await self._store.find_folders(name=name)
        if matches:
            folder_id = matches[0].id
            logger.info("📁 Found existing folder: {}", name)
        else:
            folder_id = await self._store.create_folder(name)
            logger.info("📁 Created new folder: {}", name)

        await self._permissions.make_public(folder_id)
        self._cache.set(ROLE_ROOT, folder_id)
        return folder_id

    async def _resolve_subfolder(self, role: str) -> str:
        root_id = await self._resolve_root()

        folder_id = await self._cached(role)
        if folder_id is not None:
            return folder_id

        name = SUBFOLDER_NAMES[role]
        children = await self._store.find_folders(parent_id=root_id)
        match = next((c for c in children if c.name.lower() == name.lower()), None)
        if match is not None:
            folder_id = match.id
        else:
            folder_id = await self._store.create_folder(name, root_id)
            logger.info("📁 Created {} subfolder", name)

        self._cache.set(role, folder_id)
        return folder_id

    async def _resolve_qr(self) -> str:
        folder_id = await self._cached(ROLE_QR)
        if folder_id is not None:
            return folder_id

        matches = await self._store.find_folders(name=QR_FOLDER_NAME, parent_id="root")
        if matches:
            folder_id = matches[0].id
            logger.info("📁 Found existing {} folder in root", QR_FOLDER_NAME)
        else:
            folder_id = await self._store.create_folder(QR_FOLDER_NAME)
            await self._permissions.make_public(folder_id)
            await self._permissions.share_with_owner(folder_id)
            logger.info("📁 Created {} folder in root", QR_FOLDER_NAME)

        self._cache.set(ROLE_QR, folder_id)
        return folder_id
