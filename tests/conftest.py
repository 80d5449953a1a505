"""Shared fakes for the storage and intake tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from weddingbot.storage.drive.base import Permission, RemoteFile, RemoteFolder, RemoteStore
from weddingbot.storage.retry import RetryExecutor


class FakeRemoteStore(RemoteStore):
    """In-memory RemoteStore that records every call.

    ``upload_errors`` / ``permission_errors`` are raised, in order, before
    the corresponding call starts succeeding.
    """

    name = "fake"

    def __init__(self) -> None:
        self.folders: dict[str, tuple[str, str]] = {}  # id -> (name, parent id)
        self.created: list[str] = []
        self.uploads: list[dict] = []
        self.permissions: list[tuple[str, Permission]] = []
        self.exists_calls: list[str] = []
        self.upload_errors: list[Exception] = []
        self.permission_errors: list[Exception] = []
        self.closed = False
        self._counter = 0

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter}"

    def add_folder(self, name: str, parent_id: str = "root") -> str:
        folder_id = self._next_id("existing")
        self.folders[folder_id] = (name, parent_id)
        return folder_id

    async def create_folder(self, name: str, parent_id: str | None = None) -> str:
        folder_id = self._next_id("folder")
        self.folders[folder_id] = (name, parent_id or "root")
        self.created.append(name)
        return folder_id

    async def find_folders(self, name: str | None = None, parent_id: str | None = None) -> list[RemoteFolder]:
        return [
            RemoteFolder(id=fid, name=fname)
            for fid, (fname, fparent) in self.folders.items()
            if (name is None or fname == name) and (parent_id is None or fparent == parent_id)
        ]

    async def upload_file(self, parent_id: str, filename: str, mime_type: str, path: Path) -> RemoteFile:
        if self.upload_errors:
            raise self.upload_errors.pop(0)
        file_id = self._next_id("file")
        self.uploads.append(
            {
                "parent_id": parent_id,
                "filename": filename,
                "mime_type": mime_type,
                "path": Path(path),
                "data": Path(path).read_bytes(),
            }
        )
        return RemoteFile(id=file_id, name=filename, view_link=f"https://drive.test/{file_id}")

    async def set_permission(self, file_id: str, permission: Permission) -> None:
        if self.permission_errors:
            raise self.permission_errors.pop(0)
        self.permissions.append((file_id, permission))

    async def exists(self, file_id: str) -> bool:
        self.exists_calls.append(file_id)
        return file_id in self.folders

    async def close(self) -> None:
        self.closed = True


async def _no_sleep(delay: float) -> None:
    return None


@pytest.fixture
def fake_store():
    return FakeRemoteStore()


@pytest.fixture
def instant_retry():
    """RetryExecutor that never actually sleeps and adds no jitter."""
    return RetryExecutor(sleep=_no_sleep, rng=lambda a, b: 0.0)
