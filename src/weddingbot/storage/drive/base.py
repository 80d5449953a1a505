from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path


# ---------------------------------------------------------------------------
# Remote records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RemoteFolder:
    """A folder as listed by the remote store."""

    id: str
    name: str


@dataclass(frozen=True)
class RemoteFile:
    """Result of an upload.

    Attributes:
        id:        Provider file id.
        name:      Stored filename.
        view_link: Browser link, when the provider returns one.
    """

    id: str
    name: str
    view_link: str | None = None


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Permission:
    """Grant applied to a file or folder.

    ``principal`` is ``"anyone"`` for link sharing, otherwise an email address.
    """

    role: str  # "reader" | "writer"
    principal: str = "anyone"

    @property
    def is_public(self) -> bool:
        return self.principal == "anyone"


PUBLIC_READER = Permission(role="reader")


def owner_writer(email: str) -> Permission:
    return Permission(role="writer", principal=email)


# ---------------------------------------------------------------------------
# Capability
# ---------------------------------------------------------------------------


class RemoteStore(ABC):
    """The handful of remote-storage calls the bot depends on.

    Implementations raise ``weddingbot.errors.ProviderError`` subclasses;
    they never retry on their own.
    """

    name: str = "base"

    @abstractmethod
    async def create_folder(self, name: str, parent_id: str | None = None) -> str:
        """Create a folder (at the top level when ``parent_id`` is None); return its id."""
        ...

    @abstractmethod
    async def find_folders(self, name: str | None = None, parent_id: str | None = None) -> list[RemoteFolder]:
        """List non-trashed folders, optionally filtered by exact name and/or parent.

        ``parent_id="root"`` scopes the search to the store's top level.
        """
        ...

    @abstractmethod
    async def upload_file(self, parent_id: str, filename: str, mime_type: str, path: Path) -> RemoteFile:
        """Upload the bytes at ``path`` into ``parent_id``."""
        ...

    @abstractmethod
    async def set_permission(self, file_id: str, permission: Permission) -> None:
        """Grant ``permission`` on ``file_id``."""
        ...

    @abstractmethod
    async def exists(self, file_id: str) -> bool:
        """True if ``file_id`` still resolves; False when the provider reports it missing."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        return None
