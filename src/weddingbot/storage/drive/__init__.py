from .base import (
    PUBLIC_READER,
    Permission,
    RemoteFile,
    RemoteFolder,
    RemoteStore,
    owner_writer,
)
from .google_drive import GoogleDriveStore

__all__ = [
    "GoogleDriveStore",
    "Permission",
    "PUBLIC_READER",
    "RemoteFile",
    "RemoteFolder",
    "RemoteStore",
    "owner_writer",
]
