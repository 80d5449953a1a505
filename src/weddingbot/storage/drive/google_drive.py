"""Google Drive v3 REST client built on httpx.

Only the calls the bot needs: folder create/search, multipart upload,
permission grants and a liveness lookup. Requests are authorized with
service-account credentials from google-auth, refreshed shortly before they
expire and once more when Drive answers 401. A static access token can be
configured instead; it is sent as is and never refreshed.

Drive error bodies look like::

    {"error": {"code": 403, "message": "...",
               "errors": [{"reason": "userRateLimitExceeded", ...}]}}

and are mapped onto ``TransientProviderError`` (quota reasons) or
``FatalProviderError`` (everything else).
"""

from __future__ import annotations

import asyncio
import json
import uuid
from pathlib import Path
from typing import Any

import google.auth.exceptions
import httpx
from google.auth.credentials import Credentials
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from loguru import logger

from weddingbot.config import DriveConfig
from weddingbot.constants import (
    DRIVE_FOLDER_MIME,
    DRIVE_SCOPES,
    DRIVE_TIMEOUT,
    RATE_LIMIT_REASONS,
    SHARING_RATE_LIMIT_REASONS,
)
from weddingbot.errors import (
    ConfigurationError,
    FatalProviderError,
    LocalIOFailure,
    ProviderError,
    TransientProviderError,
)

from .base import Permission, RemoteFile, RemoteFolder, RemoteStore

_QUOTA_REASONS = RATE_LIMIT_REASONS | SHARING_RATE_LIMIT_REASONS


def _quote(value: str) -> str:
    """Escape a literal for the Drive query language."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def error_from_response(response: httpx.Response) -> ProviderError:
    """Build the matching ProviderError for a non-2xx Drive response."""
    try:
        payload = response.json().get("error", {})
    except (ValueError, AttributeError):
        payload = {}
    if not isinstance(payload, dict):
        payload = {"message": str(payload)}

    reasons = [
        e.get("reason") for e in payload.get("errors", []) if isinstance(e, dict) and e.get("reason")
    ]
    message = payload.get("message") or response.reason_phrase or "Drive request failed"
    if any(reason in _QUOTA_REASONS for reason in reasons):
        return TransientProviderError(message, status=response.status_code, reasons=reasons)
    return FatalProviderError(message, status=response.status_code, reasons=reasons)


def load_credentials(path: Path) -> Credentials:
    """Read a service-account key file scoped to the files the bot creates."""
    try:
        return service_account.Credentials.from_service_account_file(str(path), scopes=list(DRIVE_SCOPES))
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Cannot load Google credentials from {path}: {exc}") from exc


class GoogleDriveStore(RemoteStore):
    """RemoteStore backed by the Drive v3 REST API."""

    name = "google_drive"

    def __init__(
        self,
        config: DriveConfig,
        client: httpx.AsyncClient | None = None,
        credentials: Credentials | None = None,
    ) -> None:
        if credentials is None and config.credentials_file is not None:
            try:
                credentials = load_credentials(config.credentials_file)
            except ConfigurationError as exc:
                if not config.access_token:
                    raise
                logger.warning("{}; using the static access token instead", exc)
        if credentials is None and not config.access_token:
            raise ConfigurationError("Google Drive is enabled but no credentials are configured")
        self._api = config.api_base.rstrip("/")
        self._upload_api = config.upload_base.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=DRIVE_TIMEOUT)
        self._credentials = credentials
        self._static_token = config.access_token
        self._refresh_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # RemoteStore interface
    # ------------------------------------------------------------------

    async def create_folder(self, name: str, parent_id: str | None = None) -> str:
        metadata: dict[str, Any] = {"name": name, "mimeType": DRIVE_FOLDER_MIME}
        if parent_id:
            metadata["parents"] = [parent_id]

        data = await self._request(
            "POST", f"{self._api}/files", params={"fields": "id"}, json=metadata
        )
        logger.debug("Drive folder created: {} ({})", name, data["id"])
        return data["id"]

    async def find_folders(self, name: str | None = None, parent_id: str | None = None) -> list[RemoteFolder]:
        clauses = [f"mimeType='{DRIVE_FOLDER_MIME}'", "trashed=false"]
        if name is not None:
            clauses.append(f"name='{_quote(name)}'")
        if parent_id is not None:
            clauses.append(f"'{_quote(parent_id)}' in parents")

        data = await self._request(
            "GET",
            f"{self._api}/files",
            params={
                "q": " and ".join(clauses),
                "fields": "files(id, name)",
                "spaces": "drive",
                "pageSize": 100,
            },
        )
        return [RemoteFolder(id=f["id"], name=f["name"]) for f in data.get("files", [])]

    async def upload_file(self, parent_id: str, filename: str, mime_type: str, path: Path) -> RemoteFile:
        try:
            content = Path(path).read_bytes()
        except OSError as exc:
            raise LocalIOFailure(f"Cannot read {path} for upload: {exc}") from exc

        boundary = uuid.uuid4().hex
        metadata = json.dumps({"name": filename, "parents": [parent_id]})
        body = (
            f"--{boundary}\r\n"
            "Content-Type: application/json; charset=UTF-8\r\n\r\n"
            f"{metadata}\r\n"
            f"--{boundary}\r\n"
            f"Content-Type: {mime_type}\r\n\r\n"
        ).encode() + content + f"\r\n--{boundary}--\r\n".encode()

        data = await self._request(
            "POST",
            f"{self._upload_api}/files",
            params={"uploadType": "multipart", "fields": "id,name,webViewLink"},
            content=body,
            headers={"Content-Type": f"multipart/related; boundary={boundary}"},
        )
        return RemoteFile(
            id=data["id"],
            name=data.get("name", filename),
            view_link=data.get("webViewLink"),
        )

    async def set_permission(self, file_id: str, permission: Permission) -> None:
        body: dict[str, Any] = {"role": permission.role}
        if permission.is_public:
            body["type"] = "anyone"
        else:
            body["type"] = "user"
            body["emailAddress"] = permission.principal

        await self._request(
            "POST", f"{self._api}/files/{file_id}/permissions", json=body
        )

    async def exists(self, file_id: str) -> bool:
        if not file_id:
            return False
        try:
            data = await self._request(
                "GET", f"{self._api}/files/{file_id}", params={"fields": "id,trashed"}
            )
        except FatalProviderError as exc:
            if exc.status == 404:
                return False
            raise
        return not data.get("trashed", False)

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _authorization(self, force_refresh: bool = False) -> dict[str, str]:
        if self._credentials is None:
            return {"Authorization": f"Bearer {self._static_token}"}

        async with self._refresh_lock:
            # valid turns False a few minutes before the token actually expires
            if force_refresh or not self._credentials.valid:
                await self._refresh()
        return {"Authorization": f"Bearer {self._credentials.token}"}

    async def _refresh(self) -> None:
        try:
            await asyncio.to_thread(self._credentials.refresh, Request())
        except google.auth.exceptions.GoogleAuthError as exc:
            raise FatalProviderError(f"Drive token refresh failed: {exc}", status=401) from exc
        logger.debug("Drive access token refreshed (expires {})", self._credentials.expiry)

    async def _send(self, method: str, url: str, headers: dict[str, str], kwargs: dict[str, Any]) -> httpx.Response:
        try:
            return await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise FatalProviderError(f"{method} {url} failed: {exc}") from exc

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        extra_headers = kwargs.pop("headers", {})
        headers = {**await self._authorization(), **extra_headers}
        response = await self._send(method, url, headers, kwargs)

        if response.status_code == 401 and self._credentials is not None:
            logger.info("Drive rejected the access token, refreshing and retrying once")
            headers = {**await self._authorization(force_refresh=True), **extra_headers}
            response = await self._send(method, url, headers, kwargs)

        if not response.is_success:
            raise error_from_response(response)
        if not response.content:
            return {}
        return response.json()
