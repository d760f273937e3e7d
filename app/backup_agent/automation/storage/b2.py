"""Backblaze B2 storage provider using the native v2 API over httpx."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from backup_agent.automation.errors import RemoteStoreError
from backup_agent.automation.storage.base import ObjectStore
from backup_agent.automation.storage.schemas import (
    Authorization,
    Bucket,
    FileVersionPage,
    RemoteObjectVersion,
    UploadResult,
    UploadTarget,
)


logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.backblazeb2.com"
API_PREFIX = "/b2api/v2"
MAX_FILE_COUNT = 1000


@dataclass(frozen=True)
class B2Config:
    """Configuration for a B2 account.

    Attributes:
        account_id: Account (or application key) id.
        application_key: Application key.
        api_url: Base URL used for ``b2_authorize_account``.
        timeout: Timeout in seconds for API calls; None keeps the httpx default.
        upload_timeout: Timeout in seconds for uploads; None disables it.
    """

    account_id: str
    application_key: str
    api_url: str = DEFAULT_API_URL
    timeout: Optional[float] = None
    upload_timeout: Optional[float] = None


class B2Storage(ObjectStore):
    """B2 object store client.

    One instance holds one ``httpx.AsyncClient`` for its whole lifetime; call
    ``aclose`` on shutdown.
    """

    def __init__(self, config: B2Config, *, client: Optional[httpx.AsyncClient] = None):
        """Initialize the provider.

        Args:
            config: B2 configuration.
            client: Optional preconfigured HTTP client.
        """

        self._config = config
        if client is None:
            timeout = httpx.Timeout(config.timeout) if config.timeout is not None else httpx.Timeout(5.0)
            client = httpx.AsyncClient(timeout=timeout)
        self._client = client
        self._auth: Optional[Authorization] = None

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""

        await self._client.aclose()

    async def authorize(self) -> Authorization:
        url = f"{self._config.api_url.rstrip('/')}{API_PREFIX}/b2_authorize_account"
        try:
            response = await self._client.get(
                url,
                auth=(self._config.account_id, self._config.application_key),
            )
        except httpx.HTTPError as exc:
            raise RemoteStoreError(f"b2_authorize_account failed: {exc}") from exc

        data = self._check(response, "b2_authorize_account")
        self._auth = Authorization.model_validate(data)
        logger.debug("Authorized B2 account api_url=%s", self._auth.api_url)
        return self._auth

    async def list_buckets(self) -> List[Bucket]:
        auth = self._require_auth()
        data = await self._call("b2_list_buckets", {"accountId": auth.account_id})
        return [Bucket.model_validate(item) for item in data.get("buckets", [])]

    async def list_file_versions(
        self,
        bucket_id: str,
        *,
        start_file_name: Optional[str] = None,
        prefix: Optional[str] = None,
    ) -> List[RemoteObjectVersion]:
        versions: List[RemoteObjectVersion] = []
        next_name = start_file_name
        next_id: Optional[str] = None

        while True:
            payload: Dict[str, Any] = {"bucketId": bucket_id, "maxFileCount": MAX_FILE_COUNT}
            if next_name:
                payload["startFileName"] = next_name
            if next_id:
                payload["startFileId"] = next_id
            if prefix:
                payload["prefix"] = prefix

            page = FileVersionPage.model_validate(await self._call("b2_list_file_versions", payload))
            versions.extend(page.files)

            if not page.next_file_name:
                break
            next_name, next_id = page.next_file_name, page.next_file_id

        return versions

    async def get_upload_url(self, bucket_id: str) -> UploadTarget:
        data = await self._call("b2_get_upload_url", {"bucketId": bucket_id})
        return UploadTarget.model_validate(data)

    async def upload_file(
        self,
        *,
        upload_url: str,
        upload_token: str,
        file_name: str,
        data: bytes,
        sha1: str,
    ) -> UploadResult:
        headers = {
            "Authorization": upload_token,
            "X-Bz-File-Name": quote(file_name, safe="/"),
            "Content-Type": "b2/x-auto",
            "Content-Length": str(len(data)),
            "X-Bz-Content-Sha1": sha1,
        }
        try:
            response = await self._client.post(
                upload_url,
                content=data,
                headers=headers,
                timeout=self._config.upload_timeout,
            )
        except httpx.HTTPError as exc:
            raise RemoteStoreError(f"b2_upload_file failed: {exc}") from exc

        return UploadResult.model_validate(self._check(response, "b2_upload_file"))

    async def delete_file_version(self, *, file_id: str, file_name: str) -> None:
        await self._call("b2_delete_file_version", {"fileId": file_id, "fileName": file_name})

    def _require_auth(self) -> Authorization:
        if self._auth is None:
            raise RemoteStoreError("B2 client is not authorized; call authorize() first")
        return self._auth

    async def _call(self, operation: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a JSON payload to an authorized API operation.

        Args:
            operation: API operation name (e.g. ``b2_list_buckets``).
            payload: JSON body.

        Returns:
            Dict[str, Any]: Decoded response body.

        Raises:
            RemoteStoreError: On transport errors and non-2xx responses.
        """

        auth = self._require_auth()
        url = f"{auth.api_url.rstrip('/')}{API_PREFIX}/{operation}"
        logger.debug("B2 call operation=%s", operation)
        try:
            response = await self._client.post(
                url,
                json=payload,
                headers={"Authorization": auth.authorization_token},
            )
        except httpx.HTTPError as exc:
            raise RemoteStoreError(f"{operation} failed: {exc}") from exc

        return self._check(response, operation)

    @staticmethod
    def _check(response: httpx.Response, operation: str) -> Dict[str, Any]:
        """Return the JSON body of a successful response or raise RemoteStoreError."""

        if response.is_success:
            return response.json()

        code = None
        message = response.text
        try:
            body = response.json()
            code = body.get("code")
            message = body.get("message") or message
        except ValueError:
            pass

        raise RemoteStoreError(
            f"{operation} failed: status={response.status_code} code={code} message={message}",
            status=response.status_code,
            code=code,
        )
