"""Base object store interface for the backup bucket."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from backup_agent.automation.storage.schemas import (
    Authorization,
    Bucket,
    RemoteObjectVersion,
    UploadResult,
    UploadTarget,
)


class ObjectStore(ABC):
    """Abstract base class for versioned object stores."""

    @abstractmethod
    async def authorize(self) -> Authorization:
        """Authenticate and cache the session token.

        Returns:
            Authorization: Session information.
        """

    @abstractmethod
    async def list_buckets(self) -> List[Bucket]:
        """List the buckets of the authorized account.

        Returns:
            List[Bucket]: Buckets.
        """

    @abstractmethod
    async def list_file_versions(
        self,
        bucket_id: str,
        *,
        start_file_name: Optional[str] = None,
        prefix: Optional[str] = None,
    ) -> List[RemoteObjectVersion]:
        """List all file versions in a bucket.

        Args:
            bucket_id: Bucket id.
            start_file_name: First file name to return (inclusive).
            prefix: Only return names starting with this prefix.

        Returns:
            List[RemoteObjectVersion]: Versions in store order.
        """

    @abstractmethod
    async def get_upload_url(self, bucket_id: str) -> UploadTarget:
        """Request an upload target for a bucket.

        Args:
            bucket_id: Bucket id.

        Returns:
            UploadTarget: URL and token for one upload.
        """

    @abstractmethod
    async def upload_file(
        self,
        *,
        upload_url: str,
        upload_token: str,
        file_name: str,
        data: bytes,
        sha1: str,
    ) -> UploadResult:
        """Upload a file.

        Args:
            upload_url: URL from ``get_upload_url``.
            upload_token: Token from ``get_upload_url``.
            file_name: Destination file name.
            data: File contents.
            sha1: Hex SHA-1 of ``data``; the store verifies it.

        Returns:
            UploadResult: Metadata of the stored file.
        """

    @abstractmethod
    async def delete_file_version(self, *, file_id: str, file_name: str) -> None:
        """Delete one file version.

        Args:
            file_id: Version id.
            file_name: File name of the version.
        """
