"""Wire models for the remote object store.

The field aliases follow the B2 native API payloads so responses can be
validated directly with ``model_validate``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RemoteObjectVersion(BaseModel):
    """One stored version of a file in the bucket."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    file_id: str = Field(..., alias="fileId")
    file_name: str = Field(..., alias="fileName")
    upload_timestamp: int = Field(..., alias="uploadTimestamp", description="Milliseconds since the epoch")

    @property
    def uploaded_at(self) -> datetime:
        """Return the upload time as an aware UTC datetime."""

        return datetime.fromtimestamp(self.upload_timestamp / 1000, tz=timezone.utc)


class Bucket(BaseModel):
    """A bucket owned by the authorized account."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    bucket_id: str = Field(..., alias="bucketId")
    bucket_name: str = Field(..., alias="bucketName")


class Authorization(BaseModel):
    """Result of account authorization."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    account_id: str = Field(..., alias="accountId")
    authorization_token: str = Field(..., alias="authorizationToken")
    api_url: str = Field(..., alias="apiUrl")


class UploadTarget(BaseModel):
    """Upload URL and token handed out for a single upload."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    bucket_id: str = Field(..., alias="bucketId")
    upload_url: str = Field(..., alias="uploadUrl")
    authorization_token: str = Field(..., alias="authorizationToken")


class UploadResult(BaseModel):
    """Metadata returned by the store for an uploaded file.

    Unknown fields are kept so the full payload can be reported to the operator.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    file_id: str = Field(..., alias="fileId")
    file_name: str = Field(..., alias="fileName")
    content_length: Optional[int] = Field(None, alias="contentLength")
    content_sha1: Optional[str] = Field(None, alias="contentSha1")
    upload_timestamp: Optional[int] = Field(None, alias="uploadTimestamp")

    def to_payload(self) -> dict:
        """Return the payload using the store's own field names."""

        return self.model_dump(by_alias=True)


class FileVersionPage(BaseModel):
    """One page of ``list_file_versions`` results."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    files: List[RemoteObjectVersion] = Field(default_factory=list)
    next_file_name: Optional[str] = Field(None, alias="nextFileName")
    next_file_id: Optional[str] = Field(None, alias="nextFileId")
