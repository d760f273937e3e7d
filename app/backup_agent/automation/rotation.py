"""Rotation of a single tier in the remote bucket.

A rotation deletes every stored version of the tier's archive and then
uploads the fresh one. Deletions run concurrently and must all finish before
the upload starts.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from pathlib import Path
from typing import List, Optional

from backup_agent.automation.archive_service import ArchiveArtifact
from backup_agent.automation.errors import ConfigError
from backup_agent.automation.retention import Tier
from backup_agent.automation.storage.base import ObjectStore
from backup_agent.automation.storage.schemas import RemoteObjectVersion, UploadResult


logger = logging.getLogger(__name__)


def sha1_hex(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


class RotationClient:
    """Enumerate, delete and upload tier archives in one bucket."""

    def __init__(self, store: ObjectStore, bucket_name: str):
        """Initialize the client.

        Args:
            store: Object store collaborator.
            bucket_name: Name of the bucket holding the tiers.
        """

        self.store = store
        self.bucket_name = bucket_name
        self._bucket_id: Optional[str] = None

    async def resolve_bucket_id(self) -> str:
        """Authorize and look up the bucket id by name.

        Returns:
            str: Bucket id.

        Raises:
            ConfigError: When the bucket does not exist.
        """

        await self.store.authorize()
        if self._bucket_id is not None:
            return self._bucket_id

        logger.info("Loading the buckets list...")
        buckets = await self.store.list_buckets()
        for bucket in buckets:
            if bucket.bucket_name == self.bucket_name:
                self._bucket_id = bucket.bucket_id
                return bucket.bucket_id

        raise ConfigError(f'"{self.bucket_name}" bucket is not found')

    async def list_versions(self) -> List[RemoteObjectVersion]:
        """Return every file version in the bucket, in store order."""

        bucket_id = await self.resolve_bucket_id()
        logger.info("Loading the files list bucket=%s", self.bucket_name)
        versions = await self.store.list_file_versions(bucket_id)
        logger.info("Found %s file version(s) bucket=%s", len(versions), self.bucket_name)
        return versions

    async def list_tier_versions(self, tier: Tier, *, bucket_id: Optional[str] = None) -> List[RemoteObjectVersion]:
        """Return the stored versions of one tier's archive.

        Args:
            tier: Tier whose archive versions are listed.
            bucket_id: Already resolved bucket id; resolved (and authorized) when omitted.
        """

        if bucket_id is None:
            bucket_id = await self.resolve_bucket_id()
        versions = await self.store.list_file_versions(
            bucket_id,
            start_file_name=tier.filename,
            prefix=tier.filename,
        )
        # startFileName is a lower bound, not a filter.
        return [v for v in versions if v.file_name == tier.filename]

    async def rotate(self, tier: Tier, artifact: ArchiveArtifact) -> UploadResult:
        """Replace the tier's remote archive with ``artifact``.

        Args:
            tier: Tier being refreshed.
            artifact: Locally produced archive.

        Returns:
            UploadResult: Store metadata for the uploaded file.

        Raises:
            ConfigError: When the bucket does not exist.
            RemoteStoreError: When any store call fails.
        """

        bucket_id = await self.resolve_bucket_id()

        logger.info("Loading the list of old file versions tier=%s", tier.label)
        old_versions = await self.list_tier_versions(tier, bucket_id=bucket_id)
        if old_versions:
            logger.info("Deleting %s old version(s) tier=%s", len(old_versions), tier.label)
            results = await asyncio.gather(
                *(
                    self.store.delete_file_version(file_id=v.file_id, file_name=v.file_name)
                    for v in old_versions
                ),
                return_exceptions=True,
            )
            failures = [r for r in results if isinstance(r, BaseException)]
            if failures:
                logger.error(
                    "Failed to delete %s of %s old version(s) tier=%s",
                    len(failures),
                    len(old_versions),
                    tier.label,
                )
                raise failures[0]
            logger.info("Old versions deleted tier=%s", tier.label)

        logger.info("Getting upload url tier=%s", tier.label)
        target = await self.store.get_upload_url(bucket_id)

        data = await asyncio.to_thread(Path(artifact.local_path).read_bytes)
        digest = sha1_hex(data)

        logger.info("Uploading tier=%s size=%s sha1=%s", tier.label, len(data), digest)
        result = await self.store.upload_file(
            upload_url=target.upload_url,
            upload_token=target.authorization_token,
            file_name=tier.filename,
            data=data,
            sha1=digest,
        )
        logger.info("Upload finished tier=%s file_id=%s", tier.label, result.file_id)
        return result
