"""Pytest configuration and shared fixtures."""

import asyncio
import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

import pytest

from backup_agent.automation.errors import RemoteStoreError
from backup_agent.automation.storage.base import ObjectStore
from backup_agent.automation.storage.schemas import (
    Authorization,
    Bucket,
    RemoteObjectVersion,
    UploadResult,
    UploadTarget,
)
from backup_agent.settings import Settings


NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
WORDLIST = ["apple", "river", "stone", "cloud", "maple", "tiger", "lemon", "orbit", "piano", "quartz"]


def make_version(name: str, age: timedelta, file_id: Optional[str] = None, now: datetime = NOW) -> RemoteObjectVersion:
    """Build a remote version uploaded ``age`` before ``now``."""
    uploaded = now - age
    return RemoteObjectVersion(
        file_id=file_id or f"id-{name}-{int(age.total_seconds())}",
        file_name=name,
        upload_timestamp=int(uploaded.timestamp() * 1000),
    )


class FakeObjectStore(ObjectStore):
    """In-memory object store recording every call."""

    def __init__(self, versions=None, buckets=None):
        self.versions: List[RemoteObjectVersion] = list(versions or [])
        self.buckets = buckets if buckets is not None else [Bucket(bucket_id="bucket-1", bucket_name="lugnasad")]
        self.calls: List[tuple] = []
        self.uploads: List[dict] = []
        self.fail_on: Optional[str] = None
        self.delete_delay = 0.0

    def _record(self, name, *args):
        self.calls.append((name, *args))
        if self.fail_on == name:
            raise RemoteStoreError(f"{name} failed: status=500 code=internal_error", status=500, code="internal_error")

    async def authorize(self):
        self._record("authorize")
        return Authorization(account_id="acc", authorization_token="tok", api_url="https://api.example")

    async def list_buckets(self):
        self._record("list_buckets")
        return list(self.buckets)

    async def list_file_versions(self, bucket_id, *, start_file_name=None, prefix=None):
        self._record("list_file_versions", bucket_id, start_file_name, prefix)
        result = sorted(self.versions, key=lambda v: v.file_name)
        if start_file_name:
            result = [v for v in result if v.file_name >= start_file_name]
        if prefix:
            result = [v for v in result if v.file_name.startswith(prefix)]
        return result

    async def get_upload_url(self, bucket_id):
        self._record("get_upload_url", bucket_id)
        return UploadTarget(bucket_id=bucket_id, upload_url="https://upload.example/1", authorization_token="up-tok")

    async def upload_file(self, *, upload_url, upload_token, file_name, data, sha1):
        self._record("upload_file", file_name)
        self.uploads.append({"file_name": file_name, "data": data, "sha1": sha1, "token": upload_token})
        version = RemoteObjectVersion(
            file_id=f"new-{file_name}-{len(self.uploads)}",
            file_name=file_name,
            upload_timestamp=int(NOW.timestamp() * 1000),
        )
        self.versions.append(version)
        return UploadResult(
            file_id=version.file_id,
            file_name=file_name,
            content_length=len(data),
            content_sha1=sha1,
            upload_timestamp=version.upload_timestamp,
        )

    async def delete_file_version(self, *, file_id, file_name):
        self._record("delete_file_version", file_id, file_name)
        if self.delete_delay:
            await asyncio.sleep(self.delete_delay)
        self.versions = [v for v in self.versions if v.file_id != file_id]


class FakeNotifier:
    """Notifier double that records outcomes."""

    def __init__(self):
        self.outcomes = []

    def notify(self, outcome):
        self.outcomes.append(outcome)
        return None

    async def drain(self):
        return None


def fake_tools(archive_bytes=b"7z-archive", dump_returncode=0, archive_returncode=0, log=None):
    """Return a ``subprocess.run`` replacement emulating the dump command and 7z."""

    def run(cmd, **kwargs):
        if log is not None:
            log.append(list(cmd))
        if cmd[0] == "7z":
            if archive_returncode == 0:
                Path(cmd[-2]).write_bytes(archive_bytes)
            return subprocess.CompletedProcess(cmd, archive_returncode, stdout="Everything is Ok", stderr="" if archive_returncode == 0 else "ERROR: disk full")
        stderr = b"" if dump_returncode == 0 else b"Drush command terminated abnormally."
        if dump_returncode == 0:
            kwargs["stdout"].write(b"CREATE TABLE node;")
        return subprocess.CompletedProcess(cmd, dump_returncode, stdout=None, stderr=stderr)

    return run


@pytest.fixture
def backup_dir(tmp_path):
    path = tmp_path / "staging"
    path.mkdir()
    return path


@pytest.fixture
def drupal_dir(tmp_path):
    path = tmp_path / "drupal"
    path.mkdir()
    (path / "index.php").write_text("<?php")
    return path


@pytest.fixture
def settings(backup_dir, drupal_dir):
    return Settings(
        b2_account_id="acc",
        b2_app_key="key",
        backup_dir=backup_dir,
        drupal_dir=drupal_dir,
        mail_to="ops@example.org",
        mail_from="backup@example.org",
        smtp_user="backup@example.org",
        smtp_password="secret",
    )


@pytest.fixture
def fake_store():
    return FakeObjectStore()


@pytest.fixture
def fake_notifier():
    return FakeNotifier()
