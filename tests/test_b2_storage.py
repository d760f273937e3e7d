"""Tests for the B2 storage provider."""

import asyncio
import json

import httpx
import pytest

from backup_agent.automation.errors import RemoteStoreError
from backup_agent.automation.storage.b2 import B2Config, B2Storage


API = "https://api001.backblazeb2.example"


class B2Handler:
    """httpx.MockTransport handler emulating the B2 native API."""

    def __init__(self):
        self.requests = []
        self.pages = [
            {"files": [{"fileId": "1", "fileName": "day.7z", "uploadTimestamp": 1000, "action": "upload"}],
             "nextFileName": "week.7z", "nextFileId": "2"},
            {"files": [{"fileId": "2", "fileName": "week.7z", "uploadTimestamp": 2000}],
             "nextFileName": None, "nextFileId": None},
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/b2_authorize_account"):
            return httpx.Response(200, json={"accountId": "acc", "authorizationToken": "auth-tok", "apiUrl": API})
        if path.endswith("/b2_list_buckets"):
            return httpx.Response(200, json={"buckets": [{"bucketId": "b1", "bucketName": "lugnasad", "bucketType": "allPrivate"}]})
        if path.endswith("/b2_list_file_versions"):
            return httpx.Response(200, json=self.pages.pop(0))
        if path.endswith("/b2_get_upload_url"):
            return httpx.Response(200, json={"bucketId": "b1", "uploadUrl": "https://pod.example/upload", "authorizationToken": "up-tok"})
        if path.endswith("/b2_delete_file_version"):
            return httpx.Response(400, json={"status": 400, "code": "file_not_present", "message": "File not present"})
        if path == "/upload":
            return httpx.Response(200, json={
                "fileId": "new-1",
                "fileName": "day.7z",
                "contentLength": 4,
                "contentSha1": request.headers["X-Bz-Content-Sha1"],
                "uploadTimestamp": 3000,
                "bucketId": "b1",
            })
        return httpx.Response(404, text="not found")


@pytest.fixture
def handler():
    return B2Handler()


@pytest.fixture
def storage(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return B2Storage(B2Config(account_id="acc", application_key="key"), client=client)


class TestB2Storage:
    """Test B2 API mapping."""

    def test_authorize_uses_basic_auth(self, storage, handler):
        auth = asyncio.run(storage.authorize())

        request = handler.requests[0]
        assert request.method == "GET"
        assert str(request.url) == "https://api.backblazeb2.com/b2api/v2/b2_authorize_account"
        assert request.headers["Authorization"].startswith("Basic ")
        assert auth.api_url == API

    def test_calls_require_authorization(self, storage):
        with pytest.raises(RemoteStoreError, match="not authorized"):
            asyncio.run(storage.list_buckets())

    def test_list_buckets(self, storage, handler):
        async def scenario():
            await storage.authorize()
            return await storage.list_buckets()

        buckets = asyncio.run(scenario())

        request = handler.requests[-1]
        assert str(request.url) == f"{API}/b2api/v2/b2_list_buckets"
        assert request.headers["Authorization"] == "auth-tok"
        assert json.loads(request.content) == {"accountId": "acc"}
        assert [b.bucket_name for b in buckets] == ["lugnasad"]

    def test_list_file_versions_follows_pages(self, storage, handler):
        async def scenario():
            await storage.authorize()
            return await storage.list_file_versions("b1", start_file_name="day.7z", prefix="day.7z")

        versions = asyncio.run(scenario())

        first, second = [json.loads(r.content) for r in handler.requests[1:]]
        assert first == {"bucketId": "b1", "maxFileCount": 1000, "startFileName": "day.7z", "prefix": "day.7z"}
        assert second["startFileName"] == "week.7z"
        assert second["startFileId"] == "2"
        assert [v.file_id for v in versions] == ["1", "2"]

    def test_upload_sends_integrity_headers(self, storage, handler):
        async def scenario():
            await storage.authorize()
            target = await storage.get_upload_url("b1")
            return await storage.upload_file(
                upload_url=target.upload_url,
                upload_token=target.authorization_token,
                file_name="day.7z",
                data=b"data",
                sha1="a17c9aaa61e80a1bf71d0d850af4e5baa9800bbd",
            )

        result = asyncio.run(scenario())

        request = handler.requests[-1]
        assert request.headers["Authorization"] == "up-tok"
        assert request.headers["X-Bz-File-Name"] == "day.7z"
        assert request.headers["X-Bz-Content-Sha1"] == "a17c9aaa61e80a1bf71d0d850af4e5baa9800bbd"
        assert request.content == b"data"
        assert result.file_id == "new-1"
        assert result.to_payload()["bucketId"] == "b1"

    def test_error_response_raises_remote_store_error(self, storage):
        async def scenario():
            await storage.authorize()
            await storage.delete_file_version(file_id="1", file_name="day.7z")

        with pytest.raises(RemoteStoreError) as exc_info:
            asyncio.run(scenario())

        assert exc_info.value.status == 400
        assert exc_info.value.code == "file_not_present"

    def test_transport_error_raises_remote_store_error(self):
        def boom(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(boom))
        storage = B2Storage(B2Config(account_id="acc", application_key="key"), client=client)

        with pytest.raises(RemoteStoreError, match="connection refused"):
            asyncio.run(storage.authorize())
