"""Unit tests for GitHubMirrorClient against an httpx.MockTransport."""

from __future__ import annotations

import base64
import hashlib
import json

import httpx
import pytest

from runtrack.core.exceptions import MirrorConflictError, MirrorError
from runtrack.persistence.github_mirror import GitHubMirrorClient

PREFIX = "/repos/acme/runs-mirror/contents/"


class FakeContentsAPI:
    """Just enough of the GitHub contents API to exercise sha checks."""

    def __init__(self) -> None:
        self.files: dict[str, tuple[str, str]] = {}  # path -> (content, sha)
        self.requests: list[httpx.Request] = []
        self.fail_with: int | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, text="boom")
        path = request.url.path.removeprefix(PREFIX)
        if request.method == "GET":
            if path not in self.files:
                return httpx.Response(404, json={"message": "Not Found"})
            content, sha = self.files[path]
            encoded = base64.encodebytes(content.encode()).decode()  # GitHub wraps lines
            return httpx.Response(200, json={"content": encoded, "sha": sha})

        body = json.loads(request.content)
        current = self.files.get(path)
        if current is not None and "sha" not in body:
            return httpx.Response(422, json={"message": "sha wasn't supplied"})
        if current is not None and body["sha"] != current[1]:
            return httpx.Response(409, json={"message": "does not match"})
        content = base64.b64decode(body["content"]).decode()
        sha = hashlib.sha1(f"{len(self.requests)}:{content}".encode()).hexdigest()
        self.files[path] = (content, sha)
        return httpx.Response(201 if current is None else 200, json={"content": {"sha": sha}})


@pytest.fixture
def api():
    return FakeContentsAPI()


@pytest.fixture
def client(api):
    return GitHubMirrorClient(
        owner="acme", repo="runs-mirror", token="t0k", transport=httpx.MockTransport(api),
    )


class TestFetch:
    @pytest.mark.asyncio
    async def test_absent_file_is_none(self, client):
        assert await client.fetch("runs.json") is None

    @pytest.mark.asyncio
    async def test_decodes_content_and_token(self, client, api):
        api.files["runs.json"] = ('[{"run_number": 1}]', "abc123")
        snapshot = await client.fetch("runs.json")
        assert snapshot.content == '[{"run_number": 1}]'
        assert snapshot.token == "abc123"

    @pytest.mark.asyncio
    async def test_sends_auth_headers(self, client, api):
        await client.fetch("runs.json")
        request = api.requests[0]
        assert request.headers["Authorization"] == "Bearer t0k"
        assert request.headers["User-Agent"] == "runtrack"

    @pytest.mark.asyncio
    async def test_branch_is_passed_as_ref(self, api):
        client = GitHubMirrorClient(
            owner="acme", repo="runs-mirror", branch="data", transport=httpx.MockTransport(api),
        )
        await client.fetch("runs.json")
        assert api.requests[0].url.params["ref"] == "data"

    @pytest.mark.asyncio
    async def test_server_error_raises(self, client, api):
        api.fail_with = 502
        with pytest.raises(MirrorError):
            await client.fetch("runs.json")


class TestWrite:
    @pytest.mark.asyncio
    async def test_create_then_update(self, client, api):
        token = await client.write("runs.json", "[]", "create", None)
        new_token = await client.write("runs.json", "[1]", "update", token)
        assert new_token != token
        assert api.files["runs.json"] == ("[1]", new_token)

    @pytest.mark.asyncio
    async def test_second_write_with_same_token_conflicts(self, client, api):
        api.files["runs.json"] = ("[]", "v1")
        snapshot = await client.fetch("runs.json")

        await client.write("runs.json", '["first"]', "first", snapshot.token)
        with pytest.raises(MirrorConflictError):
            await client.write("runs.json", '["second"]', "second", snapshot.token)

        assert api.files["runs.json"][0] == '["first"]'

    @pytest.mark.asyncio
    async def test_create_over_existing_file_conflicts(self, client, api):
        api.files["runs.json"] = ("[]", "v1")
        with pytest.raises(MirrorConflictError):
            await client.write("runs.json", "[1]", "create", None)

    @pytest.mark.asyncio
    async def test_network_error_raises_mirror_error(self):
        def unreachable(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = GitHubMirrorClient(
            owner="acme", repo="runs-mirror", transport=httpx.MockTransport(unreachable),
        )
        with pytest.raises(MirrorError) as excinfo:
            await client.write("runs.json", "[]", "m", None)
        assert not isinstance(excinfo.value, MirrorConflictError)


def _client_returning(response: httpx.Response) -> GitHubMirrorClient:
    return GitHubMirrorClient(
        owner="acme", repo="runs-mirror", transport=httpx.MockTransport(lambda request: response),
    )


class TestMalformedResponses:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="<html>maintenance</html>"),
            httpx.Response(200, json={"content": "W10K"}),
            httpx.Response(200, json=[{"name": "1.json", "type": "file"}]),
            httpx.Response(200, json={"type": "dir", "sha": "abc"}),
            httpx.Response(200, json={"content": 7, "sha": "abc"}),
        ],
        ids=["not-json", "missing-sha", "directory-listing", "directory-entry", "non-string-content"],
    )
    async def test_fetch_raises_mirror_error(self, response):
        with pytest.raises(MirrorError):
            await _client_returning(response).fetch("runs")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(201, text="created"),
            httpx.Response(201, json={"commit": {}}),
            httpx.Response(200, json={"content": {"path": "runs.json"}}),
        ],
        ids=["not-json", "missing-content", "missing-sha"],
    )
    async def test_write_raises_mirror_error(self, response):
        with pytest.raises(MirrorError) as excinfo:
            await _client_returning(response).write("runs.json", "[]", "m", None)
        assert not isinstance(excinfo.value, MirrorConflictError)
