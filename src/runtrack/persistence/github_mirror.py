"""GitHub contents API backend implementing IMirrorClient.

The blob ``sha`` is the mirror token: a PUT must carry the sha of the file it
replaces, and GitHub rejects it once the file has moved on.
"""

from __future__ import annotations

import base64
import logging

import httpx

from runtrack.core.config import MirrorConfig
from runtrack.core.exceptions import MirrorConflictError, MirrorError
from runtrack.core.types import JsonDict
from runtrack.models.mirror import MirrorSnapshot

logger = logging.getLogger(__name__)

# 409: sha does not match; 422: sha missing for an existing file
_CONFLICT_STATUSES = frozenset({409, 422})


def _json_object(path: str, resp: httpx.Response) -> JsonDict:
    try:
        body = resp.json()
    except ValueError as exc:
        raise MirrorError(path, f"response is not JSON: {resp.text[:200]}") from exc
    if not isinstance(body, dict):
        raise MirrorError(path, f"expected a JSON object, got {type(body).__name__}")
    return body


def _sha(path: str, body: JsonDict) -> str:
    sha = body.get("sha")
    if not isinstance(sha, str) or not sha:
        raise MirrorError(path, "response carries no sha")
    return sha


class GitHubMirrorClient:
    """Production IMirrorClient backed by the GitHub contents API."""

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str = "",
        api_url: str = "https://api.github.com",
        branch: str | None = None,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._owner = owner
        self._repo = repo
        self._branch = branch
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "runtrack",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: MirrorConfig) -> GitHubMirrorClient:
        return cls(
            owner=config.owner,
            repo=config.repo,
            token=config.token,
            api_url=config.api_url,
            branch=config.branch,
            timeout=config.timeout,
        )

    def _url(self, path: str) -> str:
        return f"/repos/{self._owner}/{self._repo}/contents/{path.lstrip('/')}"

    async def fetch(self, path: str) -> MirrorSnapshot | None:
        """Return the current content and sha, or None if the file is absent."""
        params = {"ref": self._branch} if self._branch else None
        try:
            resp = await self._client.get(self._url(path), params=params)
        except httpx.HTTPError as exc:
            raise MirrorError(path, f"GET failed: {exc}") from exc

        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise MirrorError(path, f"GET returned {resp.status_code}: {resp.text[:200]}")

        # a directory listing comes back as a JSON array
        body = _json_object(path, resp)
        if body.get("type", "file") != "file":
            raise MirrorError(path, f"not a file: {body.get('type')}")
        raw = body.get("content") or ""
        if not isinstance(raw, str):
            raise MirrorError(path, "content is not a string")
        try:
            content = base64.b64decode(raw).decode("utf-8")
        except (ValueError, UnicodeDecodeError) as exc:
            raise MirrorError(path, f"undecodable content: {exc}") from exc
        return MirrorSnapshot(path=path, content=content, token=_sha(path, body))

    async def write(
        self, path: str, content: str, message: str, token: str | None
    ) -> str:
        """Conditionally replace the file; returns the new token.

        ``token=None`` creates the file, which fails as a conflict when
        someone else created it first.
        """
        payload: JsonDict = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
        }
        if token is not None:
            payload["sha"] = token
        if self._branch:
            payload["branch"] = self._branch

        try:
            resp = await self._client.put(self._url(path), json=payload)
        except httpx.HTTPError as exc:
            raise MirrorError(path, f"PUT failed: {exc}") from exc

        if resp.status_code in _CONFLICT_STATUSES:
            raise MirrorConflictError(path)
        if resp.status_code not in (200, 201):
            raise MirrorError(path, f"PUT returned {resp.status_code}: {resp.text[:200]}")
        committed = _json_object(path, resp).get("content")
        if not isinstance(committed, dict):
            raise MirrorError(path, "PUT response carries no content")
        return _sha(path, committed)

    async def aclose(self) -> None:
        await self._client.aclose()
