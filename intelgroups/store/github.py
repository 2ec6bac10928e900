"""
Versioned file store backed by the GitHub contents API. The blob SHA is the
version token; GitHub refuses updates whose SHA is not the current one.
"""

import base64
from json import JSONDecodeError
from typing import Any

import httpx

from .files import (
    Blob,
    BlobNotFound,
    StoreUnavailable,
    VersionConflict,
    VersionedFileStore,
)


class GitHubFileStore(VersionedFileStore):
    repository: str | None
    token: str | None
    branch: str | None
    api_url: str
    transport: httpx.AsyncBaseTransport | None

    def __init__(
        self,
        repository: str | None,
        token: str | None,
        branch: str | None = None,
        api_url: str = "https://api.github.com",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.repository = repository
        self.token = token
        self.branch = branch
        self.api_url = api_url.rstrip("/")
        self.transport = transport

    def url(self, name: str) -> str:
        if not self.repository:
            raise StoreUnavailable("No GitHub repository configured")

        return f"{self.api_url}/repos/{self.repository}/contents/{name}"

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}

        if self.token:
            headers["Authorization"] = f"token {self.token}"

        return headers

    async def request(
        self, method: str, url: str, accept: str | None = None, **kwargs: Any
    ) -> httpx.Response:
        headers = self.headers

        if accept:
            headers["Accept"] = accept

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                return await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise StoreUnavailable(f"Error contacting {url}: {e}")

    async def read(self, name: str) -> Blob:
        params = {"ref": self.branch} if self.branch else None
        response = await self.request("GET", self.url(name), params=params)

        if response.status_code == 404:
            raise BlobNotFound(f"{name} does not exist in {self.repository}")

        if response.status_code != 200:
            raise StoreUnavailable(f"GitHub read failed: {response.status_code}")

        try:
            data = response.json()
            version = data["sha"]
            # Files over 1 MB come back without content.
            if data.get("encoding") == "none":
                content = await self.read_blob(name, version)
            else:
                content = base64.b64decode(data["content"])
        except (JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise StoreUnavailable(f"Unexpected GitHub response for {name}: {e}")

        return Blob(content=content, version=version)

    async def read_blob(self, name: str, version: str) -> bytes:
        """
        Fetch the raw bytes of a blob by its SHA, so the content always
        matches the version it is returned with.
        """
        if not self.repository:
            raise StoreUnavailable("No GitHub repository configured")

        response = await self.request(
            "GET",
            f"{self.api_url}/repos/{self.repository}/git/blobs/{version}",
            accept="application/vnd.github.raw+json",
        )

        if response.status_code != 200:
            raise StoreUnavailable(
                f"GitHub blob read for {name} failed: {response.status_code}"
            )

        return response.content

    async def write(
        self, name: str, content: bytes, version: str | None, note: str
    ) -> str:
        body = {
            "message": note,
            "content": base64.b64encode(content).decode("ascii"),
        }

        if version is not None:
            body["sha"] = version

        if self.branch:
            body["branch"] = self.branch

        response = await self.request("PUT", self.url(name), json=body)

        # 409 is a stale SHA. 422 without a SHA means someone else created
        # the file first.
        if response.status_code == 409 or (
            response.status_code == 422 and version is None
        ):
            raise VersionConflict(f"{name} changed since version {version}")

        if response.status_code not in [200, 201]:
            raise StoreUnavailable(f"GitHub write failed: {response.status_code}")

        try:
            return response.json()["content"]["sha"]
        except (JSONDecodeError, KeyError, TypeError) as e:
            raise StoreUnavailable(f"Unexpected GitHub response for {name}: {e}")
