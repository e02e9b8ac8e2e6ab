# versioned document store: get(path) -> (content, version), conditional put
import asyncio
import base64
import binascii
import enum
import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Tuple

import httpx
import structlog

from .errors import StoreUnavailable

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Document:
    """content is None when the path does not exist; version is opaque."""

    content: Any
    version: Optional[str]

    @property
    def exists(self) -> bool:
        return self.content is not None


class PutResult(enum.Enum):
    OK = "ok"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


class DocumentStore(Protocol):
    async def get(self, path: str) -> Document:
        ...

    async def put(
        self,
        path: str,
        content: Any,
        expected_version: Optional[str],
        message: str = "",
    ) -> PutResult:
        """
        Write content only if the stored version still equals
        expected_version. expected_version=None means "create": it conflicts
        when the document already exists.
        """
        ...

    async def aclose(self) -> None:
        ...


def encode_document(content: Any) -> bytes:
    return json.dumps(content, indent=2).encode("utf-8")


def decode_document(path: str, raw: bytes) -> Any:
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise StoreUnavailable(f"{path} is not valid JSON") from exc


# ----------- GitHub contents API -----------

class GitHubDocumentStore:
    """
    Documents are files in a GitHub repository; the blob sha is the version
    token and every successful put is a commit.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        owner: str,
        repo: str,
        branch: str = "main",
    ):
        self._client = client
        self._owner = owner
        self._repo = repo
        self._branch = branch

    @classmethod
    def from_settings(
        cls,
        token: str,
        owner: str,
        repo: str,
        branch: str = "main",
        api_url: str = "https://api.github.com",
        timeout: float = 10.0,
    ) -> "GitHubDocumentStore":
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        client = httpx.AsyncClient(base_url=api_url, headers=headers, timeout=timeout)
        return cls(client, owner, repo, branch)

    def _url(self, path: str) -> str:
        return f"/repos/{self._owner}/{self._repo}/contents/{path.lstrip('/')}"

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, self._url(path), **kwargs)
        except httpx.HTTPError as exc:
            log.warning("store_request_failed", method=method, path=path, error=str(exc))
            raise StoreUnavailable(f"{method} {path} failed: {exc}") from exc

    async def get(self, path: str) -> Document:
        resp = await self._request("GET", path, params={"ref": self._branch})
        if resp.status_code == 404:
            return Document(content=None, version=None)
        if resp.status_code != 200:
            raise StoreUnavailable(f"GET {path} returned {resp.status_code}")

        try:
            meta = resp.json()
        except ValueError as exc:
            raise StoreUnavailable(f"GET {path} returned a non-JSON body") from exc
        if not isinstance(meta, dict) or "sha" not in meta:
            raise StoreUnavailable(f"{path} is not a file")

        sha = meta["sha"]
        encoded = meta.get("content") or ""
        if meta.get("encoding") == "base64" and encoded:
            try:
                raw = base64.b64decode(encoded)
            except (binascii.Error, ValueError) as exc:
                raise StoreUnavailable(f"{path} has undecodable content") from exc
        else:
            # files above 1 MB come back without inline content
            raw = await self._get_raw(path)
        return Document(content=decode_document(path, raw), version=sha)

    async def _get_raw(self, path: str) -> bytes:
        resp = await self._request(
            "GET",
            path,
            params={"ref": self._branch},
            headers={"Accept": "application/vnd.github.raw+json"},
        )
        if resp.status_code != 200:
            raise StoreUnavailable(f"GET raw {path} returned {resp.status_code}")
        return resp.content

    async def put(
        self,
        path: str,
        content: Any,
        expected_version: Optional[str],
        message: str = "",
    ) -> PutResult:
        body: Dict[str, Any] = {
            "message": message or f"Update {path}",
            "content": base64.b64encode(encode_document(content)).decode("ascii"),
            "branch": self._branch,
        }
        if expected_version is not None:
            body["sha"] = expected_version

        resp = await self._request("PUT", path, json=body)
        if resp.status_code in (200, 201):
            return PutResult.OK
        if resp.status_code == 409:
            return PutResult.CONFLICT
        if resp.status_code == 422:
            # sha missing or stale for an existing file
            return PutResult.CONFLICT
        if resp.status_code == 404:
            return PutResult.NOT_FOUND
        raise StoreUnavailable(f"PUT {path} returned {resp.status_code}")

    async def aclose(self) -> None:
        await self._client.aclose()


# ----------- local JSON files -----------

class FileDocumentStore:
    """
    JSON files under a root directory. The version token is the sha256 of
    the stored bytes. Conditional writes are serialized by one lock, so this
    is only consistent within a single process.
    """

    def __init__(self, root: str):
        self._root = Path(root)
        self._lock = asyncio.Lock()

    def _file(self, path: str) -> Path:
        target = (self._root / path.lstrip("/")).resolve()
        if self._root.resolve() not in target.parents:
            raise StoreUnavailable(f"{path} is outside the data directory")
        return target

    def _read(self, path: str) -> Tuple[Optional[bytes], Optional[str]]:
        target = self._file(path)
        try:
            raw = target.read_bytes()
        except FileNotFoundError:
            return None, None
        except OSError as exc:
            raise StoreUnavailable(f"cannot read {path}: {exc}") from exc
        return raw, hashlib.sha256(raw).hexdigest()

    def _write(self, path: str, data: bytes) -> None:
        target = self._file(path)
        tmp = target.with_name(target.name + ".tmp")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            os.replace(tmp, target)
        except OSError as exc:
            raise StoreUnavailable(f"cannot write {path}: {exc}") from exc

    # file I/O runs in worker threads so the event loop keeps serving requests

    async def get(self, path: str) -> Document:
        raw, version = await asyncio.to_thread(self._read, path)
        if raw is None:
            return Document(content=None, version=None)
        return Document(content=decode_document(path, raw), version=version)

    async def put(
        self,
        path: str,
        content: Any,
        expected_version: Optional[str],
        message: str = "",
    ) -> PutResult:
        async with self._lock:
            raw, current = await asyncio.to_thread(self._read, path)
            if raw is None and expected_version is not None:
                return PutResult.NOT_FOUND
            if current != expected_version:
                return PutResult.CONFLICT

            await asyncio.to_thread(self._write, path, encode_document(content))
            return PutResult.OK

    async def aclose(self) -> None:
        return None


# ----------- in-memory -----------

class InMemoryDocumentStore:
    """
    Dict-backed store with counter versions. Yields to the event loop on
    every call so concurrent coroutines interleave between read and write.
    """

    def __init__(self, documents: Optional[Dict[str, Any]] = None):
        self._docs: Dict[str, Tuple[str, int]] = {}
        self._next_version = 0
        for path, content in (documents or {}).items():
            self.seed(path, content)

    def seed(self, path: str, content: Any) -> None:
        self._next_version += 1
        self._docs[path] = (json.dumps(content), self._next_version)

    def snapshot(self, path: str) -> Any:
        stored = self._docs.get(path)
        return None if stored is None else json.loads(stored[0])

    async def get(self, path: str) -> Document:
        await asyncio.sleep(0)
        stored = self._docs.get(path)
        if stored is None:
            return Document(content=None, version=None)
        raw, version = stored
        return Document(content=json.loads(raw), version=str(version))

    async def put(
        self,
        path: str,
        content: Any,
        expected_version: Optional[str],
        message: str = "",
    ) -> PutResult:
        await asyncio.sleep(0)
        stored = self._docs.get(path)
        if stored is None and expected_version is not None:
            return PutResult.NOT_FOUND
        current = None if stored is None else str(stored[1])
        if current != expected_version:
            return PutResult.CONFLICT
        self.seed(path, content)
        return PutResult.OK

    async def aclose(self) -> None:
        return None


def build_store(backend: str, **settings) -> DocumentStore:
    """
    github: token, owner, repo, branch, api_url, timeout
    file:   data_dir
    memory: documents
    """
    if backend == "github":
        return GitHubDocumentStore.from_settings(
            token=settings.get("token", ""),
            owner=settings["owner"],
            repo=settings["repo"],
            branch=settings.get("branch", "main"),
            api_url=settings.get("api_url", "https://api.github.com"),
            timeout=settings.get("timeout", 10.0),
        )
    if backend == "file":
        return FileDocumentStore(settings.get("data_dir", "data"))
    if backend == "memory":
        return InMemoryDocumentStore(settings.get("documents"))
    raise ValueError(f"unknown store backend: {backend!r}")
