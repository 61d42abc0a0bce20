"""Versioned read/write access to a single JSON document on GitHub.

The GitHub contents API guards writes with the blob SHA of the current
file: a PUT must carry the SHA it is replacing, so the SHA doubles as the
document's version tag.
"""

import asyncio
import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..config import GitHubConfig
from .schema import validate_document

logger = logging.getLogger(__name__)

# Statuses worth another attempt after refreshing the version tag
RETRYABLE_STATUSES = {409, 422, 429, 500, 502, 503, 504}


class DocumentStoreError(Exception):
    """Reading or writing the remote document failed."""


class PersistError(DocumentStoreError):
    """A write failed after exhausting all attempts."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


@dataclass
class DocumentSnapshot:
    """Decoded document content plus the version tag it was read at."""

    entries: list[dict[str, Any]] = field(default_factory=list)
    sha: str | None = None


def serialize_document(entries: list[dict[str, Any]]) -> str:
    """Render entries the way they are committed: a 2-space indented array."""
    return json.dumps(entries, indent=2, ensure_ascii=False)


class GitHubDocumentStore:
    """Client for the games document stored in a GitHub repository.

    Supports:
    - Load: fetch content and version tag (missing file means empty)
    - Save: conditional write with bounded retry and version refresh
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str,
        path: str = "games.json",
        branch: str | None = None,
        api_url: str = "https://api.github.com",
        timeout: float = 15.0,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
    ):
        """Initialize the store client.

        Args:
            owner: Account owning the repository.
            repo: Repository name.
            token: Token with contents read/write permission.
            path: Path of the JSON document inside the repository.
            branch: Branch to read and commit to (default branch if None).
            api_url: Base URL of the GitHub REST API.
            timeout: Per-request timeout in seconds.
            max_attempts: Maximum write attempts per save.
            retry_delay: Base delay; attempt N waits N * retry_delay.
        """
        self.owner = owner
        self.repo = repo
        self.path = path.lstrip("/")
        self.branch = branch
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._token = token
        self._sha: str | None = None
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config: GitHubConfig) -> "GitHubDocumentStore":
        return cls(
            owner=config.owner,
            repo=config.repo,
            token=config.token,
            path=config.path,
            branch=config.branch,
            api_url=config.api_url,
            timeout=config.timeout_seconds,
            max_attempts=config.max_attempts,
            retry_delay=config.retry_delay_seconds,
        )

    @property
    def contents_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}/contents/{self.path}"

    @property
    def version(self) -> str | None:
        """The version tag (blob SHA) of the last document seen."""
        return self._sha

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.api_url,
                timeout=self.timeout,
                headers={
                    "Authorization": f"Bearer {self._token}",
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ref_params(self) -> dict[str, str]:
        return {"ref": self.branch} if self.branch else {}

    async def _get_contents(self) -> dict[str, Any] | None:
        """GET the contents endpoint. Returns None if the file does not exist."""
        client = await self._get_client()
        try:
            response = await client.get(self.contents_path, params=self._ref_params())
        except httpx.HTTPError as e:
            raise DocumentStoreError(f"Failed to reach GitHub: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise DocumentStoreError(
                f"GitHub returned HTTP {response.status_code}: {response.text}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise DocumentStoreError(f"GitHub returned a non-JSON response: {e}") from e
        if not isinstance(data, dict) or "sha" not in data:
            raise DocumentStoreError(f"{self.path} is not a file")
        return data

    async def _fetch_blob(self, sha: str) -> bytes:
        """Fetch raw content through the git blobs API.

        The contents API leaves out inline content for files over 1 MB,
        which a board with embedded images reaches quickly.
        """
        client = await self._get_client()
        try:
            response = await client.get(
                f"/repos/{self.owner}/{self.repo}/git/blobs/{sha}"
            )
        except httpx.HTTPError as e:
            raise DocumentStoreError(f"Failed to fetch blob {sha}: {e}") from e

        if response.status_code != 200:
            raise DocumentStoreError(
                f"GitHub returned HTTP {response.status_code} for blob {sha}"
            )
        try:
            return base64.b64decode(response.json()["content"])
        except (ValueError, KeyError, TypeError) as e:
            raise DocumentStoreError(f"Unreadable blob {sha}: {e}") from e

    async def load(self) -> DocumentSnapshot | None:
        """Fetch the document and its version tag.

        Returns:
            DocumentSnapshot, or None if the document does not exist yet.

        Raises:
            DocumentStoreError: Any other failure, including content that
                is not a valid games document.
        """
        data = await self._get_contents()
        if data is None:
            logger.info(f"No document at {self.repo}/{self.path}, starting empty")
            self._sha = None
            return None

        sha = data["sha"]
        try:
            if data.get("encoding") == "none" or (
                not data.get("content") and data.get("size", 0) > 0
            ):
                raw = await self._fetch_blob(sha)
            else:
                raw = base64.b64decode(data.get("content") or "")
            # binascii.Error and UnicodeDecodeError are both ValueErrors
            text = raw.decode("utf-8")
        except ValueError as e:
            raise DocumentStoreError(f"Document content could not be decoded: {e}") from e

        try:
            entries = json.loads(text) if text.strip() else []
        except json.JSONDecodeError as e:
            raise DocumentStoreError(f"Document is not valid JSON: {e}") from e

        if problem := validate_document(entries):
            raise DocumentStoreError(f"Document failed validation: {problem}")

        self._sha = sha
        logger.info(f"Loaded {len(entries)} entries from {self.path} at {sha[:7]}")
        return DocumentSnapshot(entries=entries, sha=sha)

    async def refresh_version(self) -> str | None:
        """Re-fetch the current version tag without touching local state."""
        data = await self._get_contents()
        self._sha = data["sha"] if data else None
        return self._sha

    async def save(self, entries: list[dict[str, Any]], message: str) -> str:
        """Write the whole document as one commit.

        Args:
            entries: Full list of entries to persist.
            message: Commit message.

        Returns:
            The new version tag.

        Raises:
            PersistError: All attempts failed; chained to the last cause.
            DocumentStoreError: GitHub rejected the write outright.
        """
        content = base64.b64encode(
            serialize_document(entries).encode("utf-8")
        ).decode("ascii")
        client = await self._get_client()
        last_error: Exception | None = None

        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1 or self._sha is None:
                try:
                    await self.refresh_version()
                except DocumentStoreError as e:
                    logger.warning(f"Could not refresh version tag: {e}")

            payload: dict[str, Any] = {"message": message, "content": content}
            if self._sha:
                payload["sha"] = self._sha
            if self.branch:
                payload["branch"] = self.branch

            try:
                response = await client.put(self.contents_path, json=payload)
            except httpx.TransportError as e:
                last_error = e
                logger.warning(
                    f"Save failed ({type(e).__name__}), "
                    f"attempt {attempt}/{self.max_attempts}"
                )
            except httpx.HTTPError as e:
                raise DocumentStoreError(f"Save failed: {e}") from e
            else:
                if response.status_code in (200, 201):
                    try:
                        self._sha = response.json()["content"]["sha"]
                    except (ValueError, KeyError, TypeError) as e:
                        # The commit may or may not have landed
                        self._sha = None
                        raise DocumentStoreError(
                            f"Unreadable response to write: {response.text[:200]}"
                        ) from e
                    logger.debug(f"Committed {self.path} at {self._sha[:7]}: {message}")
                    return self._sha

                if response.status_code not in RETRYABLE_STATUSES:
                    raise DocumentStoreError(
                        f"GitHub rejected write with HTTP {response.status_code}: "
                        f"{response.text}"
                    )

                last_error = DocumentStoreError(
                    f"HTTP {response.status_code}: {response.text}"
                )
                logger.warning(
                    f"Save rejected with HTTP {response.status_code}, "
                    f"attempt {attempt}/{self.max_attempts}"
                )

            if attempt < self.max_attempts:
                await asyncio.sleep(self.retry_delay * attempt)

        raise PersistError(
            f"Save failed after {self.max_attempts} attempts: {last_error}",
            attempts=self.max_attempts,
        ) from last_error

    def describe(self) -> dict[str, Any]:
        """Get a summary of the store location and version."""
        return {
            "repository": f"{self.owner}/{self.repo}",
            "path": self.path,
            "branch": self.branch,
            "version": self._sha,
        }
