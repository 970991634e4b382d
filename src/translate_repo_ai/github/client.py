"""
GitHub REST API client.

Thin async wrapper over the repository, Git Data and pull request
endpoints used by the translation pipeline. Every call is authenticated
with an installation access token.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

from translate_repo_ai.errors import BranchExistsError, GitHubAPIError
from translate_repo_ai.matching import TreeEntry

logger = logging.getLogger(__name__)


@dataclass
class TreeListing:
    """Entries of a recursive tree listing."""

    entries: list[TreeEntry] = field(default_factory=list)
    truncated: bool = False


class GitHubClient:
    """
    Async GitHub REST client scoped to one installation token.

    Use as an async context manager, or call ``aclose()`` when done.
    """

    def __init__(
        self,
        token: str,
        *,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        user_agent: str = "translate-repo-ai",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize GitHub client.

        Args:
            token: Installation access token.
            api_url: REST API base URL (GitHub Enterprise uses a different one).
            timeout: Request timeout in seconds.
            user_agent: User-Agent header value.
            transport: Optional httpx transport, used by tests.
        """
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": user_agent,
            },
        )

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        response = await self._client.request(method, path, json=json, params=params)
        if response.is_success:
            if response.status_code == 204 or not response.content:
                return None
            return response.json()

        try:
            message = response.json().get("message", response.text)
        except ValueError:
            message = response.text
        raise GitHubAPIError(response.status_code, message, url=str(response.request.url))

    # ==================== Repository ====================

    async def get_repository(self, repo: str) -> dict[str, Any]:
        """Get repository metadata (``default_branch`` among others)."""
        return await self._request("GET", f"/repos/{repo}")

    async def get_branch_tip(self, repo: str, branch: str) -> str:
        """Get the commit SHA a branch points to."""
        data = await self._request("GET", f"/repos/{repo}/git/ref/heads/{quote(branch)}")
        return data["object"]["sha"]

    async def get_default_branch_tip(
        self, repo: str, default_branch: str | None = None
    ) -> tuple[str, str]:
        """
        Resolve the default branch and its tip commit.

        Args:
            repo: Repository ``owner/name``.
            default_branch: Known default branch; looked up when None.

        Returns:
            Tuple of (branch name, commit SHA).
        """
        if not default_branch:
            default_branch = (await self.get_repository(repo))["default_branch"]
        return default_branch, await self.get_branch_tip(repo, default_branch)

    async def list_tree(self, repo: str, sha: str, recursive: bool = True) -> TreeListing:
        """
        List the tree of a commit or tree SHA.

        GitHub caps recursive listings; ``truncated`` is set when entries
        are missing from the result.
        """
        params = {"recursive": "1"} if recursive else None
        data = await self._request("GET", f"/repos/{repo}/git/trees/{sha}", params=params)
        listing = TreeListing(
            entries=[TreeEntry.from_api(item) for item in data.get("tree", [])],
            truncated=bool(data.get("truncated")),
        )
        if listing.truncated:
            logger.warning("Tree listing for %s@%s was truncated by GitHub", repo, sha[:7])
        return listing

    async def get_file_content(self, repo: str, path: str, ref: str) -> bytes:
        """Get raw file content at a ref."""
        data = await self._request(
            "GET", f"/repos/{repo}/contents/{quote(path)}", params={"ref": ref}
        )
        if isinstance(data, list) or data.get("type") != "file":
            raise GitHubAPIError(422, f"Not a file: {path}")

        # Files over 1 MB come back without inline content
        if data.get("encoding") == "base64" and data.get("content"):
            return base64.b64decode(data["content"])
        if data.get("sha") and data.get("size", 0) > 0:
            return await self.get_blob(repo, data["sha"])
        return b""

    # ==================== Git data ====================

    async def get_blob(self, repo: str, sha: str) -> bytes:
        data = await self._request("GET", f"/repos/{repo}/git/blobs/{sha}")
        return base64.b64decode(data["content"])

    async def create_blob(self, repo: str, content: bytes) -> str:
        """Create a blob and return its SHA."""
        data = await self._request(
            "POST",
            f"/repos/{repo}/git/blobs",
            json={"content": base64.b64encode(content).decode("ascii"), "encoding": "base64"},
        )
        return data["sha"]

    async def get_commit(self, repo: str, sha: str) -> dict[str, Any]:
        """Get a Git commit object (``tree.sha``, ``parents``)."""
        return await self._request("GET", f"/repos/{repo}/git/commits/{sha}")

    async def create_tree(
        self, repo: str, entries: list[dict[str, Any]], base_tree: str | None = None
    ) -> str:
        """Create a tree, optionally layered over ``base_tree``, and return its SHA."""
        payload: dict[str, Any] = {"tree": entries}
        if base_tree:
            payload["base_tree"] = base_tree
        data = await self._request("POST", f"/repos/{repo}/git/trees", json=payload)
        return data["sha"]

    async def create_commit(self, repo: str, message: str, tree: str, parents: list[str]) -> str:
        """Create a commit and return its SHA."""
        data = await self._request(
            "POST",
            f"/repos/{repo}/git/commits",
            json={"message": message, "tree": tree, "parents": parents},
        )
        return data["sha"]

    async def create_ref(self, repo: str, branch: str, sha: str) -> dict[str, Any]:
        """
        Create ``refs/heads/<branch>`` pointing at ``sha``.

        Raises:
            BranchExistsError: If the branch already exists.
        """
        try:
            return await self._request(
                "POST",
                f"/repos/{repo}/git/refs",
                json={"ref": f"refs/heads/{branch}", "sha": sha},
            )
        except GitHubAPIError as e:
            if e.status_code == 422 and "already exists" in e.message.lower():
                raise BranchExistsError(branch) from e
            raise

    async def update_ref(
        self, repo: str, branch: str, sha: str, *, force: bool = False
    ) -> dict[str, Any]:
        """Move ``refs/heads/<branch>`` to ``sha`` (fast-forward unless ``force``)."""
        return await self._request(
            "PATCH",
            f"/repos/{repo}/git/refs/heads/{quote(branch)}",
            json={"sha": sha, "force": force},
        )

    # ==================== Pull requests ====================

    async def create_pull_request(
        self,
        repo: str,
        *,
        title: str,
        body: str,
        head: str,
        base: str,
        maintainer_can_modify: bool = True,
    ) -> dict[str, Any]:
        """Open a pull request and return it (``number``, ``html_url``)."""
        return await self._request(
            "POST",
            f"/repos/{repo}/pulls",
            json={
                "title": title,
                "body": body,
                "head": head,
                "base": base,
                "maintainer_can_modify": maintainer_can_modify,
            },
        )

    async def list_open_pull_requests(
        self, repo: str, *, head: str | None = None, base: str | None = None
    ) -> list[dict[str, Any]]:
        """List open pull requests, optionally filtered by ``owner:branch`` head and base."""
        params: dict[str, Any] = {"state": "open", "per_page": 100}
        if head:
            params["head"] = head
        if base:
            params["base"] = base
        return await self._request("GET", f"/repos/{repo}/pulls", params=params)
