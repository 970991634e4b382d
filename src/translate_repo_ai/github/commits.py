"""
Content-addressed commit construction.

Publishes translated files to a branch through the Git Data API
(blobs -> tree -> commit -> ref) without a working tree. Each language
batch becomes one commit whose parent is the previous batch's commit.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from translate_repo_ai.errors import CommitError
from translate_repo_ai.github.client import GitHubClient

logger = logging.getLogger(__name__)

# Regular, non-executable file
FILE_MODE = "100644"


def content_fingerprint(content: bytes | str) -> str:
    """SHA-256 hex digest of raw content (text is hashed as UTF-8)."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


@dataclass
class StagedFile:
    """A translated file waiting to be committed."""

    path: str
    content: str

    def encode(self) -> bytes:
        return self.content.encode("utf-8")


class CommitBuilder:
    """Builds chained commits on one branch of one repository."""

    def __init__(self, client: GitHubClient, repo: str, branch: str):
        """
        Initialize commit builder.

        Args:
            client: Authenticated GitHub client.
            repo: Repository ``owner/name``.
            branch: Branch that receives the commits (without ``refs/heads/``).
        """
        self.client = client
        self.repo = repo
        self.branch = branch

    @property
    def ref(self) -> str:
        return f"refs/heads/{self.branch}"

    async def create_branch(self, base_sha: str) -> str:
        """
        Create the branch at ``base_sha``.

        Raises:
            BranchExistsError: If the branch already exists.

        Returns:
            The full ref name.
        """
        await self.client.create_ref(self.repo, self.branch, base_sha)
        logger.info("Created branch %s on %s at %s", self.branch, self.repo, base_sha[:7])
        return self.ref

    async def commit_language_batch(
        self,
        parent_sha: str,
        files: Sequence[StagedFile],
        message: str,
        *,
        language: str = "",
    ) -> str:
        """
        Commit a batch of files on top of ``parent_sha`` and advance the branch.

        The branch ref is only moved after blobs, tree and commit have all
        been created, so a failure leaves it pointing at ``parent_sha``.

        Args:
            parent_sha: Commit the new commit is based on.
            files: Files to add or replace.
            message: Commit message.
            language: Language of the batch, for error reporting.

        Returns:
            SHA of the new commit.

        Raises:
            CommitError: If any step fails.
        """
        if not files:
            raise CommitError(language, ValueError("empty batch"))

        try:
            entries = []
            for staged in files:
                blob_sha = await self.client.create_blob(self.repo, staged.encode())
                entries.append(
                    {"path": staged.path, "mode": FILE_MODE, "type": "blob", "sha": blob_sha}
                )

            parent = await self.client.get_commit(self.repo, parent_sha)
            tree_sha = await self.client.create_tree(
                self.repo, entries, base_tree=parent["tree"]["sha"]
            )
            commit_sha = await self.client.create_commit(
                self.repo, message, tree_sha, [parent_sha]
            )
            await self.client.update_ref(self.repo, self.branch, commit_sha)
        except Exception as e:
            logger.error(
                "Commit of %d file(s) for '%s' on %s failed: %s",
                len(files),
                language,
                self.branch,
                e,
            )
            raise CommitError(language, e) from e

        logger.info(
            "Committed %d file(s) for '%s' on %s as %s",
            len(files),
            language,
            self.branch,
            commit_sha[:7],
        )
        return commit_sha
