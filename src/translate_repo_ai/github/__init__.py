"""
GitHub integration.

- GitHubClient: async REST client for repository, Git Data and pull request endpoints
- CommitBuilder: per-language chained commits built from blobs and trees
"""

from translate_repo_ai.github.client import GitHubClient, TreeListing
from translate_repo_ai.github.commits import CommitBuilder, StagedFile, content_fingerprint

__all__ = ["GitHubClient", "TreeListing", "CommitBuilder", "StagedFile", "content_fingerprint"]
