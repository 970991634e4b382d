"""
pytest configuration for translate-repo-ai test suite
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import json
import re
from collections.abc import Callable

import httpx
import pytest

from translate_repo_ai.config import (
    RepositoryConfig,
    RepositorySettings,
    Settings,
    TranslationEngineConfig,
)
from translate_repo_ai.database import Database
from translate_repo_ai.github import GitHubClient
from translate_repo_ai.llm import LLMProvider, LLMResponse
from translate_repo_ai.queue import TaskQueue
from translate_repo_ai.translation import TranslationEngine, TranslationOrchestrator

REPO = "acme/docs"

_ROUTE = re.compile(r"^/repos/(?P<owner>[^/]+)/(?P<name>[^/]+)(?P<rest>/.*)?$")


class FakeGitHub:
    """
    In-memory Git Data + pull request API behind an ``httpx.MockTransport``.

    Objects are stored by fake SHAs; trees are flat ``{path: blob_sha}``
    mappings.
    """

    def __init__(self, files: dict[str, str], repo: str = REPO, default_branch: str = "main"):
        self.repo = repo
        self.default_branch = default_branch
        self.truncated = False
        self.blobs: dict[str, bytes] = {}
        self.trees: dict[str, dict[str, str]] = {}
        self.commits: dict[str, dict] = {}
        self.refs: dict[str, str] = {}
        self.pulls: list[dict] = []
        self.requests: list[tuple[str, str]] = []
        self._failures: list[dict] = []
        self._counter = 0

        blobs = {path: self._put_blob(text.encode()) for path, text in files.items()}
        tree_sha = self._put_tree(blobs)
        self.base_sha = self._put_commit(tree_sha, [], "Initial commit")
        self.refs[default_branch] = self.base_sha

        self.transport = httpx.MockTransport(self.handler)

    # ---- test helpers ----

    def client(self, token: str = "test-token") -> GitHubClient:
        return GitHubClient(token, transport=self.transport)

    def fail(self, method: str, path_fragment: str, status: int = 500, times: int | None = None):
        """Make matching requests fail with ``status`` (``times`` times, or always)."""
        self._failures.append(
            {"method": method, "fragment": path_fragment, "status": status, "times": times}
        )

    def chain(self, branch: str) -> list[dict]:
        """Commits reachable from a branch tip, newest first."""
        commits = []
        sha = self.refs.get(branch)
        while sha:
            commit = self.commits[sha]
            commits.append({"sha": sha, **commit})
            sha = commit["parents"][0] if commit["parents"] else None
        return commits

    def file_at(self, branch: str, path: str) -> str | None:
        tree = self.trees[self.commits[self.refs[branch]]["tree"]]
        blob = tree.get(path)
        return self.blobs[blob].decode() if blob else None

    def count(self, method: str, path_fragment: str) -> int:
        return sum(1 for m, p in self.requests if m == method and path_fragment in p)

    # ---- object store ----

    def _sha(self) -> str:
        self._counter += 1
        return hashlib.sha1(str(self._counter).encode()).hexdigest()

    def _put_blob(self, content: bytes) -> str:
        sha = self._sha()
        self.blobs[sha] = content
        return sha

    def _put_tree(self, entries: dict[str, str]) -> str:
        sha = self._sha()
        self.trees[sha] = dict(entries)
        return sha

    def _put_commit(self, tree: str, parents: list[str], message: str) -> str:
        sha = self._sha()
        self.commits[sha] = {"tree": tree, "parents": parents, "message": message}
        return sha

    def _resolve(self, ref: str) -> str | None:
        if ref in self.commits:
            return ref
        return self.refs.get(ref)

    def _is_ancestor(self, ancestor: str, sha: str) -> bool:
        while sha:
            if sha == ancestor:
                return True
            parents = self.commits[sha]["parents"]
            sha = parents[0] if parents else None
        return False

    # ---- HTTP ----

    def handler(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.requests.append((method, path))

        for failure in self._failures:
            if failure["method"] == method and failure["fragment"] in path:
                if failure["times"] is None or failure["times"] > 0:
                    if failure["times"] is not None:
                        failure["times"] -= 1
                    return httpx.Response(failure["status"], json={"message": "Injected failure"})

        match = _ROUTE.match(path)
        if not match or f"{match['owner']}/{match['name']}" != self.repo:
            return httpx.Response(404, json={"message": "Not Found"})
        rest = match["rest"] or ""
        body = json.loads(request.content) if request.content else {}

        if method == "GET" and rest == "":
            return httpx.Response(
                200, json={"full_name": self.repo, "default_branch": self.default_branch}
            )

        if method == "GET" and rest.startswith("/git/ref/heads/"):
            sha = self.refs.get(rest[len("/git/ref/heads/") :])
            if sha is None:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json={"object": {"sha": sha, "type": "commit"}})

        if method == "GET" and rest.startswith("/git/trees/"):
            sha = rest[len("/git/trees/") :]
            tree_sha = self.commits[sha]["tree"] if sha in self.commits else sha
            tree = self.trees[tree_sha]
            entries = []
            for directory in sorted({p.rsplit("/", 1)[0] for p in tree if "/" in p}):
                entries.append({"path": directory, "type": "tree", "mode": "040000"})
            for file_path, blob in tree.items():
                entries.append(
                    {
                        "path": file_path,
                        "type": "blob",
                        "mode": "100644",
                        "sha": blob,
                        "size": len(self.blobs[blob]),
                    }
                )
            return httpx.Response(
                200, json={"sha": tree_sha, "tree": entries, "truncated": self.truncated}
            )

        if method == "GET" and rest.startswith("/contents/"):
            file_path = rest[len("/contents/") :]
            commit = self._resolve(request.url.params.get("ref", self.default_branch))
            blob = self.trees[self.commits[commit]["tree"]].get(file_path) if commit else None
            if blob is None:
                return httpx.Response(404, json={"message": "Not Found"})
            content = self.blobs[blob]
            return httpx.Response(
                200,
                json={
                    "type": "file",
                    "path": file_path,
                    "sha": blob,
                    "size": len(content),
                    "encoding": "base64",
                    "content": base64.b64encode(content).decode(),
                },
            )

        if method == "POST" and rest == "/git/blobs":
            sha = self._put_blob(base64.b64decode(body["content"]))
            return httpx.Response(201, json={"sha": sha})

        if method == "GET" and rest.startswith("/git/commits/"):
            sha = rest[len("/git/commits/") :]
            commit = self.commits.get(sha)
            if commit is None:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(
                200,
                json={
                    "sha": sha,
                    "message": commit["message"],
                    "tree": {"sha": commit["tree"]},
                    "parents": [{"sha": p} for p in commit["parents"]],
                },
            )

        if method == "POST" and rest == "/git/trees":
            entries = dict(self.trees[body["base_tree"]]) if body.get("base_tree") else {}
            for entry in body["tree"]:
                entries[entry["path"]] = entry["sha"]
            return httpx.Response(201, json={"sha": self._put_tree(entries)})

        if method == "POST" and rest == "/git/commits":
            sha = self._put_commit(body["tree"], body["parents"], body["message"])
            return httpx.Response(201, json={"sha": sha})

        if method == "POST" and rest == "/git/refs":
            branch = body["ref"].removeprefix("refs/heads/")
            if branch in self.refs:
                return httpx.Response(422, json={"message": "Reference already exists"})
            self.refs[branch] = body["sha"]
            return httpx.Response(201, json={"ref": body["ref"], "object": {"sha": body["sha"]}})

        if method == "PATCH" and rest.startswith("/git/refs/heads/"):
            branch = rest[len("/git/refs/heads/") :]
            current = self.refs.get(branch)
            if current is None:
                return httpx.Response(422, json={"message": "Reference does not exist"})
            if not body.get("force") and not self._is_ancestor(current, body["sha"]):
                return httpx.Response(422, json={"message": "Update is not a fast forward"})
            self.refs[branch] = body["sha"]
            return httpx.Response(200, json={"object": {"sha": body["sha"]}})

        if method == "POST" and rest == "/pulls":
            number = len(self.pulls) + 1
            pull = {
                "number": number,
                "html_url": f"https://github.com/{self.repo}/pull/{number}",
                "state": "open",
                "title": body["title"],
                "body": body["body"],
                "head": {"ref": body["head"]},
                "base": {"ref": body["base"]},
            }
            self.pulls.append(pull)
            return httpx.Response(201, json=pull)

        if method == "GET" and rest == "/pulls":
            head = request.url.params.get("head")
            pulls = [
                p
                for p in self.pulls
                if p["state"] == "open"
                and (head is None or f"{self.repo.split('/')[0]}:{p['head']['ref']}" == head)
            ]
            return httpx.Response(200, json=pulls)

        return httpx.Response(404, json={"message": f"Unhandled {method} {path}"})


class FakeProvider(LLMProvider):
    """LLM provider returning canned translations."""

    def __init__(
        self,
        model: str = "fake/model",
        responder: Callable[[str, str], str] | None = None,
        delay: float = 0.0,
    ):
        self._model = model
        self._responder = responder or (lambda system, user: f"[translated] {user}")
        self._delay = delay
        self.finish_reason = "stop"
        self.calls: list[list[dict[str, str]]] = []

    @property
    def name(self) -> str:
        return "fake"

    @property
    def model(self) -> str:
        return self._model

    async def complete(self, messages, *, temperature=0.3, max_tokens=4000) -> LLMResponse:
        self.calls.append(messages)
        if self._delay:
            await asyncio.sleep(self._delay)
        content = self._responder(messages[0]["content"], messages[-1]["content"])
        return LLMResponse(
            content=content,
            model=self._model,
            prompt_tokens=10,
            completion_tokens=5,
            finish_reason=self.finish_reason,
        )


class StaticConfigStore:
    """Config store over mutable settings and a dict of repositories."""

    def __init__(self, *repositories: RepositorySettings, settings: Settings | None = None):
        self.repositories = {r.full_name: r for r in repositories}
        self.current_settings = settings or Settings()
        self.lookups = 0

    def settings(self) -> Settings:
        return self.current_settings

    def get_repository(self, full_name: str) -> RepositorySettings | None:
        self.lookups += 1
        return self.repositories.get(full_name)


def make_repository(**config) -> RepositorySettings:
    config.setdefault("target_languages", ["fr", "ja"])
    config.setdefault("file_patterns", ["**/*.md"])
    return RepositorySettings(
        full_name=REPO,
        installation_id=42,
        default_branch="main",
        description="Acme documentation",
        config=RepositoryConfig(**config),
        engines=[TranslationEngineConfig(model="fake/model", api_key="test-key")],
    )


@pytest.fixture
def db():
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture
def settings():
    return Settings(github={"token": "test-token"})


@pytest.fixture
def fake_github():
    return FakeGitHub(
        {
            "README.md": "# Acme\n\nWelcome.",
            "docs/guide.md": "# Guide\n\nRun `acme start`.",
            "src/app.py": "print('hello')\n",
        }
    )


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def make_orchestrator(db, settings, fake_github, provider):
    """Build an orchestrator wired to the fakes; keyword arguments override parts."""

    def build(
        repository: RepositorySettings | None = None,
        queue: TaskQueue | None = None,
        engine_provider: LLMProvider | None = None,
    ) -> TranslationOrchestrator:
        store = StaticConfigStore(repository or make_repository(), settings=settings)
        engine = TranslationEngine(engine_provider or provider)
        return TranslationOrchestrator(
            db=db,
            queue=queue or TaskQueue(concurrency=2, timeout=10.0),
            config_store=store,
            github_factory=fake_github.client,
            engine_factory=lambda engine_config: engine,
        )

    return build
