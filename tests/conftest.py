from __future__ import annotations

from typing import Callable, Optional

import httpx
import pytest

from scripts.keysync.config import (
    GitHubConfig,
    HttpConfig,
    KeySyncConfig,
    OrchestratorConfig,
    OutputConfig,
    RateLimitPolicy,
    RunMode,
)
from scripts.keysync.providers.github import GitHubProvider
from scripts.keysync.providers.orchestrator import OrchestratorClient
from scripts.keysync.tokens import TokenPool

ORCH_HOST = "orch.test"
API_HOST = "api.test"
KEYS_HOST = "keys.test"


def pod(
    owner: Optional[str] = "acme",
    name: Optional[str] = "widget",
    ssh_user: Optional[str] = "u-widget",
    namespace: str = "ns1",
    container: Optional[str] = "c1",
    legacy_labels: bool = False,
) -> dict:
    labels: dict[str, str] = {}
    if owner:
        labels["git_owner" if legacy_labels else "git.owner"] = owner
    if name:
        labels["git_name" if legacy_labels else "git.name"] = name
    if ssh_user:
        labels["ci.rabbit.ssh.user"] = ssh_user
    metadata: dict = {"labels": labels, "namespace": namespace}
    if container:
        metadata["name"] = container
    return {"metadata": metadata}


@pytest.fixture
def make_config(tmp_path) -> Callable[..., KeySyncConfig]:
    def _make(
        mode: RunMode = RunMode.FILES,
        tokens: tuple[str, ...] = ("tok-aaaa",),
        rate_limit_policy: RateLimitPolicy = RateLimitPolicy.LOG,
    ) -> KeySyncConfig:
        keys_dir = tmp_path / "authorized_keys.d"
        keys_dir.mkdir(exist_ok=True)
        return KeySyncConfig(
            mode=mode,
            github=GitHubConfig(
                tokens=tokens,
                api_base_url=f"https://{API_HOST}",
                keys_base_url=f"https://{KEYS_HOST}",
                rate_limit_policy=rate_limit_policy,
            ),
            output=OutputConfig(
                keys_path=keys_dir,
                password_file=tmp_path / "passwd",
                password_template="alpine.passwords",
                snapshot_path=tmp_path / "state.json",
            ),
            orchestrator=OrchestratorConfig(host=ORCH_HOST, port=8080, token="internal"),
            http=HttpConfig(timeout_s=5.0, max_retries=2, backoff_base_s=0.0),
        )

    return _make


class FakeUpstream:
    """Routes orchestrator, GitHub API and key listing requests to canned data."""

    def __init__(self) -> None:
        self.pods: list[dict] = []
        self.collaborators: dict[str, list[dict]] = {}
        self.keys: dict[str, str] = {}
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host, path = request.url.host, request.url.path
        if host == ORCH_HOST:
            return httpx.Response(200, json={"items": self.pods})
        if host == API_HOST:
            repo = path[len("/repos/"):-len("/collaborators")]
            if repo not in self.collaborators:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json=self.collaborators[repo])
        if host == KEYS_HOST:
            account = path.lstrip("/")[: -len(".keys")]
            if account not in self.keys:
                return httpx.Response(404, text="Not Found")
            return httpx.Response(200, text=self.keys[account])
        return httpx.Response(500)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.MockTransport(self.handler), follow_redirects=True
        )

    def paths(self, host: str) -> list[str]:
        return [r.url.path for r in self.requests if r.url.host == host]


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def make_clients(upstream):
    def _make(config: KeySyncConfig):
        orchestrator = OrchestratorClient(
            config.orchestrator, config.http, client=upstream.client()
        )
        github = GitHubProvider(
            config.github,
            config.http,
            tokens=TokenPool(config.github.tokens),
            client=upstream.client(),
        )
        return orchestrator, github

    return _make
