"""Reconciliation pipeline: inventory -> collaborators -> keys -> terminus.

Each stage fans out, joins every task, and returns a fresh value for the
next stage. No stage starts before the previous one has fully drained.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, replace
from typing import Any, Iterable, Mapping, Optional

from scripts.keysync.config import KeySyncConfig, RunMode
from scripts.keysync.errors import KeySyncError
from scripts.keysync.models import (
    Application,
    Collaborator,
    ResolvedState,
    build_applications,
)
from scripts.keysync.providers.github import GitHubProvider
from scripts.keysync.providers.orchestrator import OrchestratorClient
from scripts.keysync.snapshot import write_snapshot
from scripts.keysync.synthesizer import ArtifactSynthesizer, SynthesisReport

logger = logging.getLogger("keysync.pipeline")


@dataclass(frozen=True)
class CollaboratorResult:
    applications: dict[str, Application]
    users: dict[str, tuple[str, ...]]


@dataclass(frozen=True)
class RunResult:
    run_id: str
    mode: RunMode
    state: ResolvedState
    report: Optional[SynthesisReport] = None
    snapshot_path: Optional[str] = None

    def summary(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "run_id": self.run_id,
            "mode": self.mode.value,
            "applications": len(self.state.applications),
            "users": len(self.state.users),
        }
        if self.report is not None:
            out.update(self.report.counts())
        if self.snapshot_path:
            out["snapshot_path"] = self.snapshot_path
        return out


async def resolve_collaborators(
    applications: Mapping[str, Application],
    github: GitHubProvider,
    concurrency: int = 3,
) -> CollaboratorResult:
    """Attach push collaborators to every application.

    At most ``concurrency`` repositories are queried at once. A failing
    repository degrades to the collaborators collected so far.
    """
    semaphore = asyncio.Semaphore(concurrency)

    async def _resolve(app: Application):
        if not app.repo_id:
            logger.warning(
                "Application has no repository labels, no collaborators resolved",
                extra={"stage": "collaborators", "login": app.login},
            )
            return app, []
        async with semaphore:
            return app, await github.collaborators(app.repo_id)

    results = await asyncio.gather(*(_resolve(app) for app in applications.values()))

    resolved: dict[str, Application] = {}
    users: dict[str, list[str]] = {}
    for app, found in results:
        merged: dict[str, Collaborator] = {}
        for collaborator in found:
            merged[collaborator.login] = collaborator
        resolved[app.login] = replace(app, collaborators=tuple(merged.values()))
        for login in merged:
            users.setdefault(login, []).append(app.repo_id)

    logger.info(
        "haveCollaborators. Have [%d].", len(users),
        extra={"stage": "collaborators", "count": len(users)},
    )
    return CollaboratorResult(
        applications=resolved,
        users={login: tuple(repos) for login, repos in users.items()},
    )


async def fetch_keys(
    accounts: Iterable[str],
    github: GitHubProvider,
    concurrency: Optional[int] = None,
) -> dict[str, tuple[str, ...]]:
    """Fetch public keys for every distinct account; unbounded by default."""
    accounts = list(dict.fromkeys(accounts))
    semaphore = asyncio.Semaphore(concurrency) if concurrency else None

    async def _fetch(account: str) -> tuple[str, ...]:
        if semaphore is None:
            return await github.keys(account)
        async with semaphore:
            return await github.keys(account)

    results = await asyncio.gather(*(_fetch(a) for a in accounts))
    keys = dict(zip(accounts, results))
    logger.info(
        "haveAllKeys [%d]", len(keys),
        extra={"stage": "keys", "count": len(keys)},
    )
    return keys


async def resolve_state(
    orchestrator: OrchestratorClient,
    github: GitHubProvider,
    collaborator_concurrency: int = 3,
    key_fetch_concurrency: Optional[int] = None,
) -> ResolvedState:
    """Run the three network stages and return the resolved mapping."""
    workloads = await orchestrator.fetch_workloads()
    applications = build_applications(workloads)
    logger.info(
        "Built %d applications from %d workloads", len(applications), len(workloads),
        extra={"stage": "inventory", "count": len(applications)},
    )

    collab = await resolve_collaborators(
        applications, github, concurrency=collaborator_concurrency
    )
    keys = await fetch_keys(collab.users, github, concurrency=key_fetch_concurrency)

    # Every referenced account gets an entry, possibly empty.
    for app in collab.applications.values():
        for collaborator in app.collaborators:
            keys.setdefault(collaborator.login, ())
    return ResolvedState(applications=collab.applications, users=collab.users, keys=keys)


async def run_async(
    config: KeySyncConfig,
    orchestrator: Optional[OrchestratorClient] = None,
    github: Optional[GitHubProvider] = None,
) -> RunResult:
    """One full reconciliation run against the configured terminus."""
    run_id = str(uuid.uuid4())
    started = time.monotonic()
    orchestrator = orchestrator or OrchestratorClient(config.orchestrator, config.http)
    github = github or GitHubProvider(config.github, config.http)

    async with orchestrator, github:
        state = await resolve_state(
            orchestrator,
            github,
            collaborator_concurrency=config.github.collaborator_concurrency,
            key_fetch_concurrency=config.github.key_fetch_concurrency,
        )

    if config.mode is RunMode.SNAPSHOT:
        path = config.output.snapshot_path
        try:
            write_snapshot(state, path)
        except OSError as exc:
            raise KeySyncError(f"Cannot write snapshot [{path}]: {exc}") from exc
        result = RunResult(run_id=run_id, mode=config.mode, state=state, snapshot_path=str(path))
    else:
        report = ArtifactSynthesizer(config.output).synthesize(state)
        result = RunResult(run_id=run_id, mode=config.mode, state=state, report=report)

    logger.info(
        "Run complete: %s", result.summary(),
        extra={"run_id": run_id, "duration_s": round(time.monotonic() - started, 3)},
    )
    return result


def run_once(config: KeySyncConfig) -> RunResult:
    return asyncio.run(run_async(config))
