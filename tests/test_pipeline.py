from __future__ import annotations

import asyncio
import json

import httpx

from conftest import API_HOST, KEYS_HOST, pod

from scripts.keysync.config import RunMode
from scripts.keysync.models import Application
from scripts.keysync.pipeline import fetch_keys, resolve_collaborators, run_async
from scripts.keysync.providers.github import GitHubProvider
from scripts.keysync.tokens import TokenPool

ALICE_KEY = "ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAABAQC alice@laptop"


def _seed_widget(upstream):
    upstream.pods = [pod()]
    upstream.collaborators["acme/widget"] = [
        {"login": "alice", "permissions": {"push": True}},
        {"login": "bob", "permissions": {"push": False}},
    ]
    upstream.keys["alice"] = ALICE_KEY + "\n"


def test_single_workload_scenario(make_config, make_clients, upstream, tmp_path):
    _seed_widget(upstream)
    config = make_config()
    orchestrator, github = make_clients(config)

    result = asyncio.run(run_async(config, orchestrator=orchestrator, github=github))

    keys_file = config.output.keys_path / "u-widget"
    assert keys_file.read_text().splitlines() == [
        f'environment="CONNECTION_STRING=-n ns1  c1"   {ALICE_KEY}'
    ]
    assert (config.output.keys_path / "c1").read_text() == keys_file.read_text()
    assert "bob" not in keys_file.read_text()
    assert "/bob.keys" not in upstream.paths(KEYS_HOST)

    passwd = (tmp_path / "passwd").read_text()
    assert "u-widget:x:1000:1000:acme/widget:/home/u-widget:/bin/sh" in passwd
    assert result.report.password_file == str(tmp_path / "passwd")
    assert result.state.users == {"alice": ("acme/widget",)}


def test_zero_collaborators_leaves_existing_file(make_config, make_clients, upstream, tmp_path, caplog):
    upstream.pods = [pod()]
    upstream.collaborators["acme/widget"] = []
    config = make_config()
    existing = config.output.keys_path / "u-widget"
    existing.write_text("previous contents\n")
    orchestrator, github = make_clients(config)

    with caplog.at_level("ERROR", logger="keysync.synthesizer"):
        result = asyncio.run(run_async(config, orchestrator=orchestrator, github=github))

    assert existing.read_text() == "previous contents\n"
    assert not (config.output.keys_path / "c1").exists()
    assert "No keys returned" in caplog.text
    assert str(existing) in result.report.skipped
    assert "u-widget" in (tmp_path / "passwd").read_text()


def test_workloads_without_login_produce_nothing(make_config, make_clients, upstream):
    _seed_widget(upstream)
    upstream.pods = [pod(ssh_user=None, container="orphan"), pod()]
    config = make_config()
    orchestrator, github = make_clients(config)

    result = asyncio.run(run_async(config, orchestrator=orchestrator, github=github))

    assert list(result.state.applications) == ["u-widget"]
    assert not (config.output.keys_path / "orphan").exists()


def test_failed_repository_does_not_block_others(make_config, make_clients, upstream):
    _seed_widget(upstream)
    upstream.pods = [pod(), pod(name="gone", ssh_user="u-gone", container="g1")]
    config = make_config()
    orchestrator, github = make_clients(config)

    result = asyncio.run(run_async(config, orchestrator=orchestrator, github=github))

    assert result.state.applications["u-gone"].collaborators == ()
    assert (config.output.keys_path / "u-widget").exists()
    assert not (config.output.keys_path / "u-gone").exists()


def test_account_without_keys_gets_empty_entry(make_config, make_clients, upstream):
    upstream.pods = [pod()]
    upstream.collaborators["acme/widget"] = [{"login": "nokeys", "permissions": {"push": True}}]
    config = make_config()
    orchestrator, github = make_clients(config)

    result = asyncio.run(run_async(config, orchestrator=orchestrator, github=github))

    assert result.state.keys == {"nokeys": ()}
    assert not (config.output.keys_path / "u-widget").exists()


def test_snapshot_mode_skips_file_synthesis(make_config, make_clients, upstream, tmp_path):
    _seed_widget(upstream)
    config = make_config(mode=RunMode.SNAPSHOT)
    orchestrator, github = make_clients(config)

    result = asyncio.run(run_async(config, orchestrator=orchestrator, github=github))

    assert json.loads((tmp_path / "state.json").read_text()) == {"keys": {"alice": [ALICE_KEY]}}
    assert result.report is None
    assert not (config.output.keys_path / "u-widget").exists()
    assert not (tmp_path / "passwd").exists()


def test_collaborator_stage_concurrency_is_bounded(make_config):
    in_flight = 0
    peak = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return httpx.Response(200, json=[{"login": "alice", "permissions": {"push": True}}])

    config = make_config()
    github = GitHubProvider(
        config.github,
        config.http,
        tokens=TokenPool(config.github.tokens),
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    apps = {
        f"u{i}": Application(login=f"u{i}", repo_id=f"acme/repo{i}") for i in range(8)
    }

    result = asyncio.run(resolve_collaborators(apps, github, concurrency=3))

    assert peak == 3
    assert result.users["alice"] == tuple(f"acme/repo{i}" for i in range(8))
    assert all(app.collaborators for app in result.applications.values())


def test_fetch_keys_deduplicates_accounts(make_config, upstream):
    upstream.keys = {"alice": "ssh-rsa A\n", "bob": "\n"}
    config = make_config()
    github = GitHubProvider(
        config.github, config.http, tokens=TokenPool(config.github.tokens), client=upstream.client()
    )

    keys = asyncio.run(fetch_keys(["alice", "bob", "alice", "carol"], github))

    assert keys == {"alice": ("ssh-rsa A",), "bob": (), "carol": ()}
    assert sorted(upstream.paths(KEYS_HOST)) == ["/alice.keys", "/bob.keys", "/carol.keys"]
    assert upstream.paths(API_HOST) == []
