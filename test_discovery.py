"""
Tests for agent discovery: gateway session listing, local agents and the
agents file.
"""

import asyncio
import json
import tempfile
import shutil
from pathlib import Path

from session_hub.discovery.feed import DiscoveryFeed, load_agents_file
from session_hub.discovery.gateway_client import (
    GatewayClient, GatewayError, discover_local_agent_ids, normalize_agents
)
from session_hub.utils.config import DiscoveryConfig

class FakeSocket:
    """Replays queued gateway frames and records what was sent."""

    def __init__(self, frames):
        self.frames = [json.dumps(f) if isinstance(f, dict) else f for f in frames]
        self.sent = []

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def recv(self):
        return self.frames.pop(0)

def test_normalize_agents():
    rows = [
        {"key": "agent:alpha:main", "model": "m1", "updatedAt": 1700000000000},
        {"agentId": "alpha", "displayName": "Alpha"},
        {"key": "solo"},
        "not a row",
    ]

    agents = {a["id"]: a for a in normalize_agents(rows)}
    assert set(agents) == {"alpha", "main"}
    assert agents["alpha"]["sessions"] == 2
    assert agents["alpha"]["model"] == "m1"
    assert agents["alpha"]["online"] is True
    assert agents["alpha"]["source"] == "discovered"
    assert agents["main"]["sessions"] == 1

def test_discover_local_agent_ids():
    temp_dir = Path(tempfile.mkdtemp())

    try:
        (temp_dir / "beta").mkdir()
        (temp_dir / "alpha").mkdir()
        (temp_dir / "notes.txt").write_text("not an agent")

        assert discover_local_agent_ids(str(temp_dir)) == ["alpha", "beta"]
        assert discover_local_agent_ids(str(temp_dir / "missing")) == []

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

def test_load_agents_file():
    temp_dir = Path(tempfile.mkdtemp())

    try:
        assert load_agents_file(str(temp_dir / "missing.json")) == {}

        bad = temp_dir / "bad.json"
        bad.write_text("{oops")
        assert load_agents_file(str(bad)) == {}

        listed = temp_dir / "list.json"
        listed.write_text("[]")
        assert load_agents_file(str(listed)) == {}

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

def test_feed_reads_agents_file():
    temp_dir = Path(tempfile.mkdtemp())

    try:
        agents_file = temp_dir / "agents.json"
        agents_file.write_text(json.dumps({
            "agents": [{"id": "conf", "name": "Configured"}, "bad"],
            "gateways": ["ws://g1"],
            "gatewayWsUrl": "ws://g2, ws://g3",
            "registryUrl": "https://registry.example.org/gateways.json",
        }))
        config = DiscoveryConfig(agents_file=str(agents_file), gateways="ws://g0",
                                 local_agents_dir=str(temp_dir), try_local_gateway=False)

        feed = DiscoveryFeed(config, on_agents=lambda agents: None)
        assert feed.configured_agents() == [{"id": "conf", "name": "Configured"}]
        assert feed.gateway_urls() == ["ws://g0", "ws://g1", "ws://g2", "ws://g3"]
        assert feed.registry_url == "https://registry.example.org/gateways.json"
        assert feed.live_connections == 0

        config.try_local_gateway = True
        assert feed.gateway_urls()[-1] == config.local_gateway_url

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

def test_connect_gateway_dedupes():
    changes = []

    async def scenario():
        config = DiscoveryConfig(agents_file="missing-agents.json", try_local_gateway=False)
        feed = DiscoveryFeed(config, on_agents=lambda agents: None,
                             on_gateways_changed=lambda: changes.append(1))
        feed._add_gateways(["ws://127.0.0.1:1", "ws://127.0.0.1:1"])
        feed._add_gateways(["ws://127.0.0.1:1"])
        known = list(feed.clients)
        await feed.stop()
        return known, feed

    known, feed = asyncio.run(scenario())
    assert known == ["ws://127.0.0.1:1"]
    assert changes == [1]
    assert feed.clients == {}

def test_gateway_request_answers_challenge():
    client = GatewayClient("ws://gateway", on_agents=lambda agents: None, token="secret")
    socket = FakeSocket([
        {"type": "event", "event": "connect.challenge", "payload": {"nonce": "n"}},
        {"type": "res", "id": "req-1", "payload": {"stale": True}},
        "not json",
        {"type": "res", "id": "req-2", "payload": {"protocol": 3}},
    ])

    payload = asyncio.run(client._request(socket, "connect", client._connect_params()))
    assert payload == {"protocol": 3}
    assert [m["method"] for m in socket.sent] == ["connect", "connect"]
    assert socket.sent[0]["params"]["auth"] == {"token": "secret"}
    assert socket.sent[0]["params"]["role"] == "operator"

def test_gateway_request_error():
    client = GatewayClient("ws://gateway", on_agents=lambda agents: None)
    socket = FakeSocket([{"type": "res", "id": "req-1", "error": {"message": "denied"}}])

    try:
        asyncio.run(client._request(socket, "sessions.list", {}))
        assert False, "Expected GatewayError"
    except GatewayError as e:
        assert "denied" in str(e)

def test_gateway_poll_falls_back_to_legacy_method():
    seen = []
    client = GatewayClient("ws://gateway", on_agents=seen.append)
    socket = FakeSocket([
        {"type": "res", "id": "req-1", "error": {"message": "unknown method"}},
        {"type": "res", "id": "req-2", "payload": {"sessions": [{"agentId": "x"}]}},
    ])

    asyncio.run(client._poll(socket))
    assert [m["method"] for m in socket.sent] == ["sessions.list", "sessions_list"]
    assert seen[0][0]["id"] == "x"

def test_split_gateway_setting():
    config = DiscoveryConfig(gateways="ws://a, ws://b,")
    assert config.gateways == ["ws://a", "ws://b"]
