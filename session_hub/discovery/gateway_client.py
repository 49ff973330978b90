"""
Gateway Client for agent discovery

Connects to an agent gateway over WebSocket, handshakes as a read-only
operator and polls the live session list, reporting the agents behind
those sessions. Also discovers agent ids from a local agents directory.
"""

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import websockets

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = 3
CLIENT_VERSION = "0.1.0"
RESPONSE_TIMEOUT = 30.0

def discover_local_agent_ids(agents_dir: str) -> List[str]:
    """List agent ids (subdirectory names) in the local agents directory."""
    path = Path(agents_dir).expanduser()
    if not path.is_dir():
        return []
    try:
        return sorted(p.name for p in path.iterdir() if p.is_dir())
    except OSError as e:
        logger.warning(f"Failed to scan agents directory {path}: {e}")
        return []

def _timestamp(value: Any) -> Optional[str]:
    """Gateway timestamps are epoch milliseconds or ISO strings."""
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000).isoformat()
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value:
        return value
    return None

def normalize_agents(rows: List[Dict]) -> List[Dict]:
    """Group session rows by agent id into agent records."""
    by_agent: Dict[str, Dict] = {}
    for row in rows:
        if not isinstance(row, dict):
            continue
        agent_id = row.get("agentId")
        if not agent_id:
            key_parts = str(row.get("key") or "").split(":")
            agent_id = key_parts[1] if len(key_parts) > 1 and key_parts[1] else "main"

        agent = by_agent.get(agent_id)
        if agent is None:
            agent = {
                "id": agent_id,
                "name": row.get("displayName") or agent_id,
                "emoji": "🦞",
                "online": True,
                "last_seen": datetime.now().isoformat(),
                "sessions": 0,
                "model": row.get("model"),
                "source": "discovered",
            }
            by_agent[agent_id] = agent

        agent["sessions"] += 1
        if row.get("model"):
            agent["model"] = row["model"]
        updated = _timestamp(row.get("updatedAt"))
        if updated and updated > agent["last_seen"]:
            agent["last_seen"] = updated
    return list(by_agent.values())

class GatewayError(Exception):
    """The gateway answered a request with an error."""

class GatewayClient:
    """
    Polls one gateway for live agents.

    Features:
    - Operator handshake with optional token
    - Periodic session listing with method-name fallback
    - Automatic reconnect after failures
    """

    def __init__(self, ws_url: str, on_agents: Callable[[List[Dict]], None],
                 token: Optional[str] = None, poll_interval: float = 15.0,
                 reconnect_delay: float = 10.0):
        """
        Initialize gateway client.

        Args:
            ws_url: Gateway WebSocket URL
            on_agents: Called with normalized agent records after each poll
            token: Optional gateway auth token
            poll_interval: Seconds between session listings
            reconnect_delay: Seconds to wait before reconnecting
        """
        self.ws_url = ws_url
        self.on_agents = on_agents
        self.token = token
        self.poll_interval = poll_interval
        self.reconnect_delay = reconnect_delay

        self.connected = False
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._req_id = 0

    def start(self):
        """Start the connect/poll loop in the background."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run())

    async def stop(self):
        """Stop polling and close the connection."""
        self._running = False
        if self._task:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        self.connected = False

    async def _run(self):
        while self._running:
            try:
                async with websockets.connect(self.ws_url) as ws:
                    await self._handshake(ws)
                    self.connected = True
                    logger.info(f"Gateway connected: {self.ws_url}")
                    while self._running:
                        await self._poll(ws)
                        await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                break
            except (OSError, asyncio.TimeoutError, GatewayError,
                    websockets.exceptions.WebSocketException) as e:
                logger.debug(f"Gateway {self.ws_url} unavailable: {e}")
            except Exception as e:
                logger.error(f"Gateway {self.ws_url} error: {e}")
            finally:
                self.connected = False

            if self._running:
                await asyncio.sleep(self.reconnect_delay)

    def _connect_params(self) -> Dict[str, Any]:
        params = {
            "minProtocol": PROTOCOL_VERSION,
            "maxProtocol": PROTOCOL_VERSION,
            "client": {"id": "session-hub", "version": CLIENT_VERSION,
                       "platform": "python", "mode": "operator"},
            "role": "operator",
            "scopes": ["operator.read"],
            "caps": [],
            "commands": [],
            "permissions": {},
            "locale": "en-US",
            "userAgent": f"SessionHub/{CLIENT_VERSION}",
        }
        if self.token:
            params["auth"] = {"token": self.token}
        return params

    async def _handshake(self, ws):
        await self._request(ws, "connect", self._connect_params())

    async def _request(self, ws, method: str, params: Dict[str, Any]) -> Any:
        """Send one request and wait for its response frame."""
        req_id = await self._send(ws, method, params)

        while True:
            raw = await asyncio.wait_for(ws.recv(), timeout=RESPONSE_TIMEOUT)
            try:
                frame = json.loads(raw)
            except ValueError:
                continue
            if not isinstance(frame, dict):
                continue
            if frame.get("type") == "event" and frame.get("event") == "connect.challenge":
                # Answer the challenge with a fresh handshake and wait for that one
                if method == "connect":
                    req_id = await self._send(ws, method, self._connect_params())
                continue
            if frame.get("type") == "res" and frame.get("id") == req_id:
                if frame.get("error"):
                    raise GatewayError(str(frame["error"]))
                return frame.get("payload")

    async def _send(self, ws, method: str, params: Dict[str, Any]) -> str:
        self._req_id += 1
        req_id = f"req-{self._req_id}"
        await ws.send(json.dumps({"type": "req", "id": req_id, "method": method, "params": params}))
        return req_id

    async def _poll(self, ws):
        try:
            payload = await self._request(ws, "sessions.list", {"limit": 50})
        except GatewayError:
            payload = await self._request(ws, "sessions_list", {"limit": 50})

        if isinstance(payload, list):
            rows = payload
        elif isinstance(payload, dict):
            rows = payload.get("rows") or payload.get("sessions") or []
        else:
            rows = []

        agents = normalize_agents(rows)
        if agents:
            self.on_agents(agents)
