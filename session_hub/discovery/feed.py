"""
Discovery Feed for Session Hub

Collects agents from three places: the local agents file (configured
agents and gateway settings), the local agents directory, and live
gateways (configured directly or listed by a remote registry).
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx

from .gateway_client import GatewayClient, discover_local_agent_ids
from ..utils.config import DiscoveryConfig

logger = logging.getLogger(__name__)

def load_agents_file(path: str) -> Dict[str, Any]:
    """Read the agents file; missing or invalid files yield an empty dict."""
    file_path = Path(path)
    if not file_path.exists():
        return {}
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to read agents file {path}: {e}")
        return {}

def _gateway_list(data: Any) -> List[str]:
    if not isinstance(data, dict):
        return []
    urls = data.get("gateways") or data.get("gatewayUrls") or []
    if not isinstance(urls, list):
        return []
    return [u.strip() for u in urls if isinstance(u, str) and u.strip()]

class RegistryPoller:
    """Periodically fetches a registry document listing gateway URLs."""

    def __init__(self, url: str, on_gateways: Callable[[List[str]], None],
                 poll_interval: float = 300.0):
        self.url = url
        self.on_gateways = on_gateways
        self.poll_interval = poll_interval
        self._task: Optional[asyncio.Task] = None

    async def fetch(self) -> List[str]:
        """Fetch the registry once; failures yield an empty list."""
        try:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.get(self.url)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Registry fetch failed ({self.url}): {e}")
            return []
        gateways = _gateway_list(data)
        logger.debug(f"Registry listed {len(gateways)} gateway(s)")
        return gateways

    def start(self):
        self._task = asyncio.create_task(self._poll_loop())

    async def stop(self):
        if self._task:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    async def _poll_loop(self):
        while True:
            try:
                gateways = await self.fetch()
                if gateways:
                    self.on_gateways(gateways)
                await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Registry poll error: {e}")
                await asyncio.sleep(self.poll_interval)

class DiscoveryFeed:
    """
    Owns gateway clients and the registry poller.

    ``on_agents`` receives every batch of observed agents.
    """

    def __init__(self, config: DiscoveryConfig,
                 on_agents: Callable[[List[Dict]], None],
                 on_gateways_changed: Optional[Callable[[], None]] = None):
        """
        Initialize discovery feed.

        Args:
            config: Discovery configuration
            on_agents: Callback for observed agents
            on_gateways_changed: Called after new gateways are connected
        """
        self.config = config
        self.on_agents = on_agents
        self.on_gateways_changed = on_gateways_changed

        self.file_config = load_agents_file(config.agents_file)
        self.clients: Dict[str, GatewayClient] = {}
        self.registry: Optional[RegistryPoller] = None
        self._token = self.file_config.get("gatewayToken") or config.gateway_token

    @property
    def live_connections(self) -> int:
        return sum(1 for c in self.clients.values() if c.connected)

    @property
    def registry_url(self) -> Optional[str]:
        return self.config.registry_url or self.file_config.get("registryUrl")

    def configured_agents(self) -> List[Dict]:
        """Agents listed in the agents file."""
        agents = self.file_config.get("agents")
        return [a for a in agents if isinstance(a, dict)] if isinstance(agents, list) else []

    def discover(self) -> List[str]:
        """Agent ids found in the local agents directory."""
        ids = discover_local_agent_ids(self.config.local_agents_dir)
        if ids:
            logger.info(f"Discovered {len(ids)} local agent(s)")
        return ids

    def gateway_urls(self) -> List[str]:
        urls = list(self.config.gateways)
        urls.extend(_gateway_list(self.file_config))
        ws_url = self.file_config.get("gatewayWsUrl")
        if isinstance(ws_url, str):
            urls.extend(u.strip() for u in ws_url.split(",") if u.strip())
        if self.config.try_local_gateway and self.config.local_gateway_url not in urls:
            urls.append(self.config.local_gateway_url)
        return urls

    def connect_gateway(self, ws_url: str) -> bool:
        """Start polling a gateway unless already connected to it."""
        if ws_url in self.clients:
            return False
        logger.debug(f"Connecting gateway {ws_url}")
        client = GatewayClient(
            ws_url,
            on_agents=self.on_agents,
            token=self._token,
            poll_interval=self.config.gateway_poll_interval,
            reconnect_delay=self.config.reconnect_delay,
        )
        self.clients[ws_url] = client
        client.start()
        return True

    def _add_gateways(self, urls: List[str]):
        added = [url for url in urls if self.connect_gateway(url)]
        if added and self.on_gateways_changed:
            self.on_gateways_changed()

    async def start(self):
        """Connect known gateways and start registry polling."""
        for url in self.gateway_urls():
            self.connect_gateway(url)

        if self.registry_url:
            self.registry = RegistryPoller(
                self.registry_url, self._add_gateways,
                poll_interval=self.config.registry_poll_interval,
            )
            self.registry.start()

    async def stop(self):
        """Stop registry polling and close every gateway connection."""
        if self.registry:
            await self.registry.stop()
            self.registry = None
        for client in list(self.clients.values()):
            await client.stop()
        self.clients = {}
