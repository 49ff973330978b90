"""
Long-term memory recall service client.

Optional: when an API key is configured the Thinker asks it for context
related to the current topic. Failures yield an empty list.
"""

import logging
from typing import List, Optional

import httpx

logger = logging.getLogger(__name__)

class MemoryRecallClient:
    """Client for a memU-compatible retrieve API."""

    def __init__(self, api_key: str, api_url: str = "https://api.memu.so",
                 timeout: Optional[float] = 30.0):
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _headers(self):
        return {"Authorization": f"Bearer {self.api_key}"}

    async def retrieve(self, query: str, method: str = "rag") -> List[str]:
        """Return recalled text items for ``query``."""
        body = {"queries": [{"role": "user", "content": {"text": query}}], "method": method}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(f"{self.api_url}/api/v3/memory/retrieve",
                                             headers=self._headers(), json=body)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Memory recall failed: {e}")
            return []

        if not isinstance(data, dict):
            return []

        items = []
        for item in data.get("items") or []:
            if isinstance(item, str):
                text = item
            elif isinstance(item, dict):
                text = item.get("content") or item.get("text") or ""
            else:
                text = ""
            if text:
                items.append(str(text))
        return items

