"""Client for a browser's remote debugging HTTP endpoints."""

import asyncio
import logging
from typing import Any, Dict, List
from urllib.parse import quote

import aiohttp

from ..core.constants import DEVTOOLS_REQUEST_TIMEOUT
from .exceptions import RemoteControlUnavailable

logger = logging.getLogger(__name__)


class DevToolsClient:
    """Talks to /json/list and /json/new on a local debugging port."""

    def __init__(self, port: int, host: str = "127.0.0.1", timeout: float = DEVTOOLS_REQUEST_TIMEOUT):
        self.port = int(port)
        self.base_url = f"http://{host}:{self.port}"
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def _request(self, method: str, path: str) -> Any:
        url = f"{self.base_url}{path}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.request(method, url) as resp:
                    if resp.status != 200:
                        raise RemoteControlUnavailable(f"{method} {path} returned HTTP {resp.status}")
                    return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise RemoteControlUnavailable(f"Debugging port {self.port} unreachable: {e}") from e

    async def list_targets(self) -> List[Dict[str, Any]]:
        """Return all debugging targets (pages, workers, extensions)."""
        targets = await self._request("GET", "/json/list")
        if not isinstance(targets, list):
            raise RemoteControlUnavailable(f"Unexpected /json/list response on port {self.port}")
        return targets

    async def count_pages(self) -> int:
        return sum(1 for target in await self.list_targets() if target.get("type") == "page")

    async def open_tab(self, url: str) -> Dict[str, Any]:
        """Open ``url`` in a new tab and return the created target."""
        target = await self._request("PUT", f"/json/new?{quote(url, safe='')}")
        logger.debug(f"Opened tab {target.get('id') if isinstance(target, dict) else target} for {url}")
        return target
