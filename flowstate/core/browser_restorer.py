"""Browser tab restoration with rate limiting.

Tabs are reopened through the first tier that works for their browser:
the remote debugging endpoints of an already running browser, spawning
the captured browser executable, or the system default browser.
"""

import asyncio
import logging
import webbrowser
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..models.capture import Asset, BrowserTabMetadata
from ..models.config import Settings
from ..services.devtools_client import DevToolsClient
from ..services.exceptions import (
    InvalidUrlError,
    MissingMetadataError,
    RemoteControlUnavailable,
    RestorationCancelled,
)
from ..utils.security import is_internal_url, validate_external_url
from .cancellation import CancellationToken
from .constants import (
    BATCH_PAUSE,
    CDP_TAB_DELAY,
    DEVTOOLS_BROWSERS,
    LOAD_GATE_POLL_INTERVAL,
    LOAD_GATE_SETTLE_DELAY,
    LOAD_GATE_TIMEOUT,
    SPAWN_TAB_DELAY,
)
from .terminal_launcher import spawn_detached

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


@dataclass
class BrowserGroup:
    """Tabs that belong to one browser installation."""
    browser_name: str
    browser_path: str
    debugging_port: Optional[int] = None
    urls: List[str] = field(default_factory=list)

    @property
    def supports_devtools(self) -> bool:
        return self.browser_name in DEVTOOLS_BROWSERS


def chunk(items: List[str], size: int) -> List[List[str]]:
    return [items[start:start + size] for start in range(0, len(items), size)]


def _parse_metadata(asset: Asset) -> BrowserTabMetadata:
    return BrowserTabMetadata.model_validate(asset.metadata or {})


def group_assets(assets: List[Asset]) -> List[BrowserGroup]:
    """Group restorable tabs by browser, skipping notices and internal pages."""
    groups: Dict[Tuple[str, str], BrowserGroup] = {}
    for asset in assets:
        try:
            metadata = _parse_metadata(asset)
        except ValidationError as e:
            logger.warning(f"Skipping browser asset {asset.id}: invalid metadata ({e.error_count()} error(s))")
            continue

        if metadata.debugging_enabled is False:
            logger.info(f"Skipping browser notice: {asset.title}")
            continue

        url = (metadata.url or asset.path or "").strip()
        if is_internal_url(url):
            logger.info(f"Skipped internal browser URL: {asset.title}")
            continue
        if not url.lower().startswith("http"):
            logger.debug(f"Skipping non-http URL for {asset.title}")
            continue

        key = (metadata.browser_name or "Default", metadata.browser_path or "")
        group = groups.get(key)
        if group is None:
            group = groups[key] = BrowserGroup(browser_name=key[0], browser_path=key[1])
        if metadata.debugging_port and not group.debugging_port:
            group.debugging_port = metadata.debugging_port
        group.urls.append(url)
    return list(groups.values())


class BrowserRestorer:
    """Reopens captured browser tabs in batches."""

    def __init__(
        self,
        progress: Optional[ProgressCallback] = None,
        devtools_factory: Callable[[int], DevToolsClient] = DevToolsClient,
        spawner: Callable[..., None] = spawn_detached,
        opener: Callable[[str], object] = webbrowser.open_new_tab,
        settings: Optional[Settings] = None,
    ):
        self.progress = progress or (lambda message: None)
        self.devtools_factory = devtools_factory
        self.spawner = spawner
        self.opener = opener
        self.settings = settings or Settings()

    async def restore(self, assets: List[Asset], token: CancellationToken) -> None:
        """Restore every tab in ``assets``. Only cancellation propagates."""
        for group in group_assets(assets):
            token.raise_if_cancelled()
            logger.info(f"Restoring {len(group.urls)} tab(s) in {group.browser_name} with rate limiting...")
            try:
                remaining = await self._restore_preferred(group, token)
            except RestorationCancelled:
                raise
            except Exception as e:
                logger.warning(f"Failed to open tabs in {group.browser_name}, falling back to default browser: {e}")
                remaining = group.urls
            if remaining:
                await self.restore_with_opener(remaining, token)

    async def _restore_preferred(self, group: BrowserGroup, token: CancellationToken) -> List[str]:
        """Try the debugging endpoints, then spawning.

        Returns:
            URLs left for the default browser
        """
        if group.debugging_port and group.supports_devtools:
            try:
                await self.restore_with_devtools(group, token)
                return []
            except RemoteControlUnavailable as e:
                logger.info(f"Remote debugging not available for {group.browser_name}, using spawn method: {e}")

        if group.browser_path and group.supports_devtools:
            return await self.restore_with_spawn(group, token)
        return group.urls

    async def restore_with_devtools(self, group: BrowserGroup, token: CancellationToken) -> None:
        client = self.devtools_factory(group.debugging_port)
        targets = await client.list_targets()
        if not targets:
            raise RemoteControlUnavailable(f"No targets on debugging port {group.debugging_port}")
        baseline = sum(1 for target in targets if target.get("type") == "page")

        batches = chunk(group.urls, self.settings.browser_batch_size)
        opened = 0
        for index, batch in enumerate(batches):
            token.raise_if_cancelled()
            logger.info(f"Opening batch {index + 1}/{len(batches)} ({len(batch)} tabs) via remote debugging")
            for url in batch:
                token.raise_if_cancelled()
                try:
                    await client.open_tab(url)
                    opened += 1
                except RemoteControlUnavailable as e:
                    logger.warning(f"Could not open {url[:60]}: {e}")
                await asyncio.sleep(CDP_TAB_DELAY)
            token.raise_if_cancelled()

            if index < len(batches) - 1:
                self.progress(f"Batch {index + 1}/{len(batches)} opened, waiting for tabs to load...")
                await self.wait_for_tabs(client, baseline + opened, token)
        logger.info(f"Opened {opened} tab(s) in {group.browser_name} via remote debugging ({len(batches)} batch(es))")

    async def wait_for_tabs(self, client: DevToolsClient, expected: int, token: CancellationToken) -> bool:
        """Poll until ``expected`` page targets exist; False on timeout."""
        polls = int(LOAD_GATE_TIMEOUT / LOAD_GATE_POLL_INTERVAL)
        for _ in range(polls):
            token.raise_if_cancelled()
            try:
                pages = await client.count_pages()
            except RemoteControlUnavailable as e:
                logger.debug(f"Target list unavailable while waiting for tabs: {e}")
                pages = -1
            if pages >= expected:
                await asyncio.sleep(LOAD_GATE_SETTLE_DELAY)
                return True
            await asyncio.sleep(LOAD_GATE_POLL_INTERVAL)
        logger.info(f"Timed out waiting for {expected} tab(s) to load, proceeding")
        return False

    async def restore_with_spawn(self, group: BrowserGroup, token: CancellationToken) -> List[str]:
        """Spawn the browser once per URL. Returns the URLs that could not be spawned."""
        batches = chunk(group.urls, self.settings.browser_batch_size)
        failed = []
        for index, batch in enumerate(batches):
            token.raise_if_cancelled()
            for url in batch:
                token.raise_if_cancelled()
                try:
                    self.spawner([group.browser_path, url])
                    logger.debug(f"Spawned {group.browser_name} for {url[:60]}")
                except OSError as e:
                    logger.warning(f"Could not spawn {group.browser_name} for {url[:60]}: {e}")
                    failed.append(url)
                await asyncio.sleep(SPAWN_TAB_DELAY)
            token.raise_if_cancelled()

            if index < len(batches) - 1:
                self.progress(f"Batch {index + 1}/{len(batches)} opened, waiting for tabs to load...")
                await asyncio.sleep(BATCH_PAUSE)
        opened = len(group.urls) - len(failed)
        logger.info(f"Opened {opened} tab(s) in {group.browser_name} via spawn ({len(batches)} batch(es))")
        return failed

    async def restore_with_opener(self, urls: List[str], token: CancellationToken) -> None:
        batches = chunk(urls, self.settings.default_browser_batch_size)
        opened = 0
        for index, batch in enumerate(batches):
            token.raise_if_cancelled()
            for url in batch:
                token.raise_if_cancelled()
                try:
                    safe_url = validate_external_url(url)
                except InvalidUrlError as e:
                    logger.warning(f"Skipping invalid URL: {e}")
                    continue
                try:
                    self.opener(safe_url)
                    opened += 1
                except (OSError, webbrowser.Error) as e:
                    logger.warning(f"Could not open {safe_url[:60]} in default browser: {e}")
                await asyncio.sleep(SPAWN_TAB_DELAY)
            token.raise_if_cancelled()

            if index < len(batches) - 1:
                await asyncio.sleep(BATCH_PAUSE)
        logger.info(f"Opened {opened} of {len(urls)} tab(s) in default browser ({len(batches)} batch(es))")

    async def restore_single(self, asset: Asset, token: Optional[CancellationToken] = None) -> None:
        """Restore one tab, raising instead of skipping when it cannot be opened.

        Raises:
            MissingMetadataError: If the asset is a debugging-disabled notice
            InvalidUrlError: If the URL is missing, browser-internal or not http(s)
        """
        try:
            metadata = _parse_metadata(asset)
        except ValidationError as e:
            raise MissingMetadataError(f"Browser metadata for {asset.id} is invalid: {e}") from e

        if metadata.debugging_enabled is False:
            raise MissingMetadataError(
                "Cannot restore: browser debugging is not enabled. Enable remote debugging and capture again."
            )
        url = metadata.url or asset.path
        if not url:
            raise InvalidUrlError("No URL found in asset metadata or path")
        if is_internal_url(url):
            raise InvalidUrlError(f"Cannot restore internal browser URL: {url}")
        validate_external_url(url)

        await self.restore([asset], token or CancellationToken())
        logger.info(f"Restored browser asset: {asset.title}")
