"""Restoration of a whole capture in a fixed order.

Terminals come first so Claude Code sessions can start while the rest of
the workspace opens, then code, notes and finally browser tabs.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..models.capture import Asset, AssetType
from ..models.config import Settings
from ..models.session import TerminalSession
from ..services.exceptions import MissingMetadataError, RestorationCancelled, RestoreError
from ..services.process_service import ProcessInspector
from ..utils.asset_store import AssetStore
from .app_restorers import CodeRestorer, NotesRestorer
from .browser_restorer import BrowserRestorer
from .cancellation import (
    CancellationToken,
    RestorationRun,
    cancel_active_run,
    finish_run,
    register_run,
)
from .constants import ASSISTANT_POLL_INTERVAL, ASSISTANT_SETTLE_DELAY, CLAUDE_KEYWORD
from .terminal_launcher import TerminalLauncher

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


@dataclass
class RestoreFailure:
    asset_id: str
    title: str
    error: str


@dataclass
class RestoreReport:
    """Outcome of one restoration run."""
    run_id: str
    capture_id: str
    total: int = 0
    restored: int = 0
    failures: List[RestoreFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failures


def session_from_asset(asset: Asset) -> TerminalSession:
    """Parse the terminal session stored on an asset.

    Raises:
        MissingMetadataError: If the metadata does not describe a session
    """
    try:
        return TerminalSession.from_metadata(asset.metadata)
    except ValidationError as e:
        raise MissingMetadataError(f"Terminal metadata for {asset.title} is invalid: {e}") from e


def metadata_has_claude(metadata: Dict[str, Any]) -> bool:
    context = metadata.get("claudeCodeContext")
    return isinstance(context, dict) and bool(context.get("isClaudeCodeRunning"))


class WorkspaceRestorer:
    """Coordinates the restore of a capture or a single asset."""

    def __init__(
        self,
        store: AssetStore,
        progress: Optional[ProgressCallback] = None,
        launcher_factory: Callable[..., TerminalLauncher] = TerminalLauncher,
        code_restorer: Optional[CodeRestorer] = None,
        notes_restorer: Optional[NotesRestorer] = None,
        browser_restorer: Optional[BrowserRestorer] = None,
        inspector: Optional[ProcessInspector] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.progress = progress or (lambda message: None)
        self.settings = settings or Settings()
        self.launcher_factory = launcher_factory
        self.code_restorer = code_restorer or CodeRestorer()
        self.notes_restorer = notes_restorer or NotesRestorer()
        self.browser_restorer = browser_restorer or BrowserRestorer(progress=self._emit, settings=self.settings)
        self.inspector = inspector or ProcessInspector()

    @property
    def temp_dir(self) -> Optional[Path]:
        return Path(self.settings.temp_dir) if self.settings.temp_dir else None

    def _emit(self, message: str) -> None:
        logger.info(message)
        self.progress(message)

    def cancel(self) -> bool:
        """Cancel the active restoration, if any."""
        return cancel_active_run()

    async def restore(self, capture_id: str) -> RestoreReport:
        """Restore every asset of a capture.

        Per-asset failures are logged and collected in the report.

        Raises:
            RestorationCancelled: If the run was cancelled
        """
        run = RestorationRun.start(capture_id)
        register_run(run)
        token = run.token
        try:
            assets = self.store.get_assets(capture_id)
            report = RestoreReport(run_id=run.id, capture_id=capture_id, total=len(assets))
            self._emit(f"Starting restoration of {len(assets)} assets...")

            buckets: Dict[AssetType, List[Asset]] = {asset_type: [] for asset_type in AssetType}
            for asset in assets:
                buckets[asset.asset_type].append(asset)
            for asset in buckets[AssetType.OTHER]:
                logger.info(f"Skipping asset {asset.title}: type 'other' has no restorer")

            has_claude = await self._restore_terminals(buckets[AssetType.TERMINAL], token, report)
            if has_claude:
                token.raise_if_cancelled()
                self._emit("Waiting for Claude Code to initialize...")
                await self.wait_for_assistant(token)

            await self._restore_each(
                buckets[AssetType.CODE], token, report, "code file(s)", "code file", self.code_restorer.restore
            )
            await self._restore_each(
                buckets[AssetType.NOTES], token, report, "note(s)", "note", self.notes_restorer.restore
            )
            await self._restore_browsers(buckets[AssetType.BROWSER], token, report)

            token.raise_if_cancelled()
            self._emit("Restoration complete!")
            return report
        except RestorationCancelled:
            self._emit("Restoration cancelled")
            raise
        finally:
            finish_run(run)

    def _record_failure(self, report: RestoreReport, asset: Asset, error: Exception) -> None:
        logger.error(f"Failed to restore {asset.asset_type.value} asset {asset.title}: {error}")
        report.failures.append(RestoreFailure(asset_id=asset.id, title=asset.title, error=str(error)))

    def _launch_terminal(self, asset: Asset) -> None:
        session = session_from_asset(asset)
        self.launcher_factory(session, temp_dir=self.temp_dir).run()

    async def _restore_terminals(self, terminals: List[Asset], token: CancellationToken,
                                 report: RestoreReport) -> bool:
        """Launch terminals one at a time; True if a launched one had Claude Code running."""
        if not terminals:
            return False
        self._emit(f"Restoring {len(terminals)} terminal session(s)...")
        has_claude = False
        for index, asset in enumerate(terminals, 1):
            token.raise_if_cancelled()
            self._emit(f"Restoring terminal {index}/{len(terminals)}...")
            try:
                await asyncio.to_thread(self._launch_terminal, asset)
                report.restored += 1
            except RestorationCancelled:
                raise
            except Exception as e:
                self._record_failure(report, asset, e)
                continue
            if metadata_has_claude(asset.metadata):
                has_claude = True
        return has_claude

    async def _restore_each(self, assets: List[Asset], token: CancellationToken, report: RestoreReport,
                            plural: str, singular: str, restore_one: Callable[[Asset], None]) -> None:
        if not assets:
            return
        self._emit(f"Restoring {len(assets)} {plural}...")
        for index, asset in enumerate(assets, 1):
            token.raise_if_cancelled()
            self._emit(f"Restoring {singular} {index}/{len(assets)}...")
            try:
                await asyncio.to_thread(restore_one, asset)
                report.restored += 1
            except RestorationCancelled:
                raise
            except Exception as e:
                self._record_failure(report, asset, e)

    async def _restore_browsers(self, browsers: List[Asset], token: CancellationToken,
                                report: RestoreReport) -> None:
        if not browsers:
            return
        token.raise_if_cancelled()
        self._emit(f"Restoring {len(browsers)} browser tab(s) with rate limiting...")
        try:
            await self.browser_restorer.restore(browsers, token)
            report.restored += len(browsers)
        except RestorationCancelled:
            raise
        except Exception as e:
            logger.error(f"Browser restoration failed: {e}")
            for asset in browsers:
                report.failures.append(RestoreFailure(asset_id=asset.id, title=asset.title, error=str(e)))

    async def wait_for_assistant(self, token: CancellationToken) -> bool:
        """Poll for a Claude Code process; False if none appeared in time."""
        polls = max(1, int(self.settings.assistant_wait_seconds / ASSISTANT_POLL_INTERVAL))
        for _ in range(polls):
            token.raise_if_cancelled()
            found = await asyncio.to_thread(self.inspector.find_processes, CLAUDE_KEYWORD)
            if found:
                logger.info(f"Claude Code process detected (PID {found[0].pid})")
                await asyncio.sleep(ASSISTANT_SETTLE_DELAY)
                return True
            await asyncio.sleep(ASSISTANT_POLL_INTERVAL)
        logger.warning(
            f"Claude Code did not start within {self.settings.assistant_wait_seconds}s, continuing restoration"
        )
        return False

    async def restore_asset(self, asset_id: str) -> Asset:
        """Restore a single asset. Failures propagate to the caller.

        Raises:
            AssetNotFoundError: If no asset has this id
            MissingMetadataError: If the asset lacks what its restorer needs
            RestoreError: For any other restore failure
        """
        asset = self.store.get_asset(asset_id)
        run = RestorationRun.start(asset.capture_id)
        register_run(run)
        try:
            if asset.asset_type == AssetType.TERMINAL:
                await asyncio.to_thread(self._launch_terminal, asset)
            elif asset.asset_type == AssetType.BROWSER:
                await self.browser_restorer.restore_single(asset, run.token)
            elif asset.asset_type == AssetType.CODE:
                await asyncio.to_thread(self.code_restorer.restore, asset)
            elif asset.asset_type == AssetType.NOTES:
                await asyncio.to_thread(self.notes_restorer.restore, asset)
            else:
                raise RestoreError(f"Assets of type '{asset.asset_type.value}' cannot be restored")
        finally:
            finish_run(run)
        logger.info(f"Restored asset {asset.title}")
        return asset
