"""Restorers for code editor and note-taking assets."""

import logging
import os
import sys
import webbrowser
from pathlib import Path
from typing import Callable, List, Mapping, Optional

from pydantic import ValidationError

from ..models.capture import Asset, IDESession
from ..services.exceptions import InvalidUrlError, RestoreError
from ..utils.path_finder import PathFinder
from ..utils.security import validate_external_url
from .constants import EDITOR_COMMANDS
from .terminal_launcher import spawn_detached

logger = logging.getLogger(__name__)

NOTION_WINDOWS_PATH = "Programs/Notion/Notion.exe"


def default_open_argv(path: str, platform: str = sys.platform) -> List[str]:
    """Command that opens ``path`` with the OS default handler."""
    if platform == "win32":
        return ["cmd", "/c", "start", "", path]
    if platform == "darwin":
        return ["open", path]
    return ["xdg-open", path]


def _spawn(spawner: Callable[..., None], argv: List[str]) -> None:
    try:
        spawner(argv)
    except OSError as e:
        raise RestoreError(f"Failed to start {argv[0]}: {e}") from e


class CodeRestorer:
    """Reopens editors on captured workspaces and files."""

    def __init__(self, path_finder=PathFinder, spawner: Callable[..., None] = spawn_detached,
                 platform: str = sys.platform):
        self.path_finder = path_finder
        self.spawner = spawner
        self.platform = platform

    def restore(self, asset: Asset) -> None:
        """Restore a code asset.

        Assets carrying an IDE session reopen that editor on its first
        workspace. Plain file assets open in the first editor found.

        Raises:
            RestoreError: If nothing could be opened
        """
        if asset.metadata.get("ideName") in EDITOR_COMMANDS:
            try:
                session = IDESession.model_validate(asset.metadata)
            except ValidationError as e:
                raise RestoreError(f"Invalid IDE session metadata for {asset.title}: {e}") from e
            self.restore_ide_session(session)
            return

        if not asset.path:
            raise RestoreError(f"Code asset {asset.title} has no path to open")
        self.open_path(asset.path)

    def restore_ide_session(self, session: IDESession) -> None:
        editor = self.path_finder.find_editor(session.ide_name)
        if not editor:
            raise RestoreError(f"{session.ide_name} is not installed")

        if session.workspace_paths:
            workspace = session.workspace_paths[0]
            if not os.path.exists(workspace):
                raise RestoreError(f"Workspace no longer exists: {workspace}")
            logger.info(f"Opening {session.ide_name} workspace {workspace}")
            _spawn(self.spawner, [editor, workspace])
            return

        for open_file in session.open_files:
            if os.path.exists(open_file.path):
                logger.info(f"Opening {open_file.path} in {session.ide_name}")
                _spawn(self.spawner, [editor, open_file.path])
                return
        raise RestoreError(f"{session.ide_name} session has no workspace or file left to open")

    def open_path(self, path: str) -> None:
        """Open ``path`` in VS Code, then Cursor, then the OS default handler."""
        for ide_name in EDITOR_COMMANDS:
            editor = self.path_finder.which(EDITOR_COMMANDS[ide_name])
            if editor:
                logger.info(f"Opening {path} in {ide_name}")
                _spawn(self.spawner, [editor, path])
                return

        if self.platform == "darwin":
            argv = ["open", "-a", "Visual Studio Code", path]
        else:
            argv = default_open_argv(path, self.platform)
        logger.info(f"No editor command found, opening {path} with {argv[0]}")
        _spawn(self.spawner, argv)


class NotesRestorer:
    """Reopens note-taking apps by their captured app name."""

    def __init__(
        self,
        opener: Callable[[str], object] = webbrowser.open_new_tab,
        spawner: Callable[..., None] = spawn_detached,
        platform: str = sys.platform,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.opener = opener
        self.spawner = spawner
        self.platform = platform
        self.environ = os.environ if environ is None else environ

    def _open_url(self, url: str) -> None:
        try:
            self.opener(validate_external_url(url))
        except InvalidUrlError as e:
            raise RestoreError(f"Cannot open note URL: {e}") from e

    def restore(self, asset: Asset) -> None:
        """Raises RestoreError if the app cannot be started."""
        metadata = asset.metadata
        app_name = (metadata.get("appName") or "").lower()
        url = metadata.get("url")

        if "notion" in app_name:
            if url:
                self._open_url(url)
            else:
                self._start_notion()
        elif "notepad" in app_name:
            file_path = metadata.get("filePath") or asset.path
            _spawn(self.spawner, ["notepad.exe", file_path] if file_path else ["notepad.exe"])
        elif "notes" in app_name and self.platform == "darwin":
            _spawn(self.spawner, ["open", "-a", "Notes"])
        elif url:
            self._open_url(url)
        elif asset.path:
            _spawn(self.spawner, default_open_argv(asset.path, self.platform))
        else:
            raise RestoreError(f"Note {asset.title} has no URL or path to open")
        logger.info(f"Restored note: {asset.title}")

    def _start_notion(self) -> None:
        if self.platform == "darwin":
            _spawn(self.spawner, ["open", "-a", "Notion"])
            return
        local_app_data = self.environ.get("LOCALAPPDATA")
        if local_app_data:
            exe = Path(local_app_data) / NOTION_WINDOWS_PATH
            if exe.exists():
                _spawn(self.spawner, [str(exe)])
                return
        raise RestoreError("Notion is not installed")
