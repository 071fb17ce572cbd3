"""Git service for reading repository state."""

import logging
import subprocess
from pathlib import Path
from typing import Optional

from ..models.claude import GitStatus
from .exceptions import GitServiceError

logger = logging.getLogger(__name__)


class GitService:
    """Service for read-only Git queries against a working tree."""

    def __init__(self, repo_path: Optional[Path] = None, timeout: Optional[float] = None):
        """Initialize Git service.

        Args:
            repo_path: Path to the git repository (defaults to current directory)
            timeout: Seconds to allow each git command (no limit if None)
        """
        self.repo_path = Path(repo_path) if repo_path else Path.cwd()
        self.timeout = timeout
        if not self._is_git_repo():
            raise GitServiceError(f"{self.repo_path} is not a git repository")

    @staticmethod
    def has_git_dir(path: Path) -> bool:
        """Check for a .git entry without running git."""
        return (Path(path) / ".git").exists()

    def _is_git_repo(self) -> bool:
        """Check if the current path is a git repository."""
        try:
            self._run_git_command(["rev-parse", "--git-dir"])
            return True
        except GitServiceError:
            return False

    def _run_git_command(
        self, args: list[str], check: bool = True, capture_output: bool = True
    ) -> subprocess.CompletedProcess:
        """Run a git command with proper error handling.

        Args:
            args: Git command arguments
            check: Check return code
            capture_output: Capture stdout and stderr

        Returns:
            Completed process result

        Raises:
            GitServiceError: If command fails or times out
        """
        cmd = ["git"] + args
        try:
            result = subprocess.run(
                cmd,
                cwd=self.repo_path,
                check=check,
                capture_output=capture_output,
                text=True,
                timeout=self.timeout,
            )
            return result
        except subprocess.CalledProcessError as e:
            error_msg = e.stderr if e.stderr else str(e)
            raise GitServiceError(f"Git command failed: {error_msg}") from e
        except subprocess.TimeoutExpired as e:
            raise GitServiceError(f"Git command timed out: {' '.join(cmd)}") from e
        except Exception as e:
            raise GitServiceError(f"Unexpected error running git command: {e}") from e

    def get_current_branch(self) -> str:
        """Get the current branch name.

        Returns:
            Current branch name

        Raises:
            GitServiceError: If unable to get branch
        """
        result = self._run_git_command(["branch", "--show-current"])
        branch = result.stdout.strip()
        if not branch:
            raise GitServiceError("Unable to determine current branch")
        return branch

    def get_status(self) -> GitStatus:
        """Get branch plus modified and untracked files.

        Raises:
            GitServiceError: If there is no current branch or status fails
        """
        branch = self.get_current_branch()
        result = self._run_git_command(["status", "--short"])
        modified = []
        untracked = []
        for line in result.stdout.splitlines():
            if len(line) < 4:
                continue
            code, file_path = line[:2], line[3:]
            if code == "??":
                untracked.append(file_path)
            elif "M" in code:
                modified.append(file_path)
        return GitStatus(branch=branch, modified_files=modified, untracked_files=untracked)

    def get_uncommitted_changes(self) -> list[str]:
        """Get list of files with uncommitted changes.

        Returns:
            List of file paths with changes
        """
        result = self._run_git_command(["status", "--porcelain"])
        if not result.stdout.strip():
            return []

        files = []
        for line in result.stdout.rstrip().split('\n'):
            if line:
                # Status format: "XY filename"
                files.append(line[3:])
        return files

    def get_last_commit_timestamp(self) -> Optional[int]:
        """Get the unix timestamp of HEAD, or None for an empty repository."""
        result = self._run_git_command(["log", "-1", "--format=%ct"], check=False)
        value = result.stdout.strip()
        return int(value) if value.isdigit() else None

    def get_file_diff(self, file_path: str, context_lines: int = 3) -> str:
        """Get the working-tree diff for a single file."""
        result = self._run_git_command(
            ["diff", f"--unified={context_lines}", "--", file_path], check=False
        )
        return result.stdout

    def get_diff_stat(self) -> str:
        result = self._run_git_command(["diff", "--stat"], check=False)
        return result.stdout.strip()

    def get_recent_log(self, count: int = 5) -> str:
        """Get a one-line log of the most recent commits."""
        result = self._run_git_command(
            ["log", f"-{count}", "--oneline", "--no-decorate"], check=False
        )
        return result.stdout.strip()
