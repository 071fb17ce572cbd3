"""Tests for terminal session models."""

import pytest
from pydantic import ValidationError

from flowstate.models.claude import ClaudeCodeContext
from flowstate.models.session import PowerShellVersion, ShellType, TerminalSession


class TestShellType:
    """Test cases for ShellType."""

    def test_powershell_variants(self):
        """Test PowerShell dialects are recognized, including the legacy value."""
        assert ShellType.POWERSHELL_CORE.is_powershell
        assert ShellType.POWERSHELL_CLASSIC.is_powershell
        assert ShellType("PowerShell").is_powershell
        assert not ShellType.CMD.is_powershell

    def test_windows_dialects(self):
        """Test which dialects need the hosting flag."""
        assert ShellType.CMD.is_windows
        assert ShellType.WSL.is_windows
        assert not ShellType.BASH.is_windows
        assert not ShellType.ZSH.is_windows


class TestTerminalSession:
    """Test cases for TerminalSession."""

    def test_parses_camel_case_metadata(self):
        """Test stored camelCase metadata parses with its aliases."""
        session = TerminalSession.model_validate({
            "processId": 10,
            "shellType": "PowerShellCore",
            "isWindowsTerminal": True,
            "powerShellVersion": "Core",
            "currentDirectory": "C:\\repo",
            "claudeCodeContext": {"isClaudeCodeRunning": True, "workingDirectory": "C:\\repo"},
            "note": "captured",
        })

        assert session.shell_type == ShellType.POWERSHELL_CORE
        assert session.is_hosted_in_windows_terminal is True
        assert session.power_shell_version == PowerShellVersion.CORE
        assert session.has_claude
        assert session.capture_note == "captured"

    def test_dump_round_trips_aliases(self, pwsh_session):
        """Test the dumped form uses the stored key names."""
        data = pwsh_session.model_dump(by_alias=True, mode="json")

        assert data["isWindowsTerminal"] is True
        assert data["shellType"] == "PowerShellCore"
        assert "claudeCodeContext" in data

    def test_missing_shell_type_is_not_restorable(self):
        """Test a session without shellType cannot be replayed."""
        session = TerminalSession(process_id=1)

        assert session.missing_restore_fields() == ["shellType"]
        assert not session.is_restorable()

    def test_windows_shell_needs_hosting_flag(self):
        """Test Windows dialects require isWindowsTerminal."""
        session = TerminalSession(process_id=1, shell_type=ShellType.CMD)

        assert session.missing_restore_fields() == ["isWindowsTerminal"]

    def test_powershell_needs_variant(self):
        """Test PowerShell requires its version."""
        session = TerminalSession(
            process_id=1, shell_type=ShellType.POWERSHELL, is_hosted_in_windows_terminal=False
        )

        assert session.missing_restore_fields() == ["powerShellVersion"]

    def test_host_entry_is_not_restorable(self):
        """Test a terminal host entry is display-only."""
        session = TerminalSession(
            process_id=1, shell_type=ShellType.WINDOWS_TERMINAL_HOST, is_hosted_in_windows_terminal=True
        )

        assert not session.is_restorable()

    def test_restorable_session(self, pwsh_session):
        """Test a fully described session is restorable."""
        assert pwsh_session.is_restorable()

    def test_from_metadata_corrupted(self):
        """Test corrupted metadata produces a marked empty session."""
        session = TerminalSession.from_metadata({"corrupted": True, "raw": "{oops"})

        assert session.corrupted
        assert session.shell_type is None

    def test_from_metadata_without_process_id(self):
        """Test metadata lacking processId still parses."""
        session = TerminalSession.from_metadata({"shellType": "Bash"})

        assert session.process_id == 0
        assert session.shell_type == ShellType.BASH

    def test_from_metadata_invalid_shell_type(self):
        """Test an unknown shell type is a validation error."""
        with pytest.raises(ValidationError):
            TerminalSession.from_metadata({"shellType": "Fish"})


class TestClaudeCodeContext:
    """Test cases for ClaudeCodeContext."""

    def test_is_frozen(self):
        """Test the context cannot be mutated after creation."""
        context = ClaudeCodeContext(is_running=True, working_directory="/repo")

        with pytest.raises(ValidationError):
            context.working_directory = "/elsewhere"

    def test_running_flag_alias(self):
        """Test isClaudeCodeRunning maps to is_running."""
        context = ClaudeCodeContext.model_validate({"isClaudeCodeRunning": True})

        assert context.is_running
        assert context.model_dump(by_alias=True)["isClaudeCodeRunning"] is True
