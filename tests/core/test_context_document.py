"""Tests for the restored-session context document."""

import os
from unittest.mock import MagicMock

from flowstate.core.context_document import (
    ADD,
    MODIFY,
    REMOVE,
    ContextView,
    WorkspaceReader,
    build_context_view,
    classify_change,
    describe_work,
    generate_context_document,
    guess_task_from_history,
    infer_work_type,
    locate_work,
    parse_doc_note,
    project_name,
    render_context_document,
    resolve_document_directory,
)
from flowstate.models.claude import ClaudeCodeContext, GitStatus
from flowstate.services.exceptions import GitServiceError

SOURCE = "\n".join(f"line{i}" for i in range(1, 21))
HUNK = "@@ -10,3 +12,5 @@\n context\n+added one\n+added two\n context"


class StubReader(WorkspaceReader):
    """Reader serving canned files and diffs."""

    def __init__(self, files=None, diffs=None, stat="", log="", dirs=()):
        super().__init__(git_factory=MagicMock())
        self.files = files or {}
        self.diffs = diffs or {}
        self.stat = stat
        self.log = log
        self.dirs = set(dirs)

    def is_dir(self, path):
        return path in self.dirs

    def read_file(self, directory, relative_path):
        return self.files.get(relative_path)

    def file_diff(self, directory, file_path, context_lines=3):
        return self.diffs.get(file_path, "")

    def diff_stat(self, directory):
        return self.stat

    def recent_log(self, directory):
        return self.log


def _context(**overrides):
    values = {
        "is_running": True,
        "working_directory": "/work/api",
        "startup_command": "claude --resume",
        "session_start_time": "2024-05-01T09:30:00",
    }
    values.update(overrides)
    return ClaudeCodeContext(**values)


class TestDiffAnalysis:
    """Test cases for diff inspection helpers."""

    def test_classify_change(self):
        """Test change kinds by added versus removed lines."""
        assert classify_change("+++ b/x\n+a\n+b\n-c") == (ADD, 2)
        assert classify_change("--- a/x\n-a\n-b\n+c") == (REMOVE, 2)
        assert classify_change("-a\n+b") == (MODIFY, 1)

    def test_locate_work(self):
        """Test the location is the first line of the new hunk."""
        location = locate_work("src/app.ts", HUNK, SOURCE)

        assert location.line == 12
        assert location.change_kind == ADD
        assert location.changed_lines == 2
        assert location.snippet[0] == (10, "line10")
        assert location.snippet[-1] == (14, "line14")

    def test_locate_work_without_hunk(self):
        """Test diffs without a hunk header give no location."""
        assert locate_work("src/app.ts", "Binary files differ", SOURCE) is None

    def test_locate_work_without_content(self):
        """Test unreadable files still give a location."""
        location = locate_work("src/app.ts", HUNK, None)

        assert location.line == 12
        assert location.snippet == []


class TestDocNotes:
    """Test cases for documentation note extraction."""

    def test_problem_and_solution(self):
        """Test sections are pulled from markdown."""
        content = "# Login\n\n## Root Cause\nTokens expire early\n\n## Fix\nRefresh before expiry\n"

        note = parse_doc_note("docs/login-fix.md", content)

        assert note.title == "docs/login fix"
        assert note.problem.startswith("Tokens expire early")
        assert note.solution == "Refresh before expiry"

    def test_no_sections(self):
        """Test docs without sections give no note."""
        assert parse_doc_note("notes.md", "# Notes\nnothing here") is None


class TestDirectoryResolution:
    """Test cases for the document working directory."""

    def test_cd_target_used(self, tmp_path):
        """Test an existing cd target replaces the reported directory."""
        (tmp_path / "sub").mkdir()
        context = _context(working_directory=str(tmp_path), command_history_before_start=["ls", "cd sub"])

        result = resolve_document_directory(context, WorkspaceReader())

        assert result == os.path.normpath(str(tmp_path / "sub"))

    def test_missing_cd_target(self, tmp_path):
        """Test a missing cd target keeps the reported directory."""
        context = _context(working_directory=str(tmp_path), command_history_before_start=["cd missing"])

        assert resolve_document_directory(context, WorkspaceReader()) == str(tmp_path)

    def test_no_cd(self):
        """Test histories without cd."""
        context = _context(command_history_before_start=["npm install"])

        assert resolve_document_directory(context, StubReader()) == "/work/api"


class TestWorkspaceReader:
    """Test cases for the file and git reader."""

    def test_git_unavailable(self):
        """Test git failures degrade to empty strings."""
        reader = WorkspaceReader(git_factory=MagicMock(side_effect=GitServiceError("not a repo")))

        assert reader.file_diff("/work", "a.py") == ""
        assert reader.diff_stat("/work") == ""
        assert reader.recent_log("/work") == ""

    def test_git_reads(self):
        """Test git output is passed through."""
        git = MagicMock()
        git.get_diff_stat.return_value = " a.py | 2 +-"
        git.get_recent_log.return_value = "abc123 fix"
        reader = WorkspaceReader(git_factory=MagicMock(return_value=git))

        assert reader.diff_stat("/work") == " a.py | 2 +-"
        assert reader.recent_log("/work") == "abc123 fix"
        git.get_recent_log.assert_called_once_with(5)

    def test_read_missing_file(self, tmp_path):
        """Test unreadable files return None."""
        assert WorkspaceReader().read_file(str(tmp_path), "missing.txt") is None


class TestHeuristics:
    """Test cases for work description heuristics."""

    def test_guess_task(self):
        """Test the task guess from recent commands."""
        assert guess_task_from_history(["npm test"]) == "Running tests"
        assert guess_task_from_history(["git status"]) == "Reviewing git changes"
        assert guess_task_from_history(["echo hi"]) is None

    def test_infer_work_type(self):
        """Test work type from file names."""
        assert infer_work_type(["src/auth.test.ts"]) == "testing and bug fixes"
        assert infer_work_type(["src/components/Nav.tsx"]) == "UI development"
        assert infer_work_type(["main.go"]) == "development work"

    def test_project_name(self):
        """Test either separator."""
        assert project_name("C:\\work\\api") == "api"
        assert project_name("/work/web/") == "web"

    def test_describe_work(self):
        """Test the one-line description."""
        view = ContextView(working_directory="/work/api", reported_directory="/work/api",
                           modified_files=["src/app.ts", "b.ts"])
        view.location = locate_work("src/app.ts", HUNK, SOURCE)

        assert describe_work(view) == "You were adding new functionality in src/app.ts and 1 other file(s) (line 12)"

    def test_describe_without_changes(self):
        """Test the fallback descriptions."""
        view = ContextView(working_directory="/work/api", reported_directory="/work/api")

        assert describe_work(view) == "Session recovery"
        view.recent_files = ["./a.py"]
        assert describe_work(view) == "You were working in api"


class TestRenderDocument:
    """Test cases for the rendered markdown document."""

    def _git_context(self):
        return _context(
            git_status=GitStatus(branch="main", modified_files=["src/app.ts", "docs/auth-fix.md"],
                                 untracked_files=["new.ts"]),
            command_history_before_start=["npm run dev", "git diff"],
        )

    def _reader(self):
        return StubReader(
            files={"src/app.ts": SOURCE, "docs/auth-fix.md": "## Problem\nSession lost\n"},
            diffs={"src/app.ts": HUNK},
            stat=" src/app.ts | 2 ++",
            log="abc123 add auth",
        )

    def test_document_sections(self):
        """Test a session with uncommitted work."""
        document = generate_context_document(self._git_context(), reader=self._reader())

        assert document.startswith("# FlowState Session Restoration")
        assert "**docs/auth fix:**" in document
        assert "## EXACT WORK LOCATION" in document
        assert "12: line12 ← YOU WERE HERE" in document
        assert "**Current Branch:** `main`" in document
        assert "- new.ts" in document
        assert "**Resume the development server**" in document
        assert "abc123 add auth" in document
        assert "- **Startup Command:** `claude --resume`" in document

    def test_rendering_is_deterministic(self):
        """Test the same view always renders the same text."""
        view = build_context_view(self._git_context(), reader=self._reader())

        assert render_context_document(view) == render_context_document(view)

    def test_no_changes(self):
        """Test a session without git or recent files."""
        context = _context(command_history_before_start=["npm test"])

        document = generate_context_document(context, reader=StubReader())

        assert "**No recent file modifications detected.**" in document
        assert "  Running tests" in document
        assert "## RECENT ACTIVITY" in document
        assert "## EXACT WORK LOCATION" not in document
        assert "## Git Status" not in document

    def test_conversation_included(self):
        """Test captured terminal output becomes the conversation section."""
        document = generate_context_document(
            _context(), raw_terminal_output="> fix the login bug\nI'll look at auth.ts", reader=StubReader()
        )

        assert "## PREVIOUS CONVERSATION" in document
        assert "**You:** fix the login bug" in document
        assert "## RECENT ACTIVITY" not in document

    def test_cd_note(self):
        """Test the note shown when the directory came from a cd command."""
        context = _context(command_history_before_start=["cd /work/web"])

        document = generate_context_document(context, reader=StubReader(dirs={"/work/web"}))

        assert "_Note: Detected from `cd` command. The shell reported: `/work/api`_" in document
