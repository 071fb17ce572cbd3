"""Markdown context document handed to a restored Claude Code session.

``build_context_view`` does all file and git reads up front and returns a
plain ``ContextView``. ``render_context_document`` is a pure function of
that view, so the same inputs always render the same bytes.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from ..models.claude import ClaudeCodeContext
from ..services.exceptions import GitServiceError
from ..services.git_service import GitService
from .conversation_parser import format_conversation

logger = logging.getLogger(__name__)

GIT_READ_TIMEOUT = 3.0
DOC_NOTE_LIMIT = 3
DOC_CONTENT_LIMIT = 2
DOC_SCAN_LINES = 100
DOC_NOTE_CHARS = 150
FILE_DIFF_LIMIT = 3
FILE_DIFF_LINES = 40
RECENT_FILES_SHOWN = 20
PROJECT_FILES_SHOWN = 30

ADD = "add"
REMOVE = "remove"
MODIFY = "modify"

_HUNK_HEADER = re.compile(r"@@ -(\d+),?\d* \+(\d+),?\d* @@")
_CD_COMMAND = re.compile(r"cd\s+[\"']?([^\"']+)[\"']?")
_DEV_SERVER_MARKERS = ("npm run dev", "dev:electron")


class WorkspaceReader:
    """File and git access used while gathering a context view.

    Every read degrades to an empty value when the file or repository is
    unavailable.
    """

    def __init__(self, git_factory: Callable[..., GitService] = GitService):
        self.git_factory = git_factory

    def _git(self, directory: str) -> Optional[GitService]:
        try:
            return self.git_factory(Path(directory), timeout=GIT_READ_TIMEOUT)
        except GitServiceError as e:
            logger.debug(f"No git repository at {directory}: {e}")
            return None

    def is_dir(self, path: str) -> bool:
        return os.path.isdir(path)

    def read_file(self, directory: str, relative_path: str) -> Optional[str]:
        try:
            return Path(directory, relative_path).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug(f"Could not read {relative_path}: {e}")
            return None

    def file_diff(self, directory: str, file_path: str, context_lines: int = 3) -> str:
        git = self._git(directory)
        if not git:
            return ""
        try:
            return git.get_file_diff(file_path, context_lines).strip()
        except GitServiceError as e:
            logger.debug(f"Diff failed for {file_path}: {e}")
            return ""

    def diff_stat(self, directory: str) -> str:
        git = self._git(directory)
        if not git:
            return ""
        try:
            return git.get_diff_stat()
        except GitServiceError as e:
            logger.debug(f"Diff stat failed: {e}")
            return ""

    def recent_log(self, directory: str) -> str:
        git = self._git(directory)
        if not git:
            return ""
        try:
            return git.get_recent_log(5)
        except GitServiceError as e:
            logger.debug(f"Git log failed: {e}")
            return ""


@dataclass
class DocNote:
    title: str
    problem: str = ""
    solution: str = ""


@dataclass
class WorkLocation:
    """Where the first change in the primary file sits."""
    file: str
    line: int
    change_kind: str
    changed_lines: int
    snippet: List[Tuple[int, str]] = field(default_factory=list)


@dataclass
class ContextView:
    """Everything the context document shows, gathered ahead of rendering."""
    working_directory: str
    reported_directory: str
    branch: str = ""
    modified_files: List[str] = field(default_factory=list)
    untracked_files: List[str] = field(default_factory=list)
    recent_files: List[str] = field(default_factory=list)
    project_files: List[str] = field(default_factory=list)
    history: List[str] = field(default_factory=list)
    startup_command: str = "claude"
    session_start_time: Optional[str] = None
    context_hint: str = ""
    has_git_status: bool = False
    doc_files: List[str] = field(default_factory=list)
    doc_notes: List[DocNote] = field(default_factory=list)
    doc_contents: List[Tuple[str, Optional[str]]] = field(default_factory=list)
    location: Optional[WorkLocation] = None
    diff_stat: str = ""
    file_diffs: List[Tuple[str, str]] = field(default_factory=list)
    recent_log: str = ""
    conversation: str = ""

    @property
    def primary_file(self) -> Optional[str]:
        if self.modified_files:
            return self.modified_files[0]
        if self.recent_files:
            return self.recent_files[0]
        return None


def history_mentions(history: List[str], *markers: str) -> bool:
    return any(marker in command for command in history for marker in markers)


def resolve_document_directory(context: ClaudeCodeContext, reader: WorkspaceReader) -> str:
    """Prefer the target of the last ``cd`` before launch when it exists."""
    for command in reversed(context.command_history_before_start):
        if not command.strip().startswith("cd "):
            continue
        match = _CD_COMMAND.search(command)
        if not match:
            return context.working_directory
        target = match.group(1).strip()
        if not os.path.isabs(target) and not re.match(r"^[A-Za-z]:[\\/]", target):
            target = os.path.normpath(os.path.join(context.working_directory, target))
        if reader.is_dir(target):
            logger.debug(f"Using directory from cd command: {target}")
            return target
        return context.working_directory
    return context.working_directory


def _section_text(lines: List[str], start: int) -> str:
    picked = [line for line in lines[start + 1:start + 5] if line.strip() and not line.startswith("#")]
    return " ".join(picked)[:DOC_NOTE_CHARS].strip()


def parse_doc_note(file_path: str, content: str) -> Optional[DocNote]:
    """Pull the Problem/Root Cause and Solution/Fix sections out of a markdown doc."""
    lines = content.split("\n")
    note = DocNote(title=file_path.replace(".md", "").replace("-", " "))
    for index, line in enumerate(lines[:DOC_SCAN_LINES]):
        lowered = line.lower()
        if "## problem" in lowered or "## root cause" in lowered:
            note.problem = _section_text(lines, index)
        if "## solution" in lowered or "## fix" in lowered:
            note.solution = _section_text(lines, index)
    if note.problem or note.solution:
        return note
    return None


def classify_change(diff: str) -> Tuple[str, int]:
    """Return the change kind and the number of lines it touched."""
    diff_lines = diff.split("\n")
    added = [line for line in diff_lines if line.startswith("+") and not line.startswith("+++")]
    removed = [line for line in diff_lines if line.startswith("-") and not line.startswith("---")]
    if len(added) > len(removed):
        return ADD, len(added)
    if len(removed) > len(added):
        return REMOVE, len(removed)
    return MODIFY, len(added)


def locate_work(file_path: str, diff: str, content: Optional[str]) -> Optional[WorkLocation]:
    match = _HUNK_HEADER.search(diff)
    if not match:
        return None
    line_number = int(match.group(2))
    kind, count = classify_change(diff)
    snippet = []
    if content is not None:
        file_lines = content.split("\n")
        start = max(0, line_number - 3)
        end = min(len(file_lines), line_number + 2)
        snippet = [(start + offset + 1, text) for offset, text in enumerate(file_lines[start:end])]
    return WorkLocation(file=file_path, line=line_number, change_kind=kind, changed_lines=count, snippet=snippet)


def build_context_view(
    context: ClaudeCodeContext,
    raw_terminal_output: Optional[str] = None,
    reader: Optional[WorkspaceReader] = None,
) -> ContextView:
    """Gather every file and git read the document needs."""
    reader = reader or WorkspaceReader()
    directory = resolve_document_directory(context, reader)
    git_status = context.git_status

    view = ContextView(
        working_directory=directory,
        reported_directory=context.working_directory,
        branch=git_status.branch if git_status else "",
        modified_files=list(git_status.modified_files) if git_status else [],
        untracked_files=list(git_status.untracked_files) if git_status else [],
        recent_files=list(context.recently_modified_files),
        project_files=list(context.project_files),
        history=list(context.command_history_before_start),
        startup_command=context.startup_command,
        session_start_time=context.session_start_time,
        context_hint=context.context_hint,
        has_git_status=git_status is not None,
    )

    view.doc_files = [
        f for f in view.modified_files
        if f.endswith(".md") and "readme" not in f.lower() and "changelog" not in f.lower()
    ]
    for doc_file in view.doc_files[:DOC_NOTE_LIMIT]:
        content = reader.read_file(directory, doc_file)
        note = parse_doc_note(doc_file, content) if content else None
        if note:
            view.doc_notes.append(note)
    view.doc_contents = [(f, reader.read_file(directory, f)) for f in view.doc_files[:DOC_CONTENT_LIMIT]]

    if view.modified_files:
        primary = view.modified_files[0]
        hunk_diff = reader.file_diff(directory, primary, context_lines=5)
        if hunk_diff:
            view.location = locate_work(primary, hunk_diff, reader.read_file(directory, primary))
        view.diff_stat = reader.diff_stat(directory)
        for modified in view.modified_files[:FILE_DIFF_LIMIT]:
            diff = reader.file_diff(directory, modified)
            if diff:
                view.file_diffs.append((modified, diff))

    view.recent_log = reader.recent_log(directory)
    if raw_terminal_output:
        view.conversation = format_conversation(raw_terminal_output)
    return view


# Rendering

def guess_task_from_history(history: List[str]) -> Optional[str]:
    commands = history[-10:]
    if history_mentions(commands, "test", "jest", "vitest"):
        return "Running tests"
    if history_mentions(commands, *_DEV_SERVER_MARKERS):
        return "Testing/debugging the application (dev server running)"
    if history_mentions(commands, "npm run build", "compile"):
        return "Building/compiling the project"
    if history_mentions(commands, "git diff", "git log", "git status"):
        return "Reviewing git changes"
    return None


def infer_activities(history: List[str]) -> List[str]:
    activities = []
    if any("grep" in c and ("error" in c or "Error" in c) for c in history):
        activities.append("- You were **searching for errors** in the codebase")
    if history_mentions(history, "test", "jest", "vitest"):
        activities.append("- You were **running tests**")
    if history_mentions(history, "git diff", "git log"):
        activities.append("- You were **reviewing recent changes** with git")
    if history_mentions(history, "find", "ls", "dir"):
        activities.append("- You were **exploring the project structure**")
    if history_mentions(history, "compile", "build", "tsc"):
        activities.append("- You were **compiling/building** the project")
    return activities


def infer_work_type(files: List[str]) -> str:
    lowered = [f.lower() for f in files]

    def any_has(*needles: str) -> bool:
        return any(needle in f for f in lowered for needle in needles)

    if any_has("test", "spec"):
        return "testing and bug fixes"
    if any_has("fix", "bug"):
        return "bug fixes"
    if any(".md" in f and "readme" not in f for f in lowered):
        return "documentation and code changes"
    if any_has("component", "page"):
        return "UI development"
    if any_has("api", "endpoint"):
        return "backend/API development"
    if any_has("style", ".css"):
        return "styling and UI work"
    return "development work"


def describe_work(view: ContextView) -> str:
    """One-sentence description of the interrupted work, used in the resume prompt."""
    if view.modified_files:
        primary = view.modified_files[0]
        others = len(view.modified_files) - 1
        file_context = primary if others == 0 else f"{primary} and {others} other file(s)"
        if view.location:
            action = {
                ADD: "adding new functionality",
                REMOVE: "removing/refactoring code",
                MODIFY: "modifying existing code",
            }[view.location.change_kind]
            return f"You were {action} in {file_context} (line {view.location.line})"
        return f"You were editing {file_context}"
    if view.recent_files:
        return f"You were working in {project_name(view.working_directory)}"
    return "Session recovery"


def project_name(directory: str) -> str:
    """Last path component, for paths written with either separator."""
    return re.split(r"[\\/]", directory.rstrip("\\/"))[-1] or directory


def suggest_next_steps(view: ContextView) -> List[str]:
    if view.modified_files:
        return ["Review uncommitted changes", "Run tests if applicable"]
    if view.recent_files:
        return ["Continue your previous work"]
    return ["Review context to decide next steps"]


def _what_you_were_doing(view: ContextView) -> List[str]:
    lines = ["## WHAT YOU WERE WORKING ON", ""]
    if view.doc_notes:
        lines.extend(["**Based on your documentation, you were working on:**", ""])
        for note in view.doc_notes:
            lines.append(f"**{note.title}:**")
            if note.problem:
                lines.append(f"  Problem: {note.problem}")
            if note.solution:
                lines.append(f"  Fix: {note.solution}")
        lines.append("")
    elif view.modified_files:
        count = len(view.modified_files)
        lines.extend([f"**You have {count} uncommitted change(s)** - work in progress!", ""])
        lines.append("**Files you were editing:**")
        lines.extend(f"  - {f}" for f in view.modified_files[:5])
        if count > 5:
            lines.append(f"  - ... and {count - 5} more")
        lines.append("")
    elif view.recent_files:
        lines.append("**Recently modified files:**")
        lines.extend(f"  - {f}" for f in view.recent_files[:5])
        lines.append("")
    else:
        lines.extend(["**No recent file modifications detected.**", ""])
        task = guess_task_from_history(view.history)
        if task:
            lines.extend(["**Based on recent commands, you were likely:**", f"  {task}", ""])
    lines.extend([f"**Working in:** `{view.working_directory}`", ""])
    return lines


def _conversation(view: ContextView) -> List[str]:
    if view.conversation:
        return [
            "## PREVIOUS CONVERSATION", "",
            "**What you were discussing with Claude before capture:**", "",
            view.conversation, "",
        ]
    activities = infer_activities(view.history)
    if not activities:
        return []
    return ["## RECENT ACTIVITY", "", "**Based on your terminal commands:**", ""] + activities + [""]


def _work_location(view: ContextView) -> List[str]:
    if not view.modified_files:
        return []
    lines = ["## EXACT WORK LOCATION", ""]
    location = view.location
    if not location:
        return lines + [f"You were modifying **{view.modified_files[0]}**", ""]

    lines.extend([f"**You were working on line {location.line} of `{location.file}`**", ""])
    if location.change_kind == ADD:
        lines.append(f"You were **adding functionality** ({location.changed_lines} new lines).")
    elif location.change_kind == REMOVE:
        lines.append(f"You were **removing/refactoring code** ({location.changed_lines} lines removed).")
    else:
        lines.append(f"You were **modifying existing code** ({location.changed_lines} lines changed).")
    lines.append("")
    if location.snippet:
        lines.extend(["**Code at this location:**", "```"])
        for number, text in location.snippet:
            marker = " ← YOU WERE HERE" if number == location.line else ""
            lines.append(f"{number}: {text}{marker}")
        lines.extend(["```", ""])
    return lines


def _next_actions(view: ContextView) -> List[str]:
    options = []
    if history_mentions(view.history, *_DEV_SERVER_MARKERS):
        options.append("**Resume the development server** and test the changes end-to-end")
    if view.modified_files:
        options.append("**Review and commit the uncommitted changes** (git diff, then commit)")
    if view.primary_file:
        options.append(f"**Continue working on `{view.primary_file}`**")
    else:
        options.append("**Continue the previous task** using the history below")
    options.append("**Work on something else** (ask the user what they'd like to do)")

    lines = ["## WHAT TO DO NOW", "", "**Ask the user which of the following they'd like to do:**", ""]
    lines.extend(f"{number}. {option}" for number, option in enumerate(options, start=1))
    lines.extend(["", "_Wait for the user to choose before proceeding._", ""])
    return lines


def _session_summary(view: ContextView) -> str:
    files = view.modified_files + view.recent_files
    if files:
        summary = [
            f"You were actively working on **{infer_work_type(files)}** "
            f"in the `{view.working_directory}` directory."
        ]
    else:
        summary = [f"Session was active in `{view.working_directory}`."]
    if view.recent_files:
        summary.append(f"{len(view.recent_files)} file(s) were modified in the last hour.")
    if view.modified_files:
        summary.append(f"You have **{len(view.modified_files)} uncommitted change(s)** in git.")
    last_commands = view.history[-5:]
    if history_mentions(last_commands, "npm run dev", "npm start", "dev:electron"):
        summary.append("A **development server was running** before capture.")
    if history_mentions(last_commands, "build", "compile"):
        summary.append("The project was being **compiled/built** recently.")
    if history_mentions(last_commands, "test", "jest", "vitest"):
        summary.append("**Tests were being run** before capture.")
    return " ".join(summary)


def _fenced(body: str, language: str = "") -> List[str]:
    return [f"```{language}", body, "```", ""]


def _supplementary(view: ContextView) -> List[str]:
    lines = ["---", "", "# Detailed Context (Supplementary)", ""]
    lines.extend(["## Last Session Summary", "", _session_summary(view), ""])

    if view.modified_files:
        lines.extend(["## Git Diff Summary", ""])
        if view.diff_stat:
            lines.extend(_fenced(view.diff_stat))
        for file_path, diff in view.file_diffs:
            diff_lines = diff.split("\n")
            lines.extend([f"### {file_path}", "", "```diff"])
            lines.extend(diff_lines[:FILE_DIFF_LINES])
            if len(diff_lines) > FILE_DIFF_LINES:
                lines.append("... (truncated)")
            lines.extend(["```", ""])
        if len(view.modified_files) > FILE_DIFF_LIMIT:
            lines.extend([f"_... and {len(view.modified_files) - FILE_DIFF_LIMIT} more modified files_", ""])

    if view.recent_log:
        lines.extend(["## Recent Commits", "", "Last 5 commits in this branch:", ""])
        lines.extend(_fenced(view.recent_log))

    if view.doc_contents:
        lines.extend(["## Modified Documentation", ""])
        for file_path, content in view.doc_contents:
            lines.extend([f"### {file_path}", ""])
            if content is None:
                lines.extend(["_(Could not read file content)_", ""])
                continue
            content_lines = content.split("\n")
            lines.append("```markdown")
            lines.extend(content_lines[:DOC_SCAN_LINES])
            if len(content_lines) > DOC_SCAN_LINES:
                lines.append("... (truncated)")
            lines.extend(["```", ""])

    lines.extend(["## Working Directory"] + _fenced(view.working_directory)[:-1])
    if view.working_directory != view.reported_directory:
        lines.extend(["", f"_Note: Detected from `cd` command. The shell reported: `{view.reported_directory}`_"])
    lines.append("")

    if view.has_git_status:
        lines.extend(["## Git Status", ""])
        if view.branch:
            lines.extend([f"**Current Branch:** `{view.branch}`", ""])
        if view.modified_files:
            lines.append("**Modified Files:**")
            lines.extend(f"- {f}" for f in view.modified_files)
            lines.append("")
        if view.untracked_files:
            lines.append("**Untracked Files:**")
            lines.extend(f"- {f}" for f in view.untracked_files)
            lines.append("")

    if view.recent_files:
        lines.extend(["## Recently Modified Files", ""])
        lines.extend(f"- {f}" for f in view.recent_files[:RECENT_FILES_SHOWN])
        if len(view.recent_files) > RECENT_FILES_SHOWN:
            lines.append(f"- ... and {len(view.recent_files) - RECENT_FILES_SHOWN} more")
        lines.append("")

    if view.history:
        lines.extend(["## Commands Before Claude Started", ""])
        lines.extend(_fenced("\n".join(view.history), "bash"))

    if view.project_files:
        lines.extend(["## Project Structure", ""])
        shown = view.project_files[:PROJECT_FILES_SHOWN]
        if len(view.project_files) > PROJECT_FILES_SHOWN:
            shown = shown + [f"... and {len(view.project_files) - PROJECT_FILES_SHOWN} more files"]
        lines.extend(_fenced("\n".join(shown)))

    if view.context_hint.strip() and view.context_hint != view.conversation:
        lines.extend(["## Task Context", "", view.context_hint, ""])

    lines.extend([
        "## Session Metadata", "",
        f"- **Captured At:** {view.session_start_time or 'unknown'}",
        f"- **Startup Command:** `{view.startup_command or 'claude'}`",
        "",
    ])
    return lines


def render_context_document(view: ContextView) -> str:
    """Render a ContextView as markdown. Pure and deterministic."""
    lines = ["# FlowState Session Restoration", ""]
    lines.extend(_what_you_were_doing(view))
    lines.extend(_conversation(view))
    lines.extend(_work_location(view))
    lines.extend(_next_actions(view))
    lines.extend(_supplementary(view))
    lines.extend(["---", "", "**Note:** You can ask Claude Code to read this file and continue where you left off!"])
    return "\n".join(lines)


def generate_context_document(
    context: ClaudeCodeContext,
    raw_terminal_output: Optional[str] = None,
    reader: Optional[WorkspaceReader] = None,
) -> str:
    return render_context_document(build_context_view(context, raw_terminal_output, reader))
