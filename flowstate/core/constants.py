"""Constants used throughout the FlowState engine."""


# Data directory
DATA_DIR_NAME = ".flowstate"
DATA_DIR_ENV_VAR = "FLOWSTATE_HOME"
SETTINGS_FILE_NAME = "settings.yaml"
CAPTURES_DIR_NAME = "captures"

# Generated artifact names
RESTORE_SCRIPT_PREFIX = "flowstate_restore_"
CONTEXT_FILE_PREFIX = "flowstate_claude_context_"

# Process tree walk
MAX_PROCESS_TREE_DEPTH = 3
HISTORY_LINE_LIMIT = 50

# Environment variables kept on captured sessions
CAPTURED_ENV_VARS = [
    "PATH", "HOME", "USERPROFILE", "APPDATA", "LOCALAPPDATA",
    "TEMP", "TMP", "PYTHON_HOME", "JAVA_HOME", "NODE_ENV",
]

# Assistant detection
CLAUDE_KEYWORD = "claude"
DEFAULT_CLAUDE_COMMAND = "claude"

# Parent processes whose terminals are restored by the IDE itself
IDE_PROCESS_NAMES = [
    "cursor", "code", "visual studio", "vscode", "atom",
    "sublime", "webstorm", "pycharm", "intellij", "windsurf",
]

# Terminal emulators whose child shells count as visible on macOS and Linux
POSIX_TERMINAL_HOSTS = [
    "gnome-terminal-server", "konsole", "xterm", "terminal", "iterm2",
    "alacritty", "kitty", "wezterm-gui",
]

# Commands that do not make a terminal worth keeping
TRIVIAL_COMMANDS = ["cls", "clear", "exit", "cd", "ls", "dir", "pwd"]

# Interpreter and dev-loader processes that host a development copy of the app
DEV_LOADER_NAMES = ["node", "npm", "python", "electron"]

# Home-directory fallback for the Claude working directory
PROJECT_PARENT_DIRS = ["Desktop", "Documents", "Projects", "repos", "code", "dev"]
RECENT_COMMIT_WINDOW_SECONDS = 3600

# Enrichment limits and timeouts (seconds)
RECENT_FILE_EXTENSIONS = [
    ".ts", ".tsx", ".js", ".jsx", ".py", ".java", ".cpp", ".c", ".cs", ".go",
    ".rs", ".vue", ".svelte", ".html", ".css", ".scss", ".json", ".yaml",
    ".yml", ".md",
]
SOURCE_FILE_EXTENSIONS = [
    ".ts", ".tsx", ".js", ".jsx", ".py", ".java", ".cpp", ".c", ".cs", ".go",
    ".rs", ".vue", ".svelte",
]
RECENT_FILE_WINDOW_MINUTES = 60
RECENT_FILE_LIMIT = 20
PROJECT_FILE_MAX_DEPTH = 3
PROJECT_FILE_LIMIT = 50
SKIPPED_DIRS = ["node_modules", ".git", "dist", "build", ".next", "out"]
RECENT_FILES_TIMEOUT = 5.0
GIT_STATUS_TIMEOUT = 3.0
PROJECT_FILES_TIMEOUT = 5.0
GIT_PROBE_TIMEOUT = 2.0

# Terminal output tail
TERMINAL_OUTPUT_TAIL_BYTES = 10 * 1024
CLAUDE_LOG_DIRS = [
    ".claude/logs",
    ".anthropic/logs",
    ".config/claude/logs",
]

# Startup script heuristics
BLOCKING_COMMAND_PATTERNS = [
    r"npm\s+run\s+dev",
    r"npm\s+start",
    r"\belectron\b",
    r"\bnode\s",
    r"npm\s+run\s+\S*(serve|watch)",
    r"yarn\s+dev",
    r"pnpm\s+dev",
]
DEV_SERVER_PORTS = [5173, 3000, 8080, 4200, 5000]
START_SERVER_PORTS = [3000, 5173, 8080]
AUTO_ENTER_DELAY_MS = 1500

# Orchestrator timing (seconds)
ASSISTANT_WAIT_TIMEOUT = 10.0
ASSISTANT_POLL_INTERVAL = 0.5
ASSISTANT_SETTLE_DELAY = 1.0

# Browser restore
DEVTOOLS_BROWSERS = ["Chrome", "Edge", "Brave"]
INTERNAL_URL_PREFIXES = ["chrome://", "edge://", "brave://", "about:"]
CDP_BATCH_SIZE = 18
DEFAULT_OPENER_BATCH_SIZE = 15
CDP_TAB_DELAY = 0.15
SPAWN_TAB_DELAY = 0.2
BATCH_PAUSE = 3.0
LOAD_GATE_TIMEOUT = 8.0
LOAD_GATE_POLL_INTERVAL = 0.5
LOAD_GATE_SETTLE_DELAY = 1.0
DEVTOOLS_REQUEST_TIMEOUT = 2.0

# Windows Terminal executable probes (relative to the named env var)
WINDOWS_TERMINAL_PATHS = [
    ("LOCALAPPDATA", "Microsoft/WindowsApps/wt.exe"),
    ("ProgramFiles", "WindowsApps/wt.exe"),
]
GIT_BASH_PATHS = [
    "C:/Program Files/Git/git-bash.exe",
    "C:/Program Files (x86)/Git/git-bash.exe",
]
LINUX_TERMINAL_EMULATORS = ["gnome-terminal", "konsole", "xterm"]

# Extra PATH entries for spawned terminals
WINDOWS_EXTRA_PATHS = [
    ("LOCALAPPDATA", "Microsoft/WindowsApps"),
    ("ProgramFiles", "nodejs"),
    ("APPDATA", "npm"),
]
POSIX_EXTRA_PATHS = ["/usr/local/bin", "/opt/homebrew/bin"]

# Editors
EDITOR_COMMANDS = {
    "VSCode": "code",
    "Cursor": "cursor",
}
EDITOR_FALLBACK_PATHS = {
    "VSCode": "Programs/Microsoft VS Code/Code.exe",
    "Cursor": "Programs/cursor/Cursor.exe",
}
