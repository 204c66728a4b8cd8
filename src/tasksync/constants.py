STATE_DIR_NAME = ".tasksync"
CONFIG_FILE = "config.yaml"
ROOT_CONFIG_FILE = "tasksync.yaml"
STORE_FILE = "tasks.json"

DATA_VERSION = "1.0.0"
DATA_KEY = "data"
SETTINGS_KEY = "settings"

DEFAULT_GROUP_ID = ""
DEFAULT_GROUP_TITLE = "Tasks"
EMPTY_TASK_PLACEHOLDER = "(untitled)"

DEFAULT_DEBOUNCE_SECONDS = 0.3
DEFAULT_POLL_INTERVAL = 1.0
WINDOWS_LOCK_BYTES = 4096

METADATA_MARKER = "%%"

VALID_THEMES = ("neon", "mono", "cyber", "matrix")
DEFAULT_THEME = "neon"
VALID_VIEW_MODES = ("full", "compact")
DEFAULT_VIEW_MODE = "full"

DEFAULT_POMODORO_WORK_MINUTES = 25
DEFAULT_POMODORO_BREAK_MINUTES = 5
POMODORO_WORK_RANGE = (1, 120)
POMODORO_BREAK_RANGE = (1, 60)

DEBUG_LOG_MAX_ENTRIES = 200
