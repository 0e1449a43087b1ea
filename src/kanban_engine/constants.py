CONFIG_ENV_VAR = "KANBAN_ENGINE_CONFIG"
CONFIG_DIR_NAME = "kanban-engine"
CONFIG_FILE = "config.yaml"

DEFAULT_BASE_URL = "http://127.0.0.1:8000"
DEFAULT_HTTP_TIMEOUT = 10.0  # seconds
DEFAULT_LOG_LEVEL = "INFO"

# Realtime
REALTIME_TABLES = ("projects", "tasks", "project_members")
DEFAULT_REFETCH_DEBOUNCE_SECONDS = 0.25

# Drag and drop
DEFAULT_POINTER_DISTANCE = 10  # px before a mouse/pen drag activates
DEFAULT_TOUCH_DELAY = 0.4  # seconds of hold before a touch drag activates
DEFAULT_TOUCH_TOLERANCE = 5  # px of movement allowed during the hold
HAPTIC_PULSE_MS = 50
INTERACTIVE_TAGS = frozenset({"button", "input", "textarea", "select", "a"})

# Workflow
DEFAULT_RETURN_STAGE_ID = "todo"
DEFAULT_DONE_STAGE_ID = "done"
DEFAULT_WORKFLOW_STAGES = (
    {"id": "todo", "name": "To Do", "color": "#6B7280"},
    {"id": "in_progress", "name": "In Progress", "color": "#3B82F6"},
    {"id": "review", "name": "Review", "color": "#F59E0B"},
    {"id": "done", "name": "Done", "color": "#10B981"},
)

PRIORITY_ORDER = {"urgent": 0, "high": 1, "medium": 2, "low": 3, "none": 4}

COPY_TITLE_SUFFIX = " (copy)"
TEMP_ID_PREFIX = "temp-"
PROJECT_LIST_ROUTE = "/app/projects"
USER_HEADER = "X-User-Id"  # acting user for the reference server
