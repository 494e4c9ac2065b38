STATE_DIR_NAME = ".taskboard"
STORE_FILE = "board.yaml"
STORE_LOCK_FILE = "board.lock"
EVENTS_FILE = "events.jsonl"
CONFIG_FILE = "config.yaml"

STORE_VERSION = 1
WINDOWS_LOCK_BYTES = 4096

DEFAULT_ACTIVATION_DISTANCE = 10.0  # pixels of pointer travel before a drag starts
DEFAULT_TOKEN_EXPIRE_MINUTES = 1440
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_EVENTS_LIMIT = 100
