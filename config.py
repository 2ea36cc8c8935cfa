# --- UPSTREAM (MIDGARD) ---
MIDGARD_BASE_URL = "https://midgard.ninerealms.com"

# Maximum number of intervals Midgard returns per history page.
MIDGARD_PAGE_COUNT = 400

# Pools mirrored by the depth/price history walker.
DEPTH_POOLS = ["BTC.BTC"]

# Granularity requested from upstream during ingestion.
INGESTION_INTERVAL = "hour"

# Courtesy pause between consecutive pages of one walk.
INTER_PAGE_DELAY_SECONDS = 1.0

# Watermark used when nothing has been persisted yet (2025-02-13 23:00 UTC).
INITIAL_WATERMARK = 1739487600
# Earliest rune-pool data point upstream, useful for full backfills.
RUNEPOOL_START_TIME = 1648771200

# --- HTTP CLIENT SETTINGS ---
HTTP_CONNECT_TIMEOUT_SECONDS = 10
HTTP_TOTAL_TIMEOUT_SECONDS = 60

API_CLIENT_SETTINGS = {
    # Per-page retry performed by the ingestion walker
    "TENACITY_RETRY": {
        "WAIT_MIN": 1,
        "WAIT_MAX": 30,
        "STOP_MAX_ATTEMPT": 3,
    },
    "CIRCUIT_BREAKER": {
        "FAIL_MAX": 5,
        "RESET_TIMEOUT": 60,
    },
}

# --- HISTORY QUERY SETTINGS ---
DEFAULT_QUERY_COUNT = 400
MAX_QUERY_COUNT = 400
DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 400

# --- HTTP SERVER ---
HTTP_HOST = "127.0.0.1"
HTTP_PORT = 8080

# --- LOGGING ---
LOG_LEVEL = "INFO"
LOG_FILE_PATH = "logs/midgard_history.log"

# --- DATABASE ---
DATABASE_URL = "sqlite+aiosqlite:///midgard_history.db"
DB_POOL_SIZE = 10
DB_MAX_OVERFLOW = 20
DB_POOL_RECYCLE_SECONDS = 1800  # Recycle connections every 30 minutes

# --- SCHEDULER SETTINGS ---
SCHEDULER_MISFIRE_GRACE_SECONDS = 300
