"""HTTP constants for the Matomo request layer.

Centralizes status ranges, defaults, and header names shared by the
reporting client and the tracking service.
"""

# HTTP Status Code Ranges
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 300
HTTP_STATUS_REQUEST_TIMEOUT = 408
HTTP_STATUS_TOO_MANY_REQUESTS = 429
HTTP_STATUS_SERVER_ERROR_MIN = 500
HTTP_STATUS_SERVER_ERROR_MAX = 600

# Endpoint paths
API_PATH = "index.php"
TRACKING_PATH = "matomo.php"
LEGACY_TRACKING_PATH = "piwik.php"

# Request defaults
DEFAULT_TIMEOUT_MS = 10_000
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_MS = 250
DEFAULT_MAX_DELAY_MS = 2_000
DEFAULT_JITTER_MS = 250

# Rate-limit defaults
DEFAULT_MIN_THROTTLE_MS = 1_000
MAX_COOLDOWN_MS = 300_000  # 5 minutes

# Reset header values above this are epoch milliseconds
EPOCH_MS_THRESHOLD = 1_000_000_000_000
# Reset header values at or above this (and below the ms threshold) are epoch seconds
EPOCH_SECONDS_THRESHOLD = 1_000_000_000

RETRY_AFTER_HEADER = "retry-after"

# Header families in priority order: (limit, remaining, reset)
RATE_LIMIT_HEADER_FAMILIES: tuple[tuple[str, str, str], ...] = (
    (
        "x-matomo-rate-limit-limit",
        "x-matomo-rate-limit-remaining",
        "x-matomo-rate-limit-reset",
    ),
    ("x-ratelimit-limit", "x-ratelimit-remaining", "x-ratelimit-reset"),
    ("ratelimit-limit", "ratelimit-remaining", "ratelimit-reset"),
)

USER_AGENT = "matomo-access/0.1"
