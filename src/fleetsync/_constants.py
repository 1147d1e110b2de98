"""Internal constants shared across the library."""

BASE_URL = "http://localhost:5000"
USER_AGENT = "fleetsync/1.0"

API_PREFIX = "/api/"
REGISTRATIONS_ENDPOINT = "/api/registrations"
PING_ENDPOINT = "/api/ping"

# ------------------------------------------------------------------
# Cache generations. Bump the version on every deploy that changes the
# shape of cached assets so activation evicts the previous generation.
# ------------------------------------------------------------------

STATIC_CACHE_VERSION = "v4"
API_CACHE_VERSION = "v1"


def static_cache_name(version: str = STATIC_CACHE_VERSION) -> str:
    return f"static-assets-{version}"


def dynamic_cache_name(version: str = STATIC_CACHE_VERSION) -> str:
    return f"dynamic-{version}"


def api_cache_name(version: str = API_CACHE_VERSION) -> str:
    return f"api-cache-{version}"


#: Application shell pre-cached at install time.
SHELL_URLS: tuple[str, ...] = (
    "/",
    "/index.html",
    "/offline.html",
    "/manifest.json",
    "/icon-192x192.svg",
    "/icon-512x512.svg",
)

STATIC_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".js",
        ".css",
        ".jpg",
        ".jpeg",
        ".png",
        ".svg",
        ".webp",
        ".woff",
        ".woff2",
        ".ttf",
        ".eot",
    }
)

#: Background-sync tags that trigger a drain of the pending queue.
SYNC_TAGS: frozenset[str] = frozenset({"sync-pending-operations", "fuel-record-sync"})

OFFLINE_TEXT = "Offline: resource not available"
OFFLINE_API_ERROR = "Offline: data not available"

DEFAULT_NOTIFICATION_TITLE = "Fleet Manager"
DEFAULT_NOTIFICATION_BODY = "New Fleet Manager notification"

#: Failed submissions after which a queued record is marked as a sync error.
MAX_SYNC_RETRIES = 5
