"""Exception taxonomy for the URL shortener service.

Every error the core raises derives from ``ShortenerError`` and carries the
HTTP status code the boundary responds with. ``main.py`` registers a single
exception handler for the base class.

Classes:
    ShortenerError:           Base class (500).
    InvalidUrlFormat:         Target URL is not an absolute http/https URL (400).
    InvalidSlugFormat:        Slug contains characters outside the Base62 alphabet (400).
    SlugOverflow:             Identifier does not fit into the fixed slug width.
    SlugNotFound:             No active record for the slug (404).
    AccessDenied:             Requester does not own the record (403).
    AuthenticationRequired:   Missing or invalid bearer token (401).
    SlugAllocationExhausted:  Slug allocation gave up (500).
    StoreUnavailable:         Durable store failed for infrastructural reasons (503).
    StoreConflict:            Unique constraint violated in the store.
    DuplicateOriginalUrl:     Another anonymous record already holds the URL.
    SlugConflict:             Another record already holds the slug.
    CacheUnavailable:         Cache backend failed; never surfaced to callers.
"""

__all__ = [
    "ShortenerError",
    "InvalidUrlFormat",
    "InvalidSlugFormat",
    "SlugOverflow",
    "SlugNotFound",
    "AccessDenied",
    "AuthenticationRequired",
    "SlugAllocationExhausted",
    "StoreUnavailable",
    "StoreConflict",
    "DuplicateOriginalUrl",
    "SlugConflict",
    "CacheUnavailable",
]


class ShortenerError(Exception):
    """Base class for URL shortener errors."""

    status_code: int = 500
    public_message: str = "Internal Server Error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class InvalidUrlFormat(ShortenerError, ValueError):
    status_code = 400
    public_message = "Invalid URL format"


class InvalidSlugFormat(ShortenerError, ValueError):
    status_code = 400
    public_message = "Invalid slug format"


class SlugOverflow(ShortenerError, ValueError):
    """Identifier is too large for the configured slug width."""


class SlugNotFound(ShortenerError, LookupError):
    status_code = 404
    public_message = "URL not found"


class AccessDenied(ShortenerError):
    status_code = 403
    public_message = "Access denied"


class AuthenticationRequired(ShortenerError):
    status_code = 401
    public_message = "Authentication required"


class SlugAllocationExhausted(ShortenerError):
    status_code = 500
    public_message = "Failed to shorten URL"


class StoreUnavailable(ShortenerError):
    status_code = 503
    public_message = "Service Unavailable"


class StoreConflict(ShortenerError):
    """Unique constraint violation reported by the durable store."""

    status_code = 409


class DuplicateOriginalUrl(StoreConflict):
    pass


class SlugConflict(StoreConflict):
    pass


class CacheUnavailable(ShortenerError):
    """Cache backend failure. Absorbed at the cache boundary."""

    status_code = 503
