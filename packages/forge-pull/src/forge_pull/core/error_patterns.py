"""
Classification of container engine error text.

Pull and inspect failures come back from the engine as free-form messages.
These helpers map them to a small set of error types carried on PullError
and used to tell a missing bootstrap image apart from other failures.
"""

AUTH_ERROR_PATTERNS = (
    "401",
    "403",
    "unauthorized",
    "forbidden",
    "denied",
    "authentication required",
    "no basic auth credentials",
    "not authorized",
    "incorrect username or password",
)

RATE_LIMIT_PATTERNS = (
    "429",
    "toomanyrequests",
    "rate limit",
    "too many requests",
)

NOT_FOUND_PATTERNS = (
    "404",
    "not found",
    "manifest unknown",
    "does not exist",
    "no such image",
)

# Checked in order: registries often answer a private repository the
# caller cannot see with "denied ... does not exist"
ERROR_TYPES = (
    ("auth", AUTH_ERROR_PATTERNS),
    ("rate_limit", RATE_LIMIT_PATTERNS),
    ("not_found", NOT_FOUND_PATTERNS),
)


def _matches(message: str, patterns) -> bool:
    lowered = message.lower()
    return any(pattern in lowered for pattern in patterns)


def is_auth_error(message: str) -> bool:
    """True if the engine rejected the registry credentials or lack of them."""
    return _matches(message, AUTH_ERROR_PATTERNS)


def is_rate_limit_error(message: str) -> bool:
    return _matches(message, RATE_LIMIT_PATTERNS)


def is_not_found_error(message: str) -> bool:
    """
    Check if an engine message says the image or tag does not exist.

    Args:
        message: Error text, e.g. "No such image: alpine:3.2"

    Returns:
        True if the message matches a not-found pattern
    """
    return _matches(message, NOT_FOUND_PATTERNS)


def classify_error_type(message: str) -> str:
    """
    Classify engine error text.

    Args:
        message: Error text reported by the engine

    Returns:
        "auth", "rate_limit", "not_found", or "unknown"
    """
    for error_type, patterns in ERROR_TYPES:
        if _matches(message, patterns):
            return error_type
    return "unknown"
