"""
Exception hierarchy for forge-pull.

Every error raised by the resolver, the puller and the bridge locator derives
from ForgePullException so callers can report failures without a traceback.
"""

from typing import Optional

from forge_pull.constants import CONTAINER_ID_DISPLAY_LENGTH


class ForgePullException(Exception):
    """Base class for all forge-pull errors."""

    pass


class ValidationException(ForgePullException):
    """Invalid user input, such as a malformed image reference."""

    def __init__(self, message: str, field_name: str = "image"):
        self.field_name = field_name
        super().__init__(f"{field_name}: {message}")


class ListingError(ForgePullException):
    """Enumerating candidate images failed for one source."""

    def __init__(self, source: str, image: str, cause: Exception):
        self.source = source
        self.image = image
        self.cause = cause
        super().__init__(f"Failed to list {source} images for {image}, error: {cause}")


class ResolutionError(ForgePullException):
    """A ranged image reference could not be turned into a concrete tag."""

    pass


class NoMatchingTagError(ResolutionError):
    """No candidate satisfied the reference's version constraint."""

    def __init__(self, image: str):
        self.image = image
        super().__init__(f"No applicable tag found for image {image}")


class PullError(ForgePullException):
    """The engine failed to pull an image."""

    def __init__(self, image: str, cause: Exception, error_type: str = "unknown"):
        self.image = image
        self.cause = cause
        self.error_type = error_type
        super().__init__(f"Failed to pull image {image}, error: {cause}")


class StreamError(ForgePullException):
    """The pull progress stream could not be processed."""

    def __init__(self, image: str, cause: Exception):
        self.image = image
        self.cause = cause
        super().__init__(f"Failed to process json stream for image: {image}, error: {cause}")


class ProgressStreamError(ForgePullException):
    """A progress record was undecodable or reported an error."""

    pass


class RegistryError(ForgePullException):
    """A registry API call failed."""

    def __init__(self, registry: str, message: str, status_code: Optional[int] = None):
        self.registry = registry
        self.status_code = status_code
        detail = f" (HTTP {status_code})" if status_code else ""
        super().__init__(f"Registry {registry}: {message}{detail}")


class BridgeError(ForgePullException):
    """Base class for failures while probing the network bridge."""

    action = "handle"

    def __init__(self, container_id: str, cause: Exception):
        self.container_id = container_id
        self.cause = cause
        super().__init__(
            f"Failed to {self.action} dummy network container "
            f"{container_id[:CONTAINER_ID_DISPLAY_LENGTH]}, error: {cause}"
        )


class InspectError(BridgeError):
    action = "inspect"


class CreateError(BridgeError):
    action = "create"


class StartError(BridgeError):
    action = "start"


class RemoveError(BridgeError):
    action = "remove"


class ImageInspectError(ForgePullException):
    """The bootstrap image could not be inspected for a reason other than absence."""

    def __init__(self, image: str, cause: Exception):
        self.image = image
        self.cause = cause
        super().__init__(f"Failed to inspect image {image}, error: {cause}")
