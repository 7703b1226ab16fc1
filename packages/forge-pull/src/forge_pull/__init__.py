"""forge-pull: resolve version-ranged image references and pull them."""

from forge_pull.constants import __version__
from forge_pull.core.bridge import BridgeLocator
from forge_pull.core.exceptions import ForgePullException
from forge_pull.core.puller import ImagePuller, PullRequest
from forge_pull.core.tag_resolver import TagResolver, find_most_recent_tag
from forge_pull.utils.docker_utils import AuthConfig, DockerClient
from forge_pull.utils.image_utils import ImageReference

__all__ = [
    "__version__",
    "AuthConfig",
    "BridgeLocator",
    "DockerClient",
    "ForgePullException",
    "ImagePuller",
    "ImageReference",
    "PullRequest",
    "TagResolver",
    "find_most_recent_tag",
]
