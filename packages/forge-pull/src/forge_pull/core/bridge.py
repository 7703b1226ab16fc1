"""
Discovery of the container network bridge address.

Starts a throwaway container from a small bootstrap image, reads the
gateway of its network, and removes the container again.
"""

import logging
from typing import Any

from docker.errors import DockerException

from forge_pull.constants import (
    CONTAINER_ID_DISPLAY_LENGTH,
    DEFAULT_BOOTSTRAP_IMAGE,
    PROBE_COMMAND,
)
from forge_pull.core.exceptions import (
    CreateError,
    ImageInspectError,
    InspectError,
    RemoveError,
    StartError,
)
from forge_pull.core.puller import ImagePuller
from forge_pull.utils.docker_utils import ContainerEngine, ContainerSpec, is_image_not_found
from forge_pull.utils.image_utils import ImageReference

logger = logging.getLogger(__name__)


def _gateway_from(details: dict[str, Any]) -> str:
    settings = details.get("NetworkSettings") or {}
    gateway = settings.get("Gateway")
    if gateway:
        return gateway
    # Newer engines only report the gateway per network
    bridge = (settings.get("Networks") or {}).get("bridge") or {}
    return bridge.get("Gateway") or ""


class BridgeLocator:
    """Finds the engine's bridge gateway IP with a disposable probe container."""

    def __init__(
        self,
        engine: ContainerEngine,
        puller: ImagePuller,
        bootstrap_image: str = DEFAULT_BOOTSTRAP_IMAGE,
    ):
        self.engine = engine
        self.puller = puller
        self.bootstrap_image = ImageReference.parse(bootstrap_image)

    def get_bridge_ip(self) -> str:
        """
        Return the gateway address of the default bridge network.

        The probe container is removed on every path, including interrupts.
        When probing already failed, a removal failure is only logged so the
        earlier error propagates.

        Raises:
            ImageInspectError: If the bootstrap image cannot be inspected
            CreateError: If the probe container cannot be created
            StartError: If the probe container cannot be started
            InspectError: If the probe container cannot be inspected
            RemoveError: If the probe container cannot be removed
        """
        self._ensure_bootstrap_image()

        image = str(self.bootstrap_image)
        try:
            container_id = self.engine.create_container(
                ContainerSpec(image=image, command=list(PROBE_COMMAND))
            )
        except DockerException as e:
            raise CreateError("", e) from e

        short_id = container_id[:CONTAINER_ID_DISPLAY_LENGTH]
        logger.debug(f"Created bridge probe container {short_id}")

        probed = False
        try:
            gateway = self._probe(container_id)
            probed = True
        finally:
            if probed:
                self._remove(container_id)
            else:
                self._remove_quietly(container_id)

        logger.info(f"Bridge gateway is {gateway}")
        return gateway

    def _ensure_bootstrap_image(self) -> None:
        name = str(self.bootstrap_image)
        try:
            self.engine.inspect_image(name)
            return
        except DockerException as e:
            if not is_image_not_found(e):
                raise ImageInspectError(name, e) from e

        logger.info(f"Bootstrap image {name} not present, pulling it")
        self.puller.pull(self.bootstrap_image)

    def _probe(self, container_id: str) -> str:
        try:
            self.engine.start_container(container_id)
        except DockerException as e:
            raise StartError(container_id, e) from e

        try:
            details = self.engine.inspect_container(container_id)
        except DockerException as e:
            raise InspectError(container_id, e) from e

        return _gateway_from(details)

    def _remove(self, container_id: str) -> None:
        try:
            self.engine.remove_container(container_id, force=True, remove_volumes=True)
        except DockerException as e:
            raise RemoveError(container_id, e) from e
        logger.debug(f"Removed bridge probe container {container_id[:CONTAINER_ID_DISPLAY_LENGTH]}")

    def _remove_quietly(self, container_id: str) -> None:
        try:
            self._remove(container_id)
        except RemoveError as e:
            logger.warning(str(e))
