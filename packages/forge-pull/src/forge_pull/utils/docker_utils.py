"""
Container engine access for image and container operations.

Wraps the docker SDK's low-level API behind the small set of calls the
resolver, the puller and the bridge locator need, so those components can
be exercised against any object with the same methods.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Mapping, Optional, Protocol

import docker
import docker.tls
from docker.errors import DockerException, ImageNotFound, NotFound

from forge_pull.constants import DEFAULT_DOCKER_CERT_PATH
from forge_pull.core.error_patterns import is_not_found_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthConfig:
    """Registry credentials for pulls and tag listings."""

    username: str = ""
    password: str = ""
    email: str = ""
    server_address: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.username or self.password)

    def to_dict(self) -> Optional[dict[str, str]]:
        """Return the engine's auth_config payload, or None for anonymous access."""
        if self.is_empty:
            return None
        payload = {"username": self.username, "password": self.password}
        if self.email:
            payload["email"] = self.email
        if self.server_address:
            payload["serveraddress"] = self.server_address
        return payload


@dataclass
class PullImageOptions:
    """
    Parameters for one engine pull.

    The engine copies its raw JSON progress records into output_stream.
    The tag may also be a digest such as "sha256:...".
    """

    repository: str
    tag: str
    output_stream: BinaryIO


@dataclass
class ContainerSpec:
    """Parameters for creating a container."""

    image: str
    command: list[str]
    host_config: dict[str, Any] = field(default_factory=dict)


class ContainerEngine(Protocol):
    """Operations the pull machinery needs from a container engine."""

    def list_images(self) -> list[dict[str, Any]]:
        ...

    def pull_image(self, options: PullImageOptions, auth: Optional[AuthConfig] = None) -> None:
        ...

    def inspect_image(self, name: str) -> dict[str, Any]:
        ...

    def create_container(self, spec: ContainerSpec) -> str:
        ...

    def start_container(self, container_id: str) -> None:
        ...

    def inspect_container(self, container_id: str) -> dict[str, Any]:
        ...

    def remove_container(self, container_id: str, force: bool = False, remove_volumes: bool = False) -> None:
        ...


@dataclass
class DockerClientConfig:
    """Connection settings for the docker daemon."""

    host: Optional[str] = None
    tls_verify: bool = False
    cert_path: str = DEFAULT_DOCKER_CERT_PATH

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DockerClientConfig":
        """
        Read DOCKER_HOST, DOCKER_TLS_VERIFY and DOCKER_CERT_PATH.

        Args:
            environ: Environment mapping (defaults to os.environ)
        """
        environ = os.environ if environ is None else environ
        return cls(
            host=environ.get("DOCKER_HOST") or None,
            tls_verify=environ.get("DOCKER_TLS_VERIFY", "").lower() in ("1", "yes", "true"),
            cert_path=environ.get("DOCKER_CERT_PATH") or DEFAULT_DOCKER_CERT_PATH,
        )

    def create_client(self) -> docker.DockerClient:
        if not self.host:
            return docker.from_env()

        tls = False
        if self.tls_verify:
            cert_dir = Path(self.cert_path).expanduser()
            tls = docker.tls.TLSConfig(
                client_cert=(str(cert_dir / "cert.pem"), str(cert_dir / "key.pem")),
                ca_cert=str(cert_dir / "ca.pem"),
                verify=True,
            )
        logger.debug(f"Connecting to docker daemon at {self.host} (tls={bool(tls)})")
        return docker.DockerClient(base_url=self.host, tls=tls)


class DockerClient:
    """
    Container engine backed by the docker SDK.

    Uses the low-level API client so pulls can hand back the raw JSON
    progress stream instead of a finished image object.
    """

    def __init__(
        self,
        client: Optional[docker.DockerClient] = None,
        config: Optional[DockerClientConfig] = None,
    ):
        """
        Initialize the engine adapter.

        Args:
            client: Preconfigured SDK client
            config: Connection settings used when no client is given
                (defaults to DockerClientConfig.from_env())
        """
        if client is None:
            client = (config or DockerClientConfig.from_env()).create_client()
        self._client = client
        self._api = self._client.api

    def list_images(self) -> list[dict[str, Any]]:
        """Return every local image with its RepoTags."""
        return self._api.images()

    def pull_image(self, options: PullImageOptions, auth: Optional[AuthConfig] = None) -> None:
        """
        Pull an image, copying progress records into options.output_stream.

        Errors reported by the daemon before streaming starts are raised as
        docker.errors.APIError; errors reported inside the stream are left
        for the stream consumer.
        """
        auth_config = auth.to_dict() if auth else None
        logger.debug(f"Pulling {options.repository}:{options.tag}")

        stream = self._api.pull(
            options.repository,
            tag=options.tag,
            stream=True,
            decode=False,
            auth_config=auth_config,
        )

        for chunk in stream:
            options.output_stream.write(chunk)
            options.output_stream.flush()

    def inspect_image(self, name: str) -> dict[str, Any]:
        """
        Inspect a local image.

        Raises:
            docker.errors.ImageNotFound: If the image is not present locally
        """
        return self._api.inspect_image(name)

    def create_container(self, spec: ContainerSpec) -> str:
        """Create a container and return its id."""
        host_config = self._api.create_host_config(**spec.host_config)
        container = self._api.create_container(
            image=spec.image,
            command=spec.command,
            host_config=host_config,
        )
        return container["Id"]

    def start_container(self, container_id: str) -> None:
        self._api.start(container_id)

    def inspect_container(self, container_id: str) -> dict[str, Any]:
        return self._api.inspect_container(container_id)

    def remove_container(self, container_id: str, force: bool = False, remove_volumes: bool = False) -> None:
        self._api.remove_container(container_id, v=remove_volumes, force=force)


def is_image_not_found(error: Exception) -> bool:
    """Check if an engine error means the requested image is absent."""
    if isinstance(error, (ImageNotFound, NotFound)):
        return True
    return isinstance(error, DockerException) and is_not_found_error(str(error))
