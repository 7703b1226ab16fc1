"""Shared fakes for forge-pull tests."""

import json
from typing import Optional

import pytest

from forge_pull.core.exceptions import ListingError
from forge_pull.utils.docker_utils import AuthConfig, ContainerSpec, PullImageOptions
from forge_pull.utils.image_utils import ImageReference


def encode_progress(*records: dict) -> list[bytes]:
    """Encode progress records the way the engine streams them."""
    return [json.dumps(record).encode("utf-8") + b"\r\n" for record in records]


class FakeEngine:
    """In-memory container engine recording every call."""

    def __init__(self, images: Optional[list[dict]] = None):
        self.images = images or []
        self.calls: list[tuple] = []
        self.pull_chunks: list[bytes] = []
        self.pull_error: Optional[Exception] = None
        self.list_error: Optional[Exception] = None
        self.inspect_image_error: Optional[Exception] = None
        self.create_error: Optional[Exception] = None
        self.start_error: Optional[Exception] = None
        self.inspect_error: Optional[Exception] = None
        self.remove_error: Optional[Exception] = None
        self.container_details: dict = {"NetworkSettings": {"Gateway": "172.17.0.1"}}
        self.container_id = "0123456789abcdef0123456789abcdef"

    def list_images(self) -> list[dict]:
        self.calls.append(("list_images",))
        if self.list_error:
            raise self.list_error
        return self.images

    def pull_image(self, options: PullImageOptions, auth: Optional[AuthConfig] = None) -> None:
        self.calls.append(("pull_image", options.repository, options.tag, auth))
        for chunk in self.pull_chunks:
            options.output_stream.write(chunk)
            options.output_stream.flush()
        if self.pull_error:
            raise self.pull_error

    def inspect_image(self, name: str) -> dict:
        self.calls.append(("inspect_image", name))
        if self.inspect_image_error:
            raise self.inspect_image_error
        return {"Id": "sha256:feed"}

    def create_container(self, spec: ContainerSpec) -> str:
        self.calls.append(("create_container", spec.image, tuple(spec.command)))
        if self.create_error:
            raise self.create_error
        return self.container_id

    def start_container(self, container_id: str) -> None:
        self.calls.append(("start_container", container_id))
        if self.start_error:
            raise self.start_error

    def inspect_container(self, container_id: str) -> dict:
        self.calls.append(("inspect_container", container_id))
        if self.inspect_error:
            raise self.inspect_error
        return self.container_details

    def remove_container(self, container_id: str, force: bool = False, remove_volumes: bool = False) -> None:
        self.calls.append(("remove_container", container_id, force, remove_volumes))
        if self.remove_error:
            raise self.remove_error

    def called(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]


class FakeLister:
    """Candidate source returning fixed tags, or failing."""

    def __init__(self, source: str, tags: Optional[list[str]] = None, error: Optional[Exception] = None):
        self.source = source
        self.tags = tags or []
        self.error = error
        self.calls = 0

    def list_images(self, image: ImageReference) -> list[ImageReference]:
        self.calls += 1
        if self.error:
            raise ListingError(self.source, str(image), self.error)
        return [image.with_tag(tag) for tag in self.tags]


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def make_lister():
    """Factory for candidate sources: make_lister(source, tags, error=None)."""
    return FakeLister


@pytest.fixture
def progress():
    """Encoder turning progress records into engine stream chunks."""
    return encode_progress


@pytest.fixture
def app_image():
    return ImageReference.parse("myorg/app:~1.x")
