"""
Streaming image pulls.

A pull resolves the reference to a concrete tag, then runs the engine pull
on a worker thread that writes raw JSON progress into a pipe while the
calling thread renders it. The worker reports its outcome through a
single-slot queue that is read once the stream has been drained.
"""

import logging
import os
import queue
import sys
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional, TextIO

from forge_pull.core.error_patterns import classify_error_type
from forge_pull.core.exceptions import (
    NoMatchingTagError,
    ProgressStreamError,
    PullError,
    StreamError,
)
from forge_pull.core.tag_resolver import TagResolver
from forge_pull.utils.console import LoggerWriter, display_json_messages_stream, is_terminal
from forge_pull.utils.docker_utils import AuthConfig, ContainerEngine, PullImageOptions
from forge_pull.utils.image_utils import ImageReference

logger = logging.getLogger(__name__)


class PullState(Enum):
    START = "start"
    RESOLVING = "resolving"
    STREAMING = "streaming"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class PullRequest:
    """A single pull: the reference, credentials and whether to force the registry."""

    image: ImageReference
    auth: Optional[AuthConfig] = None
    force: bool = False


class ImagePuller:
    """
    Pulls images through a container engine with live progress output.

    Progress goes to a terminal with per-layer line redraws when `out` is a
    TTY, and through the forge_pull.progress logger otherwise.
    """

    def __init__(
        self,
        engine: ContainerEngine,
        resolver: TagResolver,
        out: Optional[TextIO] = None,
    ):
        self.engine = engine
        self.resolver = resolver
        self.out = out if out is not None else sys.stdout
        self.last_state = PullState.START

    def _transition(self, image: ImageReference, state: PullState) -> None:
        logger.debug(f"Pull of {image}: {self.last_state.value} -> {state.value}")
        self.last_state = state

    def pull(
        self,
        image: ImageReference,
        auth: Optional[AuthConfig] = None,
        force: bool = False,
    ) -> ImageReference:
        """
        Resolve and pull an image.

        Args:
            image: Reference to pull, possibly with a range or "*" tag
            auth: Registry credentials
            force: Consult the registry even if local candidates exist

        Returns:
            The pulled reference with its concrete tag. A reference pinned
            by digest is pulled by that digest and returned unchanged.

        Raises:
            ListingError: If a candidate source fails during resolution
            NoMatchingTagError: If no tag satisfies the reference
            StreamError: If the progress stream is corrupt or reports an error
            PullError: If the engine pull fails
        """
        return self.execute(PullRequest(image=image, auth=auth, force=force))

    def execute(self, request: PullRequest) -> ImageReference:
        image = request.image
        self.last_state = PullState.START

        self._transition(image, PullState.RESOLVING)
        if image.digest:
            logger.debug(f"{image} is pinned by digest, skipping tag resolution")
            resolved = image
        else:
            resolved = self._resolve(image, request.force)

        self._transition(resolved, PullState.STREAMING)
        try:
            self._stream_pull(resolved, request.auth)
        except Exception:
            self._transition(resolved, PullState.FAILED)
            raise

        self._transition(resolved, PullState.DONE)
        return resolved

    def _resolve(self, image: ImageReference, force: bool) -> ImageReference:
        try:
            tag = self.resolver.resolve(image, force=force)
        except Exception:
            self._transition(image, PullState.FAILED)
            raise

        if tag is None:
            self._transition(image, PullState.FAILED)
            raise NoMatchingTagError(str(image))

        return image.with_tag(tag)

    def _stream_pull(self, image: ImageReference, auth: Optional[AuthConfig]) -> None:
        read_fd, write_fd = os.pipe()
        reader = os.fdopen(read_fd, "rb")
        writer = os.fdopen(write_fd, "wb")
        errors: "queue.Queue[Optional[BaseException]]" = queue.Queue(maxsize=1)

        options = PullImageOptions(
            repository=image.repository,
            tag=image.digest or image.tag,
            output_stream=writer,
        )

        def worker() -> None:
            error: Optional[BaseException] = None
            try:
                self.engine.pull_image(options, auth)
            except Exception as e:
                error = e
            finally:
                try:
                    writer.close()
                except OSError as e:
                    logger.warning(f"Failed to close pull stream for {image}: {e}")
                errors.put_nowait(error)

        thread = threading.Thread(target=worker, name=f"pull-{image.name}", daemon=True)
        thread.start()

        sink = self.out if is_terminal(self.out) else LoggerWriter()
        try:
            display_json_messages_stream(reader, sink, terminal=sink is self.out)
        except ProgressStreamError as e:
            raise StreamError(str(image), e) from e
        finally:
            reader.close()
            sink.flush()

        error = errors.get()
        if error is not None:
            raise PullError(str(image), error, classify_error_type(str(error))) from error

        logger.debug(f"Pulled {image}")
