"""
Tag resolution for ranged image references.

Turns a reference such as "myorg/app:~1.x" or "myorg/app:*" into one
concrete tag by listing candidates from the local engine and, when needed,
the remote registry, then picking the most recent applicable one.
"""

import logging
from typing import Optional, Protocol

import requests
from docker.errors import DockerException

from forge_pull.constants import LATEST_TAG, NONE_TAG
from forge_pull.core.exceptions import ListingError, RegistryError, ValidationException
from forge_pull.integrations.registry_api import RegistryClient
from forge_pull.utils.docker_utils import ContainerEngine
from forge_pull.utils.image_utils import ImageReference

logger = logging.getLogger(__name__)


class CandidateLister(Protocol):
    """Source of candidate references for a ranged image."""

    source: str

    def list_images(self, image: ImageReference) -> list[ImageReference]:
        ...


class LocalImageLister:
    """Lists tags of the image that are already present in the local engine."""

    source = "local"

    def __init__(self, engine: ContainerEngine):
        self.engine = engine

    def list_images(self, image: ImageReference) -> list[ImageReference]:
        """
        List local images applicable to a reference.

        Args:
            image: Reference whose constraint filters the local tags

        Returns:
            Contained candidates in engine order, each tag at most once per image

        Raises:
            ListingError: If the engine cannot list its images
        """
        try:
            summaries = self.engine.list_images()
        except (DockerException, OSError) as e:
            raise ListingError(self.source, str(image), e) from e

        candidates: list[ImageReference] = []
        for summary in summaries:
            seen: set[str] = set()
            for repo_tag in summary.get("RepoTags") or []:
                if repo_tag == NONE_TAG:
                    continue
                try:
                    candidate = ImageReference.parse(repo_tag)
                except ValidationException:
                    logger.debug(f"Skipping unparseable local tag {repo_tag!r}")
                    continue
                if candidate.tag in seen or not image.contains(candidate):
                    continue
                seen.add(candidate.tag)
                candidates.append(candidate)

        logger.debug(f"Found {len(candidates)} local candidates for {image}")
        return candidates


class RegistryImageLister:
    """Lists every tag of the image's repository from its registry."""

    source = "remote"

    def __init__(self, client: RegistryClient):
        self.client = client

    def list_images(self, image: ImageReference) -> list[ImageReference]:
        try:
            tags = self.client.list_tags(image.registry, image.name_with_org)
        except (RegistryError, requests.RequestException) as e:
            raise ListingError(self.source, str(image), e) from e

        logger.debug(f"Found {len(tags)} remote tags for {image}")
        return [image.with_tag(tag) for tag in tags]


def find_most_recent_tag(
    image: ImageReference, candidates: list[ImageReference]
) -> Optional[ImageReference]:
    """
    Pick the most recent candidate applicable to an image reference.

    Candidates the reference does not contain are skipped. "latest" wins as
    soon as it is seen. Otherwise the greatest version wins, with the earlier
    candidate kept on ties. A candidate without a version never displaces
    the current best, and an unversioned best is never displaced, so the
    first applicable candidate wins when it has no version.

    Args:
        image: Ranged or wildcard reference
        candidates: Candidate references in listing order

    Returns:
        The selected candidate, or None if nothing applies
    """
    best: Optional[ImageReference] = None

    for candidate in candidates:
        if not image.contains(candidate):
            continue

        if candidate.tag == LATEST_TAG:
            return candidate

        if best is None:
            best = candidate
            continue

        if not candidate.has_version():
            continue

        # Only two versioned tags are comparable
        if best.has_version() and candidate.tag_as_version() > best.tag_as_version():
            best = candidate

    return best


class TagResolver:
    """
    Resolves image references to concrete tags.

    Local candidates are preferred; the registry is consulted only when the
    engine has nothing applicable or when the caller forces it.
    """

    def __init__(self, local: CandidateLister, remote: CandidateLister):
        self.local = local
        self.remote = remote

    def resolve(self, image: ImageReference, force: bool = False) -> Optional[str]:
        """
        Resolve an image reference to a concrete tag.

        Args:
            image: Reference to resolve
            force: Replace local candidates with the registry's list

        Returns:
            The selected tag, or None if no candidate applies

        Raises:
            ListingError: If a candidate source fails
        """
        if not (image.has_version_range() or image.all()):
            return image.tag

        candidates = self.local.list_images(image)
        if not candidates or force:
            reason = "forced" if force else "no local candidates"
            logger.debug(f"Listing remote tags for {image} ({reason})")
            candidates = self.remote.list_images(image)

        selected = find_most_recent_tag(image, candidates)
        if selected is None:
            logger.debug(f"No applicable tag among {len(candidates)} candidates for {image}")
            return None

        logger.info(f"Resolved {image} to tag {selected.tag}")
        return selected.tag
