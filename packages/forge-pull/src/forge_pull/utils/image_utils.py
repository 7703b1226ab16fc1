"""
Shared utilities for parsing and comparing container image references.

This module provides the canonical ImageReference dataclass. A reference's
tag is either a literal tag, a version range ("~1.x", ">=1.2 <2") or the
"*" wildcard; containment and ordering are defined on top of that.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from forge_pull.constants import (
    DOCKER_HUB_ALIASES,
    DOCKER_HUB_OFFICIAL_ORG,
    DOCKER_HUB_REGISTRY,
    LATEST_TAG,
    WILDCARD_TAGS,
)
from forge_pull.core.exceptions import ValidationException
from forge_pull.utils.version_matcher import SemVer, VersionRange, is_range_expression

_INVALID_CHARS = ['"', "'", ";", "&", "$", "`", "\n", "\r"]


class ConstraintKind(Enum):
    """Which kind of tag constraint a reference carries."""

    EXACT = "exact"
    RANGE = "range"
    ALL = "all"


def _looks_like_registry(component: str) -> bool:
    return "." in component or ":" in component or component == "localhost"


@dataclass(frozen=True)
class ImageReference:
    """
    Parsed container image reference.

    Immutable value with a repository identity (registry, organization, name)
    and a tag that may be literal, a version range or the "*" wildcard.
    """

    registry: Optional[str]
    """Registry hostname (e.g., 'gcr.io', 'docker.io')."""

    organization: Optional[str]
    """Organization/namespace (e.g., 'library'). None for bare registry/image paths."""

    name: str
    """Image name without registry, org, tag, or digest."""

    tag: str = LATEST_TAG
    """Literal tag, version range expression, or "*"."""

    digest: Optional[str] = None
    """Image digest (e.g., 'sha256:abc...')."""

    version_range: Optional[VersionRange] = field(
        default=None, init=False, repr=False, compare=False, hash=False
    )

    def __post_init__(self):
        if self.tag not in WILDCARD_TAGS and is_range_expression(self.tag):
            object.__setattr__(self, "version_range", VersionRange.parse(self.tag))

    @classmethod
    def parse(cls, image: str) -> "ImageReference":
        """
        Parse a container image reference string.

        Handles various formats:
            - nginx -> docker.io/library/nginx:latest
            - myorg/app:~1.x -> docker.io/myorg/app with a tilde range
            - gcr.io/project/image:1.2.3 -> GCR format
            - localhost:5000/image:* -> local registry, all versions
            - image@sha256:abc... -> digest format

        Args:
            image: Image reference string

        Returns:
            Parsed ImageReference

        Raises:
            ValidationException: If the reference is empty or malformed
        """
        if not image or not image.strip():
            raise ValidationException("Image reference cannot be empty")

        image = image.strip()
        if any(char in image for char in _INVALID_CHARS):
            raise ValidationException(f"Image reference contains invalid characters: {image}")

        tag = None
        digest = None

        if "@" in image:
            image, digest = image.rsplit("@", 1)

        # Tag separator is the last ":" after the last "/" (ports live before it)
        last_slash = image.rfind("/")
        last_colon = image.rfind(":")
        if last_colon > last_slash:
            image, tag = image[:last_colon], image[last_colon + 1:]

        parts = image.split("/")
        if not all(parts):
            raise ValidationException(f"Image reference has an empty path component: {image}")

        if len(parts) > 1 and _looks_like_registry(parts[0]):
            registry = parts[0].lower()
            path = parts[1:]
        else:
            registry = DOCKER_HUB_REGISTRY
            path = parts

        if registry in DOCKER_HUB_ALIASES:
            registry = DOCKER_HUB_REGISTRY
            if len(path) == 1:
                path = [DOCKER_HUB_OFFICIAL_ORG] + path

        if len(path) == 1:
            organization = None
            name = path[0]
        else:
            organization = path[0]
            name = "/".join(path[1:])

        if not re.match(r"^[a-z0-9][a-z0-9._/-]*$", name.lower()):
            raise ValidationException(f"Invalid repository name: {name}")

        return cls(
            registry=registry,
            organization=organization,
            name=name.lower(),
            tag=tag or LATEST_TAG,
            digest=digest,
        )

    @property
    def constraint(self) -> ConstraintKind:
        if self.tag in WILDCARD_TAGS:
            return ConstraintKind.ALL
        if self.version_range is not None:
            return ConstraintKind.RANGE
        return ConstraintKind.EXACT

    def all(self) -> bool:
        """True if the tag is the "*" wildcard or its "x" spelling."""
        return self.constraint is ConstraintKind.ALL

    def has_version_range(self) -> bool:
        """True if the tag is a version range expression."""
        return self.constraint is ConstraintKind.RANGE

    def is_strict(self) -> bool:
        """True if the reference names exactly one tag."""
        return self.constraint is ConstraintKind.EXACT

    def has_version(self) -> bool:
        """True if the tag parses as a semantic version."""
        return self.is_strict() and SemVer.parse(self.tag) is not None

    def tag_as_version(self) -> SemVer:
        """
        Return the tag as an ordered version.

        Raises:
            ValueError: If the tag is not a semantic version
        """
        version = SemVer.parse(self.tag) if self.is_strict() else None
        if version is None:
            raise ValueError(f"Tag {self.tag!r} of {self.repository} is not a version")
        return version

    @property
    def repository(self) -> str:
        """Registry-qualified repository without tag or digest."""
        parts = [self.registry] if self.registry else []
        if self.organization:
            parts.append(self.organization)
        parts.append(self.name)
        return "/".join(parts)

    @property
    def name_with_org(self) -> str:
        """Return org/name if org exists, otherwise just name."""
        if self.organization:
            return f"{self.organization}/{self.name}"
        return self.name

    @property
    def full_name(self) -> str:
        """Return the full image reference."""
        if self.digest:
            return f"{self.repository}@{self.digest}"
        return f"{self.repository}:{self.tag}"

    def same_repository(self, other: "ImageReference") -> bool:
        return (
            self.registry == other.registry
            and self.organization == other.organization
            and self.name == other.name
        )

    def contains(self, other: Optional["ImageReference"]) -> bool:
        """
        Check whether another reference satisfies this reference's constraint.

        Repository identity must match first. Then the wildcard accepts any
        tag, a range accepts "latest" and any released version inside it,
        and an exact reference accepts only the same tag.

        Args:
            other: Candidate reference, typically with a concrete tag

        Returns:
            True if the candidate is applicable
        """
        if other is None or not self.same_repository(other):
            return False

        if self.all():
            return True

        if self.has_version_range():
            if other.tag == LATEST_TAG:
                return True
            return other.has_version() and self.version_range.contains(other.tag_as_version())

        if self.digest or other.digest:
            return self.digest == other.digest
        return self.tag == other.tag

    def with_tag(self, tag: str) -> "ImageReference":
        """
        Return a new ImageReference with a different tag.

        Args:
            tag: New tag

        Returns:
            New ImageReference with updated tag (digest cleared)
        """
        return ImageReference(
            registry=self.registry,
            organization=self.organization,
            name=self.name,
            tag=tag,
            digest=None,
        )

    def __str__(self) -> str:
        return self.full_name
