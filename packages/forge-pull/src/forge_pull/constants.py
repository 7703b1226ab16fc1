"""
Centralized configuration constants for forge-pull.

This module provides a single source of truth for values shared by the
resolver, the puller and the registry client.
"""

__version__ = "0.3.0"
__author__ = "Chainguard"

# ============================================================================
# Image References
# ============================================================================

LATEST_TAG = "latest"
"""Tag that always wins tag resolution when it is in range."""

ALL_VERSIONS_TAG = "*"
"""Wildcard tag meaning "any version"."""

WILDCARD_TAGS = frozenset({ALL_VERSIONS_TAG, "x", "X"})
"""Tags treated as the "any version" wildcard."""

NONE_TAG = "<none>:<none>"
"""RepoTags entry the engine reports for dangling images."""

DOCKER_HUB_REGISTRY = "docker.io"
"""Canonical Docker Hub name used in parsed references."""

DOCKER_HUB_API_HOST = "registry-1.docker.io"
"""Host serving the registry v2 API for Docker Hub."""

DOCKER_HUB_ALIASES = frozenset({
    "docker.io",
    "index.docker.io",
    "registry-1.docker.io",
})
"""Registry names that all mean Docker Hub."""

DOCKER_HUB_OFFICIAL_ORG = "library"
"""Namespace of official Docker Hub images."""

# ============================================================================
# Bridge Discovery
# ============================================================================

DEFAULT_BOOTSTRAP_IMAGE = "gliderlabs/alpine:3.2"
"""Minimal image used for the throwaway bridge probe container."""

PROBE_COMMAND = ["/bin/sh", "-c", "while true; do sleep 1; done"]
"""Command keeping the probe container alive while it is inspected."""

CONTAINER_ID_DISPLAY_LENGTH = 12
"""Number of container id characters shown in messages."""

# ============================================================================
# Timeouts and Paging
# ============================================================================

API_REQUEST_TIMEOUT = 30
"""Timeout for registry API requests (30 seconds)."""

DEFAULT_TAG_PAGE_SIZE = 1000
"""Number of tags requested per registry listing page."""

MAX_TAG_PAGES = 50
"""Upper bound on followed pagination links per listing."""

# ============================================================================
# Configuration
# ============================================================================

ENV_PREFIX = "FORGE_PULL_"
"""Prefix for settings read from the environment."""

DEFAULT_DOCKER_CERT_PATH = "~/.docker"
"""Fallback for DOCKER_CERT_PATH when it is unset."""
