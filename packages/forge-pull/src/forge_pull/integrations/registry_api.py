"""
Registry v2 API client for listing repository tags.

Speaks the token-auth handshake used by Docker Hub and most hosted
registries: an anonymous request answered with 401 carries a Bearer
challenge naming the token endpoint, and the retried request presents the
token fetched from there.
"""

import logging
import re
from typing import Optional

import requests

from forge_pull.constants import (
    API_REQUEST_TIMEOUT,
    DEFAULT_TAG_PAGE_SIZE,
    DOCKER_HUB_ALIASES,
    DOCKER_HUB_API_HOST,
    MAX_TAG_PAGES,
)
from forge_pull.core.exceptions import RegistryError
from forge_pull.utils.docker_utils import AuthConfig

logger = logging.getLogger(__name__)

_CHALLENGE_PARAM_RE = re.compile(r'(\w+)="([^"]*)"')


def parse_bearer_challenge(header: str) -> Optional[dict[str, str]]:
    """
    Parse a WWW-Authenticate Bearer challenge.

    Args:
        header: Header value, e.g. 'Bearer realm="https://auth.docker.io/token",service="registry.docker.io"'

    Returns:
        Challenge parameters, or None if the header is not a Bearer challenge
    """
    if not header:
        return None
    scheme, _, params = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return dict(_CHALLENGE_PARAM_RE.findall(params))


class RegistryClient:
    """
    Client for the registry v2 tags API.

    Uses a requests Session for connection pooling and caches bearer tokens
    per registry and repository for the lifetime of the client. A cached
    token the registry rejects is dropped and fetched again once.
    """

    def __init__(
        self,
        auth: Optional[AuthConfig] = None,
        timeout: int = API_REQUEST_TIMEOUT,
        page_size: int = DEFAULT_TAG_PAGE_SIZE,
        insecure_registries: Optional[list[str]] = None,
        session: Optional[requests.Session] = None,
    ):
        self.auth = auth
        self.timeout = timeout
        self.page_size = page_size
        self.insecure_registries = {r.lower() for r in insecure_registries or []}
        self._session = session if session is not None else requests.Session()
        self._tokens: dict[tuple[str, str], str] = {}

    def api_base(self, registry: str) -> str:
        """Return the v2 API base URL for a registry name."""
        host = registry.lower()
        if host in DOCKER_HUB_ALIASES:
            host = DOCKER_HUB_API_HOST
        scheme = "http" if host in self.insecure_registries else "https"
        return f"{scheme}://{host}/v2"

    def list_tags(self, registry: str, repository: str) -> list[str]:
        """
        List every tag of a repository, following pagination links.

        Args:
            registry: Registry name (e.g., "docker.io", "ghcr.io")
            repository: Repository path within the registry (e.g., "library/nginx")

        Returns:
            Tags in the order the registry reports them

        Raises:
            RegistryError: If the registry rejects or fails the request
        """
        base = self.api_base(registry)
        url = f"{base}/{repository}/tags/list"
        params: Optional[dict] = {"n": self.page_size}
        tags: list[str] = []

        for _ in range(MAX_TAG_PAGES):
            response = self._get(registry, repository, url, params)
            data = response.json()
            tags.extend(data.get("tags") or [])

            next_link = response.links.get("next", {}).get("url")
            if not next_link:
                break
            # Link targets are relative to the registry host
            url = requests.compat.urljoin(base, next_link)
            params = None
        else:
            logger.warning(
                f"Stopped listing {registry}/{repository} after {MAX_TAG_PAGES} pages"
            )

        logger.debug(f"Registry {registry} reported {len(tags)} tags for {repository}")
        return tags

    def _get(
        self, registry: str, repository: str, url: str, params: Optional[dict]
    ) -> requests.Response:
        headers = {"Accept": "application/json"}
        token_key = (self.api_base(registry), repository)
        token = self._tokens.get(token_key)
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = self._session.get(url, params=params, headers=headers, timeout=self.timeout)
            if response.status_code == 401:
                if token:
                    logger.debug(f"Cached token for {registry}/{repository} was rejected")
                    del self._tokens[token_key]
                token = self._fetch_token(registry, repository, response)
                headers = {**headers, "Authorization": f"Bearer {token}"}
                response = self._session.get(
                    url, params=params, headers=headers, timeout=self.timeout
                )
            response.raise_for_status()
            return response
        except requests.HTTPError as e:
            raise RegistryError(
                registry,
                f"failed to list tags for {repository}",
                e.response.status_code if e.response is not None else None,
            ) from e
        except requests.RequestException as e:
            raise RegistryError(registry, f"failed to list tags for {repository}: {e}") from e

    def _fetch_token(self, registry: str, repository: str, response: requests.Response) -> str:
        """Fetch a bearer token for the challenge carried by a 401 response."""
        challenge = parse_bearer_challenge(response.headers.get("WWW-Authenticate", ""))
        if not challenge or "realm" not in challenge:
            raise RegistryError(registry, "authentication required without a bearer challenge", 401)

        params = {"scope": challenge.get("scope") or f"repository:{repository}:pull"}
        if challenge.get("service"):
            params["service"] = challenge["service"]

        basic_auth = None
        if self.auth and not self.auth.is_empty:
            basic_auth = (self.auth.username, self.auth.password)

        logger.debug(f"Requesting registry token from {challenge['realm']}")
        token_response = self._session.get(
            challenge["realm"], params=params, auth=basic_auth, timeout=self.timeout
        )
        token_response.raise_for_status()

        data = token_response.json()
        token = data.get("token") or data.get("access_token")
        if not token:
            raise RegistryError(registry, "token endpoint returned no token")

        self._tokens[(self.api_base(registry), repository)] = token
        return token
