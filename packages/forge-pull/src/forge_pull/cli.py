"""forge-pull command line.

Usage:
    forge-pull pull IMAGE [--force] [--username U --password P]
    forge-pull resolve IMAGE [--force]
    forge-pull bridge-ip
    forge-pull --version
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from docker.errors import DockerException

from forge_pull.config import PullSettings, load_settings
from forge_pull.constants import __version__
from forge_pull.core.bridge import BridgeLocator
from forge_pull.core.exceptions import ForgePullException, ValidationException
from forge_pull.core.puller import ImagePuller
from forge_pull.core.tag_resolver import LocalImageLister, RegistryImageLister, TagResolver
from forge_pull.integrations.registry_api import RegistryClient
from forge_pull.utils.docker_utils import AuthConfig, DockerClient
from forge_pull.utils.image_utils import ImageReference

logger = logging.getLogger(__name__)

NOISY_LOGGERS = ("urllib3", "docker", "requests")


def _setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity.

    Uses explicit handler setup instead of ``logging.basicConfig`` which
    is silently a no-op when the root logger already has handlers.
    """
    level = logging.DEBUG if verbose else logging.INFO
    fmt = ("%(asctime)s [%(levelname)s] %(name)s: %(message)s" if verbose
           else "%(message)s")

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt="%H:%M:%S"))
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="forge-pull",
        description="Resolve version-ranged image references and pull them",
    )
    parser.add_argument("-V", "--version", action="version", version=f"forge-pull {__version__}")
    parser.add_argument("--config", type=Path, help="YAML settings file (default: ~/.config/forge/pull.yaml)")
    parser.add_argument("--bootstrap-image", help="Image used to probe the bridge network")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    pull = commands.add_parser("pull", help="Resolve and pull an image")
    pull.add_argument("image", help="Image reference, e.g. myorg/app:~1.x")
    pull.add_argument("--force", action="store_true", help="List tags from the registry even if local tags match")
    pull.add_argument("--username", help="Registry username")
    pull.add_argument("--password", help="Registry password")

    resolve = commands.add_parser("resolve", help="Print the tag an image reference resolves to")
    resolve.add_argument("image", help="Image reference, e.g. myorg/app:>=1.2 <2")
    resolve.add_argument("--force", action="store_true", help="List tags from the registry even if local tags match")

    commands.add_parser("bridge-ip", help="Print the container bridge gateway address")

    return parser


def _auth_from_args(args: argparse.Namespace) -> AuthConfig | None:
    username = getattr(args, "username", None)
    password = getattr(args, "password", None)
    if not username and not password:
        return None
    if not (username and password):
        raise ValidationException("--username and --password must be given together", "auth")
    return AuthConfig(username=username, password=password)


def _build_puller(settings: PullSettings, auth: AuthConfig | None) -> ImagePuller:
    try:
        engine = DockerClient()
    except DockerException as e:
        raise ForgePullException(f"Cannot connect to the container engine: {e}") from e

    registry = RegistryClient(
        auth=auth,
        timeout=settings.registry_timeout,
        page_size=settings.registry_page_size,
        insecure_registries=settings.insecure_registries,
    )
    resolver = TagResolver(LocalImageLister(engine), RegistryImageLister(registry))
    return ImagePuller(engine, resolver, out=sys.stderr)


def run(args: argparse.Namespace) -> int:
    """Execute a parsed command and return its exit code."""
    if args.config is not None and not args.config.expanduser().is_file():
        raise ValidationException(f"config file not found: {args.config}", "config")

    settings = load_settings(args.config, bootstrap_image=args.bootstrap_image)
    auth = _auth_from_args(args)
    puller = _build_puller(settings, auth)

    if args.command == "pull":
        image = ImageReference.parse(args.image)
        pulled = puller.pull(image, auth=auth, force=args.force)
        print(pulled)
    elif args.command == "resolve":
        image = ImageReference.parse(args.image)
        tag = puller.resolver.resolve(image, force=args.force)
        if tag is None:
            print(f"No applicable tag found for image {image}", file=sys.stderr)
            return 1
        print(tag)
    elif args.command == "bridge-ip":
        locator = BridgeLocator(puller.engine, puller, settings.bootstrap_image)
        print(locator.get_bridge_ip())

    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    try:
        return run(args)
    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        return 130
    except ForgePullException as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
