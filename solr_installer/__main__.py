"""
Entry point for the Solr installer.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .application.domain import DistributionRequest
from .application.exceptions import InstallerError
from .infrastructure.containers import Container

logger = logging.getLogger(__name__)


def setup_logging(level: str):
    """Applies basic logging configuration."""
    logging.basicConfig(level=level)


def build_request(args: argparse.Namespace, config) -> DistributionRequest:
    """Merges command line overrides over the configured defaults."""
    installer = config.installer
    return DistributionRequest(
        version=args.version or installer.version,
        output_dir=Path(args.output_dir or installer.output_dir).expanduser(),
        cache_dir=Path(args.cache_dir or installer.cache_dir).expanduser(),
        name=installer.name,
        server_binary=installer.server_binary,
    )


async def _dispatch(service, request: DistributionRequest, args: argparse.Namespace):
    if args.command == "install":
        install_dir = await service.install(request)
        print(install_dir)
    elif args.command == "fetch":
        print(await service.download(request))
    elif args.command == "verify":
        record = await service.verify(request)
        print(f"{record.algorithm.extension} {record.value}")
    elif args.command == "unpack":
        print(await service.unpack(request))
    elif args.command == "repack":
        print(await service.repack(request, args.dest, args.libraries))
    elif args.command == "status":
        state = "installed" if service.is_installed(request) else "not installed"
        print(f"{request.basename}: {state} ({request.install_dir})")


async def run_application(args: argparse.Namespace):
    """Wires and runs the application using the DI container."""

    container = Container()
    container.cli_args.from_dict(vars(args))
    config = container.config()
    setup_logging(level=config.logging.level)
    service = container.distribution_service()
    request = build_request(args, config)

    try:
        await _dispatch(service, request, args)
    except InstallerError as e:
        logger.error(f"An application error occurred: {e}")
        sys.exit(1)
    finally:
        await container.http_client().aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="solr-installer",
        description="Download, verify and unpack Solr distributions",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--version",
        help="Solr version to work with (default: from settings)",
    )
    common.add_argument(
        "--output-dir",
        help="Parent directory for installed servers",
    )
    common.add_argument(
        "--cache-dir",
        help="Directory where downloaded tarballs are cached",
    )
    common.add_argument(
        "--force-check",
        action="store_true",
        help="Force re-verification of cached files.",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser(
        "install", parents=[common], help="Download and unpack if missing"
    )
    commands.add_parser(
        "fetch", parents=[common], help="Download and verify the tarball"
    )
    commands.add_parser(
        "verify", parents=[common], help="Verify the cached tarball"
    )
    commands.add_parser(
        "unpack", parents=[common], help="Unpack the cached tarball"
    )
    commands.add_parser(
        "status", parents=[common], help="Report whether the version is installed"
    )

    repack = commands.add_parser(
        "repack",
        parents=[common],
        help="Build a tarball with extra library files in server/solr/lib",
    )
    repack.add_argument(
        "--dest", required=True, type=Path, help="Path of the new tarball"
    )
    repack.add_argument(
        "libraries", nargs="+", type=Path, help="Library files (jars) to add"
    )

    return parser


def main(argv=None):
    cli_args = build_parser().parse_args(argv)
    asyncio.run(run_application(cli_args))


if __name__ == "__main__":
    main()
