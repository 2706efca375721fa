"""Command line entry point."""

import argparse
import asyncio
import logging
import os
from typing import Optional, Sequence

from .exceptions import RegistryError
from .push import push_docker_tar

logger = logging.getLogger("docker_tar_push")


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="docker-tar-push",
        description="Push a docker-save tar archive to a registry without a docker daemon.",
    )
    p.add_argument(
        "--archive", "-a",
        dest="archive",
        required=True,
        help="Path to the tar file produced by docker save",
    )
    p.add_argument(
        "--registry", "-r",
        dest="registry",
        required=True,
        help="Registry endpoint, e.g. https://registry.example.com",
    )
    p.add_argument(
        "--username", "-u",
        default=os.environ.get("REGISTRY_USERNAME", ""),
        help="Registry user (default: $REGISTRY_USERNAME)",
    )
    p.add_argument(
        "--password", "-p",
        default=os.environ.get("REGISTRY_PASSWORD", ""),
        help="Registry password (default: $REGISTRY_PASSWORD)",
    )
    p.add_argument(
        "--skip-tls-verify", "-k",
        action="store_true",
        help="Accept self-signed registry certificates",
    )
    p.add_argument(
        "--repository",
        default=None,
        help="Push under this repository instead of the archived one",
    )
    p.add_argument(
        "--tag",
        default=None,
        help="Push under this tag instead of the archived one",
    )
    p.add_argument(
        "--concurrent-uploads", "-j",
        type=positive_int,
        default=1,
        help="Layers uploaded in parallel per tag (default: 1)",
    )
    p.add_argument(
        "--timeout",
        type=positive_int,
        default=300,
        help="Request timeout in seconds (default: 300)",
    )
    p.add_argument(
        "--no-check",
        dest="check_registry",
        action="store_false",
        help="Skip the GET /v2/ check before pushing",
    )
    p.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log every registry request",
    )
    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    try:
        results = asyncio.run(
            push_docker_tar(
                args.archive,
                args.registry,
                args.username,
                args.password,
                args.skip_tls_verify,
                repository=args.repository,
                tag=args.tag,
                timeout=args.timeout,
                concurrent_uploads=args.concurrent_uploads,
                check_registry=args.check_registry,
            )
        )
    except RegistryError as e:
        logger.error("push failed: %s", e)
        return 1

    for result in results:
        logger.info("pushed %s:%s %s", result.repository, result.tag, result.digest)
    return 0
