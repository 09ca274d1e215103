"""Application configuration read from the command line and the environment."""

from __future__ import annotations

import argparse
import logging
import os
import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

__all__ = ["Config", "parse_config", "init_logging"]

DEFAULT_PORT = "8484"
DEFAULT_HOST = "0.0.0.0"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")


@dataclass
class Config:
    """Application configuration."""

    database_url: str
    port: int = int(DEFAULT_PORT)
    host: str = DEFAULT_HOST
    openapi: Path | None = None


def _port(value: str) -> int:
    try:
        port = int(value)
    except ValueError as err:
        raise argparse.ArgumentTypeError(f"invalid port `{value}`") from err
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port `{value}` is out of range")
    return port


def _url(value: str) -> str:
    if not _SCHEME.match(value):
        raise argparse.ArgumentTypeError("invalid url: relative URL without a base")
    return value


def parse_config(argv: Sequence[str] | None = None) -> Config:
    """Parse the configuration; options fall back to environment variables."""
    env = os.environ
    database_url = env.get("DATABASE_URL")
    parser = argparse.ArgumentParser(description="OGC API services")
    parser.add_argument(
        "--port",
        type=_port,
        default=env.get("APP_PORT", DEFAULT_PORT),
        help="Listening port of the server [env: APP_PORT]",
    )
    parser.add_argument(
        "--host",
        default=env.get("APP_HOST", DEFAULT_HOST),
        help="Listening host address of the server [env: APP_HOST]",
    )
    parser.add_argument(
        "--database-url",
        type=_url,
        default=database_url,
        required=database_url is None,
        help="Postgres database url [env: DATABASE_URL]",
    )
    parser.add_argument(
        "--openapi",
        type=Path,
        default=env.get("OPENAPI"),
        help="OpenAPI definition [env: OPENAPI]",
    )
    args = parser.parse_args(argv)
    return Config(
        database_url=args.database_url,
        port=args.port,
        host=args.host,
        openapi=args.openapi,
    )


def init_logging() -> None:
    """Configure the root logger from the ``LOG_LEVEL`` environment variable."""
    level = logging.getLevelName(os.environ.get("LOG_LEVEL", "ERROR").strip().upper())
    if not isinstance(level, int):
        level = logging.ERROR
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)