"""The OpenAPI definition served by the API."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path
from typing import Any

import yaml

__all__ = ["OpenAPI"]


def _empty_document() -> dict[str, Any]:
    return {"openapi": "3.0.3", "info": {"title": "", "version": ""}, "paths": {}}


def _validate(document: Any) -> dict[str, Any]:
    if not isinstance(document, Mapping):
        raise ValueError("OpenAPI definition must be a mapping")
    if not isinstance(document.get("openapi"), str):
        raise ValueError("OpenAPI definition needs an `openapi` version string")
    info = document.get("info")
    if not isinstance(info, Mapping) or "title" not in info or "version" not in info:
        raise ValueError("OpenAPI definition needs `info` with `title` and `version`")
    return dict(document)


@dataclass
class OpenAPI:
    """A parsed OpenAPI definition."""

    document: dict[str, Any] = field(default_factory=_empty_document)

    @classmethod
    def from_str(cls, text: str) -> OpenAPI:
        """Parse a YAML or JSON definition."""
        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as err:
            raise ValueError(f"Invalid OpenAPI definition: {err}") from err
        return cls(_validate(document))

    @classmethod
    def from_bytes(cls, data: bytes) -> OpenAPI:
        """Parse a UTF-8 encoded definition."""
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as err:
            raise ValueError(f"Invalid OpenAPI definition: {err}") from err
        return cls.from_str(text)

    @classmethod
    def from_path(cls, path: str | PathLike[str]) -> OpenAPI:
        """Read and parse a definition file."""
        return cls.from_str(Path(path).read_text(encoding="utf-8"))