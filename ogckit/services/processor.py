"""Processes that the API can describe and execute."""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, ClassVar

from starlette.responses import PlainTextResponse, Response

__all__ = ["Processor", "Greeter"]

Json = dict[str, Any]

GREETER_INPUTS: Json = {
    "title": "GreeterInputs",
    "description": "Inputs for the `greet` process",
    "type": "object",
    "required": ["name"],
    "properties": {"name": {"description": "Name to be greeted", "type": "string"}},
}

GREETER_OUTPUTS: Json = {
    "title": "GreeterOutputs",
    "description": "Outputs for the `greet` process",
    "type": "string",
}


class Processor(ABC):
    """A process with a unique ``id``, a description and an execution."""

    id: ClassVar[str]

    @abstractmethod
    def process(self) -> Json:
        """Return the process description."""

    @abstractmethod
    async def execute(self, execute: Mapping[str, Any], state: Any, url: str) -> Response:
        """Execute the process and return a response."""


class Greeter(Processor):
    """Example process answering ``Hello, <name>!``."""

    id = "greet"

    def process(self) -> Json:
        return {
            "id": self.id,
            "version": "0.1.0",
            "links": [],
            "inputs": copy.deepcopy(GREETER_INPUTS),
            "outputs": copy.deepcopy(GREETER_OUTPUTS),
        }

    async def execute(self, execute: Mapping[str, Any], state: Any, url: str) -> Response:
        inputs = execute.get("inputs") if isinstance(execute, Mapping) else None
        name = inputs.get("name") if isinstance(inputs, Mapping) else None
        if not isinstance(name, str):
            raise ValueError("the `greet` process needs a string input `name`")
        return PlainTextResponse(f"Hello, {name}!\n")