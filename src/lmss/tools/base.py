"""Base class for the built-in tools shipped with lmss."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any


class BuiltinTool(ABC):
    """A tool whose handler takes keyword arguments decoded from the model's JSON."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name sent to the model."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """JSON Schema dict describing accepted parameters."""
        ...

    @abstractmethod
    async def execute(self, **kwargs: Any) -> str:
        """Run the tool and return a text result for the model."""
        ...

    async def handle(self, arguments: str) -> str:
        """Decode the raw arguments string and run the tool."""
        if not arguments or not arguments.strip():
            kwargs: dict[str, Any] = {}
        else:
            try:
                kwargs = json.loads(arguments)
            except json.JSONDecodeError as e:
                raise ValueError(f"invalid JSON arguments for {self.name}: {e}") from e
        if not isinstance(kwargs, dict):
            raise ValueError(f"arguments for {self.name} must be a JSON object")
        return await self.execute(**kwargs)
