"""Registry mapping tool names to their definitions and handlers."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from lmss.errors import ToolExecutionError
from lmss.log import get_logger
from lmss.models import Tool, ToolCall
from lmss.tools.base import BuiltinTool

logger = get_logger(__name__)

# Receives the raw JSON arguments string exactly as the model produced it.
ToolHandler = Callable[[str], Awaitable[str]]


@dataclass(frozen=True, slots=True)
class RegisteredTool:
    definition: Tool
    handler: ToolHandler

    @property
    def name(self) -> str:
        return self.definition.name


class ToolRegistry:
    """Registry of the tools an agent can offer to the model."""

    def __init__(self) -> None:
        self._tools: dict[str, RegisteredTool] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def register(
        self,
        name: str,
        description: str,
        parameters: Optional[dict[str, Any]],
        handler: ToolHandler,
    ) -> RegisteredTool:
        tool = RegisteredTool(definition=Tool.create(name, description, parameters), handler=handler)
        self._tools[name] = tool
        logger.info("tool_registered", tool_name=name)
        return tool

    def get(self, name: str) -> RegisteredTool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools.keys())

    def definitions(self, names: Optional[list[str]] = None) -> list[Tool]:
        """Tool definitions to send to the model, optionally limited to *names*."""
        if names is None:
            return [t.definition for t in self._tools.values()]
        return [self._tools[n].definition for n in names if n in self._tools]

    async def invoke(self, name: str, arguments: str) -> str:
        """Run the handler registered under *name*.

        Raises ToolExecutionError when the tool is unknown or its handler fails.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolExecutionError(f"Tool '{name}' not found", tool_name=name, arguments=arguments)
        try:
            return await tool.handler(arguments)
        except ToolExecutionError:
            raise
        except Exception as e:
            raise ToolExecutionError(str(e), tool_name=name, arguments=arguments) from e

    async def handle_tool_call(self, tool_call: ToolCall) -> str:
        """Workflow handler: unknown tools get a textual reply instead of an error."""
        logger.debug("tool_call_requested", tool=tool_call.name, arguments=tool_call.arguments)
        if tool_call.name not in self._tools:
            logger.warning("tool_not_found", tool=tool_call.name)
            return f"Tool '{tool_call.name}' not found"
        return await self.invoke(tool_call.name, tool_call.arguments)

    def register_builtin(self, tool: BuiltinTool) -> RegisteredTool:
        return self.register(tool.name, tool.description, tool.parameters, tool.handle)

    def discover_and_register(
        self, working_dir: str | Path = ".", names: Optional[list[str]] = None
    ) -> None:
        """Register the built-in tools, optionally only those listed in *names*."""
        from lmss.tools.clock import CurrentTimeTool
        from lmss.tools.filesystem import ListDirectoryTool, ReadFileTool, WriteFileTool

        builtins: list[BuiltinTool] = [
            ListDirectoryTool(working_dir),
            ReadFileTool(working_dir),
            WriteFileTool(working_dir),
            CurrentTimeTool(),
        ]
        for tool in builtins:
            if names is None or tool.name in names:
                self.register_builtin(tool)
