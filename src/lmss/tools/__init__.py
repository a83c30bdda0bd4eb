"""Tool registry and built-in tools."""

from lmss.tools.base import BuiltinTool
from lmss.tools.registry import RegisteredTool, ToolHandler, ToolRegistry

__all__ = ["BuiltinTool", "RegisteredTool", "ToolHandler", "ToolRegistry"]
