"""Clock tool."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from lmss.tools.base import BuiltinTool


class CurrentTimeTool(BuiltinTool):
    @property
    def name(self) -> str:
        return "get_current_time"

    @property
    def description(self) -> str:
        return "Get the current local date and time."

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs: Any) -> str:
        return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")
