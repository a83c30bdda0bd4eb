"""File system tools rooted at the agent's working directory."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from lmss.tools.base import BuiltinTool

MAX_READ_BYTES = 500_000


class _RootedTool(BuiltinTool):
    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    def _resolve(self, path_str: str) -> Path:
        """Resolve *path_str* against the root, refusing paths that escape it."""
        path = (self._root / path_str).resolve()
        if path != self._root and self._root not in path.parents:
            raise PermissionError(f"'{path_str}' is outside the working directory")
        return path


class ListDirectoryTool(_RootedTool):
    @property
    def name(self) -> str:
        return "list_directory"

    @property
    def description(self) -> str:
        return "List the files and directories at a path relative to the working directory."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Directory path, relative to the working directory (use '.' for it)",
                },
            },
            "required": ["path"],
        }

    async def execute(self, **kwargs: Any) -> str:
        path = self._resolve(kwargs.get("path", "."))
        if not path.is_dir():
            return f"Error: '{path}' is not a directory"

        entries = []
        for entry in sorted(path.iterdir()):
            entry_type = "DIR" if entry.is_dir() else "FILE"
            size = ""
            if entry.is_file():
                size = f" ({_format_size(entry.stat().st_size)})"
            entries.append(f"  [{entry_type}] {entry.name}{size}")

        if not entries:
            return f"Directory '{path}' is empty."

        return f"Contents of {path}:\n" + "\n".join(entries)


class ReadFileTool(_RootedTool):
    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return "Read a text file relative to the working directory."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File path"},
            },
            "required": ["path"],
        }

    async def execute(self, **kwargs: Any) -> str:
        path = self._resolve(kwargs.get("path", ""))
        if not path.is_file():
            return f"Error: '{path}' is not a file"

        size = path.stat().st_size
        if size > MAX_READ_BYTES:
            return f"Error: file is too large ({_format_size(size)}). Max 500KB."

        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            return f"Error: '{path}' is a binary file and cannot be read as text."


class WriteFileTool(_RootedTool):
    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return "Write text to a file relative to the working directory, replacing or appending."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File path"},
                "content": {"type": "string", "description": "Text to write"},
                "append": {
                    "type": "boolean",
                    "description": "Append instead of overwriting (default: false)",
                },
            },
            "required": ["path", "content"],
        }

    async def execute(self, **kwargs: Any) -> str:
        path_str = kwargs.get("path", "")
        if not path_str:
            return "Error: path is required"
        path = self._resolve(path_str)
        content = kwargs.get("content", "")

        path.parent.mkdir(parents=True, exist_ok=True)
        mode = "a" if kwargs.get("append") else "w"
        with path.open(mode, encoding="utf-8") as f:
            f.write(content)

        action = "Appended" if mode == "a" else "Wrote"
        return f"{action} {len(content)} characters to {path.relative_to(self._root)}"


def _format_size(size: int) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024:
            return f"{size:.1f}{unit}"
        size /= 1024  # type: ignore[assignment]
    return f"{size:.1f}TB"
