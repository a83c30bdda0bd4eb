"""Best-effort recovery of tool calls that a model wrote as plain text.

Small models often ignore the structured tool-call channel and describe the
call in prose or as a bare JSON object. Nothing here is guaranteed to reflect
what the model meant.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from lmss.errors import ToolExecutionError
from lmss.log import get_logger
from lmss.tools.registry import ToolRegistry

logger = get_logger(__name__)

_INVOCATION_START = re.compile(r'\{\s*"name"\s*:\s*"([^"]+)"\s*,\s*"arguments"\s*:\s*(?=\{)')


@dataclass(frozen=True, slots=True)
class TextToolCall:
    name: str
    arguments: str


@dataclass(frozen=True, slots=True)
class IntentRule:
    """Infer a tool call when every keyword group has a match in the text.

    Each group is satisfied by any one of its keywords (case-insensitive).
    """

    tool_name: str
    keyword_groups: tuple[tuple[str, ...], ...]
    arguments: str = "{}"

    def matches(self, lowered_text: str) -> bool:
        return all(any(k in lowered_text for k in group) for group in self.keyword_groups)


DEFAULT_INTENT_RULES: tuple[IntentRule, ...] = (
    IntentRule("list_directory", (("list", "files", "directory"),), '{"path":"."}'),
    IntentRule("get_current_time", (("time", "date"),)),
)

# Writes a fixed placeholder file; only enable it deliberately.
PLACEHOLDER_WRITE_RULE = IntentRule(
    "write_file",
    (("write", "add"), ("file",), ("somefakefile",)),
    '{"path":"SomeFakeFile.txt","content":"Hello World! This content was inferred by the agent."}',
)


def _balanced_object(text: str, start: int) -> str | None:
    """Return the JSON object starting at *start*, honouring nesting and strings."""
    if start >= len(text) or text[start] != "{":
        return None
    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if escape:
            escape = False
            continue
        if ch == "\\":
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def find_tool_invocations(text: str) -> list[TextToolCall]:
    """Find ``{"name": "...", "arguments": {...}}`` shapes in *text*, in order.

    The arguments are returned as the raw text of the inner object.
    """
    calls: list[TextToolCall] = []
    for match in _INVOCATION_START.finditer(text):
        arguments = _balanced_object(text, match.end())
        if arguments is not None:
            calls.append(TextToolCall(name=match.group(1), arguments=arguments))
    return calls


def infer_tool_calls(text: str, rules: tuple[IntentRule, ...] = DEFAULT_INTENT_RULES) -> list[TextToolCall]:
    """Guess tool calls from keywords; every matching rule fires once."""
    lowered = text.lower()
    return [TextToolCall(r.tool_name, r.arguments) for r in rules if r.matches(lowered)]


async def execute_text_tool_calls(
    text: str,
    registry: ToolRegistry,
    rules: tuple[IntentRule, ...] = DEFAULT_INTENT_RULES,
) -> list[tuple[str, str]]:
    """Run the tool calls recovered from *text* and return ``(name, result)`` pairs.

    Explicit JSON invocations win; keyword inference is only tried when the
    text contains none. Calls naming unregistered tools are ignored, and a
    failing handler is reported in its result text.
    """
    calls = find_tool_invocations(text)
    source = "json"
    if not calls:
        calls = infer_tool_calls(text, rules)
        source = "intent"

    executions: list[tuple[str, str]] = []
    for call in calls:
        if call.name not in registry:
            continue
        logger.info("fallback_tool_execute", tool=call.name, source=source, arguments=call.arguments)
        try:
            result = await registry.invoke(call.name, call.arguments)
        except ToolExecutionError as e:
            logger.error("fallback_tool_error", tool=call.name, error=str(e))
            result = f"Tool execution failed: {e}"
        executions.append((call.name, result))
    return executions
