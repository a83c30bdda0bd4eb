"""Conversational agent with tool handling tuned for small local models."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, AsyncIterator, Optional

from lmss.client import LmssClient
from lmss.conversation import Conversation
from lmss.fallback import DEFAULT_INTENT_RULES, IntentRule, execute_text_tool_calls
from lmss.log import get_logger
from lmss.models import Message
from lmss.tools.registry import ToolHandler, ToolRegistry

logger = get_logger(__name__)

DEFAULT_AGENT_PROMPT = "You are a helpful AI assistant with access to file system tools."
SUMMARY_PREVIEW_CHARS = 100

# (glob pattern, description, priority); priority >= 8 is a definite project marker.
_PROJECT_INDICATORS: tuple[tuple[str, str, int], ...] = (
    ("pyproject.toml", "Python Project", 9),
    ("setup.py", "Python Package", 7),
    ("requirements.txt", "Python Environment", 6),
    ("package.json", "Node.js Project", 9),
    ("Cargo.toml", "Rust Project", 9),
    ("go.mod", "Go Project", 9),
    ("pom.xml", "Java Maven Project", 9),
    ("build.gradle", "Java Gradle Project", 9),
    ("*.sln", "C# Solution", 10),
    ("*.csproj", "C# Project", 9),
    ("composer.json", "PHP Project", 8),
    ("docker-compose.yml", "Docker Compose Project", 6),
    ("Dockerfile", "Docker Project", 5),
    ("Makefile", "Make-based Project", 5),
    ("*.py", "Python Scripts", 4),
    ("*.ts", "TypeScript Files", 4),
    ("*.rs", "Rust Files", 4),
    ("*.java", "Java Files", 4),
    ("*.js", "JavaScript Files", 3),
)
_DOC_PATTERNS = ("*.md", "*.txt", "*.doc", "*.docx", "*.pdf")


def detect_project_context(working_dir: Path) -> str:
    """Describe what kind of directory *working_dir* looks like."""
    try:
        found = [
            (match.name, kind, priority)
            for pattern, kind, priority in _PROJECT_INDICATORS
            for match in working_dir.glob(pattern)
            if match.is_file()
        ]

        if not found:
            entries = list(working_dir.iterdir())
            if not entries:
                return "Context: Empty directory, ready for new project creation or general tasks."
            docs = {p.name for pattern in _DOC_PATTERNS for p in working_dir.glob(pattern)}
            files = [e for e in entries if e.is_file()]
            if docs and len(files) <= 10:
                return (
                    f"Context: Documentation folder with {len(docs)} document(s). "
                    "Good for file management, writing and organization tasks."
                )
            return "Context: General-purpose directory with no specific project structure."

        _, primary_kind, primary_priority = max(found, key=lambda item: item[2])
        if primary_priority >= 8:
            key_files = sorted({name for name, _, priority in found if priority >= 6})
            return (
                f"Project detected: {primary_kind}\n"
                f"Key files: {', '.join(key_files)}\n"
                "I can help with code analysis, debugging, file operations and project-specific tasks."
            )
        if primary_priority >= 4:
            return f"Possible {primary_kind.lower()} detected ({len(found)} related files)."
        return "Context: General directory with some code files."
    except OSError:
        return "Context: Unable to analyze directory structure."


def build_system_prompt(user_prompt: Optional[str], working_dir: Path, project_context: str) -> str:
    """System prompt with explicit tool rules; small models follow these better than implicit hints."""
    base = user_prompt or DEFAULT_AGENT_PROMPT
    return f"""{base}

WORKING DIRECTORY: {working_dir}
{project_context}

=== TOOL USAGE RULES ===
1. Use paths relative to the working directory, with forward slashes.
2. Use exact file names; do not invent subdirectories unless asked.
3. Call list_directory with {{"path": "."}} to see which files exist before other file operations.
4. Only write files that exist or that the user explicitly wants created. Read a file before appending to it.
5. Always pass valid JSON arguments with every string value quoted.

=== RESPONSE FORMAT ===
Understand the request, gather information with tools, perform the action, then
confirm what you actually did. Verify with tools before making claims about files."""


class Agent:
    """Keeps a conversation and a tool registry, and answers one message at a time.

    With tools registered, :meth:`chat` first runs the structured tool
    workflow. If that fails it reports successful tool runs directly, and as
    a last resort asks again without tools and scrapes tool calls from the
    plain-text answer.
    """

    def __init__(
        self,
        client: LmssClient,
        system_prompt: Optional[str] = None,
        *,
        working_dir: str | Path | None = None,
        registry: Optional[ToolRegistry] = None,
        intent_rules: tuple[IntentRule, ...] = DEFAULT_INTENT_RULES,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> None:
        self._client = client
        self._working_dir = Path(working_dir or Path.cwd()).resolve()
        self._registry = registry if registry is not None else ToolRegistry()
        self._intent_rules = intent_rules
        self._temperature = temperature
        self._max_tokens = max_tokens

        prompt = build_system_prompt(system_prompt, self._working_dir, detect_project_context(self._working_dir))
        self._conversation = Conversation(prompt)

    @property
    def messages(self) -> tuple[Message, ...]:
        return self._conversation.messages

    @property
    def conversation(self) -> Conversation:
        return self._conversation

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def working_dir(self) -> Path:
        return self._working_dir

    @property
    def current_model(self) -> str:
        return self._client.current_model

    @property
    def is_connected(self) -> bool:
        return self._client.is_connected

    def register_tool(
        self,
        name: str,
        description: str,
        parameters: Optional[dict[str, Any]],
        handler: ToolHandler,
    ) -> Agent:
        self._registry.register(name, description, parameters, handler)
        return self

    def clear_conversation(self) -> None:
        self._conversation.clear()

    async def chat(self, message: str, cancel_event: Optional[asyncio.Event] = None) -> str:
        """Send *message* and return the assistant's answer."""
        self._conversation.add_user(message)
        model = await self._client.resolve_model()

        if len(self._registry) == 0:
            request = self._conversation.to_request(model, self._temperature, self._max_tokens)
            response = await self._client.complete_chat(request)
            content = response.content
            self._conversation.add_assistant(content)
            return content

        return await self._chat_with_tools(model, cancel_event)

    async def _chat_with_tools(self, model: str, cancel_event: Optional[asyncio.Event]) -> str:
        request = self._conversation.to_request(model, self._temperature, self._max_tokens)
        request = request.model_copy(update={"tools": self._registry.definitions()})

        logger.info("agent_tool_workflow", tool_count=len(self._registry))
        result = await self._client.execute_tool_workflow(
            request,
            self._registry.handle_tool_call,
            conversation=self._conversation,
            cancel_event=cancel_event,
        )

        if result.success:
            self._conversation.add_assistant(result.final_response)
            return result.final_response

        if cancel_event is not None and cancel_event.is_set():
            return result.error_message or "[Cancelled]"

        executed = result.executed_tool_calls
        if executed and all(call.success for call in executed):
            # Tools ran but the summary round failed; report the tool output directly.
            logger.warning("agent_final_round_failed", error=result.error_message)
            lines = [f"- {call.tool_call.name}: {call.result[:SUMMARY_PREVIEW_CHARS]}" for call in executed]
            answer = f"I successfully executed {len(executed)} tool(s):\n" + "\n".join(lines)
            self._conversation.add_assistant(answer)
            return answer

        logger.warning("agent_tool_workflow_failed", error=result.error_message)
        raw_request = self._conversation.to_request(model, self._temperature, self._max_tokens)
        raw_content = (await self._client.complete_chat(raw_request)).content

        executions = await execute_text_tool_calls(raw_content, self._registry, self._intent_rules)
        if executions:
            logger.info("agent_text_tools_executed", count=len(executions))
            answer = "I executed the following tools:\n" + "\n".join(
                f"- {name}: {output}" for name, output in executions
            )
        else:
            answer = raw_content

        self._conversation.add_assistant(answer)
        return answer

    async def chat_stream(
        self, message: str, cancel_event: Optional[asyncio.Event] = None
    ) -> AsyncIterator[str]:
        """Stream the answer to *message*.

        Tool handling needs complete responses, so with tools registered the
        whole answer arrives as a single element.
        """
        if len(self._registry) > 0:
            yield await self.chat(message, cancel_event)
            return

        self._conversation.add_user(message)
        model = await self._client.resolve_model()
        request = self._conversation.to_request(model, self._temperature, self._max_tokens, stream=True)

        parts: list[str] = []
        async for chunk in self._client.stream_chat(request, cancel_event=cancel_event):
            if chunk.content:
                parts.append(chunk.content)
                yield chunk.content

        self._conversation.add_assistant("".join(parts))
