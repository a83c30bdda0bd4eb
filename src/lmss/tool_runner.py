"""Two-round tool-use workflow: ask, run the requested tools, ask for the answer."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from lmss.cancellation import wait_unless_cancelled
from lmss.log import get_logger
from lmss.models import (
    CompletionRequest,
    ExecutedToolCall,
    Message,
    ToolCall,
    Usage,
    WorkflowResult,
)

if TYPE_CHECKING:
    from lmss.client import LmssClient
    from lmss.conversation import Conversation

logger = get_logger(__name__)

ToolCallHandler = Callable[[ToolCall], Awaitable[str]]

CANCELLED_MESSAGE = "Tool workflow cancelled"
CANCELLED_REPLY = "[Cancelled]"


async def _execute_one(handler: ToolCallHandler, tool_call: ToolCall) -> ExecutedToolCall:
    """Run one handler; a failure becomes an unsuccessful result, never an exception."""
    try:
        logger.info("tool_execute", tool=tool_call.name, tool_call_id=tool_call.id)
        result = await handler(tool_call)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error("tool_execution_error", tool=tool_call.name, error=str(e))
        return ExecutedToolCall(
            tool_call=tool_call,
            result="",
            success=False,
            error_message=f"Tool execution failed: {e}",
        )
    return ExecutedToolCall(tool_call=tool_call, result=result, success=True)


def _cancelled(executed: list[ExecutedToolCall], total_usage: Usage) -> WorkflowResult:
    logger.info("tool_workflow_cancelled", executed=len(executed))
    return WorkflowResult(
        success=False,
        executed_tool_calls=executed,
        error_message=CANCELLED_MESSAGE,
        total_usage=total_usage,
    )


async def run_tool_workflow(
    client: LmssClient,
    request: CompletionRequest,
    handler: ToolCallHandler,
    *,
    conversation: Optional[Conversation] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> WorkflowResult:
    """Execute one tool-use exchange and report it as a single result.

    The initial request goes out with its tool definitions. Requested calls
    are handled one at a time, in the order the model listed them, and every
    call gets a tool-role reply even when its handler fails. The follow-up
    request carries the full exchange with tools omitted, and its content is
    the final answer. Only transport failures abort the workflow; results of
    calls executed before the failure are kept.

    When *conversation* is given, the assistant tool-call message and the
    tool replies are appended to it as well. Setting *cancel_event* aborts an
    in-flight round, skips the remaining calls and suppresses the final round.
    """
    messages: list[Message] = list(request.messages)
    executed: list[ExecutedToolCall] = []
    total_usage = Usage()

    try:
        cancelled, initial = await wait_unless_cancelled(client.complete_chat(request), cancel_event)
        if cancelled:
            return _cancelled(executed, total_usage)
        total_usage = total_usage + initial.usage

        assistant_message = initial.first_message
        tool_calls = initial.tool_calls
        logger.info(
            "tool_workflow_initial",
            finish_reason=initial.choices[0].finish_reason if initial.choices else None,
            tool_call_count=len(tool_calls),
        )

        if not tool_calls:
            return WorkflowResult(
                success=True,
                final_response=initial.content,
                executed_tool_calls=executed,
                total_usage=total_usage,
            )

        messages.append(assistant_message)
        if conversation is not None:
            conversation.add_message(assistant_message)

        for position, tool_call in enumerate(tool_calls):
            if cancel_event is not None and cancel_event.is_set():
                # Unexecuted calls still get a reply so the log stays well-formed.
                if conversation is not None:
                    for skipped in tool_calls[position:]:
                        conversation.add_tool(CANCELLED_REPLY, skipped.id)
                return _cancelled(executed, total_usage)

            outcome = await _execute_one(handler, tool_call)
            executed.append(outcome)

            reply = Message.tool(
                outcome.result if outcome.success else outcome.error_message or "",
                tool_call.id,
            )
            messages.append(reply)
            if conversation is not None:
                conversation.add_message(reply)

        final_request = request.model_copy(update={"messages": messages, "tools": None})
        cancelled, final = await wait_unless_cancelled(client.complete_chat(final_request), cancel_event)
        if cancelled:
            return _cancelled(executed, total_usage)
        total_usage = total_usage + final.usage

        logger.info("tool_workflow_complete", executed=len(executed))
        return WorkflowResult(
            success=True,
            final_response=final.content,
            executed_tool_calls=executed,
            total_usage=total_usage,
        )

    except Exception as e:
        logger.error("tool_workflow_failed", error=str(e), executed=len(executed))
        return WorkflowResult(
            success=False,
            executed_tool_calls=executed,
            error_message=str(e),
            total_usage=total_usage,
        )
