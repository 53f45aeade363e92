"""Calendar chat - natural-language calendar assistant on top of function calling.

A turn runs a bounded loop: the model may call read-only tools whose
results are fed back, until it answers in text or calls a terminal tool
(anything that changes the calendar, or needs the user's confirmation).
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from astralis.db.enums import LogCategory
from astralis.services import agent_log_service, ai_provider
from astralis.services.ai_provider import ChatMessage, ToolCall
from astralis.services.calendar_chat_tools import (
    TOOL_DEFINITIONS,
    TOOL_HANDLERS,
    ChatContext,
    ToolResult,
    execute_confirmed_action,
)
from astralis.utils.time_windows import get_zone, utcnow

logger = logging.getLogger(__name__)

MAX_TOOL_ROUNDS = 4
MAX_HISTORY_MESSAGES = 20

FALLBACK_REPLY = "I apologize, but I could not understand that request."
NOT_CONFIGURED_REPLY = "The calendar assistant is not configured for this workspace."


def _error_reply(message: str) -> dict:
    return ToolResult(message=f"I encountered an error: {message}. Please try again.").to_response()


def build_system_prompt(tz_name: str) -> str:
    now = utcnow().astimezone(get_zone(tz_name))
    tomorrow = now + timedelta(days=1)
    next_week = now + timedelta(days=7)
    return (
        "You are a helpful calendar assistant. You help the user view, schedule, "
        "reschedule and cancel events, find free time and set reminders.\n\n"
        f"Current date and time: {now.strftime('%A, %B %d, %Y %H:%M')} ({tz_name}).\n"
        f'"tomorrow" means {tomorrow.strftime("%Y-%m-%d")}. '
        f'"next week" starts {next_week.strftime("%Y-%m-%d")}.\n\n'
        "Use the provided functions to read or change the calendar. Pass datetimes "
        "as ISO 8601 in the user's timezone. Never claim an event was created or "
        "cancelled unless a function did it. Keep replies short."
    )


def _history_messages(history: list[dict] | None) -> list[ChatMessage]:
    messages = []
    for item in (history or [])[-MAX_HISTORY_MESSAGES:]:
        role = item.get("role")
        content = item.get("content")
        if role in ("user", "assistant") and isinstance(content, str) and content:
            messages.append(ChatMessage(role=role, content=content))
    return messages


def _dispatch(ctx: ChatContext, call: ToolCall) -> ToolResult:
    handler = TOOL_HANDLERS.get(call.name)
    if handler is None:
        return ToolResult(message=f"Unknown function: {call.name}", terminal=True)
    try:
        return handler(ctx, call.arguments)
    except ValueError as exc:
        return ToolResult(
            message=f"I encountered an error: {exc}. Please try again.", terminal=True
        )


async def process_message(
    db: Session,
    org_id: UUID,
    user_id: UUID,
    message: str,
    conversation_history: list[dict] | None = None,
    confirmed: bool = False,
    pending_action: dict | None = None,
    tz_name: str = "UTC",
) -> dict:
    """
    Handle one chat turn.

    Returns {message, data, requires_confirmation, action}. When
    `confirmed` is set with a `pending_action`, the action runs directly
    without calling the model.
    """
    ctx = ChatContext(db=db, org_id=org_id, user_id=user_id, tz_name=tz_name)

    if confirmed and pending_action:
        try:
            return execute_confirmed_action(ctx, pending_action).to_response()
        except ValueError as exc:
            return _error_reply(str(exc))

    provider = ai_provider.get_configured_provider()
    if provider is None:
        return ToolResult(message=NOT_CONFIGURED_REPLY).to_response()

    messages = [
        ChatMessage(role="system", content=build_system_prompt(tz_name)),
        *_history_messages(conversation_history),
        ChatMessage(role="user", content=message),
    ]

    last_result: ToolResult | None = None
    for _ in range(MAX_TOOL_ROUNDS):
        try:
            response = await provider.chat(
                messages, temperature=0.3, max_tokens=1000, tools=TOOL_DEFINITIONS
            )
        except (httpx.HTTPError, KeyError, IndexError) as exc:
            logger.warning("Calendar chat provider call failed: %s", exc)
            agent_log_service.error(
                db,
                LogCategory.SCHEDULING,
                "calendar_chat_failed",
                "Calendar chat model call failed",
                org_id=org_id,
                user_id=user_id,
                error=exc,
            )
            db.commit()
            return _error_reply(str(exc))

        if not response.tool_calls:
            return ToolResult(
                message=response.content.strip() or FALLBACK_REPLY,
                data=last_result.data if last_result else None,
            ).to_response()

        messages.append(
            ChatMessage(role="assistant", content=response.content or "", tool_calls=response.tool_calls)
        )
        for call in response.tool_calls:
            result = _dispatch(ctx, call)
            logger.info("Calendar chat tool %s -> %s", call.name, result.message)
            if result.terminal:
                return result.to_response()
            messages.append(
                ChatMessage(
                    role="tool",
                    content=json.dumps(
                        {"message": result.message, "data": result.data}, default=str
                    ),
                    tool_call_id=call.id,
                    name=call.name,
                )
            )
            last_result = result

    if last_result:
        return last_result.to_response()
    return ToolResult(message=FALLBACK_REPLY).to_response()
