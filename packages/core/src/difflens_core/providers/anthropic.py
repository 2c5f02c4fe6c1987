from __future__ import annotations

import json

from difflens_core.conversation import (
    AssistantFinal,
    AssistantToolCalls,
    Conversation,
    RawToolCall,
    ToolResults,
    UserTurn,
)
from difflens_core.providers.base import _MAX_TOKENS, _REQUEST_TIMEOUT, BaseProvider, FinalText, ModelReply, ToolCalls


def _tool_input(arguments) -> dict:
    if isinstance(arguments, dict):
        return arguments
    try:
        decoded = json.loads(arguments) if arguments else {}
    except json.JSONDecodeError:
        return {"raw_arguments": arguments}
    return decoded if isinstance(decoded, dict) else {"raw_arguments": arguments}


def to_anthropic_messages(conversation: Conversation) -> list[dict]:
    """Convert turns to Messages API format. System turns go in the separate ``system`` parameter."""
    messages: list[dict] = []
    for turn in conversation.turns:
        if isinstance(turn, UserTurn):
            messages.append({"role": "user", "content": turn.text})
        elif isinstance(turn, AssistantToolCalls):
            content: list[dict] = []
            if turn.text:
                content.append({"type": "text", "text": turn.text})
            content.extend(
                {"type": "tool_use", "id": call.id, "name": call.name, "input": _tool_input(call.arguments)}
                for call in turn.calls
            )
            messages.append({"role": "assistant", "content": content})
        elif isinstance(turn, ToolResults):
            # All results of one batch travel in a single user message.
            messages.append(
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": result.request_id,
                            "content": result.content,
                            "is_error": not result.ok,
                        }
                        for result in turn.results
                    ],
                }
            )
        elif isinstance(turn, AssistantFinal):
            messages.append({"role": "assistant", "content": turn.raw_text})
    return messages


def to_anthropic_tools(tools: list[dict]) -> list[dict]:
    return [
        {"name": tool["name"], "description": tool["description"], "input_schema": tool["parameters"]}
        for tool in tools
    ]


class AnthropicProvider(BaseProvider):
    MODEL = "claude-sonnet-4-20250514"
    TEMPERATURE = 0.3

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int = _MAX_TOKENS,
        timeout: float = _REQUEST_TIMEOUT,
    ):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. " "Install it with: pip install anthropic"
            )
        # Retries are disabled: a failed exchange ends the review.
        self.client = Anthropic(api_key=api_key, timeout=timeout, max_retries=0)
        self.model = model or self.MODEL
        self.temperature = self.TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens

    def _call_api(self, conversation: Conversation, tools: list[dict]) -> ModelReply:
        response = self.client.messages.create(
            model=self.model,
            system=conversation.system_text,
            messages=to_anthropic_messages(conversation),
            tools=to_anthropic_tools(tools),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        calls = []
        text_parts = []
        for block in response.content:
            if block.type == "tool_use":
                calls.append(RawToolCall(id=block.id, name=block.name, arguments=block.input))
            elif block.type == "text":
                text_parts.append(block.text)
        text = "".join(text_parts).strip()
        if calls:
            return ToolCalls(calls=tuple(calls), text=text)
        return FinalText(text=text)
