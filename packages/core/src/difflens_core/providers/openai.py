from __future__ import annotations

import json

try:
    from openai import OpenAI as _OpenAI
except ImportError:
    _OpenAI = None  # type: ignore[assignment,misc]

from difflens_core.conversation import (
    AssistantFinal,
    AssistantToolCalls,
    Conversation,
    RawToolCall,
    SystemTurn,
    ToolResults,
    UserTurn,
)
from difflens_core.providers.base import _MAX_TOKENS, _REQUEST_TIMEOUT, BaseProvider, FinalText, ModelReply, ToolCalls


def to_openai_messages(conversation: Conversation) -> list[dict]:
    messages: list[dict] = []
    for turn in conversation.turns:
        if isinstance(turn, SystemTurn):
            messages.append({"role": "system", "content": turn.text})
        elif isinstance(turn, UserTurn):
            messages.append({"role": "user", "content": turn.text})
        elif isinstance(turn, AssistantToolCalls):
            messages.append(
                {
                    "role": "assistant",
                    "content": turn.text or None,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {
                                "name": call.name,
                                "arguments": (
                                    call.arguments if isinstance(call.arguments, str) else json.dumps(call.arguments)
                                ),
                            },
                        }
                        for call in turn.calls
                    ],
                }
            )
        elif isinstance(turn, ToolResults):
            # One "tool" message per result, echoing the call id.
            for result in turn.results:
                messages.append({"role": "tool", "tool_call_id": result.request_id, "content": result.content})
        elif isinstance(turn, AssistantFinal):
            messages.append({"role": "assistant", "content": turn.raw_text})
    return messages


def to_openai_tools(tools: list[dict]) -> list[dict]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool["description"],
                "parameters": tool["parameters"],
            },
        }
        for tool in tools
    ]


class OpenAIProvider(BaseProvider):
    MODEL = "gpt-4o"
    # Low temperature keeps the final JSON verdict well-formed.
    TEMPERATURE = 0.2

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        base_url: str | None = None,
        temperature: float | None = None,
        max_tokens: int = _MAX_TOKENS,
        timeout: float = _REQUEST_TIMEOUT,
    ):
        if _OpenAI is None:
            raise ImportError(
                "The 'openai' package is required for this provider. " "Install it with: pip install openai"
            )
        # Retries are disabled: a failed exchange ends the review.
        self.client = _OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)
        self.model = model or self.MODEL
        self.temperature = self.TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens

    def _call_api(self, conversation: Conversation, tools: list[dict]) -> ModelReply:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=to_openai_messages(conversation),
            tools=to_openai_tools(tools),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        message = response.choices[0].message
        if message.tool_calls:
            calls = tuple(
                RawToolCall(id=tc.id, name=tc.function.name, arguments=tc.function.arguments or "")
                for tc in message.tool_calls
            )
            return ToolCalls(calls=calls, text=message.content or "")
        return FinalText(text=message.content or "")
