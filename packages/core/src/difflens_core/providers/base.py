"""Base provider implementing the Template Method pattern.

All providers share the same exchange contract:
    send_turn(conversation, tools) → _call_api()   ← only this differs per provider
                                   → FinalText | ToolCalls

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: convert the conversation to the SDK's message format, make one
    raw API call, and convert the response back into a ModelReply

Failure handling lives here so it is identical for every provider: any
exception from the SDK surfaces as RemoteUnavailable. There is no retry; the
review loop treats a failed exchange as terminal.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Union

from difflens_core.conversation import Conversation, RawToolCall
from difflens_core.errors import RemoteUnavailable

logger = logging.getLogger(__name__)

# Shared defaults, overridden from config in each provider's __init__.
_MAX_TOKENS = 4096
_REQUEST_TIMEOUT = 120


@dataclass(frozen=True)
class FinalText:
    text: str


@dataclass(frozen=True)
class ToolCalls:
    calls: tuple[RawToolCall, ...]
    text: str = ""


ModelReply = Union[FinalText, ToolCalls]


class BaseProvider(ABC):
    MODEL: str = ""
    MAX_TOKENS: int = _MAX_TOKENS
    TEMPERATURE: float | None = None

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def send_turn(self, conversation: Conversation, tools: list[dict]) -> ModelReply:
        """Send the whole conversation plus tool schemas; return the model's next move."""
        start = time.monotonic()
        try:
            reply = self._call_api(conversation, tools)
        except Exception as e:
            logger.error("%s API call failed: %s", self.__class__.__name__, e)
            raise RemoteUnavailable(f"{self.__class__.__name__}: {e}") from e
        logger.debug(
            "%s replied with %s in %.1fs",
            self.__class__.__name__,
            type(reply).__name__,
            time.monotonic() - start,
        )
        return reply

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                                #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, conversation: Conversation, tools: list[dict]) -> ModelReply:
        """Make a single API call and return the decoded reply.

        This is the only method subclasses must implement. It should raise
        on failure; send_turn maps every exception to RemoteUnavailable.
        """
