from __future__ import annotations

import json
import re
from dataclasses import dataclass

from difflens_core.errors import MalformedVerdict

_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*")
_FENCE_CLOSE_RE = re.compile(r"\s*```$")


@dataclass(frozen=True)
class Verdict:
    """The model's final answer.

    By convention ``summary`` is "n/a" when ``substantive_comments`` is false;
    that is asked for in the prompt but not enforced here.
    """

    reasoning: str
    substantive_comments: bool
    summary: str

    def to_dict(self) -> dict:
        return {
            "reasoning": self.reasoning,
            "substantiveComments": self.substantive_comments,
            "summary": self.summary,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2)


_REQUIRED_FIELDS = (
    ("reasoning", str),
    ("substantiveComments", bool),
    ("summary", str),
)


def parse_verdict(raw_text: str) -> Verdict:
    """Decode the model's final message into a Verdict.

    Only the outer ```json ... ``` fence is stripped; the remainder must be a
    JSON object with all three required fields of the right type. Extra keys
    are ignored. Raises MalformedVerdict carrying the raw text otherwise.
    """
    cleaned = _FENCE_OPEN_RE.sub("", raw_text.strip())
    cleaned = _FENCE_CLOSE_RE.sub("", cleaned.strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise MalformedVerdict(f"Final answer is not valid JSON: {e}", raw_text)

    if not isinstance(data, dict):
        raise MalformedVerdict("Final answer must be a JSON object", raw_text)

    for key, expected in _REQUIRED_FIELDS:
        if key not in data:
            raise MalformedVerdict(f"Final answer is missing {key!r}", raw_text)
        if not isinstance(data[key], expected):
            raise MalformedVerdict(
                f"{key!r} must be a {expected.__name__}, got {type(data[key]).__name__}",
                raw_text,
            )

    return Verdict(
        reasoning=data["reasoning"],
        substantive_comments=data["substantiveComments"],
        summary=data["summary"],
    )
