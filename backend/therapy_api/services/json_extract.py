"""Best-effort JSON extraction from free-text model output."""
from __future__ import annotations
import json
import re
from dataclasses import dataclass
from typing import Any, Union

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


@dataclass(frozen=True)
class Parsed:
    value: Any


@dataclass(frozen=True)
class Failed:
    reason: str


ParseResult = Union[Parsed, Failed]


def parse_model_json(text: Any) -> ParseResult:
    """
    Strip markdown code fences and parse what is left.

    Never raises: empty or non-string input and undecodable text come back
    as `Failed` so the caller picks its fallback explicitly.
    """
    if not isinstance(text, str) or not text.strip():
        return Failed("empty model output")

    clean = _FENCE.sub("", text).strip()
    try:
        return Parsed(json.loads(clean))
    except json.JSONDecodeError:
        pass

    # models sometimes wrap the object in a sentence
    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = clean.find(opener), clean.rfind(closer)
        if start != -1 and end > start:
            try:
                return Parsed(json.loads(clean[start:end + 1]))
            except json.JSONDecodeError:
                continue
    return Failed(f"not valid JSON: {clean[:80]!r}")
