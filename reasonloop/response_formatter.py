"""Post-processing of the final assistant message."""

import json
import re
from dataclasses import dataclass
from typing import Any

from reasonloop.exceptions import FormatError, TruncationError
from reasonloop.llm.base import LLMResponse, content_to_text
from reasonloop.logging import get_logger

log = get_logger(__name__)

_FENCE_RE = re.compile(r"^\s*```[A-Za-z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)
_THINK_TAG_RE = re.compile(r"<think(?:ing)?>(.*?)</think(?:ing)?>", re.DOTALL | re.IGNORECASE)


@dataclass
class FormattedResponse:
    """Formatter outcome. ``parsed`` holds the decoded value in JSON mode."""

    response: str
    success: bool = True
    error: str = ""
    parsed: Any = None


def strip_code_fences(text: str) -> str:
    """Remove one surrounding ```lang ... ``` fence, if present."""
    cleaned = (text or "").strip()
    match = _FENCE_RE.match(cleaned)
    if match:
        return match.group(1).strip()
    return cleaned


def parse_json_output(text: str) -> Any:
    """Decode fenced or bare JSON text.

    Raises:
        FormatError if the text is not valid JSON
    """
    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise FormatError(f"Response is not valid JSON: {e.msg} (line {e.lineno}, column {e.colno})") from e


def format_final_response(content: Any, model: str = "", json_mode: bool = False) -> FormattedResponse:
    """Prepare the final assistant text for the run result. Never raises."""
    text = content_to_text(content)
    if not json_mode:
        return FormattedResponse(response=text)

    try:
        parsed = parse_json_output(text)
    except FormatError as e:
        log.warning("JSON mode output could not be parsed", model=model, error=str(e))
        return FormattedResponse(response=text, success=False, error=str(e))

    return FormattedResponse(
        response=json.dumps(parsed, ensure_ascii=False, separators=(",", ":")),
        parsed=parsed,
    )


def check_truncation(response: LLMResponse, max_tokens: int | None) -> None:
    """Raise TruncationError when the provider cut output at the token cap."""
    if response.truncated:
        raise TruncationError(max_tokens)


def extract_thinking(response: LLMResponse) -> str:
    """Reasoning text reported by the provider, or inline <think> blocks."""
    if response.reasoning:
        return str(response.reasoning).strip()
    blocks = [block.strip() for block in _THINK_TAG_RE.findall(response.content or "")]
    return "\n\n".join(block for block in blocks if block)
