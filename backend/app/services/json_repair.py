import json
import logging
import re
from typing import Any, Dict, List, Optional

from app.core.exceptions import LLMResponseParseError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)\s*```")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def strip_code_fences(text: str) -> str:
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    # Reply cut off before the closing fence
    return re.sub(r"^```(?:json|JSON)?", "", text.strip()).rstrip("`").strip()


def find_balanced_block(text: str, open_char: str = "{", close_char: str = "}") -> Optional[str]:
    """Return the first ``open_char`` block and its matching close.

    Brackets inside JSON strings are ignored. When the block never closes the
    text up to the last ``close_char`` is returned instead.
    """
    start = text.find(open_char)
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        ch = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == open_char:
            depth += 1
        elif ch == close_char:
            depth -= 1
            if depth == 0:
                return text[start:index + 1]

    end = text.rfind(close_char)
    if end > start:
        return text[start:end + 1]
    return None


def remove_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def _parse_with_repair(text: str, open_char: str, close_char: str, expected_type: type) -> Any:
    if not text or not text.strip():
        raise LLMResponseParseError("LLM response was empty")

    stripped = text.strip()
    unfenced = strip_code_fences(stripped)
    candidates = [stripped, unfenced]
    block = find_balanced_block(unfenced, open_char, close_char)
    if block:
        candidates.extend([block, remove_trailing_commas(block)])

    for candidate in candidates:
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(value, expected_type):
            return value

    logger.warning(f"Could not parse LLM response as JSON: {stripped[:200]}")
    raise LLMResponseParseError(
        f"LLM response did not contain a valid JSON {expected_type.__name__}"
    )


def parse_llm_json(text: str) -> Dict[str, Any]:
    """Parse a JSON object out of an LLM reply, repairing common damage."""
    return _parse_with_repair(text, "{", "}", dict)


def parse_llm_json_array(text: str) -> List[Any]:
    """Parse a JSON array out of an LLM reply, repairing common damage."""
    return _parse_with_repair(text, "[", "]", list)
