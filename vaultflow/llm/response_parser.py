"""Response parsing utilities for LLM output.

Extracts fenced blocks and JSON objects from raw LLM responses.
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional


def extract_code_blocks(text: str, language: Optional[str] = None) -> list[str]:
    """Extract fenced code blocks from LLM output.

    Args:
        text: Raw LLM response.
        language: If specified, only return blocks with this language tag.

    Returns:
        List of code block contents (without fences).
    """
    if language:
        pattern = rf"```{re.escape(language)}\s*\n(.*?)```"
    else:
        pattern = r"```(?:\w+)?\s*\n(.*?)```"

    matches = re.findall(pattern, text, re.DOTALL)
    return [m.strip() for m in matches]


def extract_json_block(text: str) -> Optional[dict[str, Any]]:
    """Extract and parse the first JSON object from LLM output."""
    for block in extract_code_blocks(text, "json") or extract_code_blocks(text):
        try:
            parsed = json.loads(block)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    # Try parsing the whole response as JSON
    try:
        parsed = json.loads(text.strip())
    except json.JSONDecodeError:
        pass
    else:
        if isinstance(parsed, dict):
            return parsed

    # Last resort: outermost braces
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        try:
            parsed = json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            return None
        if isinstance(parsed, dict):
            return parsed
    return None
