"""Extract a single JSON object from agent output (best-effort).

Agents wrap their final report in prose, a ```json fence, or both.  The last
fenced block wins because agents tend to show example shapes before the real
report.
"""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"```(?:json)?[ \t]*\r?\n(.*?)\r?\n```", re.DOTALL)


def extract_json(text: str) -> tuple[bool, Any, str]:
    """
    Try to parse a top-level JSON object from text.
    Returns (ok, parsed_value, error_message).
    """
    try:
        return True, json.loads(text), ""
    except ValueError:
        pass
    for block in reversed(_FENCE_RE.findall(text)):
        try:
            value = json.loads(block)
        except ValueError:
            continue
        if isinstance(value, dict):
            return True, value, ""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return False, None, "No JSON object found"
    try:
        return True, json.loads(text[start : end + 1]), ""
    except ValueError as e:
        return False, None, f"Failed to parse JSON: {e}"
