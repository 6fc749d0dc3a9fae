from __future__ import annotations

import json
import re
from typing import Any, Optional

CODE_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


class MalformedJSON(ValueError):
    pass


def strip_code_fence(text: str) -> str:
    m = CODE_FENCE_RE.search(text or "")
    return m.group(1) if m else (text or "")


def _normalize_smart_quotes(s: str) -> str:
    return s.replace("“", '"').replace("”", '"')


def _first_balanced(text: str, opener: str, closer: str) -> Optional[str]:
    """First top-level ``opener``..``closer`` span, ignoring brackets inside strings."""
    depth = 0
    start = -1
    in_str = False
    esc = False
    for i, ch in enumerate(text):
        if esc:
            esc = False
            continue
        if ch == "\\" and in_str:
            esc = True
            continue
        if ch == '"':
            in_str = not in_str
            continue
        if in_str:
            continue
        if ch == opener:
            if depth == 0:
                start = i
            depth += 1
        elif ch == closer and depth > 0:
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def _remove_trailing_commas(s: str) -> str:
    return re.sub(r",\s*([}\]])", r"\1", s)


def extract_json(text: str) -> Any:
    """Parse the JSON value a model returned, tolerating fences and prose around it."""
    if not text or not text.strip():
        raise MalformedJSON("empty model output")
    body = _normalize_smart_quotes(strip_code_fence(text)).strip()
    candidates = [body]
    # whichever bracket opens first decides array vs object
    first_arr = body.find("[")
    first_obj = body.find("{")
    order = [("[", "]"), ("{", "}")]
    if first_obj != -1 and (first_arr == -1 or first_obj < first_arr):
        order.reverse()
    for opener, closer in order:
        span = _first_balanced(body, opener, closer)
        if span:
            candidates.append(span)
    for candidate in candidates:
        for attempt in (candidate, _remove_trailing_commas(candidate)):
            try:
                return json.loads(attempt)
            except ValueError:
                continue
    raise MalformedJSON(f"model output is not valid JSON: {body[:200]!r}")


def extract_json_array(text: str, *, wrapper_keys: tuple = ("questions", "items", "results", "explanations")) -> list:
    data = extract_json(text)
    if isinstance(data, dict):
        for key in wrapper_keys:
            if isinstance(data.get(key), list):
                return data[key]
    if not isinstance(data, list):
        raise MalformedJSON(f"expected a JSON array, got {type(data).__name__}")
    return data
