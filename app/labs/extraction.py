from __future__ import annotations

import json
import re
from typing import Any, List, Optional

from app.gateway.errors import LabParseError
from app.labs.models import LabEntry


PARSE_ERROR_MESSAGE = "Could not parse lab values from image. Try a clearer photo or enter manually."

_ARRAY_SHORTEST_RE = re.compile(r"\[[\s\S]*?\]")
_ARRAY_LONGEST_RE = re.compile(r"\[[\s\S]*\]")


def extract_json_array(text: str) -> Optional[Any]:
    """
    Attempts to pull the first JSON array out of a model answer. Tries the
    shortest bracketed span first, then the widest (values may contain "]").
    """
    if not text:
        return None

    for pattern in (_ARRAY_SHORTEST_RE, _ARRAY_LONGEST_RE):
        m = pattern.search(text)
        if not m:
            continue
        try:
            data = json.loads(m.group(0))
        except json.JSONDecodeError:
            continue
        if isinstance(data, list):
            return data
    return None


def parse_lab_values(text: str) -> List[LabEntry]:
    data = extract_json_array(text)
    if data is None:
        raise LabParseError(PARSE_ERROR_MESSAGE)

    labs: List[LabEntry] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        name = str(item.get("name") or "").strip()
        value = str(item.get("value") or "").strip()
        if name and value:
            labs.append(LabEntry(name=name, value=value))
    return labs
