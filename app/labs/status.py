from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Literal, Optional, Tuple

from app.labs.models import LabEntry
from app.labs.reference_ranges import get_range

StatusLevel = Literal["ok", "watch", "discuss"]

_NUMBER_RE = re.compile(r"([\d.]+)")
_RANGE_RE = re.compile(r"([\d.]+)\s*[–-]\s*([\d.]+)")
_LOWER_BOUND_RE = re.compile(r">\s*([\d.]+)")


@dataclass(frozen=True)
class LabStatus:
    label: str
    level: StatusLevel


SEE_ANALYSIS = LabStatus("See analysis", "watch")
CHECK_VALUE = LabStatus("Check value", "watch")
DISCUSS = LabStatus("Discuss with team", "discuss")
WITHIN_TARGET = LabStatus("Within target", "ok")
BELOW_TARGET = LabStatus("Below target", "watch")
ABOVE_TARGET = LabStatus("Above target", "watch")


def parse_numeric(value: str) -> Optional[float]:
    """First number in a free-text value such as "1.6 mg/dL (H)"."""
    m = _NUMBER_RE.search(value or "")
    if not m:
        return None
    try:
        return float(m.group(1))
    except ValueError:
        return None


def lab_status(name: str, value: str) -> LabStatus:
    """
    Badge for one lab against its transplant target.

    Concern thresholds win over the target range; labs without a known range
    or without a readable number land in "watch".
    """
    rng = get_range(name)
    if rng is None:
        return SEE_ANALYSIS

    num = parse_numeric(value)
    if num is None:
        return CHECK_VALUE

    if rng.concern_high is not None and num >= rng.concern_high:
        return DISCUSS
    if rng.concern_low is not None and num <= rng.concern_low:
        return DISCUSS

    m = _RANGE_RE.search(rng.transplant)
    if m:
        low, high = float(m.group(1)), float(m.group(2))
        if low <= num <= high:
            return WITHIN_TARGET
        return BELOW_TARGET if num < low else ABOVE_TARGET

    m = _LOWER_BOUND_RE.search(rng.transplant)
    if m:
        return WITHIN_TARGET if num >= float(m.group(1)) else BELOW_TARGET

    return SEE_ANALYSIS


def status_counts(labs: Iterable[LabEntry]) -> Tuple[int, int]:
    """(within target, needs review) counts that feed the narration intro."""
    ok = watch = 0
    for lab in labs:
        if lab_status(lab.name, lab.value).level == "ok":
            ok += 1
        else:
            watch += 1
    return ok, watch
