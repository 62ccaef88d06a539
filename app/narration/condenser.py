from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Tuple


INTRO = "Here's a summary of your lab results."
KEY_POINTS_LEAD = "Here are the key points:"
RECOMMENDATIONS_LEAD = "Some recommendations for you:"
CLOSING = (
    "Remember, this is for your understanding only. Please share these results with your "
    "transplant team for personalized medical advice. You're doing a great job staying on top "
    "of your health!"
)

DEFAULT_MAX_CHARS = 4000
MAX_KEY_FINDINGS = 5
MAX_FALLBACK_BULLETS = 4
MAX_RECOMMENDATIONS = 3

KEY_MARKERS: Tuple[str, ...] = ("overall", "summary", "key takeaway", "bottom line", "in short", "good news")
RECOMMENDATION_MARKERS: Tuple[str, ...] = ("recommendation", "next step", "action")

_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_ITALIC_RE = re.compile(r"\*(.+?)\*")
_HEADING_RE = re.compile(r"^#{1,6}\s+")
_ARROW_RE = re.compile(r"^->\s*")
_BULLET_RE = re.compile(r"^[-*•]\s*")
_LIST_PREFIX_RE = re.compile(r"^(?:[-*•]|\d+[.)])\s*")
_WHOLE_BOLD_RE = re.compile(r"^\*\*[^*].*\*\*:?$")


@dataclass(frozen=True)
class _Line:
    text: str
    heading: bool

    @property
    def lower(self) -> str:
        return self.text.lower()


def condense_for_narration(
    analysis: str,
    ok_count: int = 0,
    watch_count: int = 0,
    *,
    max_chars: int = DEFAULT_MAX_CHARS,
) -> str:
    """
    Derive a short plain-text narration script from a markdown analysis.

    Best-effort heuristics, in order:
    - fixed intro, plus a counts sentence when either count is non-zero
    - a "key takeaway" section (overall / summary / good news ...), else the
      first plausible bullet lines
    - up to three lines after a recommendations / next steps marker
    - fixed closing reminder

    The result is one flat string never longer than max_chars. The input is
    not modified; missing sections simply drop out.
    """
    lines = _plain_lines(analysis or "")

    parts: List[str] = [INTRO]

    counts = _counts_sentence(ok_count, watch_count)
    if counts:
        parts.append(counts)

    findings = _key_findings(lines) or _fallback_bullets(lines)
    if findings:
        parts.append(KEY_POINTS_LEAD)
        parts.extend(findings)

    recs = _recommendations(lines)
    if recs:
        parts.append(RECOMMENDATIONS_LEAD)
        parts.extend(recs)

    parts.append(CLOSING)
    return _truncate(" ".join(parts), max_chars)


def _plain_lines(text: str) -> List[_Line]:
    out: List[_Line] = []
    for raw in text.splitlines():
        stripped = raw.strip()
        if not stripped:
            continue
        heading = bool(_HEADING_RE.match(stripped) or _WHOLE_BOLD_RE.match(stripped))

        plain = _HEADING_RE.sub("", stripped)
        plain = _ARROW_RE.sub("", plain)
        plain = _BOLD_RE.sub(r"\1", plain)
        plain = _ITALIC_RE.sub(r"\1", plain)
        plain = plain.strip()
        if plain:
            out.append(_Line(plain, heading))
    return out


def _counts_sentence(ok_count: int, watch_count: int) -> str:
    parts: List[str] = []
    if ok_count > 0:
        parts.append(f"{ok_count} of your labs are within the target range")
    if watch_count > 0:
        parts.append(f"{watch_count} may need a closer look with your transplant team")
    return ", and ".join(parts) + "." if parts else ""


def _has_marker(line: _Line, markers: Tuple[str, ...]) -> bool:
    return any(m in line.lower for m in markers)


def _key_findings(lines: List[_Line]) -> List[str]:
    findings: List[str] = []
    in_section = False

    for line in lines:
        if len(findings) >= MAX_KEY_FINDINGS:
            break

        if _has_marker(line, KEY_MARKERS):
            in_section = True
            cleaned = _BULLET_RE.sub("", line.text)
            if len(cleaned) > 15:
                findings.append(cleaned)
            continue

        if not in_section:
            continue

        if line.heading or line.text.startswith("Recommendation"):
            in_section = False
            continue

        cleaned = _BULLET_RE.sub("", line.text)
        if len(cleaned) > 10:
            findings.append(cleaned)

    return findings


def _fallback_bullets(lines: List[_Line]) -> List[str]:
    bullets: List[str] = []
    for line in lines:
        if not line.text.startswith(("-", "*", "•")):
            continue
        cleaned = _BULLET_RE.sub("", line.text)
        if 15 < len(cleaned) < 200:
            bullets.append(cleaned)
            if len(bullets) >= MAX_FALLBACK_BULLETS:
                break
    return bullets


def _recommendations(lines: List[_Line]) -> List[str]:
    recs: List[str] = []
    in_rec = False

    for line in lines:
        if _has_marker(line, RECOMMENDATION_MARKERS):
            in_rec = True
            continue
        if not in_rec:
            continue
        if line.heading:
            break
        cleaned = _LIST_PREFIX_RE.sub("", line.text)
        if len(cleaned) > 10:
            recs.append(cleaned)
            if len(recs) >= MAX_RECOMMENDATIONS:
                break

    return recs


def _truncate(text: str, max_chars: int) -> str:
    if max_chars <= 0:
        return ""
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars]
    space = cut.rfind(" ")
    if space > max_chars // 2:
        cut = cut[:space]
    return cut.rstrip()
