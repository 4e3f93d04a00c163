"""
Response Parser

Turns semi-structured LLM output into typed data.

Every parser here is a pure function. Malformed model output is an
expected outcome, so parsers report it as a ParseFailure (or fall back
to documented defaults) instead of raising. Whether a failure is fatal
is decided by the calling agent.
"""

import json
import re
from typing import Any, Generic, Optional, TypeVar, Union
from dataclasses import dataclass

from .models import (
    CriticEvaluation,
    FrameworkSegment,
    GapAnalysis,
    GapSuggestion,
    mint_id,
)

T = TypeVar("T")


@dataclass
class Parsed(Generic[T]):
    """Successful parse."""
    value: T


@dataclass
class ParseFailure:
    """Output did not have the expected shape."""
    reason: str
    raw: str = ""


ParseResult = Union[Parsed[T], ParseFailure]


# Placeholders for structurally present but incomplete segments
DEFAULT_SEGMENT_TITLE = "Untitled Segment"
DEFAULT_SEGMENT_OBJECTIVE = "No objective provided"
DEFAULT_SEGMENT_GUIDANCE = "No guidance provided"

DEFAULT_GAP_RATIONALE = "No rationale provided"
DEFAULT_IMPROVEMENT_GUIDANCE = "No specific guidance provided"

_BULLET = re.compile(r'^[-•*]\s+')
_HEADING = re.compile(r'^#{1,6}\s', re.MULTILINE)


# =============================================================================
# Generic helpers
# =============================================================================

def extract_json_object(text: str) -> Optional[str]:
    """Return the outermost {...} span (first '{' to last '}'), if any."""
    match = re.search(r'\{[\s\S]*\}', text)
    return match.group(0) if match else None


def extract_fenced_json(text: str) -> Optional[str]:
    """Return the body of the first ```json fenced block, if any."""
    match = re.search(r'```json\s*([\s\S]*?)\s*```', text)
    return match.group(1) if match else None


def extract_section(content: str, header: str) -> str:
    """
    Extract content between a markdown heading and the next heading.

    The heading match is case-insensitive. Text after the heading on the
    same line belongs to the section. Returns "" if the heading is not
    present.
    """
    header_match = re.search(rf'^[ \t]*{re.escape(header)}(?!\w)', content, re.MULTILINE | re.IGNORECASE)
    if not header_match:
        return ""

    start_pos = header_match.end()
    next_match = _HEADING.search(content, start_pos)
    end_pos = next_match.start() if next_match else len(content)
    return content[start_pos:end_pos].strip()


def extract_list_items(section_content: str) -> list[str]:
    """Extract bullet items (-, *, •) from a section."""
    items = []
    for line in section_content.split('\n'):
        line = line.strip()
        if _BULLET.match(line):
            item = _BULLET.sub('', line).strip()
            if item:
                items.append(item)
    return items


def _field(data: Any, key: str, default: str) -> str:
    """Look up key, then its capitalized form, falling back to default."""
    if not isinstance(data, dict):
        return default
    value = data.get(key)
    if value is None:
        value = data.get(key.capitalize())
    if value is None:
        return default
    return str(value)


# =============================================================================
# Planner
# =============================================================================

def parse_tags(text: str) -> list[str]:
    """Split a comma-separated tag line."""
    return [tag.strip() for tag in text.split(',') if tag.strip()]


def parse_framework_segments(text: str) -> ParseResult[list[FrameworkSegment]]:
    """
    Parse the planner's framework answer into segments.

    The answer must contain one JSON object with a "segments" (or
    "Segments") array. Ids are minted here, never taken from the model,
    and order follows array position.
    """
    json_str = extract_json_object(text)
    if json_str is None:
        return ParseFailure("No JSON object found in framework response", raw=text)

    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        return ParseFailure(f"Invalid JSON in framework response: {e}", raw=text)

    raw_segments = None
    if isinstance(data, dict):
        raw_segments = data.get("segments")
        if raw_segments is None:
            raw_segments = data.get("Segments")
    if not isinstance(raw_segments, list):
        return ParseFailure("Framework response has no segments array", raw=text)

    segments = []
    for index, seg in enumerate(raw_segments):
        segments.append(FrameworkSegment(
            id=mint_id("segment", index),
            title=_field(seg, "title", DEFAULT_SEGMENT_TITLE),
            objective=_field(seg, "objective", DEFAULT_SEGMENT_OBJECTIVE),
            guidance=_field(seg, "guidance", DEFAULT_SEGMENT_GUIDANCE),
            order=index,
        ))
    return Parsed(segments)


# =============================================================================
# Critic
# =============================================================================

def parse_critic_evaluation(segment_id: str, text: str) -> CriticEvaluation:
    """
    Parse the critic's three-section template.

    ## Source Alignment      PASS or FAIL, then "- " issue bullets
    ## Objective Fulfillment Score: N%
    ## Improvement Guidance  free text

    Every field has a default, so this never fails: a missing verdict is
    FAIL, a missing score is 0 and missing guidance gets a fixed message.
    The score is passed through as written, without clamping.
    """
    verdict = re.search(r'## Source Alignment\s+(PASS|FAIL)', text, re.IGNORECASE)
    source_alignment = bool(verdict) and verdict.group(1).upper() == "PASS"

    issues: list[str] = []
    if not source_alignment:
        issues = extract_list_items(extract_section(text, "## Source Alignment"))

    score_match = re.search(r'Score:\s*(\d+)%?', text, re.IGNORECASE)
    score = int(score_match.group(1)) if score_match else 0

    guidance_match = re.search(r'## Improvement Guidance\s+([\s\S]*?)(?=##|\Z)', text, re.IGNORECASE)
    guidance = guidance_match.group(1).strip() if guidance_match else ""

    return CriticEvaluation(
        segment_id=segment_id,
        evaluation=text.strip(),
        source_alignment=source_alignment,
        source_alignment_issues=issues or None,
        objective_fulfillment_score=score,
        improvement_guidance=guidance or DEFAULT_IMPROVEMENT_GUIDANCE,
    )


# =============================================================================
# Gap analysis
# =============================================================================

def parse_gap_suggestions(text: str) -> ParseResult[list[GapSuggestion]]:
    """Parse the ```json fenced array of gap suggestions."""
    json_str = extract_fenced_json(text)
    if json_str is None:
        return ParseFailure("No JSON block found in gap identification response", raw=text)

    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        return ParseFailure(f"Invalid JSON in gap suggestions: {e}", raw=text)

    if not isinstance(data, list):
        return ParseFailure("Gap suggestions JSON is not an array", raw=text)

    suggestions = []
    for index, item in enumerate(data):
        suggestions.append(GapSuggestion(
            id=mint_id("gap", index),
            title=_field(item, "title", DEFAULT_SEGMENT_TITLE),
            objective=_field(item, "objective", DEFAULT_SEGMENT_OBJECTIVE),
            guidance=_field(item, "guidance", DEFAULT_SEGMENT_GUIDANCE),
            rationale=_field(item, "rationale", "") or DEFAULT_GAP_RATIONALE,
        ))
    return Parsed(suggestions)


def parse_gap_analysis(text: str) -> GapAnalysis:
    """
    Parse the single-pass gap report.

    The markdown sections become the theme lists; a trailing ```json
    block, if present and valid, becomes new_segments and is removed from
    the summary. A bad JSON block leaves the summary untouched.
    """
    summary = text
    new_segments: list[FrameworkSegment] = []

    match = re.search(r'```json\n([\s\S]*?)\n```', text)
    if match:
        try:
            data = json.loads(match.group(1))
        except json.JSONDecodeError:
            data = None
        if isinstance(data, list):
            for index, item in enumerate(data):
                new_segments.append(FrameworkSegment(
                    id=mint_id("gap-segment", index),
                    title=_field(item, "title", DEFAULT_SEGMENT_TITLE),
                    objective=_field(item, "objective", DEFAULT_SEGMENT_OBJECTIVE),
                    guidance=_field(item, "guidance", DEFAULT_SEGMENT_GUIDANCE),
                    order=999 + index,  # placeholder until promoted
                ))
            summary = text.replace(match.group(0), '').strip()

    return GapAnalysis(
        summary=summary,
        new_segments=new_segments,
        uncovered_themes=extract_list_items(extract_section(summary, "## Uncovered Themes")),
        alternative_perspectives=extract_list_items(extract_section(summary, "## Alternative Perspectives")),
        recommendations=extract_list_items(extract_section(summary, "## Recommendations")),
    )


# =============================================================================
# Facade / writer helpers
# =============================================================================

def _parse_string_array(text: str) -> ParseResult[list[str]]:
    try:
        data = json.loads(text.strip())
    except json.JSONDecodeError as e:
        return ParseFailure(f"Invalid JSON: {e}", raw=text)
    if not isinstance(data, list):
        return Parsed([])
    return Parsed([str(item) for item in data])


def parse_themes(text: str) -> ParseResult[list[str]]:
    """Parse a bare JSON array of theme names. Non-array JSON gives []."""
    return _parse_string_array(text)


def parse_keywords(text: str) -> ParseResult[list[str]]:
    """Parse a bare JSON array of keywords. Non-array JSON gives []."""
    return _parse_string_array(text)
