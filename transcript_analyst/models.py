"""
Analysis Data Model

Entities produced and consumed across the five phases:
planner output, the analysis framework and its segments, per-segment
analyses, critic evaluations and gap suggestions.
"""

import time
import uuid
from datetime import datetime
from typing import Optional
from dataclasses import dataclass, field
from enum import Enum


class AnalysisStatus(str, Enum):
    """Status of a single segment analysis."""
    PENDING = "pending"
    COMPLETE = "complete"
    ERROR = "error"


def mint_id(prefix: str, index: Optional[int] = None) -> str:
    """Build a fresh id: <prefix>-<epoch ms>-<index>, or a random suffix without index."""
    stamp = int(time.time() * 1000)
    if index is None:
        return f"{prefix}-{stamp}-{uuid.uuid4().hex[:6]}"
    return f"{prefix}-{stamp}-{index}"


@dataclass
class PlannerOutput:
    """Phase 1 result. Every field may be edited by the user afterwards."""
    context_understanding: str
    metadata_tags: list[str] = field(default_factory=list)
    analysis_objective: str = ""


@dataclass
class FrameworkSegment:
    """One unit of the analysis framework."""
    id: str
    title: str
    objective: str
    guidance: str
    order: int = 0


@dataclass
class FrameworkMetadata:
    title: str
    created: datetime = field(default_factory=datetime.now)
    objective: str = ""
    tags: list[str] = field(default_factory=list)


@dataclass
class AnalysisFramework:
    """Phase 2 result: metadata plus the ordered segment list."""
    metadata: FrameworkMetadata
    segments: list[FrameworkSegment] = field(default_factory=list)

    def get_segment(self, segment_id: str) -> Optional[FrameworkSegment]:
        for segment in self.segments:
            if segment.id == segment_id:
                return segment
        return None

    def ordered_segments(self) -> list[FrameworkSegment]:
        return sorted(self.segments, key=lambda s: s.order)


@dataclass
class SegmentAnalysis:
    """Writer output for one segment (or gap), keyed by segment_id."""
    segment_id: str
    content: str = ""
    status: AnalysisStatus = AnalysisStatus.PENDING
    generated_at: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return self.status == AnalysisStatus.COMPLETE


@dataclass
class CriticEvaluation:
    """Parsed critic verdict for one segment."""
    segment_id: str
    evaluation: str
    source_alignment: bool
    objective_fulfillment_score: int
    improvement_guidance: str
    source_alignment_issues: Optional[list[str]] = None
    generated_at: datetime = field(default_factory=datetime.now)


@dataclass
class GapSuggestion:
    """A theme the existing segments do not cover."""
    id: str
    title: str
    objective: str
    guidance: str
    rationale: str


@dataclass
class GapAnalysis:
    """
    Gap-analysis state.

    suggestions, analyzed_gaps and evaluations drive the two-step
    identify/analyze flow. summary, new_segments and the three theme
    lists are filled by the single-pass summary report.
    """
    suggestions: list[GapSuggestion] = field(default_factory=list)
    analyzed_gaps: dict[str, SegmentAnalysis] = field(default_factory=dict)
    evaluations: dict[str, CriticEvaluation] = field(default_factory=dict)
    summary: str = ""
    new_segments: list[FrameworkSegment] = field(default_factory=list)
    uncovered_themes: list[str] = field(default_factory=list)
    alternative_perspectives: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    generated_at: datetime = field(default_factory=datetime.now)

    def get_suggestion(self, gap_id: str) -> Optional[GapSuggestion]:
        for suggestion in self.suggestions:
            if suggestion.id == gap_id:
                return suggestion
        return None
