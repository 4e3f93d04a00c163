"""
Phase State Machine

Holds everything produced during one analysis session and decides which
phase the user may move to.

Phases are strictly linear:

    UPLOAD_ALIGN -> PROCESSING_VALIDATION -> INSIGHT_EXTRACTION
                 -> GAP_ANALYSIS -> CONSOLIDATION

Moving back is always allowed. Moving forward is gated on the state
(see can_proceed_to_phase).
"""

import logging
from datetime import datetime
from typing import Iterable, Optional
from dataclasses import dataclass, field
from enum import Enum

from .llm_client import AnalystError
from .models import (
    AnalysisFramework,
    AnalysisStatus,
    CriticEvaluation,
    FrameworkSegment,
    GapAnalysis,
    GapSuggestion,
    PlannerOutput,
    SegmentAnalysis,
    mint_id,
)

logger = logging.getLogger(__name__)


class PhaseTransitionError(AnalystError):
    """Raised when a phase move is not allowed."""
    pass


class UnknownSegmentError(AnalystError):
    """Raised when an id matches neither a framework segment nor a gap suggestion."""
    pass


class Phase(str, Enum):
    UPLOAD_ALIGN = "upload_align"
    PROCESSING_VALIDATION = "processing_validation"
    INSIGHT_EXTRACTION = "insight_extraction"
    GAP_ANALYSIS = "gap_analysis"
    CONSOLIDATION = "consolidation"

    @property
    def position(self) -> int:
        return PHASE_ORDER.index(self)


PHASE_ORDER: tuple[Phase, ...] = tuple(Phase)

PHASE_TITLES = {
    Phase.UPLOAD_ALIGN: "Upload & Align",
    Phase.PROCESSING_VALIDATION: "Processing & Validation",
    Phase.INSIGHT_EXTRACTION: "Insight Extraction",
    Phase.GAP_ANALYSIS: "Gap Analysis",
    Phase.CONSOLIDATION: "Consolidation",
}


@dataclass
class AnalysisState:
    """All entities of one session plus the current phase."""
    current_phase: Phase = Phase.UPLOAD_ALIGN
    transcript: str = ""
    planner_output: Optional[PlannerOutput] = None
    framework: Optional[AnalysisFramework] = None
    segment_analyses: dict[str, SegmentAnalysis] = field(default_factory=dict)
    critic_evaluations: dict[str, CriticEvaluation] = field(default_factory=dict)
    gap_analysis: Optional[GapAnalysis] = None


class PhaseStateMachine:
    """
    Owner of AnalysisState.

    All writes go through the methods below so the invariants hold:
    - every analysis (and evaluation) id is a framework segment or a known
      gap suggestion
    - at most one evaluation per segment
    - segment order is dense 0..n-1 after add, delete and reorder

    Usage:
        machine = PhaseStateMachine()
        machine.set_planner_output(output, transcript)
        machine.proceed_to_next_phase()   # -> PROCESSING_VALIDATION
    """

    def __init__(self, state: Optional[AnalysisState] = None):
        self.state = state or AnalysisState()

    @property
    def current_phase(self) -> Phase:
        return self.state.current_phase

    # =========================================================================
    # Gating and navigation
    # =========================================================================

    def _has_completed_analysis(self) -> bool:
        return any(a.status == AnalysisStatus.COMPLETE for a in self.state.segment_analyses.values())

    def can_proceed_to_phase(self, target: Phase) -> bool:
        """Whether the state satisfies the entry condition of target. No side effects."""
        state = self.state
        if target == Phase.UPLOAD_ALIGN:
            return True
        if target == Phase.PROCESSING_VALIDATION:
            return bool(state.transcript) and state.planner_output is not None
        if target == Phase.INSIGHT_EXTRACTION:
            return state.framework is not None
        if target in (Phase.GAP_ANALYSIS, Phase.CONSOLIDATION):
            return self._has_completed_analysis()
        return False

    def navigate_to_phase(self, target: Phase) -> Phase:
        """
        Move to any phase. Backward moves are unconditional; forward moves
        need the target's entry condition.
        """
        if target.position > self.current_phase.position and not self.can_proceed_to_phase(target):
            raise PhaseTransitionError(
                f"Cannot proceed to {PHASE_TITLES[target]}: requirements not met"
            )
        if target != self.current_phase:
            logger.debug("Phase %s -> %s", self.current_phase.value, target.value)
        self.state.current_phase = target
        return target

    def proceed_to_next_phase(self) -> Phase:
        index = self.current_phase.position
        if index + 1 >= len(PHASE_ORDER):
            raise PhaseTransitionError("Already at the last phase")
        return self.navigate_to_phase(PHASE_ORDER[index + 1])

    def go_to_previous_phase(self) -> Phase:
        index = self.current_phase.position
        if index == 0:
            raise PhaseTransitionError("Already at the first phase")
        return self.navigate_to_phase(PHASE_ORDER[index - 1])

    def skip_to_consolidation(self) -> Phase:
        """Jump over gap analysis."""
        return self.navigate_to_phase(Phase.CONSOLIDATION)

    # =========================================================================
    # Phase 1
    # =========================================================================

    def set_planner_output(self, output: PlannerOutput, transcript: Optional[str] = None):
        self.state.planner_output = output
        if transcript is not None:
            self.state.transcript = transcript

    def update_planner_output(self, **changes) -> PlannerOutput:
        """Edit fields of the planner output (context_understanding, metadata_tags, analysis_objective)."""
        output = self.state.planner_output
        if output is None:
            raise ValueError("No planner output to update")
        for key, value in changes.items():
            if not hasattr(output, key):
                raise ValueError(f"Unknown planner output field: {key}")
            setattr(output, key, value)
        return output

    # =========================================================================
    # Phase 2: framework editing
    # =========================================================================

    def _require_framework(self) -> AnalysisFramework:
        if self.state.framework is None:
            raise ValueError("No framework has been set")
        return self.state.framework

    def _require_segment(self, segment_id: str) -> FrameworkSegment:
        segment = self._require_framework().get_segment(segment_id)
        if segment is None:
            raise UnknownSegmentError(f"Unknown segment: {segment_id}")
        return segment

    def _renormalize_order(self):
        framework = self._require_framework()
        framework.segments.sort(key=lambda s: s.order)
        for index, segment in enumerate(framework.segments):
            segment.order = index

    def set_framework(self, framework: AnalysisFramework):
        """Install a framework. Analyses and evaluations of vanished segments are dropped."""
        self.state.framework = framework
        for store in (self.state.segment_analyses, self.state.critic_evaluations):
            for segment_id in [sid for sid in store if not self.is_known_segment(sid)]:
                del store[segment_id]

    def add_segment(self, title: str, objective: str, guidance: str) -> FrameworkSegment:
        framework = self._require_framework()
        segment = FrameworkSegment(
            id=mint_id("segment"),
            title=title,
            objective=objective,
            guidance=guidance,
            order=len(framework.segments),
        )
        framework.segments.append(segment)
        self._renormalize_order()
        return segment

    def update_segment(self, segment_id: str, **changes) -> FrameworkSegment:
        """Edit title, objective or guidance of a segment."""
        segment = self._require_segment(segment_id)
        for key, value in changes.items():
            if key not in ("title", "objective", "guidance"):
                raise ValueError(f"Cannot update segment field: {key}")
            setattr(segment, key, value)
        return segment

    def delete_segment(self, segment_id: str):
        """Remove a segment together with its analysis and evaluation."""
        framework = self._require_framework()
        segment = self._require_segment(segment_id)
        framework.segments.remove(segment)
        self.state.segment_analyses.pop(segment_id, None)
        self.state.critic_evaluations.pop(segment_id, None)
        self._renormalize_order()

    def reorder_segments(self, ordered_ids: list[str]):
        """Put segments in the given order. ordered_ids must name every segment once."""
        framework = self._require_framework()
        current = {s.id: s for s in framework.segments}
        if sorted(ordered_ids) != sorted(current):
            raise ValueError("Reorder must list every segment exactly once")
        framework.segments = [current[sid] for sid in ordered_ids]
        for index, segment in enumerate(framework.segments):
            segment.order = index

    # =========================================================================
    # Phase 3: analyses and evaluations
    # =========================================================================

    def is_known_segment(self, segment_id: str) -> bool:
        """True for framework segment ids and gap suggestion ids."""
        framework = self.state.framework
        if framework is not None and framework.get_segment(segment_id) is not None:
            return True
        gap_analysis = self.state.gap_analysis
        return gap_analysis is not None and gap_analysis.get_suggestion(segment_id) is not None

    def _check_known(self, segment_id: str):
        if not self.is_known_segment(segment_id):
            raise UnknownSegmentError(f"Unknown segment: {segment_id}")

    def set_segment_analyses(self, analyses: Iterable[SegmentAnalysis]):
        """Replace all segment analyses."""
        analyses = list(analyses)
        for analysis in analyses:
            self._check_known(analysis.segment_id)
        self.state.segment_analyses = {a.segment_id: a for a in analyses}

    def set_segment_analysis(self, analysis: SegmentAnalysis):
        self._check_known(analysis.segment_id)
        self.state.segment_analyses[analysis.segment_id] = analysis

    def get_segment_analysis(self, segment_id: str) -> Optional[SegmentAnalysis]:
        return self.state.segment_analyses.get(segment_id)

    def completed_analyses(self) -> list[SegmentAnalysis]:
        """Completed analyses in framework order, then any others."""
        analyses = self.state.segment_analyses
        ordered = []
        if self.state.framework is not None:
            for segment in self.state.framework.ordered_segments():
                analysis = analyses.get(segment.id)
                if analysis is not None and analysis.is_complete:
                    ordered.append(analysis)
        seen = {a.segment_id for a in ordered}
        ordered.extend(a for a in analyses.values() if a.is_complete and a.segment_id not in seen)
        return ordered

    def set_critic_evaluation(self, evaluation: CriticEvaluation):
        self._check_known(evaluation.segment_id)
        self.state.critic_evaluations[evaluation.segment_id] = evaluation

    def get_critic_evaluation(self, segment_id: str) -> Optional[CriticEvaluation]:
        return self.state.critic_evaluations.get(segment_id)

    def apply_rewrite(self, segment_id: str, content: str) -> SegmentAnalysis:
        """Replace a segment's content with rewritten text and drop its now stale evaluation."""
        self._check_known(segment_id)
        analysis = SegmentAnalysis(
            segment_id=segment_id,
            content=content,
            status=AnalysisStatus.COMPLETE,
            generated_at=datetime.now(),
        )
        self.state.segment_analyses[segment_id] = analysis
        self.state.critic_evaluations.pop(segment_id, None)
        return analysis

    # =========================================================================
    # Gap analysis
    # =========================================================================

    def _gap_analysis(self) -> GapAnalysis:
        if self.state.gap_analysis is None:
            self.state.gap_analysis = GapAnalysis()
        return self.state.gap_analysis

    def set_gap_analysis(self, gap_analysis: GapAnalysis):
        self.state.gap_analysis = gap_analysis

    def add_gap_suggestion(self, suggestion: GapSuggestion):
        """Add a suggestion, e.g. one authored by the user."""
        self._gap_analysis().suggestions.append(suggestion)

    def _require_suggestion(self, gap_id: str) -> GapSuggestion:
        suggestion = self._gap_analysis().get_suggestion(gap_id)
        if suggestion is None:
            raise UnknownSegmentError(f"Unknown gap: {gap_id}")
        return suggestion

    def is_gap_promoted(self, gap_id: str) -> bool:
        framework = self.state.framework
        return framework is not None and framework.get_segment(gap_id) is not None

    def _require_unpromoted(self, gap_id: str):
        if self.is_gap_promoted(gap_id):
            raise ValueError(f"Gap {gap_id} is already part of the main analysis")

    def set_gap_segment_analysis(self, analysis: SegmentAnalysis):
        self._require_suggestion(analysis.segment_id)
        self._require_unpromoted(analysis.segment_id)
        self._gap_analysis().analyzed_gaps[analysis.segment_id] = analysis

    def set_gap_evaluation(self, evaluation: CriticEvaluation):
        self._require_suggestion(evaluation.segment_id)
        self._gap_analysis().evaluations[evaluation.segment_id] = evaluation

    def add_gap_to_main_analysis(
        self,
        gap_id: str,
        analysis: Optional[SegmentAnalysis] = None,
        suggestion: Optional[GapSuggestion] = None,
    ) -> Optional[FrameworkSegment]:
        """
        Promote an analyzed gap into the main analysis.

        The analysis is stored under the gap id and a segment built from
        the suggestion is appended with order len(segments) + 1. The gap
        leaves the in-progress map. Main critic evaluations are not touched.

        Returns:
            The new framework segment, or None if there is no framework
        """
        self._require_unpromoted(gap_id)
        gap_analysis = self._gap_analysis()
        if suggestion is None:
            suggestion = self._require_suggestion(gap_id)
        elif gap_analysis.get_suggestion(gap_id) is None:
            gap_analysis.suggestions.append(suggestion)
        if analysis is None:
            analysis = gap_analysis.analyzed_gaps.get(gap_id)
            if analysis is None:
                raise ValueError(f"Gap {gap_id} has not been analyzed")

        segment = None
        framework = self.state.framework
        if framework is not None:
            segment = FrameworkSegment(
                id=gap_id,
                title=suggestion.title,
                objective=suggestion.objective,
                guidance=suggestion.guidance,
                order=len(framework.segments) + 1,
            )
            framework.segments.append(segment)

        self.state.segment_analyses[gap_id] = analysis
        gap_analysis.analyzed_gaps.pop(gap_id, None)
        gap_analysis.evaluations.pop(gap_id, None)
        return segment

    def reset(self):
        """Back to an empty session in the first phase."""
        self.state = AnalysisState()
