"""
Analysis Pipeline

Runs one analysis session end to end, leaving each human checkpoint to
the caller:

1. run_planner            context, tags, objective
2. generate_framework     segments
3. launch_analysis_team   one streaming writer per segment, in parallel
   evaluate_segment(s)    optional critic pass
   rewrite_segment        optional rewrite from critic feedback
4. identify_gaps          gap suggestions
   analyze_gaps           one streaming writer per selected gap
   add_gap_to_main_analysis
5. consolidate            markdown report

Usage:
    pipeline = AnalysisPipeline(AnalystConfig.load())
    pipeline.llm.hydrate_from_settings()

    async for event in pipeline.run_planner(transcript):
        print(event.field, event.value)
    await pipeline.generate_framework()
    await pipeline.launch_analysis_team()
    report = await pipeline.consolidate()
"""

import logging
from datetime import datetime
from functools import partial
from typing import AsyncIterator, Callable, Optional
from dataclasses import dataclass, field

from .config import AnalystConfig
from .consolidation import consolidate
from .critic_agent import CriticAgent
from .gap_agent import GapAnalysisAgent
from .interaction_log import InteractionLog
from .llm_service import LLMService
from .models import (
    AnalysisFramework,
    AnalysisStatus,
    CriticEvaluation,
    FrameworkSegment,
    GapAnalysis,
    GapSuggestion,
    SegmentAnalysis,
    mint_id,
)
from .orchestrator import AgentOrchestrator, AgentTaskSpec
from .phase_state import PhaseStateMachine
from .planner_agent import FrameworkParseError, PlannerAgent, PlannerEvent, build_framework
from .writer_agent import WriterAgent

logger = logging.getLogger(__name__)

# on_chunk(text) for single streams, on_chunk(segment_id, text) for fan-outs
ChunkCallback = Callable[[str], None]
SegmentChunkCallback = Callable[[str, str], None]

CUSTOM_GAP_GUIDANCE = "Analyze this specific gap."
CUSTOM_GAP_RATIONALE = "User identified gap."


@dataclass
class GapIdentification:
    """Outcome of identify_gaps."""
    suggestions: list[GapSuggestion] = field(default_factory=list)
    raw_text: str = ""

    @property
    def no_gaps_identified(self) -> bool:
        return not self.suggestions


class AnalysisPipeline:
    """
    Wires config, LLM facade, interaction log, orchestrator, state machine
    and the four agents for one session.

    Caller-side rules upheld here:
    - a rewrite removes the segment's critic evaluation
    - a failed writer leaves an analysis with status ERROR
    """

    def __init__(
        self,
        config: AnalystConfig,
        llm: Optional[LLMService] = None,
        log: Optional[InteractionLog] = None,
        orchestrator: Optional[AgentOrchestrator] = None,
        state: Optional[PhaseStateMachine] = None,
    ):
        self.config = config
        self.llm = llm or LLMService(config)
        self.log = log or InteractionLog()
        self.orchestrator = orchestrator or AgentOrchestrator()
        self.state = state or PhaseStateMachine()

        self.planner = PlannerAgent(config, self.llm, self.log)
        self.writer = WriterAgent(config, self.llm, self.log)
        self.critic = CriticAgent(config, self.llm, self.log)
        self.gap_agent = GapAnalysisAgent(config, self.llm, self.log)

    @property
    def transcript(self) -> str:
        return self.state.state.transcript

    def _require_framework(self) -> AnalysisFramework:
        framework = self.state.state.framework
        if framework is None:
            raise ValueError("No framework; run generate_framework first")
        return framework

    def _require_analysis(self, segment_id: str) -> SegmentAnalysis:
        analysis = self.state.get_segment_analysis(segment_id)
        if analysis is None or not analysis.is_complete:
            raise ValueError(f"Segment {segment_id} has no completed analysis")
        return analysis

    def _objective_of(self, segment_id: str) -> str:
        framework = self.state.state.framework
        segment = framework.get_segment(segment_id) if framework else None
        if segment is not None:
            return segment.objective
        gap_analysis = self.state.state.gap_analysis
        suggestion = gap_analysis.get_suggestion(segment_id) if gap_analysis else None
        if suggestion is not None:
            return suggestion.objective
        raise ValueError(f"Unknown segment: {segment_id}")

    async def _collect(self, stream: AsyncIterator[str], on_chunk: Optional[ChunkCallback]) -> str:
        chunks = []
        async for chunk in stream:
            chunks.append(chunk)
            if on_chunk:
                on_chunk(chunk)
        return "".join(chunks)

    # =========================================================================
    # Phase 1 and 2
    # =========================================================================

    async def run_planner(self, transcript: str) -> AsyncIterator[PlannerEvent]:
        """Planner events; the final PlannerOutput is stored with the transcript."""
        async for event in self.planner.generate_planner_output_events(transcript):
            if event.field == "complete":
                self.state.set_planner_output(event.value, transcript)
            yield event

    async def generate_framework(self, on_chunk: Optional[ChunkCallback] = None) -> AnalysisFramework:
        """
        Stream the framework from the planner and store it.

        Raises:
            FrameworkParseError: The planner's answer has no usable segments
        """
        output = self.state.state.planner_output
        if output is None:
            raise ValueError("No planner output; run run_planner first")

        stream = self.planner.generate_framework_stream(
            self.transcript,
            output.context_understanding,
            output.analysis_objective,
            output.metadata_tags,
        )
        raw_text = await self._collect(stream, on_chunk)

        try:
            framework = build_framework(
                raw_text,
                output.context_understanding,
                output.analysis_objective,
                output.metadata_tags,
            )
        except FrameworkParseError as e:
            self.log.log_error(self.planner.agent_name, self.planner.log_role_id, str(e))
            raise

        self.state.set_framework(framework)
        logger.info("Framework ready with %d segments", len(framework.segments))
        return framework

    # =========================================================================
    # Phase 3
    # =========================================================================

    async def _write(
        self,
        segment_id: str,
        title: str,
        objective: str,
        guidance: str,
        on_chunk: Optional[SegmentChunkCallback],
    ) -> SegmentAnalysis:
        stream = self.writer.analyze_segment_stream(segment_id, title, objective, guidance, self.transcript)
        content = await self._collect(stream, partial(on_chunk, segment_id) if on_chunk else None)
        return SegmentAnalysis(
            segment_id=segment_id,
            content=content.strip(),
            status=AnalysisStatus.COMPLETE,
            generated_at=datetime.now(),
        )

    async def _write_segment(self, segment: FrameworkSegment, on_chunk: Optional[SegmentChunkCallback]) -> str:
        analysis = await self._write(segment.id, segment.title, segment.objective, segment.guidance, on_chunk)
        self.state.set_segment_analysis(analysis)
        return analysis.content

    async def launch_analysis_team(
        self,
        on_chunk: Optional[SegmentChunkCallback] = None,
        segment_ids: Optional[list[str]] = None,
    ) -> dict[str, str]:
        """
        Write every segment (or the given ones) in parallel.

        Returns:
            Content per segment id, for the writers that succeeded
        """
        framework = self._require_framework()
        segments = framework.ordered_segments()
        if segment_ids is not None:
            wanted = set(segment_ids)
            segments = [s for s in segments if s.id in wanted]

        for segment in segments:
            self.state.set_segment_analysis(SegmentAnalysis(segment_id=segment.id))

        logger.info("Launching %d writer agents", len(segments))
        results = await self.orchestrator.run_parallel_agents([
            AgentTaskSpec(segment.id, f"Writer: {segment.title}", partial(self._write_segment, segment, on_chunk))
            for segment in segments
        ])

        for segment in segments:
            if segment.id not in results:
                self.state.set_segment_analysis(SegmentAnalysis(
                    segment_id=segment.id,
                    status=AnalysisStatus.ERROR,
                ))
        return results

    async def evaluate_segment(self, segment_id: str) -> CriticEvaluation:
        analysis = self._require_analysis(segment_id)
        evaluation = await self.critic.evaluate_segment(
            segment_id, analysis.content, self._objective_of(segment_id), self.transcript
        )
        self.state.set_critic_evaluation(evaluation)
        return evaluation

    async def _evaluate_for_batch(self, segment_id: str) -> str:
        evaluation = await self.evaluate_segment(segment_id)
        return evaluation.evaluation

    async def evaluate_segments(self, segment_ids: Optional[list[str]] = None) -> dict[str, CriticEvaluation]:
        """Run the critic over several segments in parallel (default: all completed)."""
        if segment_ids is None:
            segment_ids = [a.segment_id for a in self.state.completed_analyses()]

        results = await self.orchestrator.run_parallel_agents([
            AgentTaskSpec(segment_id, f"Critic: {segment_id}", partial(self._evaluate_for_batch, segment_id))
            for segment_id in segment_ids
        ])
        return {segment_id: self.state.get_critic_evaluation(segment_id) for segment_id in results}

    async def rewrite_segment(self, segment_id: str) -> SegmentAnalysis:
        """Rewrite from the critic's feedback; the evaluation is removed afterwards."""
        analysis = self._require_analysis(segment_id)
        evaluation = self.state.get_critic_evaluation(segment_id)
        if evaluation is None:
            raise ValueError(f"Segment {segment_id} has no critic evaluation to act on")

        content = await self.writer.rewrite_segment(
            analysis.content, evaluation.evaluation, self._objective_of(segment_id), self.transcript
        )
        return self.state.apply_rewrite(segment_id, content)

    # =========================================================================
    # Phase 4: gaps
    # =========================================================================

    async def identify_gaps(self, on_chunk: Optional[ChunkCallback] = None) -> GapIdentification:
        """Ask for gap suggestions; they replace any earlier suggestions."""
        framework = self._require_framework()
        stream = self.gap_agent.identify_gaps(self.transcript, framework, self.state.completed_analyses())
        raw_text = await self._collect(stream, on_chunk)

        suggestions = self.gap_agent.parse_gap_suggestions(raw_text)
        self.state.set_gap_analysis(GapAnalysis(suggestions=list(suggestions)))
        if not suggestions:
            logger.info("No gaps identified")
        return GapIdentification(suggestions=suggestions, raw_text=raw_text)

    def add_custom_gap(
        self,
        title: str,
        objective: str,
        guidance: str = "",
        rationale: str = "",
    ) -> GapSuggestion:
        """Add a user-authored gap. Title and objective are required."""
        if not title or not objective:
            raise ValueError("A custom gap needs a title and an objective")
        suggestion = GapSuggestion(
            id=mint_id("custom-gap"),
            title=title,
            objective=objective,
            guidance=guidance or CUSTOM_GAP_GUIDANCE,
            rationale=rationale or CUSTOM_GAP_RATIONALE,
        )
        self.state.add_gap_suggestion(suggestion)
        return suggestion

    async def _write_gap(self, suggestion: GapSuggestion, on_chunk: Optional[SegmentChunkCallback]) -> str:
        analysis = await self._write(
            suggestion.id, suggestion.title, suggestion.objective, suggestion.guidance, on_chunk
        )
        self.state.set_gap_segment_analysis(analysis)
        return analysis.content

    async def analyze_gaps(
        self,
        gap_ids: list[str],
        on_chunk: Optional[SegmentChunkCallback] = None,
    ) -> dict[str, str]:
        """Write an analysis for each selected gap, in parallel."""
        gap_analysis = self.state.state.gap_analysis
        suggestions = []
        for gap_id in gap_ids:
            suggestion = gap_analysis.get_suggestion(gap_id) if gap_analysis else None
            if suggestion is None:
                raise ValueError(f"Unknown gap: {gap_id}")
            if self.state.is_gap_promoted(gap_id):
                raise ValueError(f"Gap {gap_id} is already part of the main analysis")
            suggestions.append(suggestion)

        return await self.orchestrator.run_parallel_agents([
            AgentTaskSpec(s.id, f"Writer: {s.title}", partial(self._write_gap, s, on_chunk))
            for s in suggestions
        ])

    async def evaluate_gap(self, gap_id: str) -> CriticEvaluation:
        gap_analysis = self.state.state.gap_analysis
        analysis = gap_analysis.analyzed_gaps.get(gap_id) if gap_analysis else None
        if analysis is None:
            raise ValueError(f"Gap {gap_id} has not been analyzed")

        evaluation = await self.critic.evaluate_segment(
            gap_id, analysis.content, self._objective_of(gap_id), self.transcript
        )
        self.state.set_gap_evaluation(evaluation)
        return evaluation

    def add_gap_to_main_analysis(self, gap_id: str) -> Optional[FrameworkSegment]:
        return self.state.add_gap_to_main_analysis(gap_id)

    async def generate_gap_report(self, on_chunk: Optional[ChunkCallback] = None) -> GapAnalysis:
        """
        Single-pass gap report. Its summary fields and new segments are
        merged into the current gap analysis; suggestions are kept.
        """
        framework = self._require_framework()
        stream = self.gap_agent.analyze_gaps(self.transcript, framework, self.state.completed_analyses())
        report = self.gap_agent.parse_gap_analysis(await self._collect(stream, on_chunk))

        current = self.state.state.gap_analysis
        if current is not None:
            report.suggestions = current.suggestions
            report.analyzed_gaps = current.analyzed_gaps
            report.evaluations = current.evaluations
        self.state.set_gap_analysis(report)
        return report

    # =========================================================================
    # Phase 5
    # =========================================================================

    async def consolidate(self) -> str:
        return await consolidate(self._require_framework(), self.state.state.segment_analyses, self.writer)

    async def close(self):
        await self.llm.close()
