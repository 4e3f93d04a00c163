"""End-to-end tests of one analysis session against a scripted LLM."""

import pytest

from conftest import FakeLLM, segment_title
from transcript_analyst.interaction_log import LogAction
from transcript_analyst.llm_client import LLMHTTPError
from transcript_analyst.models import AnalysisStatus
from transcript_analyst.orchestrator import AgentStatus
from transcript_analyst.phase_state import Phase
from transcript_analyst.pipeline import CUSTOM_GAP_GUIDANCE, AnalysisPipeline
from transcript_analyst.planner_agent import FrameworkParseError
from transcript_analyst.prompts import (
    DEFAULT_INSTRUCTIONS,
    KEYWORDS_SYSTEM_PROMPT,
    SUMMARY_SYSTEM_PROMPT,
)

TRANSCRIPT = "Alice: Churn went up after the price change.\nBob: Support tickets doubled."

FRAMEWORK_JSON = """{"segments": [
  {"title": "Churn", "objective": "Explain churn", "guidance": "Quote Alice"},
  {"title": "Support", "objective": "Support load", "guidance": "Quote Bob"}
]}"""

CRITIC_FAIL = """## Source Alignment
FAIL
- The 20% figure is invented.

## Objective Fulfillment
Score: 60%

## Improvement Guidance
Drop the figure."""

GAPS_REPLY = """Two areas were missed:
```json
[
  {"title": "Team Morale", "objective": "How the team feels", "guidance": "Look at tone", "rationale": "Not covered"}
]
```"""

GAP_REPORT = """# Gap Analysis Summary
Morale was missed.
## Uncovered Themes
- Team morale
## Alternative Perspectives
- Customer view
## Recommendations
- Ask about morale

```json
[{"title": "Morale", "objective": "Assess morale", "guidance": "Quote tone"}]
```"""


def scripted(failing_titles=(), framework_reply=FRAMEWORK_JSON, gaps_reply=GAPS_REPLY):
    planner = DEFAULT_INSTRUCTIONS["planner"]
    writer = DEFAULT_INSTRUCTIONS["writer"]

    def handler(system, user):
        if system == planner["analyze_context"]:
            return "A churn review call."
        if system == planner["generate_metadata"]:
            return "churn, support"
        if system == planner["propose_objective"]:
            return "Explain the churn spike."
        if system == planner["generate_framework"]:
            return framework_reply
        if system == writer["analyze_segment"]:
            title = segment_title(user)
            if title in failing_titles:
                return LLMHTTPError("overloaded", status_code=529)
            return f"Analysis of {title}."
        if system == writer["rewrite_segment"]:
            return "Rewritten analysis."
        if system == DEFAULT_INSTRUCTIONS["critic"]["evaluate_segment"]:
            return CRITIC_FAIL
        if system == DEFAULT_INSTRUCTIONS["gap_analysis"]["analyze_gaps"]:
            if "gap suggestions" in user:
                return gaps_reply
            return GAP_REPORT
        if system == SUMMARY_SYSTEM_PROMPT:
            return "One line summary."
        if system == KEYWORDS_SYSTEM_PROMPT:
            return '["churn", "support"]'
        raise AssertionError(f"Unexpected prompt: {system[:60]}")

    return handler


async def run_until_framework(pipeline: AnalysisPipeline):
    async for _ in pipeline.run_planner(TRANSCRIPT):
        pass
    pipeline.state.proceed_to_next_phase()
    await pipeline.generate_framework()
    pipeline.state.proceed_to_next_phase()


def segment_id_of(pipeline: AnalysisPipeline, title: str) -> str:
    return next(s.id for s in pipeline.state.state.framework.segments if s.title == title)


class TestPlanningPhases:

    @pytest.mark.asyncio
    async def test_run_planner_stores_output_and_transcript(self, config):
        pipeline = AnalysisPipeline(config, llm=FakeLLM(handler=scripted()))

        fields = [event.field async for event in pipeline.run_planner(TRANSCRIPT)]

        assert fields == ["context", "tags", "objective", "complete"]
        state = pipeline.state.state
        assert state.transcript == TRANSCRIPT
        assert state.planner_output.metadata_tags == ["churn", "support"]
        assert pipeline.state.can_proceed_to_phase(Phase.PROCESSING_VALIDATION)

    @pytest.mark.asyncio
    async def test_generate_framework_streams_raw_text(self, config):
        pipeline = AnalysisPipeline(config, llm=FakeLLM(handler=scripted()))
        async for _ in pipeline.run_planner(TRANSCRIPT):
            pass

        chunks = []
        framework = await pipeline.generate_framework(on_chunk=chunks.append)

        assert "".join(chunks) == FRAMEWORK_JSON
        assert framework.metadata.title == "Analysis: A churn review call."
        assert pipeline.state.state.framework is framework

    @pytest.mark.asyncio
    async def test_bad_framework_is_logged_and_not_stored(self, config):
        pipeline = AnalysisPipeline(config, llm=FakeLLM(handler=scripted(framework_reply="No idea.")))
        async for _ in pipeline.run_planner(TRANSCRIPT):
            pass

        with pytest.raises(FrameworkParseError):
            await pipeline.generate_framework()

        assert pipeline.state.state.framework is None
        assert pipeline.log.get_logs()[-1].action == LogAction.ERROR

    @pytest.mark.asyncio
    async def test_framework_needs_planner_output(self, config):
        pipeline = AnalysisPipeline(config, llm=FakeLLM(handler=scripted()))
        with pytest.raises(ValueError):
            await pipeline.generate_framework()


class TestAnalysisTeam:

    @pytest.mark.asyncio
    async def test_failed_writer_is_isolated(self, config):
        pipeline = AnalysisPipeline(config, llm=FakeLLM(handler=scripted(failing_titles={"Support"})))
        await run_until_framework(pipeline)
        churn, support = segment_id_of(pipeline, "Churn"), segment_id_of(pipeline, "Support")

        streamed = {}
        results = await pipeline.launch_analysis_team(
            on_chunk=lambda segment_id, chunk: streamed.setdefault(segment_id, []).append(chunk)
        )

        assert results == {churn: "Analysis of Churn."}
        assert "".join(streamed[churn]) == "Analysis of Churn."
        assert pipeline.state.get_segment_analysis(churn).status == AnalysisStatus.COMPLETE
        assert pipeline.state.get_segment_analysis(support).status == AnalysisStatus.ERROR

        tasks = {task.id: task for task in pipeline.orchestrator.get_agents()}
        assert tasks[support].status == AgentStatus.FAILED
        assert tasks[support].error == "overloaded"
        assert pipeline.state.can_proceed_to_phase(Phase.GAP_ANALYSIS)

    @pytest.mark.asyncio
    async def test_all_writers_failing_blocks_gap_phase(self, config):
        pipeline = AnalysisPipeline(config, llm=FakeLLM(handler=scripted(failing_titles={"Churn", "Support"})))
        await run_until_framework(pipeline)

        assert await pipeline.launch_analysis_team() == {}
        assert not pipeline.state.can_proceed_to_phase(Phase.GAP_ANALYSIS)
        with pytest.raises(ValueError):
            await pipeline.evaluate_segment(segment_id_of(pipeline, "Churn"))

    @pytest.mark.asyncio
    async def test_rerun_selected_segments(self, config):
        pipeline = AnalysisPipeline(config, llm=FakeLLM(handler=scripted(failing_titles={"Support"})))
        await run_until_framework(pipeline)
        await pipeline.launch_analysis_team()
        support = segment_id_of(pipeline, "Support")

        pipeline.llm.handler = scripted()
        results = await pipeline.launch_analysis_team(segment_ids=[support])

        assert results == {support: "Analysis of Support."}
        assert len(pipeline.state.completed_analyses()) == 2

    @pytest.mark.asyncio
    async def test_critic_then_rewrite(self, config):
        pipeline = AnalysisPipeline(config, llm=FakeLLM(handler=scripted()))
        await run_until_framework(pipeline)
        await pipeline.launch_analysis_team()
        churn = segment_id_of(pipeline, "Churn")

        evaluations = await pipeline.evaluate_segments()
        assert set(evaluations) == {churn, segment_id_of(pipeline, "Support")}
        assert evaluations[churn].objective_fulfillment_score == 60

        analysis = await pipeline.rewrite_segment(churn)

        assert analysis.content == "Rewritten analysis."
        assert pipeline.state.get_critic_evaluation(churn) is None
        rewrite_prompt = pipeline.llm.calls[-1][1]
        assert "Analysis of Churn." in rewrite_prompt
        assert "The 20% figure is invented." in rewrite_prompt

    @pytest.mark.asyncio
    async def test_rewrite_needs_evaluation(self, config):
        pipeline = AnalysisPipeline(config, llm=FakeLLM(handler=scripted()))
        await run_until_framework(pipeline)
        await pipeline.launch_analysis_team()

        with pytest.raises(ValueError):
            await pipeline.rewrite_segment(segment_id_of(pipeline, "Churn"))


class TestGapFlow:

    @pytest.mark.asyncio
    async def test_identify_analyze_and_promote(self, config):
        pipeline = AnalysisPipeline(config, llm=FakeLLM(handler=scripted()))
        await run_until_framework(pipeline)
        await pipeline.launch_analysis_team()
        pipeline.state.proceed_to_next_phase()

        identification = await pipeline.identify_gaps()
        assert not identification.no_gaps_identified
        (morale,) = identification.suggestions

        custom = pipeline.add_custom_gap("Pricing Perception", "How customers see the price")
        assert custom.guidance == CUSTOM_GAP_GUIDANCE

        results = await pipeline.analyze_gaps([morale.id, custom.id])
        assert results == {
            morale.id: "Analysis of Team Morale.",
            custom.id: "Analysis of Pricing Perception.",
        }

        evaluation = await pipeline.evaluate_gap(morale.id)
        assert evaluation.segment_id == morale.id

        segment = pipeline.add_gap_to_main_analysis(morale.id)
        assert segment.title == "Team Morale"
        assert pipeline.state.get_segment_analysis(morale.id).content == "Analysis of Team Morale."
        assert morale.id not in pipeline.state.state.gap_analysis.analyzed_gaps
        assert custom.id in pipeline.state.state.gap_analysis.analyzed_gaps

        pipeline.state.proceed_to_next_phase()
        report = await pipeline.consolidate()
        assert "## Team Morale" in report
        assert "## Pricing Perception" not in report

    @pytest.mark.asyncio
    async def test_promoted_gap_cannot_be_analyzed_again(self, config):
        pipeline = AnalysisPipeline(config, llm=FakeLLM(handler=scripted()))
        await run_until_framework(pipeline)
        await pipeline.launch_analysis_team()
        (morale,) = (await pipeline.identify_gaps()).suggestions
        await pipeline.analyze_gaps([morale.id])
        pipeline.add_gap_to_main_analysis(morale.id)
        calls = len(pipeline.llm.calls)

        with pytest.raises(ValueError):
            await pipeline.analyze_gaps([morale.id])

        assert len(pipeline.llm.calls) == calls
        ids = [s.id for s in pipeline.state.state.framework.segments]
        assert ids.count(morale.id) == 1

    @pytest.mark.asyncio
    async def test_no_gaps(self, config):
        pipeline = AnalysisPipeline(config, llm=FakeLLM(handler=scripted(gaps_reply="Nothing was missed.")))
        await run_until_framework(pipeline)
        await pipeline.launch_analysis_team()

        identification = await pipeline.identify_gaps()

        assert identification.no_gaps_identified
        assert identification.raw_text == "Nothing was missed."
        assert pipeline.state.state.gap_analysis.suggestions == []

    @pytest.mark.asyncio
    async def test_unknown_gap(self, config):
        pipeline = AnalysisPipeline(config, llm=FakeLLM(handler=scripted()))
        await run_until_framework(pipeline)
        with pytest.raises(ValueError):
            await pipeline.analyze_gaps(["gap-404"])

    def test_custom_gap_requires_title_and_objective(self, config):
        pipeline = AnalysisPipeline(config, llm=FakeLLM())
        with pytest.raises(ValueError):
            pipeline.add_custom_gap("", "objective")

    @pytest.mark.asyncio
    async def test_gap_report_merges_into_state(self, config):
        pipeline = AnalysisPipeline(config, llm=FakeLLM(handler=scripted()))
        await run_until_framework(pipeline)
        await pipeline.launch_analysis_team()
        identification = await pipeline.identify_gaps()

        report = await pipeline.generate_gap_report()

        assert report.uncovered_themes == ["Team morale"]
        assert [s.title for s in report.new_segments] == ["Morale"]
        assert report.suggestions == identification.suggestions
        assert pipeline.state.state.gap_analysis is report
