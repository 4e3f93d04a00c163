"""
Planner Agent

Phase 1 and 2: reads the transcript, states what it is about, tags it,
proposes an objective, then designs the analysis framework.

Usage:
    planner = PlannerAgent(config, llm, log)

    async for event in planner.generate_planner_output_events(transcript):
        print(event.field, event.value)

    framework = await planner.generate_framework(
        transcript, output.context_understanding,
        output.analysis_objective, output.metadata_tags,
    )
"""

from typing import Any, AsyncIterator
from dataclasses import dataclass

from .base_agent import BaseAgent
from .llm_client import AnalystError
from .models import AnalysisFramework, FrameworkMetadata, PlannerOutput
from .prompts import (
    ANALYZE_CONTEXT_TEMPLATE,
    GENERATE_METADATA_TEMPLATE,
    PROPOSE_OBJECTIVE_TEMPLATE,
    GENERATE_FRAMEWORK_TEMPLATE,
    CONTEXT_PREVIEW_CHARS,
    METADATA_PREVIEW_CHARS,
    OBJECTIVE_PREVIEW_CHARS,
    FRAMEWORK_PREVIEW_CHARS,
)
from .response_parser import ParseFailure, parse_framework_segments, parse_tags


class FrameworkParseError(AnalystError):
    """Raised when the planner's framework answer cannot be turned into segments."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


@dataclass
class PlannerEvent:
    """
    Progress of generate_planner_output_events.

    field is "context", "tags" or "objective" for partial results, and
    "complete" for the final event, whose value is the PlannerOutput.
    """
    field: str
    value: Any


def build_framework(
    raw_text: str,
    context_understanding: str,
    analysis_objective: str,
    metadata_tags: list[str],
) -> AnalysisFramework:
    """
    Turn the planner's raw framework answer into an AnalysisFramework.

    Raises:
        FrameworkParseError: No JSON object, malformed JSON or no segments array
    """
    parsed = parse_framework_segments(raw_text)
    if isinstance(parsed, ParseFailure):
        raise FrameworkParseError(f"Failed to parse framework response: {parsed.reason}", raw=raw_text)

    return AnalysisFramework(
        metadata=FrameworkMetadata(
            title=f"Analysis: {context_understanding}",
            objective=analysis_objective,
            tags=list(metadata_tags),
        ),
        segments=parsed.value,
    )


class PlannerAgent(BaseAgent):
    role = "planner"
    agent_name = "Planner Agent"
    log_role_id = "planner"

    # =========================================================================
    # Phase 1: context, tags, objective
    # =========================================================================

    def _context_prompt(self, first_chars: str) -> str:
        return ANALYZE_CONTEXT_TEMPLATE.format(first_chars=first_chars[:CONTEXT_PREVIEW_CHARS])

    def _objective_prompt(self, context: str, transcript: str) -> str:
        return PROPOSE_OBJECTIVE_TEMPLATE.format(
            context=context,
            preview=transcript[:OBJECTIVE_PREVIEW_CHARS],
        )

    async def analyze_context(self, first_chars: str) -> str:
        """One sentence on what the transcript is about."""
        result = await self._complete(
            self.system_prompt("analyze_context"), self._context_prompt(first_chars)
        )
        return result.content.strip()

    def analyze_context_stream(self, first_chars: str) -> AsyncIterator[str]:
        return self._stream(self.system_prompt("analyze_context"), self._context_prompt(first_chars))

    async def generate_metadata(self, transcript: str) -> list[str]:
        """Comma-separated tags from the first part of the transcript."""
        prompt = GENERATE_METADATA_TEMPLATE.format(preview=transcript[:METADATA_PREVIEW_CHARS])
        result = await self._complete(self.system_prompt("generate_metadata"), prompt)
        return parse_tags(result.content)

    async def propose_objective(self, context: str, transcript: str) -> str:
        result = await self._complete(
            self.system_prompt("propose_objective"), self._objective_prompt(context, transcript)
        )
        return result.content.strip()

    def propose_objective_stream(self, context: str, transcript: str) -> AsyncIterator[str]:
        return self._stream(
            self.system_prompt("propose_objective"), self._objective_prompt(context, transcript)
        )

    async def generate_planner_output_events(self, transcript: str) -> AsyncIterator[PlannerEvent]:
        """
        Run the three phase-1 calls in order, reporting each result as it
        lands. The last event is ("complete", PlannerOutput).
        """
        context = await self.analyze_context(transcript[:CONTEXT_PREVIEW_CHARS])
        yield PlannerEvent("context", context)

        tags = await self.generate_metadata(transcript)
        yield PlannerEvent("tags", tags)

        objective = await self.propose_objective(context, transcript)
        yield PlannerEvent("objective", objective)

        yield PlannerEvent("complete", PlannerOutput(
            context_understanding=context,
            metadata_tags=tags,
            analysis_objective=objective,
        ))

    async def generate_planner_output(self, transcript: str) -> PlannerOutput:
        output = None
        async for event in self.generate_planner_output_events(transcript):
            if event.field == "complete":
                output = event.value
        return output

    # =========================================================================
    # Phase 2: framework
    # =========================================================================

    def _framework_prompt(
        self,
        transcript: str,
        context_understanding: str,
        analysis_objective: str,
        metadata_tags: list[str],
    ) -> str:
        return GENERATE_FRAMEWORK_TEMPLATE.format(
            context=context_understanding,
            objective=analysis_objective,
            tags=", ".join(metadata_tags),
            preview=transcript[:FRAMEWORK_PREVIEW_CHARS],
        )

    async def generate_framework(
        self,
        transcript: str,
        context_understanding: str,
        analysis_objective: str,
        metadata_tags: list[str],
    ) -> AnalysisFramework:
        """
        Design the analysis framework.

        Raises:
            FrameworkParseError: The answer has no usable segments
        """
        result = await self._complete(
            self.system_prompt("generate_framework"),
            self._framework_prompt(transcript, context_understanding, analysis_objective, metadata_tags),
        )
        try:
            return build_framework(result.content, context_understanding, analysis_objective, metadata_tags)
        except FrameworkParseError as e:
            self.log.log_error(self.agent_name, self.log_role_id, str(e))
            raise

    def generate_framework_stream(
        self,
        transcript: str,
        context_understanding: str,
        analysis_objective: str,
        metadata_tags: list[str],
    ) -> AsyncIterator[str]:
        """Stream the raw framework answer; pass the full text to build_framework."""
        return self._stream(
            self.system_prompt("generate_framework"),
            self._framework_prompt(transcript, context_understanding, analysis_objective, metadata_tags),
        )
