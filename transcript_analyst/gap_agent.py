"""
Gap Analysis Agent

Finds themes of the transcript that the framework's analyses missed.

Two flows share one system instruction:
- identify_gaps + parse_gap_suggestions: a list of GapSuggestion the user
  can pick from, each later analyzed like a regular segment
- analyze_gaps + parse_gap_analysis: a single markdown report with a
  trailing block of new segments
"""

import logging
from typing import AsyncIterator

from .base_agent import BaseAgent
from .models import AnalysisFramework, GapAnalysis, GapSuggestion, SegmentAnalysis
from .prompts import (
    ANALYZE_GAPS_TEMPLATE,
    IDENTIFY_GAPS_TEMPLATE,
    format_analysis_samples,
    format_topics,
)
from . import response_parser
from .response_parser import ParseFailure

logger = logging.getLogger(__name__)


class GapAnalysisAgent(BaseAgent):
    role = "gap_analysis"
    agent_name = "Gap Analysis Agent"
    log_role_id = "gap-analysis"

    def _build_prompt(
        self,
        template: str,
        transcript: str,
        framework: AnalysisFramework,
        analyses: list[SegmentAnalysis],
    ) -> str:
        return template.format(
            transcript=transcript,
            topics=format_topics(framework),
            samples=format_analysis_samples(framework, analyses),
        )

    def identify_gaps(
        self,
        transcript: str,
        framework: AnalysisFramework,
        analyses: list[SegmentAnalysis],
    ) -> AsyncIterator[str]:
        """Stream gap suggestions as a fenced JSON array."""
        return self._stream(
            self.system_prompt("analyze_gaps"),
            self._build_prompt(IDENTIFY_GAPS_TEMPLATE, transcript, framework, analyses),
            role_id="identify-gaps",
        )

    def analyze_gaps(
        self,
        transcript: str,
        framework: AnalysisFramework,
        analyses: list[SegmentAnalysis],
    ) -> AsyncIterator[str]:
        """Stream the single-pass gap report."""
        return self._stream(
            self.system_prompt("analyze_gaps"),
            self._build_prompt(ANALYZE_GAPS_TEMPLATE, transcript, framework, analyses),
        )

    def parse_gap_suggestions(self, text: str) -> list[GapSuggestion]:
        """Suggestions from identify_gaps output; [] with a warning if unusable."""
        parsed = response_parser.parse_gap_suggestions(text)
        if isinstance(parsed, ParseFailure):
            logger.warning("Could not parse gap suggestions: %s", parsed.reason)
            return []
        return parsed.value

    def parse_gap_analysis(self, text: str) -> GapAnalysis:
        return response_parser.parse_gap_analysis(text)
