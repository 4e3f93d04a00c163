"""
Writer Agent

Writes one analysis per framework segment (or gap), rewrites it from
critic feedback, and produces the summary and keywords used in the final
report.
"""

from datetime import datetime
from typing import AsyncIterator

from .base_agent import BaseAgent
from .llm_client import LLMError
from .models import AnalysisStatus, SegmentAnalysis
from .prompts import (
    ANALYZE_SEGMENT_TEMPLATE,
    REWRITE_SEGMENT_TEMPLATE,
    SUMMARY_TEMPLATE,
    KEYWORDS_TEMPLATE,
    SUMMARY_SYSTEM_PROMPT,
    KEYWORDS_SYSTEM_PROMPT,
)
from .response_parser import Parsed, parse_keywords

SUMMARY_FALLBACK = "Summary generation failed."


class WriterAgent(BaseAgent):
    role = "writer"
    agent_name = "Writer Agent"
    log_role_id = "writer"

    def _segment_prompt(self, title: str, objective: str, guidance: str, transcript: str) -> str:
        return ANALYZE_SEGMENT_TEMPLATE.format(
            title=title,
            objective=objective,
            guidance=guidance,
            transcript=transcript,
        )

    async def analyze_segment(
        self,
        segment_id: str,
        title: str,
        objective: str,
        guidance: str,
        transcript: str,
    ) -> SegmentAnalysis:
        """Write the analysis for one segment. Provider errors propagate."""
        result = await self._complete(
            self.system_prompt("analyze_segment"),
            self._segment_prompt(title, objective, guidance, transcript),
        )
        return SegmentAnalysis(
            segment_id=segment_id,
            content=result.content.strip(),
            status=AnalysisStatus.COMPLETE,
            generated_at=datetime.now(),
        )

    def analyze_segment_stream(
        self,
        segment_id: str,
        title: str,
        objective: str,
        guidance: str,
        transcript: str,
    ) -> AsyncIterator[str]:
        return self._stream(
            self.system_prompt("analyze_segment"),
            self._segment_prompt(title, objective, guidance, transcript),
        )

    async def rewrite_segment(
        self,
        original_content: str,
        critic_feedback: str,
        objective: str,
        transcript: str,
    ) -> str:
        """Return replacement content that addresses the critic's feedback."""
        prompt = REWRITE_SEGMENT_TEMPLATE.format(
            original=original_content,
            feedback=critic_feedback,
            objective=objective,
            transcript=transcript,
        )
        result = await self._complete(self.system_prompt("rewrite_segment"), prompt)
        return result.content.strip()

    async def generate_summary(self, content: str) -> str:
        """One-sentence summary, or SUMMARY_FALLBACK if the call fails."""
        try:
            result = await self._complete(SUMMARY_SYSTEM_PROMPT, SUMMARY_TEMPLATE.format(content=content))
        except LLMError:
            return SUMMARY_FALLBACK
        return result.content.strip()

    async def generate_keywords(self, content: str) -> list[str]:
        """Ten keywords as a list, or [] if the call or the parse fails."""
        try:
            result = await self._complete(KEYWORDS_SYSTEM_PROMPT, KEYWORDS_TEMPLATE.format(content=content))
        except LLMError:
            return []

        parsed = parse_keywords(result.content)
        if isinstance(parsed, Parsed):
            return parsed.value
        return []
