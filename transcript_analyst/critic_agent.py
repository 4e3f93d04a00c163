"""
Critic Agent

Checks a written analysis against the transcript (every statement must be
supported) and scores how well it meets its objective.
"""

from typing import AsyncIterator

from .base_agent import BaseAgent
from .models import CriticEvaluation
from .prompts import EVALUATE_SEGMENT_TEMPLATE, EVALUATE_SEGMENT_STREAM_TEMPLATE
from .response_parser import parse_critic_evaluation


class CriticAgent(BaseAgent):
    role = "critic"
    agent_name = "Critic Agent"
    log_role_id = "critic"

    async def evaluate_segment(
        self,
        segment_id: str,
        content: str,
        objective: str,
        transcript: str,
    ) -> CriticEvaluation:
        """Structured evaluation: PASS/FAIL with issues, score, guidance."""
        prompt = EVALUATE_SEGMENT_TEMPLATE.format(
            objective=objective,
            content=content,
            transcript=transcript,
        )
        result = await self._complete(self.system_prompt("evaluate_segment"), prompt)
        return parse_critic_evaluation(segment_id, result.content)

    def evaluate_segment_stream(
        self,
        segment_id: str,
        content: str,
        objective: str,
        transcript: str,
    ) -> AsyncIterator[str]:
        """Free-form markdown review against a three-point rubric."""
        prompt = EVALUATE_SEGMENT_STREAM_TEMPLATE.format(
            objective=objective,
            content=content,
            transcript=transcript,
        )
        return self._stream(self.system_prompt("evaluate_segment"), prompt)
