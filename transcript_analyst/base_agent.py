"""
Base Agent

Shared call pattern for every agent role:

1. resolve the configured model for the role
2. resolve the system prompt (user override, else the default)
3. log the request
4. call the LLM facade, as a completion or a stream
5. log the response with duration and usage
6. on failure log the error and re-raise
"""

import time
import logging
from typing import AsyncIterator, Optional

from .config import AnalystConfig
from .interaction_log import InteractionLog
from .llm_client import CompletionResult
from .llm_service import LLMService
from .prompts import DEFAULT_INSTRUCTIONS

logger = logging.getLogger(__name__)


def error_message(error: BaseException) -> str:
    """Non-empty description of an exception."""
    return str(error) or type(error).__name__


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class BaseAgent:
    """
    Base class for agents.

    Subclasses set:
        role: config role id ("planner", "writer", ...)
        agent_name: display name used in the interaction log
        log_role_id: role id recorded in the interaction log
    """

    role: str = ""
    agent_name: str = ""
    log_role_id: str = ""

    def __init__(self, config: AnalystConfig, llm: LLMService, log: InteractionLog):
        self.config = config
        self.llm = llm
        self.log = log

    def get_model(self) -> str:
        return self.config.get_agent_model(self.role)

    def system_prompt(self, method: str) -> str:
        """User instruction for this method if set, else the default."""
        custom = self.config.get_agent_instruction(self.role, method)
        return custom or DEFAULT_INSTRUCTIONS[self.role][method]

    async def _complete(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        role_id: Optional[str] = None,
    ) -> CompletionResult:
        """One logged completion call."""
        role_id = role_id or self.log_role_id
        model = self.get_model()
        start = time.monotonic()
        log_id = self.log.log_request(self.agent_name, role_id, system_prompt, user_prompt, model)

        try:
            result = await self.llm.generate_completion(system_prompt, user_prompt, model)
        except Exception as e:
            logger.debug("%s call failed: %s", self.agent_name, e)
            self.log.log_error(self.agent_name, role_id, error_message(e))
            raise

        self.log.log_response(log_id, result.content, _elapsed_ms(start), result.usage)
        return result

    async def _stream(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        role_id: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """
        One logged streaming call.

        Re-yields every chunk; the logged response is their exact
        concatenation. Nothing is logged as a response if the consumer
        stops early.
        """
        role_id = role_id or self.log_role_id
        model = self.get_model()
        start = time.monotonic()
        log_id = self.log.log_request(self.agent_name, role_id, system_prompt, user_prompt, model)

        chunks: list[str] = []
        try:
            stream = self.llm.generate_completion_stream(system_prompt, user_prompt, model)
            async for chunk in stream:
                chunks.append(chunk)
                yield chunk
        except Exception as e:
            logger.debug("%s stream failed: %s", self.agent_name, e)
            self.log.log_error(self.agent_name, role_id, error_message(e))
            raise

        self.log.log_response(log_id, "".join(chunks), _elapsed_ms(start), stream.usage)
