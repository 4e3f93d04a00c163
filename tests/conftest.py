"""Shared fixtures: a scriptable LLM facade and a fresh config/log per test."""

import re
from typing import Callable, Optional, Union

import pytest

from transcript_analyst.config import AnalystConfig
from transcript_analyst.interaction_log import InteractionLog
from transcript_analyst.llm_client import CompletionResult, CompletionStream, TokenUsage

FAKE_USAGE = TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15)

Reply = Union[str, BaseException]
Handler = Callable[[Optional[str], str], Reply]


class FakeLLM:
    """
    Stands in for LLMService.

    Answers come from a handler(system_prompt, user_prompt), or from a
    queue of replies when no handler is set. A reply that is an exception
    is raised instead. Streams are cut into chunks of chunk_size.
    """

    def __init__(self, replies: Optional[list[Reply]] = None, handler: Optional[Handler] = None, chunk_size: int = 7):
        self.replies = list(replies or [])
        self.handler = handler
        self.chunk_size = chunk_size
        self.calls: list[tuple[Optional[str], str, Optional[str]]] = []

    def _reply(self, system_prompt, user_prompt, model) -> str:
        self.calls.append((system_prompt, user_prompt, model))
        reply = self.handler(system_prompt, user_prompt) if self.handler else self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    async def generate_completion(self, system_prompt, user_prompt, model=None):
        content = self._reply(system_prompt, user_prompt, model)
        return CompletionResult(content=content, usage=FAKE_USAGE, model=model)

    def generate_completion_stream(self, system_prompt, user_prompt, model=None):
        async def events():
            content = self._reply(system_prompt, user_prompt, model)
            for start in range(0, len(content), self.chunk_size):
                yield content[start:start + self.chunk_size]
            yield FAKE_USAGE

        return CompletionStream(events())

    async def close(self):
        pass


def segment_title(user_prompt: str) -> str:
    """Title line of a writer prompt."""
    match = re.search(r'^Segment Title: (.+)$', user_prompt, re.MULTILINE)
    return match.group(1) if match else ""


@pytest.fixture
def config():
    return AnalystConfig()


@pytest.fixture
def log():
    return InteractionLog()


@pytest.fixture
def fake_llm():
    return FakeLLM()
