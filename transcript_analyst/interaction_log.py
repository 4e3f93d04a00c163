"""
Interaction Log

Append-only record of every agent call: the request (prompts and model),
then either a response (text, duration, token usage) or an error.
Observers subscribe to be told whenever the log changes.

Usage:
    log = InteractionLog()
    unsubscribe = log.subscribe(lambda entries: print(len(entries)))

    log_id = log.log_request("Planner Agent", "planner", system, user, model)
    log.log_response(log_id, "...", duration_ms=812, tokens=usage)

    unsubscribe()
"""

import uuid
from datetime import datetime
from typing import Callable, Optional
from dataclasses import dataclass, field, asdict
from enum import Enum

from .llm_client import TokenUsage


class LogAction(str, Enum):
    REQUEST = "request"
    RESPONSE = "response"
    ERROR = "error"


@dataclass(frozen=True)
class PromptRecord:
    system: Optional[str]
    user: str


@dataclass(frozen=True)
class AgentLogEntry:
    """One immutable log record."""
    id: str
    agent_name: str
    role_id: str
    action: LogAction
    timestamp: datetime = field(default_factory=datetime.now)
    prompt: Optional[PromptRecord] = None
    response: Optional[str] = None
    error: Optional[str] = None
    model: Optional[str] = None
    tokens: Optional[TokenUsage] = None
    duration_ms: Optional[int] = None
    request_id: Optional[str] = None  # set on response entries

    def to_dict(self) -> dict:
        data = asdict(self)
        data["action"] = self.action.value
        data["timestamp"] = self.timestamp.isoformat()
        data["tokens"] = self.tokens.to_dict() if self.tokens else None
        return data


Subscriber = Callable[[tuple[AgentLogEntry, ...]], None]


def _new_id() -> str:
    return f"log-{uuid.uuid4().hex[:12]}"


class InteractionLog:
    """
    The product-level log of agent calls.

    Each request has at most one response. Subscribers are called
    synchronously in subscription order, after every append and after
    clear, with a snapshot of the whole log.
    """

    def __init__(self):
        self._entries: list[AgentLogEntry] = []
        self._requests: dict[str, AgentLogEntry] = {}
        self._answered: set[str] = set()
        self._subscribers: list[Subscriber] = []

    def _append(self, entry: AgentLogEntry):
        self._entries.append(entry)
        self._notify()

    def _notify(self):
        snapshot = tuple(self._entries)
        for callback in list(self._subscribers):
            callback(snapshot)

    def log_request(
        self,
        agent_name: str,
        role_id: str,
        system_prompt: Optional[str],
        user_prompt: str,
        model: Optional[str] = None,
    ) -> str:
        """Record the start of a call. Returns the request id."""
        entry = AgentLogEntry(
            id=_new_id(),
            agent_name=agent_name,
            role_id=role_id,
            action=LogAction.REQUEST,
            prompt=PromptRecord(system=system_prompt, user=user_prompt),
            model=model,
        )
        self._requests[entry.id] = entry
        self._append(entry)
        return entry.id

    def log_response(
        self,
        log_id: str,
        content: str,
        duration_ms: int,
        tokens: Optional[TokenUsage] = None,
    ):
        """
        Record the answer to a request.

        Raises:
            ValueError: log_id is not a request, or it already has a response
        """
        request = self._requests.get(log_id)
        if request is None:
            raise ValueError(f"Unknown request id: {log_id}")
        if log_id in self._answered:
            raise ValueError(f"Request {log_id} already has a response")

        self._answered.add(log_id)
        self._append(AgentLogEntry(
            id=_new_id(),
            agent_name=request.agent_name,
            role_id=request.role_id,
            action=LogAction.RESPONSE,
            response=content,
            model=request.model,
            tokens=tokens,
            duration_ms=duration_ms,
            request_id=log_id,
        ))

    def log_error(self, agent_name: str, role_id: str, message: str):
        self._append(AgentLogEntry(
            id=_new_id(),
            agent_name=agent_name,
            role_id=role_id,
            action=LogAction.ERROR,
            error=message,
        ))

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register an observer. Returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def clear_logs(self):
        self._entries.clear()
        self._requests.clear()
        self._answered.clear()
        self._notify()

    def get_logs(self) -> tuple[AgentLogEntry, ...]:
        return tuple(self._entries)

    def to_dicts(self) -> list[dict]:
        return [entry.to_dict() for entry in self._entries]
