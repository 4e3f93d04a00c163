"""
Agent Orchestrator

Runs a batch of independent agent calls concurrently. A failing task is
marked failed and left out of the results; its siblings are unaffected.

Usage:
    orchestrator = AgentOrchestrator()
    orchestrator.subscribe(lambda tasks: render(tasks))

    results = await orchestrator.run_parallel_agents([
        AgentTaskSpec("segment-1", "Writer: Pricing", lambda: write("segment-1")),
        AgentTaskSpec("segment-2", "Writer: Risks", lambda: write("segment-2")),
    ])
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable, Optional

from .base_agent import error_message

logger = logging.getLogger(__name__)


class AgentStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class AgentTask:
    """Observable state of one task in a batch."""
    id: str
    name: str
    status: AgentStatus = AgentStatus.IDLE
    progress: int = 0
    output: Optional[str] = None
    error: Optional[str] = None


@dataclass
class AgentTaskSpec:
    """A task to run: id, display name and the coroutine factory doing the work."""
    id: str
    name: str
    work: Callable[[], Awaitable[str]]


Listener = Callable[[list[AgentTask]], None]


class AgentOrchestrator:
    """
    Parallel execution with per-task failure isolation.

    Listeners receive a snapshot (copies) of every task after each state
    change. All state changes happen on the event loop thread between
    awaits, so no locking is needed.
    """

    def __init__(self):
        self._tasks: dict[str, AgentTask] = {}
        self._listeners: list[Listener] = []

    def register_agent(self, task: AgentTask):
        self._tasks[task.id] = task
        self._notify()

    def update_agent(self, task_id: str, **updates):
        """Apply field updates to a registered task. Unknown ids are ignored."""
        task = self._tasks.get(task_id)
        if task is None:
            return
        for key, value in updates.items():
            setattr(task, key, value)
        self._notify()

    async def _run_one(self, spec: AgentTaskSpec) -> str:
        self.update_agent(spec.id, status=AgentStatus.RUNNING, progress=0)
        try:
            output = await spec.work()
        except Exception as e:
            self.update_agent(spec.id, status=AgentStatus.FAILED, error=error_message(e))
            raise

        self.update_agent(spec.id, status=AgentStatus.COMPLETED, progress=100, output=output)
        return output

    async def run_parallel_agents(self, specs: list[AgentTaskSpec]) -> dict[str, str]:
        """
        Run every task concurrently.

        Returns:
            Output per task id, for the tasks that completed

        Raises:
            ValueError: Two tasks in the batch share an id
        """
        ids = [spec.id for spec in specs]
        if len(ids) != len(set(ids)):
            raise ValueError("Task ids in a batch must be unique")

        for spec in specs:
            self.register_agent(AgentTask(id=spec.id, name=spec.name))

        outcomes = await asyncio.gather(
            *(self._run_one(spec) for spec in specs),
            return_exceptions=True,
        )

        results: dict[str, str] = {}
        for spec, outcome in zip(specs, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Agent %s failed: %s", spec.id, error_message(outcome))
            else:
                results[spec.id] = outcome
        return results

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get_agents(self) -> list[AgentTask]:
        return [replace(task) for task in self._tasks.values()]

    def clear(self):
        self._tasks.clear()
        self._notify()

    def _notify(self):
        snapshot = self.get_agents()
        for listener in list(self._listeners):
            listener(snapshot)
