"""
Transcript Analyst

A multi-agent core for analyzing conversation transcripts. A Planner
designs an analysis framework, Writers analyze each segment in parallel,
a Critic checks their work, and a Gap Analysis agent looks for what the
framework missed.

Phases:
1. Upload & Align
2. Processing & Validation
3. Insight Extraction
4. Gap Analysis
5. Consolidation

Providers:
- LiteLLM gateway (OpenAI-compatible, streamed over SSE)
- Google Gemini via google-genai
"""

__version__ = "0.1.0"

# LLM access
from .llm_client import (
    LLMClient,
    Message,
    TokenUsage,
    CompletionResult,
    CompletionStream,
    AnalystError,
    LLMError,
    LLMHTTPError,
    LLMTransportError,
    LLMNotInitializedError,
)
from .gateway_client import GatewayClient
from .gemini_client import GeminiClient
from .llm_service import LLMService
from .config import AnalystConfig, AgentSettings, PROVIDER_CONFIGS, AGENT_ROLES

# Domain
from .models import (
    AnalysisStatus,
    PlannerOutput,
    FrameworkSegment,
    FrameworkMetadata,
    AnalysisFramework,
    SegmentAnalysis,
    CriticEvaluation,
    GapSuggestion,
    GapAnalysis,
)
from .interaction_log import InteractionLog, AgentLogEntry, LogAction

# Agents
from .planner_agent import PlannerAgent, PlannerEvent, FrameworkParseError
from .writer_agent import WriterAgent
from .critic_agent import CriticAgent
from .gap_agent import GapAnalysisAgent

# Orchestration
from .orchestrator import AgentOrchestrator, AgentTask, AgentTaskSpec, AgentStatus
from .phase_state import PhaseStateMachine, Phase, PhaseTransitionError, UnknownSegmentError
from .pipeline import AnalysisPipeline, GapIdentification
from .consolidation import render_report

__all__ = [
    # LLM access
    "LLMClient",
    "GatewayClient",
    "GeminiClient",
    "LLMService",
    "Message",
    "TokenUsage",
    "CompletionResult",
    "CompletionStream",

    # Errors
    "AnalystError",
    "LLMError",
    "LLMHTTPError",
    "LLMTransportError",
    "LLMNotInitializedError",
    "FrameworkParseError",
    "PhaseTransitionError",
    "UnknownSegmentError",

    # Config
    "AnalystConfig",
    "AgentSettings",
    "PROVIDER_CONFIGS",
    "AGENT_ROLES",

    # Domain
    "AnalysisStatus",
    "PlannerOutput",
    "FrameworkSegment",
    "FrameworkMetadata",
    "AnalysisFramework",
    "SegmentAnalysis",
    "CriticEvaluation",
    "GapSuggestion",
    "GapAnalysis",

    # Interaction log
    "InteractionLog",
    "AgentLogEntry",
    "LogAction",

    # Agents
    "PlannerAgent",
    "PlannerEvent",
    "WriterAgent",
    "CriticAgent",
    "GapAnalysisAgent",

    # Orchestration
    "AgentOrchestrator",
    "AgentTask",
    "AgentTaskSpec",
    "AgentStatus",
    "PhaseStateMachine",
    "Phase",
    "AnalysisPipeline",
    "GapIdentification",
    "render_report",
]
