"""
Consolidation

Phase 5: turns the final analysis state into one markdown report.

render_report() is pure; consolidate() gathers the per-segment summaries
and the keywords from the writer first.
"""

import logging
from typing import Optional

from .models import AnalysisFramework, SegmentAnalysis
from .writer_agent import WriterAgent

logger = logging.getLogger(__name__)

TITLE_PREFIX = "Analysis: "
SEPARATOR = "---"


def report_title(framework: AnalysisFramework) -> str:
    return framework.metadata.title.replace(TITLE_PREFIX, "", 1)


def render_report(
    framework: AnalysisFramework,
    analyses: dict[str, SegmentAnalysis],
    summaries: Optional[dict[str, str]] = None,
    keywords: Optional[list[str]] = None,
) -> str:
    """
    Build the report markdown.

    Only completed analyses are included, in framework order. Summaries
    are keyed by segment id.
    """
    summaries = summaries or {}
    metadata = framework.metadata
    segments = framework.ordered_segments()

    lines = [
        f"# Transcript: {report_title(framework)}",
        "",
        f"**Created:** {metadata.created.strftime('%Y-%m-%d %H:%M')}",
        "",
        "## Analysis Summaries",
        "",
    ]

    for segment in segments:
        summary = summaries.get(segment.id)
        if summary:
            lines += [f"**{segment.title}:** {summary}", ""]

    lines += ["**Tags:** " + ", ".join(f"`{tag}`" for tag in metadata.tags), ""]

    if keywords:
        lines += [f"**Keywords:** {', '.join(keywords)}", ""]

    lines += [SEPARATOR, ""]

    for segment in segments:
        analysis = analyses.get(segment.id)
        if analysis is None or not analysis.is_complete:
            continue
        lines += [
            f"## {segment.title}",
            "",
            f"**Objective:** {segment.objective}",
            "",
            analysis.content,
            "",
            SEPARATOR,
            "",
        ]

    return "\n".join(lines)


async def consolidate(
    framework: AnalysisFramework,
    analyses: dict[str, SegmentAnalysis],
    writer: WriterAgent,
) -> str:
    """Summarize each completed segment, extract keywords, render the report."""
    summaries: dict[str, str] = {}
    completed = []
    for segment in framework.ordered_segments():
        analysis = analyses.get(segment.id)
        if analysis is not None and analysis.is_complete:
            completed.append(analysis.content)
            summaries[segment.id] = await writer.generate_summary(analysis.content)

    keywords = await writer.generate_keywords("\n\n".join(completed))
    logger.info("Consolidated %d segments", len(completed))

    return render_report(framework, analyses, summaries, keywords)
