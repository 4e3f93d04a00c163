"""
Transcript Analyst CLI

Terminal front end for the five-phase transcript analysis.
Uses Rich for terminal output.

Phases:
1. Upload & Align: context, tags and objective from the Planner
2. Processing & Validation: the analysis framework
3. Insight Extraction: parallel Writers, optional Critic and rewrites
4. Gap Analysis: uncovered themes, analyzed like extra segments
5. Consolidation: the final markdown report

Each phase boundary is a checkpoint the user confirms (skipped with --yes).
"""

import asyncio
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt, Confirm
from rich.rule import Rule
from rich.table import Table
from rich.theme import Theme

from .config import AnalystConfig, PROVIDER_CONFIGS
from .llm_client import LLMError
from .orchestrator import AgentStatus, AgentTask
from .phase_state import Phase, PHASE_TITLES, PhaseTransitionError
from .pipeline import AnalysisPipeline
from .planner_agent import FrameworkParseError

logger = logging.getLogger(__name__)


# Custom theme for the CLI
ANALYST_THEME = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "red bold",
    "success": "green bold",
    "heading": "magenta bold",
    "muted": "dim white",
})

console = Console(theme=ANALYST_THEME)

STATUS_STYLES = {
    AgentStatus.IDLE: "muted",
    AgentStatus.RUNNING: "info",
    AgentStatus.COMPLETED: "success",
    AgentStatus.FAILED: "error",
}


def setup_logging(debug: bool = False):
    """Route module loggers through Rich."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=debug)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)


def print_banner():
    """Print the welcome banner."""
    banner = """
+-----------------------------------------------------------+
|                                                           |
|     TRANSCRIPT ANALYST                                    |
|     Planner / Writer / Critic / Gap Analysis              |
|                                                           |
+-----------------------------------------------------------+
"""
    console.print(banner, style="cyan")


def render_tasks(tasks: list[AgentTask]) -> Table:
    """Orchestrator snapshot as a table."""
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Agent")
    table.add_column("Status")
    table.add_column("Notes")

    for task in tasks:
        style = STATUS_STYLES[task.status]
        notes = task.error[:60] if task.error else "-"
        table.add_row(task.name, f"[{style}]{task.status.value}[/{style}]", notes)
    return table


class TranscriptAnalystCLI:
    """
    Interactive CLI driving one AnalysisPipeline.
    """

    def __init__(
        self,
        transcript: str,
        config: AnalystConfig,
        output_path: Path,
        log_file: Optional[Path] = None,
        assume_yes: bool = False,
    ):
        self.transcript = transcript
        self.config = config
        self.output_path = output_path
        self.log_file = log_file
        self.assume_yes = assume_yes

        self.pipeline = AnalysisPipeline(config)

    @property
    def machine(self):
        return self.pipeline.state

    def checkpoint(self, question: str, default: bool = True) -> bool:
        """Ask the user to confirm a step, unless running with --yes."""
        if self.assume_yes:
            return default
        console.print()
        return Confirm.ask(f"[bold]{question}[/]", default=default)

    def phase_heading(self, phase: Phase):
        console.print()
        console.print(Rule(f"Phase {phase.position + 1}: {PHASE_TITLES[phase]}", style="magenta"))
        console.print()

    def advance(self, target: Optional[Phase] = None):
        """Move forward one phase, or to target. Raises PhaseTransitionError when gated."""
        if target is None:
            self.machine.proceed_to_next_phase()
        else:
            self.machine.navigate_to_phase(target)

    # =========================================================================
    # Credentials
    # =========================================================================

    async def ensure_api_key(self) -> bool:
        """Initialize the provider from config, or ask for a key."""
        llm = self.pipeline.llm
        provider = self.config.get_provider()

        if llm.hydrate_from_settings():
            return True

        if self.assume_yes:
            console.print(f"[error]No API key for {provider}. Pass --api-key or set it in the environment.[/]")
            return False

        label = PROVIDER_CONFIGS[provider].api_key_label
        api_key = Prompt.ask(f"[bold cyan]{label}[/]", password=True)
        if not api_key:
            return False

        with console.status("[info]Validating API key...[/]"):
            valid = await llm.validate_api_key(provider, api_key)
        if not valid:
            console.print("[error]The provider rejected this API key.[/]")
            return False

        llm.initialize(api_key, provider)
        if self.config.path is not None and Confirm.ask("Save this key to the config file?", default=False):
            self.config.save_api_key(provider, api_key)
        return True

    # =========================================================================
    # Phases
    # =========================================================================

    async def phase_upload_align(self):
        self.phase_heading(Phase.UPLOAD_ALIGN)

        labels = {"context": "Context", "tags": "Tags", "objective": "Objective"}
        with console.status("[info]Planner is reading the transcript...[/]"):
            async for event in self.pipeline.run_planner(self.transcript):
                if event.field in labels:
                    value = ", ".join(event.value) if isinstance(event.value, list) else event.value
                    console.print(f"[info]{labels[event.field]}:[/] {value}")

        if not self.assume_yes:
            output = self.machine.state.planner_output
            objective = Prompt.ask("[bold cyan]Analysis objective[/]", default=output.analysis_objective)
            if objective != output.analysis_objective:
                self.machine.update_planner_output(analysis_objective=objective)

    async def phase_processing_validation(self):
        self.phase_heading(Phase.PROCESSING_VALIDATION)

        console.print("[muted]Planner is designing the framework...[/]")
        framework = await self.pipeline.generate_framework(
            on_chunk=lambda chunk: console.print(chunk, end="", style="muted", markup=False, highlight=False)
        )
        console.print()

        table = Table(title=framework.metadata.title, show_header=True, header_style="bold magenta")
        table.add_column("#")
        table.add_column("Segment")
        table.add_column("Objective")
        for segment in framework.ordered_segments():
            table.add_row(str(segment.order + 1), segment.title, segment.objective)
        console.print(table)

    async def phase_insight_extraction(self):
        self.phase_heading(Phase.INSIGHT_EXTRACTION)

        with Live(render_tasks([]), console=console, refresh_per_second=8) as live:
            unsubscribe = self.pipeline.orchestrator.subscribe(lambda tasks: live.update(render_tasks(tasks)))
            try:
                results = await self.pipeline.launch_analysis_team()
            finally:
                unsubscribe()

        framework = self.machine.state.framework
        console.print(f"[success]{len(results)}/{len(framework.segments)} segments written[/]")

        if not results or not self.checkpoint("Run the Critic on every segment?", default=False):
            return

        self.pipeline.orchestrator.clear()
        with Live(render_tasks([]), console=console, refresh_per_second=8) as live:
            unsubscribe = self.pipeline.orchestrator.subscribe(lambda tasks: live.update(render_tasks(tasks)))
            try:
                evaluations = await self.pipeline.evaluate_segments()
            finally:
                unsubscribe()

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Segment")
        table.add_column("Source Alignment")
        table.add_column("Score")
        for segment_id, evaluation in evaluations.items():
            segment = framework.get_segment(segment_id)
            verdict = "[success]PASS[/]" if evaluation.source_alignment else "[error]FAIL[/]"
            table.add_row(segment.title if segment else segment_id, verdict, f"{evaluation.objective_fulfillment_score}%")
        console.print(table)

        for segment_id, evaluation in evaluations.items():
            if evaluation.source_alignment:
                continue
            segment = framework.get_segment(segment_id)
            title = segment.title if segment else segment_id
            for issue in evaluation.source_alignment_issues or []:
                console.print(f"  [warning]- {issue}[/]")
            if self.checkpoint(f"Rewrite '{title}' from the Critic's feedback?"):
                with console.status(f"[info]Rewriting {title}...[/]"):
                    await self.pipeline.rewrite_segment(segment_id)
                console.print(f"[success]Rewrote {title}[/]")

    async def phase_gap_analysis(self):
        self.phase_heading(Phase.GAP_ANALYSIS)

        with console.status("[info]Looking for uncovered themes...[/]"):
            identification = await self.pipeline.identify_gaps()

        if identification.no_gaps_identified:
            console.print("[muted]No gaps identified.[/]")
        for index, suggestion in enumerate(identification.suggestions, 1):
            console.print(f"  [bold yellow]{index}.[/] [bold]{suggestion.title}[/] [muted]{suggestion.rationale}[/]")

        selected = [s.id for s in identification.suggestions]
        if not self.assume_yes and identification.suggestions:
            answer = Prompt.ask("[bold cyan]Gaps to analyze (comma-separated numbers, blank for none)[/]", default="all")
            if answer.strip().lower() != "all":
                picks = {int(p) for p in answer.split(",") if p.strip().isdigit()}
                selected = [s.id for i, s in enumerate(identification.suggestions, 1) if i in picks]

        if not self.assume_yes and Confirm.ask("Add a gap of your own?", default=False):
            title = Prompt.ask("Title")
            objective = Prompt.ask("Objective")
            try:
                selected.append(self.pipeline.add_custom_gap(title, objective).id)
            except ValueError as e:
                console.print(f"[warning]{e}[/]")

        if not selected:
            return

        self.pipeline.orchestrator.clear()
        with Live(render_tasks([]), console=console, refresh_per_second=8) as live:
            unsubscribe = self.pipeline.orchestrator.subscribe(lambda tasks: live.update(render_tasks(tasks)))
            try:
                results = await self.pipeline.analyze_gaps(selected)
            finally:
                unsubscribe()

        for gap_id in results:
            suggestion = self.machine.state.gap_analysis.get_suggestion(gap_id)
            if self.checkpoint(f"Add '{suggestion.title}' to the main analysis?"):
                self.pipeline.add_gap_to_main_analysis(gap_id)

    async def phase_consolidation(self):
        self.phase_heading(Phase.CONSOLIDATION)

        with console.status("[info]Writing summaries and keywords...[/]"):
            report = await self.pipeline.consolidate()

        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self.output_path.write_text(report, encoding="utf-8")

        console.print(Panel(Markdown(report), border_style="green", padding=(1, 2)))
        console.print(f"[success]Report written to {self.output_path}[/]")

    # =========================================================================
    # Main loop
    # =========================================================================

    async def run(self) -> int:
        print_banner()
        console.print(f"[info]Provider:[/] {PROVIDER_CONFIGS[self.config.get_provider()].label}")
        console.print(f"[info]Transcript:[/] {len(self.transcript)} characters")

        try:
            if not await self.ensure_api_key():
                return 1

            await self.phase_upload_align()
            if not self.checkpoint("Proceed to the framework?"):
                return 0
            self.advance()

            await self.phase_processing_validation()
            if not self.checkpoint("Proceed to insight extraction?"):
                return 0
            self.advance()

            await self.phase_insight_extraction()
            if not self.machine.can_proceed_to_phase(Phase.GAP_ANALYSIS):
                console.print("[error]No segment was analyzed successfully.[/]")
                return 1

            if self.checkpoint("Run gap analysis?"):
                self.advance(Phase.GAP_ANALYSIS)
                await self.phase_gap_analysis()
                self.advance()
            else:
                self.machine.skip_to_consolidation()

            await self.phase_consolidation()
            return 0

        except (LLMError, FrameworkParseError, PhaseTransitionError) as e:
            console.print(f"[error]Error: {e}[/]")
            return 1
        finally:
            self.write_log_file()
            await self.pipeline.close()

    def write_log_file(self):
        if self.log_file is None:
            return
        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_file, "w") as f:
            json.dump(self.pipeline.log.to_dicts(), f, indent=2)
        console.print(f"[muted]Interaction log written to {self.log_file}[/]")


def main():
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Transcript Analyst - multi-agent transcript analysis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  transcript-analyst interview.txt                      # Interactive run
  transcript-analyst interview.txt --yes -o report.md   # No checkpoints
  transcript-analyst call.txt --provider google         # Direct Gemini API
  transcript-analyst call.txt --model azure/gpt-4o      # Same model for every agent
  transcript-analyst call.txt --log-file log.json       # Dump agent interactions
        """
    )

    parser.add_argument(
        "transcript",
        type=str,
        help="Path to a plain-text transcript"
    )

    parser.add_argument(
        "--provider",
        choices=sorted(PROVIDER_CONFIGS),
        help="LLM provider (default: from config, else litellm)"
    )

    parser.add_argument(
        "--api-key", "-k",
        type=str,
        help="API key for the provider (or set LITELLM_API_KEY / GOOGLE_API_KEY)"
    )

    parser.add_argument(
        "--model", "-m",
        type=str,
        help="Model for every agent (default: per-agent models from config)"
    )

    parser.add_argument(
        "--output", "-o",
        type=str,
        default="analysis.md",
        help="Where to write the report (default: analysis.md)"
    )

    parser.add_argument(
        "--log-file",
        type=str,
        help="Write the agent interaction log as JSON"
    )

    parser.add_argument(
        "--yes", "-y",
        action="store_true",
        help="Accept every checkpoint without asking"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Verbose logging"
    )

    args = parser.parse_args()

    config = AnalystConfig.load()
    config.apply_overrides(provider=args.provider, model=args.model, api_key=args.api_key)
    setup_logging(args.debug or config.debug_logging)

    transcript_path = Path(args.transcript).resolve()
    if not transcript_path.is_file():
        console.print(f"[error]Error: Transcript not found: {transcript_path}[/]")
        sys.exit(1)

    transcript = transcript_path.read_text(encoding="utf-8").strip()
    if not transcript:
        console.print(f"[error]Error: Transcript is empty: {transcript_path}[/]")
        sys.exit(1)

    cli = TranscriptAnalystCLI(
        transcript=transcript,
        config=config,
        output_path=Path(args.output).resolve(),
        log_file=Path(args.log_file).resolve() if args.log_file else None,
        assume_yes=args.yes,
    )

    try:
        sys.exit(asyncio.run(cli.run()))
    except KeyboardInterrupt:
        console.print("\n[warning]Interrupted[/]")
        sys.exit(130)


if __name__ == "__main__":
    main()
