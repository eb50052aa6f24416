"""Click CLI: wires config, transport, registry and orchestrator to a rich console."""

import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.logging import RichHandler

from config.config_loader import AppConfig, load_config
from src.debate import DebateSession, DebateView, Orchestrator
from src.models import DebateOutcome, ReferenceMaterial, ReportPayload, TranscriptEntry
from src.output import (
    console,
    print_entry,
    print_geospatial_summary,
    print_outcome,
    print_report,
    save_geojson,
    save_transcript,
)
from src.reference import load_reference
from src.registry import AgentRegistry
from src.transcript import Transcript
from src.transport.http import HttpAgentTransport

logger = logging.getLogger(__name__)

CHAT_HELP = """Commands:
  <text>                   start a debate on <text>
  <empty line>             continue the debate from the current history
  /ask <agent> [question]  ask one agent directly
  /intervene <instruction> priority instruction to the host
  /reference on|off        toggle the reference material
  /reset                   clear history and open new agent sessions
  /save                    save the transcript
  /quit                    exit"""


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


class ConsoleView(DebateView):
    """Prints notices and reports; exports map layers as GeoJSON."""

    def __init__(self, registry: AgentRegistry, output_dir: Path) -> None:
        self._registry = registry
        self._output_dir = output_dir
        self._last_report: str | None = None
        self.geojson_path: Path | None = None

    def show_entry(self, entry: TranscriptEntry) -> None:
        """Transcript listener. A report already printed as a card is not repeated."""
        if self._last_report is not None and entry.content == self._last_report:
            self._last_report = None
            return
        print_entry(entry)

    def busy(self, key: str | None, active: bool) -> None:
        if key is None or not active:
            return
        agent = self._registry.get(key)
        console.print(f"[dim]... {agent.name if agent else key} is thinking[/dim]")

    def notice(self, text: str) -> None:
        console.print(f"[bold blue]{text}[/bold blue]")

    def report(self, payload: ReportPayload) -> None:
        self._last_report = json.dumps(payload.to_dict(), ensure_ascii=False)
        print_report(payload)

    def draw_geospatial_data(self, payload: ReportPayload) -> None:
        print_geospatial_summary(payload)
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.geojson_path = save_geojson(payload, self._output_dir / f"{stamp}_layers.geojson")
        console.print(f"[dim]Map layers saved to: {self.geojson_path}[/dim]")


def _build_session(
    config: AppConfig,
    output_dir: Path,
    reference: ReferenceMaterial | None,
) -> tuple[DebateSession, Orchestrator, HttpAgentTransport]:
    transport = HttpAgentTransport(config.transport)
    registry = AgentRegistry(
        list(config.agents.values()),
        transport,
        session_name=config.defaults.session_name,
    )
    view = ConsoleView(registry, output_dir)
    session = DebateSession(
        registry=registry,
        transcript=Transcript(on_append=view.show_entry),
        reference=reference,
    )
    orchestrator = Orchestrator(config.prompts, max_rounds=config.defaults.max_rounds, view=view)
    return session, orchestrator, transport


def _parse_chat_line(line: str) -> tuple[str, str]:
    """Split a chat line into (command, argument). Plain text is the 'debate' command."""
    stripped = line.strip()
    if not stripped.startswith("/"):
        return "debate", stripped
    head, _, rest = stripped[1:].partition(" ")
    return head.lower(), rest.strip()


async def _open_sessions(session: DebateSession) -> None:
    outcomes = await session.registry.ensure_sessions()
    ready = sum(o.ok for o in outcomes)
    console.print(f"[bold]Agent sessions:[/bold] {ready}/{len(outcomes)} ready")
    for o in outcomes:
        if not o.ok:
            console.print(f"  [red]FAIL[/red] {o.key}: {o.error.splitlines()[0][:120] if o.error else 'unknown error'}")


async def _run_debate(
    config: AppConfig,
    topic: str,
    output_dir: Path,
    reference: ReferenceMaterial | None,
    skip_sessions: bool,
    instruction: str | None,
) -> DebateOutcome | None:
    session, orchestrator, transport = _build_session(config, output_dir, reference)
    try:
        if not skip_sessions:
            await _open_sessions(session)

        console.print(f"\n[bold cyan]Prospect Council[/bold cyan] | panel: {', '.join(session.registry.panel_keys)}")
        console.print(f"Topic: [italic]{topic[:80]}{'...' if len(topic) > 80 else ''}[/italic]\n")

        outcome = await orchestrator.start_debate(session, topic)
        if outcome is not None:
            print_outcome(outcome)

        if instruction:
            follow = await orchestrator.intervene(session, instruction)
            if follow is not None:
                print_outcome(follow)
                outcome = follow

        saved = save_transcript(session.transcript, output_dir, topic=topic, outcome=outcome)
        console.print(f"\n[dim]Saved to: {saved}[/dim]")
        return outcome
    finally:
        await transport.close()


async def _run_chat(
    config: AppConfig,
    output_dir: Path,
    reference: ReferenceMaterial | None,
    skip_sessions: bool,
) -> None:
    session, orchestrator, transport = _build_session(config, output_dir, reference)
    last_topic = ""
    last_outcome: DebateOutcome | None = None
    try:
        if not skip_sessions:
            await _open_sessions(session)
        console.print(CHAT_HELP)

        while True:
            line = await asyncio.to_thread(click.prompt, "\nyou", default="", show_default=False)
            command, arg = _parse_chat_line(line)

            if command in ("quit", "exit"):
                break
            elif command == "debate":
                if arg:
                    last_topic = arg
                outcome = await orchestrator.start_debate(session, arg)
                if outcome is None:
                    console.print("[yellow]Enter a topic first (or a debate is already running).[/yellow]")
                else:
                    last_outcome = outcome
                    print_outcome(outcome)
            elif command == "ask":
                key, _, question = arg.partition(" ")
                if not key:
                    console.print(f"[yellow]Usage: /ask <agent> [question]. Agents: {', '.join(session.registry.keys)}[/yellow]")
                    continue
                answer = await orchestrator.ask_agent(session, key, question or None)
                if answer is None and session.registry.resolve(key) is None:
                    console.print(f"[yellow]Unknown agent '{key}'. Agents: {', '.join(session.registry.keys)}[/yellow]")
            elif command == "intervene":
                outcome = await orchestrator.intervene(session, arg)
                if outcome is None:
                    console.print("[yellow]Usage: /intervene <instruction>[/yellow]")
                else:
                    last_outcome = outcome
                    print_outcome(outcome)
            elif command == "reference":
                if session.reference is None:
                    console.print("[yellow]No reference material loaded (use --reference).[/yellow]")
                    continue
                session.use_reference = arg.lower() != "off"
                console.print(f"Reference material {'enabled' if session.use_reference else 'disabled'}.")
            elif command == "reset":
                outcomes = await orchestrator.reset(session)
                last_topic, last_outcome = "", None
                console.print(
                    f"[bold]Session reset.[/bold] {sum(o.ok for o in outcomes)}/{len(outcomes)} agent sessions refreshed."
                )
            elif command == "save":
                saved = save_transcript(session.transcript, output_dir, topic=last_topic, outcome=last_outcome)
                console.print(f"[dim]Saved to: {saved}[/dim]")
            else:
                console.print(CHAT_HELP)
    finally:
        await transport.close()


def _load_or_exit(settings: str | None, max_rounds: int | None) -> AppConfig:
    try:
        config = load_config(Path(settings)) if settings else load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)
    if max_rounds is not None:
        config.defaults.max_rounds = max_rounds
    return config


def _load_reference_or_exit(reference_file: str | None) -> ReferenceMaterial | None:
    if not reference_file:
        return None
    try:
        return load_reference(Path(reference_file))
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Reference error:[/bold red] {exc}")
        sys.exit(1)


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(verbose: bool) -> None:
    """Prospect Council -- host-moderated debate between knowledge-base agents."""
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)


@main.command()
@click.argument("topic", required=False)
@click.option("--file", "topic_file", type=click.Path(exists=True), help="Read the topic from a file")
@click.option("--rounds", default=None, type=int, help="Maximum host rounds (default: from config)")
@click.option("--reference", "reference_file", type=click.Path(exists=True),
              help="Reference document appended to every prompt")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--settings", default=None, type=click.Path(exists=True), help="Alternative settings.yaml")
@click.option("--skip-sessions", is_flag=True, default=False, help="Do not open agent sessions up front")
@click.option("--intervene", "instruction", default=None, help="Priority instruction sent to the host afterwards")
def debate(
    topic: str | None,
    topic_file: str | None,
    rounds: int | None,
    reference_file: str | None,
    output_path: str | None,
    settings: str | None,
    skip_sessions: bool,
    instruction: str | None,
) -> None:
    """Run one debate on TOPIC.

    \b
    Examples:
      prospect-council debate "Where is the copper porphyry most likely?"
      prospect-council debate --file topic.md --reference survey.md --rounds 3
    """
    config = _load_or_exit(settings, rounds)

    if topic_file:
        topic_text = Path(topic_file).read_text(encoding="utf-8").strip()
    elif topic:
        topic_text = topic
    else:
        console.print("[bold red]Error:[/bold red] Provide a TOPIC argument or --file.")
        sys.exit(1)

    reference = _load_reference_or_exit(reference_file)
    output_dir = Path(output_path) if output_path else config.defaults.output_dir
    outcome = asyncio.run(
        _run_debate(config, topic_text, output_dir, reference, skip_sessions, instruction)
    )
    if outcome is None:
        sys.exit(1)


@main.command()
@click.option("--rounds", default=None, type=int, help="Maximum host rounds (default: from config)")
@click.option("--reference", "reference_file", type=click.Path(exists=True),
              help="Reference document appended to every prompt")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--settings", default=None, type=click.Path(exists=True), help="Alternative settings.yaml")
@click.option("--skip-sessions", is_flag=True, default=False, help="Do not open agent sessions up front")
def chat(
    rounds: int | None,
    reference_file: str | None,
    output_path: str | None,
    settings: str | None,
    skip_sessions: bool,
) -> None:
    """Interactive session: debates, direct questions and interventions."""
    config = _load_or_exit(settings, rounds)
    reference = _load_reference_or_exit(reference_file)
    output_dir = Path(output_path) if output_path else config.defaults.output_dir
    asyncio.run(_run_chat(config, output_dir, reference, skip_sessions))


if __name__ == "__main__":
    main()
