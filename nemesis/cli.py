"""
Nemesis CLI - adaptive study war room in the terminal.

Usage:
    nemesis start "Algorithms, Operating Systems"        # Map topics and open the war room
    nemesis start "Databases" --name Ada --file notes.md  # With a label and study notes
    nemesis curve --vulnerability 8                        # Forgetting-curve projection

Inside the war room, free text goes to the orchestrator, which picks a mode.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from nemesis.agents.dispatcher import DispatchStatus, OrchestratorDispatcher
from nemesis.agents.mapping import TopicMapper
from nemesis.agents.provider import DecisionProvider
from nemesis.config import Settings, configure_logging, get_settings
from nemesis.core.models import SCALE_MAX, SCALE_MIN, ChatRole, Topic, round_half_up
from nemesis.core.retention import decay_curve, hours_until, retention, retention_band
from nemesis.core.session_store import Init, SessionStore
from nemesis.core.urgency import urgency
from nemesis.documents import UnsupportedDocument, load_documents
from nemesis.integrations.mistral_client import MistralProvider
from nemesis.modes.battle import BattleController, BattlePhase
from nemesis.modes.dialogue import DialogueController
from nemesis.modes.exam import ExamController, ExamPhase

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="nemesis",
    help="Nemesis - adaptive study war room",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()

BAND_STYLES = {"critical": "red", "fading": "yellow", "fresh": "green"}


# =============================================================================
# Rendering
# =============================================================================


def _retention_cell(topic: Topic) -> str:
    value = retention(topic)
    return f"[{BAND_STYLES[retention_band(value)]}]{value}%[/]"


def render_topics(store: SessionStore) -> Table:
    table = Table(title="Urgency ranking", show_lines=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Topic", style="bold")
    table.add_column("Category", style="dim")
    table.add_column("Vuln", justify="right")
    table.add_column("Retention", justify="right")
    table.add_column("Urgency", justify="right", style="cyan")
    table.add_column("Reviews", justify="right")
    for rank, topic in enumerate(store.ranked_topics(), start=1):
        table.add_row(
            str(rank),
            topic.name,
            topic.category,
            str(topic.vulnerability),
            _retention_cell(topic),
            str(urgency(topic)),
            str(topic.review_count),
        )
    return table


def render_stats(store: SessionStore) -> Panel:
    stats = store.stats()
    state = store.state
    top = store.most_urgent()
    lines = [
        f"Answered: [bold]{stats.answered}[/]  Correct: [green]{stats.correct}[/]  "
        f"Accuracy: [bold]{stats.accuracy}%[/]",
        f"Avg vulnerability: [bold]{stats.avg_vulnerability}[/]  XP: [magenta]{stats.total_xp}[/]",
        f"Most urgent: [red]{top.name}[/]" if top else "Most urgent: none",
    ]
    if state.exam_results:
        last = state.exam_results[-1]
        lines.append(f"Last exam: {last.score}/{last.total} ({last.percent}%)")
    return Panel("\n".join(lines), title=f"{state.learner_label} - war room", border_style="cyan")


def render_question(title: str, question) -> Panel:
    body = [f"[bold]{question.question}[/]", ""]
    body.extend(f"  [cyan]{key}[/]  {text}" for key, text in question.options.items())
    return Panel("\n".join(body), title=title, border_style="red")


async def ask(prompt: str, default: str = "") -> str:
    """Prompt without blocking the event loop (timers keep ticking)."""
    return await asyncio.to_thread(Prompt.ask, prompt, default=default, show_default=False)


# =============================================================================
# Mode loops
# =============================================================================


async def run_battle(controller: BattleController) -> None:
    console.print(
        f"[bold red]BATTLE[/] {controller.topic.name} ({controller.mode.value}). "
        "Answer A-D, [dim]? <text>[/] for a hint, [dim]/back[/] to leave."
    )
    await controller.start()
    while not controller.closed:
        if controller.phase is BattlePhase.FAILED:
            console.print("[yellow]No question came back.[/]")
            if (await ask("Retry? (y/n)", "y")).lower().startswith("n"):
                return
            await controller.next_question()
            continue

        question = controller.question
        console.print(render_question(f"Q{controller.question_count} - {controller.topic.name}", question))
        outcome = None
        while outcome is None:
            reply = (await ask("Answer")).strip()
            if reply == "/back":
                return
            if reply.startswith("?"):
                hint = await controller.ask_hint(reply[1:])
                console.print(f"[italic blue]{hint or 'No hint this time.'}[/]")
                continue
            outcome = controller.answer(reply)

        verdict = "[green]Correct[/]" if outcome.correct else f"[red]Wrong[/] - it was {outcome.correct_option}"
        topic = controller.topic
        console.print(
            f"{verdict}. {outcome.explanation}\n"
            f"[dim]Vulnerability now {topic.vulnerability}, "
            f"topic accuracy {controller.topic_accuracy()}%[/]"
        )
        if (await ask("Next? (y/n)", "y")).lower().startswith("n"):
            return
        await controller.next_question()


async def run_exam(controller: ExamController) -> None:
    console.print(
        f"[bold magenta]EXAM SIMULATION[/] {controller.question_count} questions, "
        f"{controller.seconds_per_question}s each. Building..."
    )
    if await controller.begin() is not ExamPhase.RUNNING:
        console.print("[yellow]The exam could not be built. Try again later.[/]")
        return

    while controller.phase is ExamPhase.RUNNING:
        index = controller.current
        item = controller.questions[index]
        minutes, seconds = divmod(controller.time_left, 60)
        console.print(
            render_question(
                f"{index + 1}/{len(controller.questions)} - {item.topic_name} - {minutes}:{seconds:02d} left",
                item.question,
            )
        )
        reply = (await ask("Answer")).strip()
        if reply == "/back":
            return
        if not controller.select_answer(index, reply) and controller.phase is ExamPhase.RUNNING:
            console.print("[dim]Pick one of A, B, C or D.[/]")

    result = controller.result
    if result is not None:
        console.print(
            Panel(
                f"Score: [bold]{result.score}/{result.total}[/] ({result.percent}%)\n"
                f"Time used: {result.seconds_used}s",
                title="Exam results",
                border_style="magenta",
            )
        )


async def run_dialogue(controller: DialogueController) -> None:
    console.print(f"[bold blue]SOCRATES[/] on {controller.topic.name}. [dim]/back[/] to leave.")
    console.print(f"[blue]{controller.turns[0].content}[/]")
    while not controller.closed:
        text = await ask("You")
        if text.strip() == "/back":
            return
        reply = await controller.send(text)
        if reply is None:
            console.print("[yellow]No reply. Say it again?[/]")
        else:
            console.print(f"[blue]{reply}[/]")


# =============================================================================
# War room
# =============================================================================


async def war_room(
    provider: DecisionProvider,
    settings: Settings,
    courses: str,
    name: str,
    files: list[Path],
) -> None:
    documents = load_documents(files) if files else []
    mapper = TopicMapper(provider, settings.mapping_max_output_tokens)
    with console.status("[cyan]Mapping your weak points...[/]"):
        payload = await mapper.bootstrap(courses, name, documents)

    store = SessionStore()
    store.dispatch(Init.from_payload(payload))
    dispatcher = OrchestratorDispatcher(store, provider, settings, mapper)

    if payload.shadow_assessment:
        console.print(Panel(payload.shadow_assessment, title="Assessment", border_style="dim"))
    if not store.state.topics:
        console.print("[yellow]No topics mapped. Ask for a re-assessment once the service is reachable.[/]")
    else:
        console.print(render_topics(store))
    console.print("[dim]/topics, /stats, /quit - anything else goes to the orchestrator[/]")

    seen_chat = len(store.state.chat_log)
    try:
        while True:
            text = (await ask(f"[bold]{store.state.learner_label}[/]")).strip()
            if not text:
                continue
            if text == "/quit":
                break
            if text == "/topics":
                console.print(render_topics(store))
                continue
            if text == "/stats":
                console.print(render_stats(store))
                continue

            with console.status("[cyan]Orchestrator thinking...[/]"):
                result = await dispatcher.dispatch(text)
            if result.status is DispatchStatus.NO_DECISION:
                console.print("[yellow]The orchestrator did not answer. Try again.[/]")
                continue
            if not result.ok:
                continue

            console.print(f"[dim]-> {result.decision.agent}[/] {result.decision.reasoning}")
            controller = result.controller
            if isinstance(controller, BattleController):
                await run_battle(controller)
            elif isinstance(controller, ExamController):
                await run_exam(controller)
            elif isinstance(controller, DialogueController):
                await run_dialogue(controller)
            elif result.decision.agent == "coach":
                await dispatcher.drain()
            elif result.decision.agent == "shadow":
                console.print(render_topics(store))
            dispatcher.leave_mode()

            for message in store.state.chat_log[seen_chat:]:
                if message.role is ChatRole.COACH:
                    console.print(Panel(message.text, title="Coach", border_style="green"))
            seen_chat = len(store.state.chat_log)
    finally:
        dispatcher.close()

    console.print(render_stats(store))


# =============================================================================
# Commands
# =============================================================================


@app.command()
def start(
    courses: Annotated[str, typer.Argument(help="Courses and topics you are studying")],
    name: Annotated[
        str, typer.Option("--name", "-n", help="How the war room addresses you")
    ] = "",
    file: Annotated[
        list[Path] | None, typer.Option("--file", "-f", help="Study notes (.txt, .md)")
    ] = None,
) -> None:
    """
    Map your courses into topics and open the war room.

    Examples:
        nemesis start "Algorithms, Compilers"
        nemesis start "Networks" --name Ada -f lecture1.md -f lecture2.md
    """
    settings = get_settings()
    configure_logging(settings)

    provider = MistralProvider.from_settings(settings)
    if not provider.is_available:
        console.print("[red]Set NEMESIS_MISTRAL_API_KEY (environment or .env) first.[/]")
        raise typer.Exit(1)

    async def session() -> None:
        try:
            await war_room(provider, settings, courses, name, file or [])
        finally:
            await provider.close()

    try:
        asyncio.run(session())
    except UnsupportedDocument as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        logger.info("War room interrupted")
        console.print("\n[dim]Session ended.[/]")


@app.command()
def curve(
    vulnerability: Annotated[
        int,
        typer.Option(
            "--vulnerability", "-v", min=SCALE_MIN, max=SCALE_MAX, help="Topic vulnerability (1-10)"
        ),
    ],
    hours: Annotated[
        float, typer.Option("--hours", min=1, help="Projection horizon in hours")
    ] = 72,
) -> None:
    """Show the projected forgetting curve for a vulnerability level."""
    configure_logging()
    sample = Topic(id="curve", name="curve", vulnerability=vulnerability)

    table = Table(title=f"Retention after review (vulnerability {vulnerability})")
    table.add_column("Hours", justify="right")
    table.add_column("Retention", justify="right")
    for hour, value in decay_curve(vulnerability, hours, points=13):
        rounded = max(0, round_half_up(value))
        style = BAND_STYLES[retention_band(rounded)]
        table.add_row(f"{hour:.1f}", f"[{style}]{value:.1f}%[/]")
    console.print(table)
    console.print(f"[dim]Drops below 50% after {hours_until(sample):.1f}h[/]")


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
