"""
Lingo CLI - daily language challenge from the terminal.

Usage:
    lingo start                # Resume or begin today's challenge
    lingo answer "katė"        # Answer the current question
    lingo status               # Progress through today's session
    lingo countdown            # Time until the next challenge unlocks
    lingo stats                # Streaks and answer totals
    lingo review               # Questions answered wrongly today
    lingo practice animals     # Category practice round
    lingo reset --force        # Developer reset of today's session
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Annotated

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from config import Settings, get_settings
from src.challenge import (
    AlreadyCompleted,
    ChallengeError,
    DistractorSelector,
    QuestionBuilder,
    QuestionItem,
    SessionClock,
    SessionEngine,
    SessionStatus,
    SessionStore,
    StatsReconciler,
    UserProgressStats,
    format_remaining,
)
from src.integrations import ChallengeApiClient
from src.storage import build_store

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="lingo",
    help="Daily language challenge",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()

UserOption = Annotated[
    str | None, typer.Option("--user", "-u", help="Learner id (defaults to LINGO_USER_ID)")
]


def configure_logging(settings: Settings) -> None:
    """Route loguru to stderr, plus a rotating file when ``log_file`` is set."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(
            settings.log_file,
            level="DEBUG",
            rotation="5 MB",
            retention=3,
            encoding="utf-8",
        )


@dataclass
class Runtime:
    settings: Settings
    client: ChallengeApiClient
    clock: SessionClock
    reconciler: StatsReconciler
    engine: SessionEngine


def _resolve_user(user: str | None, settings: Settings) -> str:
    user_id = user or settings.user_id
    if not user_id:
        console.print("[red]No learner id. Pass --user or set LINGO_USER_ID.[/]")
        raise typer.Exit(2)
    return user_id


@asynccontextmanager
async def _runtime(user: str | None) -> AsyncIterator[Runtime]:
    settings = get_settings()
    user_id = _resolve_user(user, settings)
    client = ChallengeApiClient.from_settings(settings)
    store = SessionStore(build_store(settings))
    clock = SessionClock()
    if settings.use_server_time:
        await clock.sync_with_server(client.fetch_server_time)

    reconciler = StatsReconciler(client, user_id=user_id, clock=clock, store=store)
    await reconciler.load()
    builder = QuestionBuilder(
        DistractorSelector(count=settings.distractor_count, near_miss=settings.near_miss_count)
    )
    engine = SessionEngine(
        user_id,
        client,
        store,
        clock,
        reconciler=reconciler,
        vocabulary=client,
        builder=builder,
        dev_mode=settings.dev_mode,
    )
    try:
        yield Runtime(settings, client, clock, reconciler, engine)
        await reconciler.wait_idle()
    finally:
        engine.close()
        await client.close()


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except ChallengeError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1) from e


# =============================================================================
# Rendering
# =============================================================================


def _render_question(question: QuestionItem, number: int, total: int) -> None:
    body = question.prompt_sentence or question.question_text or ""
    if question.translation:
        body += f"\n[dim]{question.translation}[/]"
    if question.options:
        body += "\n\n" + "\n".join(
            f"  [cyan]{i}.[/] {option}" for i, option in enumerate(question.options, start=1)
        )
    console.print(
        Panel(body, title=f"Question {number}/{total}", subtitle=question.kind.value, border_style="cyan")
    )


def _render_stats(stats: UserProgressStats) -> None:
    table = Table(title="Progress", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Current streak", str(stats.current_streak))
    table.add_row("Longest streak", str(stats.longest_streak))
    table.add_row("Today", f"[green]{stats.today_correct}[/] / [red]{stats.today_incorrect}[/]")
    table.add_row("All time", f"[green]{stats.total_correct}[/] / [red]{stats.total_incorrect}[/]")
    table.add_row("Challenges completed", str(stats.total_completed))
    console.print(table)


def _resolve_choice(question: QuestionItem, answer: str) -> str:
    """Let learners answer multiple choice by option number."""
    if question.options and answer.strip().isdigit():
        index = int(answer.strip()) - 1
        if 0 <= index < len(question.options):
            return question.options[index]
    return answer


# =============================================================================
# Daily Commands
# =============================================================================


@app.command()
def start(user: UserOption = None) -> None:
    """Resume or begin today's challenge."""

    async def _start() -> None:
        async with _runtime(user) as rt:
            record = await rt.engine.start()
            if record.is_completed:
                console.print(
                    f"[green]Today's challenge is done: {record.score}/{record.total}.[/] "
                    f"Next one in {format_remaining(rt.clock.time_until_next_day())}."
                )
                return
            question = record.current_question
            _render_question(question, record.current_index + 1, record.total)

    _run(_start())


@app.command()
def answer(
    text: Annotated[str, typer.Argument(help="Your answer, or an option number")],
    user: UserOption = None,
) -> None:
    """Answer the current question."""

    async def _answer() -> None:
        async with _runtime(user) as rt:
            await rt.engine.start()
            question = rt.engine.current_question
            if question is None:
                raise AlreadyCompleted("Today's challenge is already completed")
            result = await rt.engine.submit_answer(_resolve_choice(question, text))
            if result.was_correct:
                console.print("[bold green]Correct![/]")
            else:
                console.print(f"[bold red]Not quite.[/] Answer: [cyan]{result.correct_answer}[/]")

            record = result.record
            if result.is_completed:
                console.print(
                    Panel(
                        f"Score: {record.score}/{record.total}",
                        title="Challenge complete",
                        border_style="green",
                    )
                )
            else:
                _render_question(record.current_question, record.current_index + 1, record.total)

    _run(_answer())


@app.command()
def status(user: UserOption = None) -> None:
    """Show progress through today's session."""

    async def _status() -> None:
        async with _runtime(user) as rt:
            state = await rt.engine.status()
            if state is SessionStatus.NOT_STARTED:
                console.print("[yellow]Today's challenge has not been started.[/]")
                return
            record = await rt.engine.start()
            console.print(
                f"{state.value.replace('_', ' ').title()}: "
                f"{record.current_index}/{record.total} answered, score {record.score}"
            )

    _run(_status())


@app.command()
def countdown(
    user: UserOption = None,
    watch: Annotated[bool, typer.Option("--watch", "-w", help="Keep ticking until midnight UTC")] = False,
) -> None:
    """Time until the next challenge unlocks (UTC midnight)."""

    async def _countdown() -> None:
        async with _runtime(user) as rt:
            remaining = rt.clock.time_until_next_day()
            if not watch:
                console.print(f"Next challenge in [bold]{format_remaining(remaining)}[/]")
                return
            with console.status(format_remaining(remaining)) as spinner:
                while remaining.total_seconds > 0:
                    await asyncio.sleep(1)
                    remaining = rt.clock.time_until_next_day()
                    spinner.update(f"Next challenge in {format_remaining(remaining)}")
            console.print("[green]A new challenge is available.[/]")

    _run(_countdown())


@app.command()
def stats(user: UserOption = None) -> None:
    """Show streaks and answer totals."""

    async def _stats() -> None:
        async with _runtime(user) as rt:
            _render_stats(await rt.reconciler.reconcile())

    _run(_stats())


@app.command()
def review(user: UserOption = None) -> None:
    """List questions answered wrongly today."""

    async def _review() -> None:
        async with _runtime(user) as rt:
            wrong = await rt.engine.incorrect_questions()
            if not wrong:
                console.print("[green]Nothing to review.[/]")
                return
            table = Table(title="Review")
            table.add_column("Question")
            table.add_column("Answer", style="cyan")
            for question in wrong:
                table.add_row(question.prompt_sentence or question.question_text or question.id, question.correct_answer)
            console.print(table)

    _run(_review())


@app.command()
def practice(
    category: Annotated[str, typer.Argument(help="Question category")],
    count: Annotated[int, typer.Option("--count", "-n", help="Number of questions")] = 10,
    difficulty: Annotated[str | None, typer.Option("--difficulty", "-d")] = None,
    user: UserOption = None,
) -> None:
    """Interactive practice round for one category. Not saved."""

    async def _practice() -> None:
        async with _runtime(user) as rt:
            session = await rt.engine.practice(category, count=count, difficulty=difficulty)
            while not session.is_completed:
                question = session.current_question
                _render_question(question, session.record.current_index + 1, session.record.total)
                # Off the loop so the background stats sync keeps running while we wait
                reply = await asyncio.to_thread(Prompt.ask, "Answer")
                result = session.submit_answer(_resolve_choice(question, reply))
                if result.was_correct:
                    console.print("[green]Correct[/]")
                else:
                    console.print(f"[red]Answer: {result.correct_answer}[/]")
            console.print(f"Practice score: {session.record.score}/{session.record.total}")

    _run(_practice())


@app.command()
def reset(
    force: Annotated[bool, typer.Option("--force", help="Allow reset outside developer mode")] = False,
    user: UserOption = None,
) -> None:
    """Discard today's session (developer use)."""

    async def _reset() -> None:
        async with _runtime(user) as rt:
            await rt.engine.reset(force=force)
            console.print("[yellow]Today's session was reset.[/]")

    _run(_reset())


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point."""
    configure_logging(get_settings())
    app()


if __name__ == "__main__":
    main()
