"""Cadence CLI: card scheduling, lesson progress, configuration and the HTTP server."""

import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any, Coroutine, TypeVar

import typer
from pydantic import ValidationError

from cadence.application.config import resolve_config
from cadence.application.factory import Engine, build_engine
from cadence.application.quiz_rounds import result_from_counts
from cadence.application.utils.time import ensure_utc, format_interval, utcnow
from cadence.domain.errors import CadenceError
from cadence.domain.memory.models import Rating

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="cadence: spaced-repetition scheduling and lesson mastery engine.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Subgroups
# ---------------------------------------------------------------------------

cards_app = typer.Typer(help="Review cards and their schedules.", no_args_is_help=True)
app.add_typer(cards_app, name="cards")

lessons_app = typer.Typer(help="Lesson progress and unlocks.", no_args_is_help=True)
app.add_typer(lessons_app, name="lessons")

config_app = typer.Typer(help="Manage cadence configuration.")
app.add_typer(config_app, name="config")

_LEVELS = {0: logging.WARNING, 1: logging.INFO}


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 1,
    backend: Annotated[str | None, typer.Option(help="Storage backend: json, memory.")] = None,
    store: Annotated[Path | None, typer.Option(help="JSON store file.")] = None,
    curriculum: Annotated[Path | None, typer.Option(help="Curriculum YAML file.")] = None,
):
    """Global settings for cadence."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {
        "verbose": verbose,
        "backend": backend,
        "store_path": store,
        "curriculum_path": curriculum,
    }
    logging.getLogger().setLevel(_LEVELS.get(verbose, logging.DEBUG))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _engine(ctx: typer.Context) -> Engine:
    overrides = (ctx.obj or {}).get("overrides", {})
    try:
        return build_engine(resolve_config(overrides))
    except (CadenceError, ValidationError) as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(1) from e


def _run(coro: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coro)
    except CadenceError as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(1) from e


def _now(value: str | None) -> datetime:
    if value is None:
        return utcnow()
    try:
        return ensure_utc(datetime.fromisoformat(value))
    except ValueError:
        typer.secho(f"Error: invalid timestamp '{value}' (expected ISO 8601)", fg="red", err=True)
        raise typer.Exit(2) from None


NowOption = Annotated[
    str | None, typer.Option("--now", help="Override the current time (ISO 8601).")
]

# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------


@cards_app.command("add")
def cards_add(
    ctx: typer.Context,
    card_ids: Annotated[list[str], typer.Argument(help="Card ids to register.")],
    now: NowOption = None,
):
    """Register new cards. Existing cards are left untouched."""
    engine = _engine(ctx)
    created = _run(engine.scheduler.register_cards(card_ids, _now(now)))
    typer.secho(f"Registered {len(created)} new card(s).", fg="green")
    skipped = len(set(card_ids)) - len(created)
    if skipped:
        typer.echo(f"{skipped} already known.")


@cards_app.command("due")
def cards_due(
    ctx: typer.Context,
    limit: Annotated[int, typer.Option(help="Maximum cards to list.")] = 50,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
    now: NowOption = None,
):
    """List cards due for review, most overdue first."""
    engine = _engine(ctx)
    due = _run(engine.scheduler.due_cards(_now(now), limit=limit))

    if json_output:
        typer.echo(
            json.dumps(
                [
                    {
                        "card_id": s.card_id,
                        "state": s.state.value,
                        "due_at": s.due_at.isoformat(),
                        "lapses": s.lapses,
                    }
                    for s in due
                ],
                indent=2,
            )
        )
        return

    if not due:
        typer.secho("No cards due.", fg="green")
        return
    for s in due:
        typer.echo(f"{s.card_id}  {s.state.value:<9} due {s.due_at:%Y-%m-%d %H:%M}  lapses={s.lapses}")


@cards_app.command("rate")
def cards_rate(
    ctx: typer.Context,
    card_id: Annotated[str, typer.Argument(help="Card to rate.")],
    rating: Annotated[int, typer.Argument(help="1=Again, 2=Hard, 3=Good, 4=Easy.")],
    context: Annotated[
        str, typer.Option(help="Review context: inline, quiz, review-session.")
    ] = "review-session",
    now: NowOption = None,
):
    """Commit one review, show the new schedule and any lesson status it changed."""
    engine = _engine(ctx)
    when = _now(now)

    async def commit():
        state = await engine.scheduler.apply_rating(card_id, rating, when, context=context)
        return state, await engine.gate.card_reviewed(card_id, when)

    state, changes = _run(commit())
    level = engine.scheduler.classifier.classify(state)
    interval = format_interval(state.scheduled_interval) if state.scheduled_interval else "-"
    typer.echo(
        f"{card_id}: {state.state.value}, next in {interval} "
        f"(due {state.due_at:%Y-%m-%d %H:%M}), mastery {level.label}"
    )
    for result in changes:
        _echo_transition(result)


@cards_app.command("preview")
def cards_preview(
    ctx: typer.Context,
    card_id: Annotated[str, typer.Argument(help="Card to preview.")],
    now: NowOption = None,
):
    """Show the next interval for each rating button."""
    engine = _engine(ctx)
    labels = _run(engine.scheduler.preview(card_id, _now(now)))
    for rating in Rating:
        typer.echo(f"{int(rating)} {rating.name.capitalize():<5} {labels[rating]}")


@cards_app.command("show")
def cards_show(
    ctx: typer.Context,
    card_id: Annotated[str, typer.Argument(help="Card to inspect.")],
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
    now: NowOption = None,
):
    """Show memory state, mastery and review count for a card."""
    engine = _engine(ctx)

    async def gather():
        state = await engine.scheduler.get_state(card_id)
        history = await engine.scheduler.review_history([card_id])
        return state, history

    state, history = _run(gather())
    level = engine.scheduler.classifier.classify(state)
    r = engine.scheduler.model.retrievability(state, _now(now))

    d = {
        "card_id": state.card_id,
        "state": state.state.value,
        "stability": round(state.stability, 4),
        "difficulty": round(state.difficulty, 4),
        "retrievability": round(r, 4),
        "due_at": state.due_at.isoformat(),
        "reps": state.reps,
        "lapses": state.lapses,
        "mastery": level.label,
        "reviews": len(history),
    }
    if json_output:
        typer.echo(json.dumps(d, indent=2))
    else:
        for key, value in d.items():
            typer.echo(f"{key:<15} {value}")


# ---------------------------------------------------------------------------
# Lessons
# ---------------------------------------------------------------------------


def _echo_transition(result) -> None:
    if result.changed:
        typer.secho(
            f"{result.lesson_id}: {result.previous.value} -> {result.current.value}", fg="green"
        )
    else:
        suffix = f" ({result.reason})" if result.reason else ""
        typer.echo(f"{result.lesson_id}: {result.current.value}{suffix}")


@lessons_app.command("status")
def lessons_status(
    ctx: typer.Context,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
    now: NowOption = None,
):
    """Unlock eligible lessons and list every lesson's status."""
    engine = _engine(ctx)

    async def gather():
        await engine.gate.refresh_unlocks(_now(now))
        return await engine.gate.list_progress()

    progress = _run(gather())
    if json_output:
        typer.echo(
            json.dumps(
                [
                    {
                        "lesson_id": p.lesson_id,
                        "status": p.status.value,
                        "review_locked": p.review_locked,
                        "quiz_attempts": p.quiz_attempts,
                        "best_quiz_score": p.best_quiz_score,
                    }
                    for p in progress
                ],
                indent=2,
            )
        )
        return

    if not progress:
        typer.secho("No lessons. Set --curriculum or curriculum_path in config.", fg="yellow")
        return
    for p in progress:
        title = engine.graph.nodes[p.lesson_id].title
        flag = "  [review required]" if p.review_locked else ""
        typer.echo(f"{p.lesson_id:<8} {p.status.value:<12} {title}{flag}")


@lessons_app.command("open")
def lessons_open(
    ctx: typer.Context,
    lesson_id: Annotated[str, typer.Argument(help="Lesson id.")],
    now: NowOption = None,
):
    """Record a content interaction (starts an available lesson)."""
    engine = _engine(ctx)
    _echo_transition(_run(engine.gate.record_interaction(lesson_id, _now(now))))


@lessons_app.command("read")
def lessons_read(
    ctx: typer.Context,
    lesson_id: Annotated[str, typer.Argument(help="Lesson id.")],
    section_id: Annotated[str, typer.Argument(help="Section id.")],
    now: NowOption = None,
):
    """Mark a lesson section as read."""
    engine = _engine(ctx)
    _echo_transition(_run(engine.gate.mark_section_read(lesson_id, section_id, _now(now))))


@lessons_app.command("quiz")
def lessons_quiz(
    ctx: typer.Context,
    lesson_id: Annotated[str, typer.Argument(help="Lesson id.")],
    correct: Annotated[int, typer.Argument(help="Questions answered correctly on the first try.")],
    total: Annotated[int, typer.Argument(help="Questions in the quiz.")],
    now: NowOption = None,
):
    """Record a finished quiz attempt for a lesson."""
    engine = _engine(ctx)
    try:
        result = result_from_counts(correct, total, engine.config.quiz_passing_score)
    except ValueError as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(1) from e

    _echo_transition(_run(engine.gate.record_quiz_result(lesson_id, result, _now(now))))
    verdict = "passed" if result.passed else "not passed"
    typer.echo(f"Quiz score {result.percent}%: {verdict}")


@lessons_app.command("complete")
def lessons_complete(
    ctx: typer.Context,
    lesson_id: Annotated[str, typer.Argument(help="Lesson id.")],
    now: NowOption = None,
):
    """Complete a lesson once all sections are read and all cards rated."""
    engine = _engine(ctx)
    _echo_transition(_run(engine.gate.try_complete(lesson_id, _now(now))))


@lessons_app.command("evaluate")
def lessons_evaluate(
    ctx: typer.Context,
    lesson_id: Annotated[str, typer.Argument(help="Lesson id.")],
    now: NowOption = None,
):
    """Re-evaluate lesson mastery from its cards."""
    engine = _engine(ctx)
    _echo_transition(_run(engine.gate.evaluate_mastery(lesson_id, _now(now))))


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show():
    """Display final resolved configuration."""
    config = resolve_config()
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@app.command()
def serve(
    port: Annotated[int, typer.Option(help="Port to bind the server to.")] = 8777,
    host: Annotated[str, typer.Option(help="Host to bind the server to.")] = "127.0.0.1",
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Start the HTTP server."""
    import uvicorn

    typer.secho(f"Starting Cadence Server on http://{host}:{port}", fg="green")
    uvicorn.run("cadence.server:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
