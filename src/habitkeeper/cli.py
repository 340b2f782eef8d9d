"""Command-line front end for HabitKeeper."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

import click

from .config import BaseConfig
from .errors import ValidationFailure
from .logging_config import setup_logging
from .models.habit import Frequency
from .models.user import User
from .services import auth
from .services.engine import CommandResult, HabitState, HabitStoreEngine
from .session import AppContext, create_app_context

FREQUENCY_CHOICE = click.Choice([f.value for f in Frequency], case_sensitive=False)


def _streak_label(state: HabitState) -> str:
    streak = state.view.streak
    if streak <= 0:
        return "start a streak!"
    return f"{streak} day{'s' if streak != 1 else ''} streak"


def _format_habit(state: HabitState) -> str:
    mark = "x" if state.view.is_completed_today else " "
    line = f"[{mark}] {state.id:>4}  {state.habit.title} ({state.habit.frequency}) - {_streak_label(state)}"
    if state.habit.description:
        line += f"\n          {state.habit.description}"
    return line


def _echo_result(result: CommandResult, success: Optional[str] = None) -> None:
    if result.ok:
        click.echo(result.message or success or "Done.")
        return
    raise click.ClickException(result.message or "Command failed.")


def _resolve_user(app: AppContext, username: Optional[str]) -> User:
    if app.session_factory is None:
        # The in-memory store has no accounts; use a throwaway owner id.
        return User(id=1, username=auth.LOCAL_USERNAME, password_hash="")
    if username is None:
        return auth.ensure_local_user(app.session_factory)
    password = click.prompt(f"Password for {username}", hide_input=True)
    user = auth.authenticate(username=username, password=password, session_factory=app.session_factory)
    if user is None:
        raise click.ClickException("Invalid username or password.")
    return user


def _with_engine(ctx: click.Context, action: Callable[[HabitStoreEngine], Awaitable[Any]]) -> Any:
    """Log in, load habits, run ``action`` against the engine, then tear down."""

    config: BaseConfig = ctx.obj["config"]
    app = create_app_context(config)
    try:
        user = _resolve_user(app, ctx.obj["username"])

        async def _main() -> Any:
            loaded = await app.login(user)
            if not loaded.ok:
                raise click.ClickException(loaded.message)
            return await action(app.require_session().engine)

        return asyncio.run(_main())
    finally:
        app.dispose()


@click.group()
@click.option("--user", "username", default=None, help="Sign in as this user instead of the local profile.")
@click.pass_context
def main(ctx: click.Context, username: Optional[str]) -> None:
    """Track habits and streaks from the terminal."""

    config = BaseConfig()
    setup_logging(config)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["username"] = username


@main.command("register")
@click.argument("username")
@click.password_option()
@click.pass_context
def register(ctx: click.Context, username: str, password: str) -> None:
    """Create a user account."""

    app = create_app_context(ctx.obj["config"])
    try:
        if app.session_factory is None:
            raise click.ClickException("Accounts need the SQL store (HABITKEEPER_STORE=sql).")
        try:
            user = auth.create_user(username=username, password=password, session_factory=app.session_factory)
        except ValidationFailure as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"Created user {user.username}.")
    finally:
        app.dispose()


@main.command("list")
@click.pass_context
def list_habits(ctx: click.Context) -> None:
    """Show habits with today's status and streaks."""

    async def action(engine: HabitStoreEngine) -> None:
        if not engine.habits:
            click.echo("No habits yet. Add one with `habitkeeper add`.")
            return
        for state in engine.habits:
            click.echo(_format_habit(state))

    _with_engine(ctx, action)


@main.command("add")
@click.argument("title")
@click.option("--description", "-d", default=None, help="Optional details.")
@click.option("--frequency", "-f", type=FREQUENCY_CHOICE, default=Frequency.DAILY.value, show_default=True)
@click.pass_context
def add_habit(ctx: click.Context, title: str, description: Optional[str], frequency: str) -> None:
    """Create a habit."""

    async def action(engine: HabitStoreEngine) -> None:
        result = await engine.create_habit(
            {"title": title, "description": description, "frequency": frequency}
        )
        _echo_result(result, f"Created habit {result.value.id if result.ok else ''}.")

    _with_engine(ctx, action)


@main.command("edit")
@click.argument("habit_id", type=int)
@click.option("--title", "-t", default=None)
@click.option("--description", "-d", default=None)
@click.option("--frequency", "-f", type=FREQUENCY_CHOICE, default=None)
@click.pass_context
def edit_habit(
    ctx: click.Context,
    habit_id: int,
    title: Optional[str],
    description: Optional[str],
    frequency: Optional[str],
) -> None:
    """Edit a habit's title, description or frequency."""

    fields = {
        key: value
        for key, value in {"title": title, "description": description, "frequency": frequency}.items()
        if value is not None
    }

    async def action(engine: HabitStoreEngine) -> None:
        _echo_result(await engine.update_habit(habit_id, fields), "Habit updated.")

    _with_engine(ctx, action)


@main.command("rm")
@click.argument("habit_id", type=int)
@click.option("--yes", "-y", is_flag=True, default=False, help="Do not ask for confirmation.")
@click.pass_context
def remove_habit(ctx: click.Context, habit_id: int, yes: bool) -> None:
    """Delete a habit and its history."""

    if not yes:
        click.confirm("Are you sure you want to delete this habit?", abort=True)

    async def action(engine: HabitStoreEngine) -> None:
        _echo_result(await engine.delete_habit(habit_id), "Habit deleted.")

    _with_engine(ctx, action)


@main.command("done")
@click.argument("habit_id", type=int)
@click.pass_context
def mark_done(ctx: click.Context, habit_id: int) -> None:
    """Mark a habit complete for today."""

    async def action(engine: HabitStoreEngine) -> None:
        result = await engine.mark_complete(habit_id)
        state = engine.get(habit_id)
        _echo_result(result, f"Nice! {_streak_label(state)}." if state else None)

    _with_engine(ctx, action)


@main.command("undo")
@click.argument("habit_id", type=int)
@click.pass_context
def mark_undone(ctx: click.Context, habit_id: int) -> None:
    """Undo today's completion of a habit."""

    async def action(engine: HabitStoreEngine) -> None:
        _echo_result(await engine.unmark_complete(habit_id), "Completion removed.")

    _with_engine(ctx, action)


@main.command("summary")
@click.pass_context
def summary(ctx: click.Context) -> None:
    """Show today's progress across due habits."""

    async def action(engine: HabitStoreEngine) -> None:
        report = engine.daily_summary()
        click.echo(f"{report.day:%A, %B} {report.day.day}, {report.day.year}")
        click.echo(f"Completed {report.completed}/{report.total} due habits ({report.percent:.0f}%)")
        if report.best_streak is not None:
            best = report.best_streak
            days = best.view.streak
            click.echo(f"Longest streak: {days} day{'s' if days != 1 else ''} ({best.habit.title})")
        for state in report.due:
            click.echo(_format_habit(state))
        if report.not_due:
            click.echo("Not due today:")
            for state in report.not_due:
                click.echo(_format_habit(state))

    _with_engine(ctx, action)


if __name__ == "__main__":  # pragma: no cover
    main()
