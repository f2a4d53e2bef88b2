from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer

from .backup import export_to_file, import_from_file
from .catalog import PROGRAM_TEMPLATES, seed_sample_mesocycle, seed_starter_exercises
from .config import as_dict as config_as_dict
from .errors import ImportFormatError, RepstackError
from .models import EXERCISE_CATEGORIES
from .progression import describe_week
from .repository import EntityStore
from .services import (
    build_exercise_report,
    build_statistics,
    build_weekly_summary,
    find_exercise,
    render_exercises,
    render_records,
    render_split_status,
    render_statistics,
    render_templates,
    render_weekly_summary,
)

app = typer.Typer(help="Log, analyse and back up strength training data on this device.")
LOGGER = logging.getLogger(__name__)


def _fail(message: str, *, code: int = 1) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=code)


def _open_store(db: Optional[Path]) -> EntityStore:
    try:
        store = EntityStore.open(db)
    except RepstackError as exc:
        _fail(f"Could not open store: {exc}")
    return store


_DB_OPTION = typer.Option(
    None,
    "--db",
    help="Path to the SQLite store (defaults to REPSTACK_DB_FILE or data/repstack.db).",
)


@app.callback()
def _configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@app.command()
def init(db: Optional[Path] = _DB_OPTION) -> None:
    """
    Create (or upgrade) the store and report its schema version.
    """
    with _open_store(db) as store:
        counts = store.counts()
        typer.echo(f"Store ready at {store.db.path} (schema version {store.db.schema_version}).")
        typer.echo(", ".join(f"{table}={count}" for table, count in counts.items()))


@app.command()
def seed(
    sample: bool = typer.Option(False, "--sample", help="Also add a demo push/pull/legs mesocycle."),
    db: Optional[Path] = _DB_OPTION,
) -> None:
    """
    Add the starter exercise library when no exercises exist yet.
    """
    with _open_store(db) as store:
        if seed_starter_exercises(store):
            typer.echo(f"Seeded {len(store.list_exercises())} starter exercises.")
        else:
            typer.echo("Exercises already present; nothing seeded.")
        if sample:
            if seed_sample_mesocycle(store):
                active = store.get_active_mesocycle()
                typer.echo(f"Seeded sample mesocycle '{active.name}'.")
            else:
                typer.echo("Mesocycles already present or no exercises; no sample added.")


@app.command()
def templates() -> None:
    """
    List the built-in program templates.
    """
    typer.echo(render_templates(PROGRAM_TEMPLATES))


@app.command()
def exercises(
    category: Optional[str] = typer.Option(
        None,
        "--category",
        "-c",
        help=f"Only list one category ({', '.join(EXERCISE_CATEGORIES)}).",
    ),
    custom: bool = typer.Option(False, "--custom", help="Only list custom exercises."),
    db: Optional[Path] = _DB_OPTION,
) -> None:
    """
    List exercises alphabetically.
    """
    if category is not None and category not in EXERCISE_CATEGORIES:
        raise typer.BadParameter(f"Unknown category {category!r}.", param_hint="--category")
    with _open_store(db) as store:
        if category:
            items = store.exercises_by_category(category)
        elif custom:
            items = store.custom_exercises()
        else:
            items = store.list_exercises()
        if custom and category:
            items = [item for item in items if item.is_custom]
    if not items:
        typer.echo("No exercises found.")
        return
    typer.echo(render_exercises(items))


@app.command()
def stats(db: Optional[Path] = _DB_OPTION) -> None:
    """
    Show training statistics and streaks.
    """
    with _open_store(db) as store:
        report = build_statistics(store)
    for line in render_statistics(report):
        typer.echo(line)


@app.command()
def records(
    exercise: str = typer.Argument(..., help="Exercise id or name."),
    db: Optional[Path] = _DB_OPTION,
) -> None:
    """
    Show personal records per rep range for one exercise.
    """
    with _open_store(db) as store:
        target = find_exercise(store, exercise)
        if target is None:
            _fail(f"Exercise not found: {exercise}")
        report = build_exercise_report(store, target)
    if not report.records:
        typer.echo(f"No completed sets logged for {report.exercise.name}.")
        return
    typer.echo(render_records(report.records))
    if report.slope_per_week is not None:
        typer.echo(f"Estimated 1RM trend: {report.slope_per_week:+.2f} per week")


@app.command()
def summary(db: Optional[Path] = _DB_OPTION) -> None:
    """
    Summarise completed sets, volume and best e1RM per ISO week.
    """
    with _open_store(db) as store:
        table = build_weekly_summary(store)
    if table.empty:
        typer.echo("No completed workouts logged yet.")
        return
    typer.echo(render_weekly_summary(table))


@app.command("next-split")
def next_split(db: Optional[Path] = _DB_OPTION) -> None:
    """
    Recommend the next split day of the active mesocycle.
    """
    with _open_store(db) as store:
        mesocycle = store.get_active_mesocycle()
        if mesocycle is None:
            _fail("No active mesocycle.", code=0)
        store.progression.check_completion(mesocycle.id)
        split_day = store.progression.next_split_day(mesocycle.id)
        statuses = store.progression.split_completion_status(mesocycle.id)
    typer.echo(f"{mesocycle.name}: {describe_week(mesocycle, mesocycle.current_week)}")
    if split_day is None:
        typer.echo("No split days configured.")
        return
    typer.echo(f"Next split day: {split_day.name}")
    if statuses:
        typer.echo(render_split_status(statuses))


@app.command()
def export(
    to: Path = typer.Option(..., "--to", "-o", help="Destination JSON file."),
    db: Optional[Path] = _DB_OPTION,
) -> None:
    """
    Write every collection to a JSON backup file.
    """
    with _open_store(db) as store:
        target = export_to_file(store, to)
    typer.echo(f"Exported store to {target}.")


@app.command("import")
def import_backup(
    source: Path = typer.Option(..., "--from", "-i", help="Backup JSON file to restore."),
    db: Optional[Path] = _DB_OPTION,
) -> None:
    """
    Replace all stored data with a JSON backup.
    """
    if not source.exists():
        _fail(f"Import source not found: {source}")
    with _open_store(db) as store:
        try:
            counts = import_from_file(store, source)
        except ImportFormatError as exc:
            _fail(str(exc))
    typer.echo("Imported " + ", ".join(f"{table}={count}" for table, count in counts.items()) + ".")


@app.command("config")
def config_show() -> None:
    """
    Show the effective configuration.
    """
    typer.echo(json.dumps(config_as_dict(), indent=2))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
