"""
Metro Induction Planner: CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute action (DB init, fleet seed, induction run, tuning, etc.).
  5. Report result to stdout.

Install and run::

    pip install -e .
    metro-induction --help
    metro-induction init-db
    metro-induction seed-fleet
    metro-induction seed-params --actor ops-supervisor
    metro-induction recommend --date 2026-10-18
    metro-induction induct --date 2026-10-18 --actor ops-supervisor
    metro-induction tune --lookback-days 14 --actor ops-supervisor
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="metro-induction",
    help="Metro fleet induction planner: nightly scoring, ranking and tuning CLI.",
    add_completion=False,
)

_DEFAULT_ACTOR = "cli"


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from metro_induction.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from metro_induction.utils.logging import configure_logging
    configure_logging(config.logging)


def _parse_date_or_exit(value: str):
    from metro_induction.utils.time_utils import parse_decision_date

    try:
        return parse_decision_date(value)
    except ValueError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)


def _open(config):
    from metro_induction.db.connection import get_connection

    return get_connection(
        config.database.db_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    )


_CONFIG_OPTION = typer.Option(None, "--config", help="Path to TOML config file.")
_ACTOR_OPTION = typer.Option(
    _DEFAULT_ACTOR, "--actor", help="Identity stamped onto written records."
)


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config (e.g. data/db/test.db).",
    ),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Initialize the SQLite database and apply the full schema.

    Safe to run multiple times: all DDL uses IF NOT EXISTS.
    Also runs pending schema migrations.
    """
    from metro_induction.db.connection import get_connection
    from metro_induction.db.migrations import run_migrations
    from metro_induction.db.schema import ALL_TABLE_NAMES, apply_schema

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_path = db_path or config.database.db_path
    typer.echo(f"Initializing database at: {target_path}")

    with get_connection(
        target_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    ) as conn:
        apply_schema(conn)
        migrations_applied = run_migrations(conn)

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo(f"  Migrations applied: {migrations_applied}")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:     {config.database.db_path}")
    typer.echo(f"  Fleet seed file:   {config.data.fleet_seed_file}")
    typer.echo(
        f"  Default penalties: cert={config.scoring.penalty_expiring_certificate} "
        f"jobs={config.scoring.penalty_high_priority_jobs}"
    )
    typer.echo(
        f"  Thresholds:        maintenance<{config.scoring.maintenance_below} "
        f"standby<{config.scoring.standby_below}"
    )
    typer.echo(f"  Tuning lookback:   {config.tuning.lookback_days}d")
    typer.echo(f"  Log level:         {config.logging.level}")
    typer.echo(f"  Debug mode:        {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(), indent=2, default=str))

    typer.echo("")


@app.command("seed-fleet")
def seed_fleet(
    seed_file: Optional[str] = typer.Option(
        None,
        "--file",
        "-f",
        help="Path to fleet JSON. Defaults to config.data.fleet_seed_file.",
    ),
    config_path: Optional[str] = _CONFIG_OPTION,
    actor: str = _ACTOR_OPTION,
) -> None:
    """Load trainsets, certificates, job cards and alerts from a fleet JSON file.

    Trainsets upsert by number and job cards by work order id, so the
    command can be re-run safely. Also writes a Parquet fleet snapshot.
    """
    from metro_induction.pipeline.seed import SeedFleetStage

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    path = Path(seed_file) if seed_file else Path(config.data.fleet_seed_file)
    if not path.exists():
        typer.echo(f"[ERROR] Fleet file not found: {path}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"Loading fleet from: {path}")
    try:
        run = SeedFleetStage(config).run(actor=actor, seed_path=str(path))
    except (ValueError, json.JSONDecodeError) as exc:
        typer.echo(f"[ERROR] Fleet seed rejected: {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"  Records written: {run.rows_processed}")
    typer.echo(f"  Run: {run.run_slug}")
    typer.echo("[OK] Fleet loaded.")


@app.command("seed-params")
def seed_params(
    config_path: Optional[str] = _CONFIG_OPTION,
    actor: str = _ACTOR_OPTION,
) -> None:
    """Reset both scoring penalties to their defaults (50 / 30).

    Always overwrites, including previously auto-tuned values.
    """
    from metro_induction.db.migrations import ensure_schema
    from metro_induction.induction.service import InductionService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _open(config) as conn:
        ensure_schema(conn)
        service = InductionService(conn, config.scoring, config.tuning)
        service.seed_default_parameters(actor=actor)
        params = service.current_parameters()

    typer.echo(f"  penalty_expiring_certificate = {params.penalty_expiring_certificate}")
    typer.echo(f"  penalty_high_priority_jobs   = {params.penalty_high_priority_jobs}")
    typer.echo("[OK] Default parameters seeded.")


@app.command("recommend")
def recommend(
    decision_date: str = typer.Option(
        ...,
        "--date",
        help="Decision date (ISO, e.g. 2026-10-18).",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the plan as JSON."),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Print the ranked induction plan for a date without saving it."""
    from metro_induction.db.migrations import ensure_schema
    from metro_induction.induction.service import InductionService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    as_of = _parse_date_or_exit(decision_date)

    with _open(config) as conn:
        ensure_schema(conn)
        plan = InductionService(conn, config.scoring, config.tuning).generate_recommendations(as_of)

    if as_json:
        typer.echo(json.dumps([rec.to_dict() for rec in plan], indent=2))
        return

    if not plan:
        typer.echo(f"No active trainsets to induct on {as_of}.")
        return

    typer.echo(f"Induction plan for {as_of} (not saved):")
    for rec in plan:
        typer.echo(
            f"  {rec.priority:>3}. {rec.trainset_number:<10} "
            f"{rec.decision.value:<16} {rec.score:>4}  {rec.reasoning}"
        )


@app.command("induct")
def induct(
    decision_date: str = typer.Option(
        ...,
        "--date",
        help="Decision date (ISO, e.g. 2026-10-18).",
    ),
    no_reports: bool = typer.Option(
        False,
        "--no-reports",
        help="Skip writing CSV/JSON plan files.",
    ),
    config_path: Optional[str] = _CONFIG_OPTION,
    actor: str = _ACTOR_OPTION,
) -> None:
    """Generate, commit and report the induction plan for a date.

    Replaces any plan already committed for that date.
    """
    from metro_induction.pipeline.induct import InductionStage

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    as_of = _parse_date_or_exit(decision_date)

    run = InductionStage(config).run(
        actor=actor,
        decision_date=as_of.isoformat(),
        write_reports=not no_reports,
    )

    typer.echo(f"  Decisions committed: {run.rows_processed}")
    if not no_reports:
        typer.echo(f"  Reports: {config.data.output_dir}")
    typer.echo(f"  Run: {run.run_slug}")
    typer.echo(f"[OK] Induction plan for {as_of} saved.")


@app.command("show-plan")
def show_plan(
    decision_date: str = typer.Option(
        ...,
        "--date",
        help="Decision date (ISO, e.g. 2026-10-18).",
    ),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Print the committed induction plan for a date."""
    from metro_induction.db.migrations import ensure_schema
    from metro_induction.induction.service import InductionService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    as_of = _parse_date_or_exit(decision_date)

    with _open(config) as conn:
        ensure_schema(conn)
        service = InductionService(conn, config.scoring, config.tuning)
        decisions = service.get_decisions(as_of)
        numbers = {
            t.trainset_id: t.trainset_number for t in service.trainsets.get_all()
        }

    if not decisions:
        typer.echo(f"No committed plan for {as_of}.")
        return

    first = decisions[0]
    typer.echo(f"Committed plan for {as_of} (approved by {first.approved_by} at {first.approved_at}):")
    for d in decisions:
        typer.echo(
            f"  {d.priority:>3}. {numbers.get(d.trainset_id, d.trainset_id)!s:<10} "
            f"{d.decision.value:<16} {d.reasoning}"
        )


@app.command("tune")
def tune(
    lookback_days: Optional[int] = typer.Option(
        None,
        "--lookback-days",
        help="Lookback window echoed in the stats. Uses config default if omitted.",
    ),
    config_path: Optional[str] = _CONFIG_OPTION,
    actor: str = _ACTOR_OPTION,
) -> None:
    """Auto-tune both scoring penalties from current fleet statistics."""
    from metro_induction.pipeline.tune import TuneStage

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    stage = TuneStage(config)
    run = stage.run(actor=actor, lookback_days=lookback_days)
    result = stage.result
    assert result is not None

    typer.echo(f"  penalty_high_priority_jobs   = {result.penalty_high_priority_jobs}")
    typer.echo(f"  penalty_expiring_certificate = {result.penalty_expiring_certificate}")
    typer.echo("  Stats:")
    for key, value in result.stats.items():
        typer.echo(f"    {key:<24} {value}")
    typer.echo(f"  Run: {run.run_slug}")
    typer.echo("[OK] Penalties tuned.")


@app.command("fleet-stats")
def fleet_stats(
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Print trainset counts by operational status."""
    from metro_induction.db.migrations import ensure_schema
    from metro_induction.induction.service import InductionService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _open(config) as conn:
        ensure_schema(conn)
        stats = InductionService(conn, config.scoring, config.tuning).get_fleet_stats()

    typer.echo(f"  Total:          {stats.total}")
    typer.echo(f"  Active:         {stats.active}")
    typer.echo(f"  Standby:        {stats.standby}")
    typer.echo(f"  Maintenance:    {stats.maintenance}")
    typer.echo(f"  Out of service: {stats.out_of_service}")


@app.command("alerts")
def alerts(
    limit: Optional[int] = typer.Option(None, "--limit", help="Show at most N alerts."),
    resolve: Optional[int] = typer.Option(
        None,
        "--resolve",
        help="Resolve the alert with this id instead of listing.",
    ),
    config_path: Optional[str] = _CONFIG_OPTION,
    actor: str = _ACTOR_OPTION,
) -> None:
    """List unresolved alerts (critical first), or resolve one with --resolve."""
    from metro_induction.db.migrations import ensure_schema
    from metro_induction.errors import RecordNotFoundError
    from metro_induction.induction.service import InductionService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _open(config) as conn:
        ensure_schema(conn)
        service = InductionService(conn, config.scoring, config.tuning)
        if resolve is not None:
            try:
                service.resolve_alert(resolve, actor=actor)
            except RecordNotFoundError as exc:
                typer.echo(f"[ERROR] {exc}", err=True)
                raise typer.Exit(code=1)
            typer.echo(f"[OK] Alert {resolve} resolved.")
            return
        active = service.get_active_alerts(limit)

    if not active:
        typer.echo("No unresolved alerts.")
        return

    for alert in active:
        marker = " " if alert.is_read else "*"
        typer.echo(
            f" {marker}[{alert.alert_id:>4}] {alert.severity.value.upper():<8} "
            f"{alert.alert_type.value:<18} {alert.title}"
        )


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    app()
