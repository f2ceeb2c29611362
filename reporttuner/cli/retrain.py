"""Operator CLI for retraining cycles.

Usage::

    python -m reporttuner.cli run-cycle
    python -m reporttuner.cli reconcile
    python -m reporttuner.cli status --json
    python -m reporttuner.cli serve --port 8000

Exit codes: 0 on success (including a skipped or below-threshold cycle),
1 when a cycle failed or a command could not run.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from reporttuner.config.settings import Settings
from reporttuner.models.cycle import CycleOutcome, OutcomeStatus
from reporttuner.utils.errors import ReportTunerError


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def _components(app_settings: Settings) -> dict[str, Any]:
    # Deferred so `--help` does not configure logging or build providers.
    from reporttuner.main import build_components, initialize_components

    components = build_components(app_settings)
    await initialize_components(components)
    return components


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _print_outcome(outcome: CycleOutcome) -> None:
    print(f"Cycle outcome: {outcome.status.value}")
    if outcome.cycle_id:
        print(f"  Cycle ID:     {outcome.cycle_id}")
    print(f"  Qualifying:   {outcome.qualifying_count} (threshold {outcome.threshold})")
    if outcome.status is OutcomeStatus.COMPLETED:
        print(f"  Batch size:   {outcome.batch_size}")
        print(f"  Archive key:  {outcome.archive_key}")
        print(f"  Job ID:       {outcome.job_id}")
        print(f"  Marked:       {outcome.marked_count}")
        if outcome.resumed:
            print("  (resumed an interrupted cycle)")
    if outcome.excluded_ids:
        print(f"  Excluded:     {', '.join(outcome.excluded_ids)}")
    if outcome.error:
        print(f"  Error:        {outcome.error}")


async def _handle_run_cycle(args: argparse.Namespace, app_settings: Settings) -> int:
    components = await _components(app_settings)
    outcome = await components["pipeline"].run_cycle()
    if args.json:
        _print_json(outcome.model_dump(mode="json"))
    else:
        _print_outcome(outcome)
    return 1 if outcome.status is OutcomeStatus.FAILED else 0


async def _handle_reconcile(args: argparse.Namespace, app_settings: Settings) -> int:
    components = await _components(app_settings)
    job = await components["reconciler"].reconcile_once()
    entry = await components["model_registry"].get_entry()
    if args.json:
        _print_json(
            {
                "job": job.model_dump(mode="json") if job else None,
                "registry": entry.model_dump(mode="json") if entry else None,
            }
        )
        return 0

    if job is None:
        print("No pending fine-tune job.")
    else:
        print(f"Job {job.id}: {job.status.value}")
        if job.model_id:
            print(f"  Model: {job.model_id}")
    return 0


async def _handle_status(args: argparse.Namespace, app_settings: Settings) -> int:
    components = await _components(app_settings)
    trigger = components["trigger"]
    qualifying = await trigger.pending_count()
    entry = await components["model_registry"].get_entry()
    cycles = await components["state_store"].list_cycles(limit=args.limit)

    if args.json:
        _print_json(
            {
                "qualifying_count": qualifying,
                "threshold": trigger.batch_size,
                "min_rating": trigger.min_rating,
                "registry": entry.model_dump(mode="json") if entry else None,
                "recent_cycles": [c.model_dump(mode="json") for c in cycles],
            }
        )
        return 0

    print(f"Qualifying feedback: {qualifying} / {trigger.batch_size} (rating >= {trigger.min_rating})")
    if entry is None:
        print(f"Model: {app_settings.default_base_model} (default, no cycle yet)")
    else:
        print(f"Model: {entry.serving_model_id or app_settings.default_base_model}")
        print(f"  Last job:     {entry.job_id} ({entry.job_status.value if entry.job_status else 'unknown'})")
        print(f"  Trained on:   {entry.training_size} records")
        print(f"  Last updated: {entry.last_fine_tuned.isoformat()}")

    if cycles:
        print("\nRecent cycles:")
        for cycle in cycles:
            line = f"  {cycle.created_at.isoformat()}  {cycle.cycle_id}  {cycle.status.value:<10}  {len(cycle.feedback_ids)} records"
            if cycle.error:
                line += f"  error: {cycle.error}"
            print(line)
    return 0


def _handle_serve(args: argparse.Namespace, app_settings: Settings) -> int:
    import uvicorn

    uvicorn.run(
        "reporttuner.main:app",
        host=args.host or app_settings.app_host,
        port=args.port or app_settings.app_port,
        reload=args.reload,
    )
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m reporttuner.cli",
        description="ReportTuner retraining operations",
    )
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run-cycle", help="Run one retraining cycle now")
    run_parser.add_argument("--json", action="store_true", help="Print the outcome as JSON")

    reconcile_parser = subparsers.add_parser("reconcile", help="Poll the pending fine-tune job")
    reconcile_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    status_parser = subparsers.add_parser("status", help="Show retraining status")
    status_parser.add_argument("--json", action="store_true", help="Print status as JSON")
    status_parser.add_argument(
        "--limit", type=int, default=10, help="Number of recent cycles to show (default: 10)"
    )

    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: APP_HOST)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default: APP_PORT)")
    serve_parser.add_argument("--reload", action="store_true", help="Auto-reload on code changes")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run(argv: list[str] | None = None, app_settings: Settings | None = None) -> int:
    """Parse ``argv`` and dispatch; returns the process exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    app_settings = app_settings or Settings()
    try:
        if args.command == "serve":
            return _handle_serve(args, app_settings)
        if args.command == "run-cycle":
            return asyncio.run(_handle_run_cycle(args, app_settings))
        if args.command == "reconcile":
            return asyncio.run(_handle_reconcile(args, app_settings))
        if args.command == "status":
            return asyncio.run(_handle_status(args, app_settings))
    except ReportTunerError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    parser.print_help()
    return 1


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
