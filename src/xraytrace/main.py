# src/xraytrace/main.py — v1
"""CLI entry point — serve, runs, steps and query commands.

Usage:
    xraytrace serve [--host H] [--port P]
    xraytrace runs list [--pipeline ID] [--status S] [--limit N] [--offset N]
    xraytrace runs show <run_id>
    xraytrace steps show <step_id>
    xraytrace query high-elimination [--threshold T] [--step-type TYPE]
    xraytrace query by-type <step_type> [--limit N] [--offset N]

Records are printed to stdout as JSON; logs go to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from xraytrace.version import __version__

if TYPE_CHECKING:
    from xraytrace.config.settings import Settings
    from xraytrace.store.base_store import BaseStore

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = _load_settings(args)
        _setup_logging(settings, args.verbose)
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="xraytrace",
        description=f"xraytrace v{__version__} — decision evidence for multi-step pipelines",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--store", choices=["memory", "sqlite", "http"], default=None,
        help="Store backend (default: XRAY_STORE_BACKEND)",
    )
    parser.add_argument(
        "--sqlite-path", type=Path, default=None,
        help="SQLite database file (default: XRAY_SQLITE_PATH)",
    )
    parser.add_argument(
        "--api-url", default=None,
        help="X-Ray API base URL for the http backend (default: XRAY_API_URL)",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- serve ---
    p_serve = subparsers.add_parser("serve", help="Run the X-Ray HTTP API")
    p_serve.add_argument("--host", default=None, help="Bind address (default: XRAY_API_HOST)")
    p_serve.add_argument("--port", type=int, default=None, help="Port (default: XRAY_API_PORT)")
    p_serve.set_defaults(func=_cmd_serve)

    # --- runs ---
    p_runs = subparsers.add_parser("runs", help="Inspect runs")
    runs_sub = p_runs.add_subparsers(dest="runs_command", required=True)

    p_runs_list = runs_sub.add_parser("list", help="List runs, most recent first")
    p_runs_list.add_argument("--pipeline", default=None, help="Filter by pipeline id")
    p_runs_list.add_argument(
        "--status", choices=["running", "completed", "failed"], default=None,
        help="Filter by run status",
    )
    p_runs_list.add_argument("--limit", type=int, default=None)
    p_runs_list.add_argument("--offset", type=int, default=0)
    p_runs_list.set_defaults(func=_cmd_runs_list)

    p_runs_show = runs_sub.add_parser("show", help="Show a run with its steps and evidence")
    p_runs_show.add_argument("run_id")
    p_runs_show.set_defaults(func=_cmd_runs_show)

    # --- steps ---
    p_steps = subparsers.add_parser("steps", help="Inspect steps")
    steps_sub = p_steps.add_subparsers(dest="steps_command", required=True)

    p_steps_show = steps_sub.add_parser("show", help="Show a step with all its evidence")
    p_steps_show.add_argument("step_id")
    p_steps_show.set_defaults(func=_cmd_steps_show)

    # --- query ---
    p_query = subparsers.add_parser("query", help="Cross-run analytics")
    query_sub = p_query.add_subparsers(dest="query_command", required=True)

    p_elim = query_sub.add_parser(
        "high-elimination", help="Steps that kept less than THRESHOLD of their input",
    )
    p_elim.add_argument("--threshold", type=float, default=0.9)
    p_elim.add_argument("--step-type", default="filtering")
    p_elim.set_defaults(func=_cmd_query_high_elimination)

    p_type = query_sub.add_parser("by-type", help="Steps of one type across all runs")
    p_type.add_argument("step_type")
    p_type.add_argument("--limit", type=int, default=None)
    p_type.add_argument("--offset", type=int, default=0)
    p_type.set_defaults(func=_cmd_query_by_type)

    return parser


def _load_settings(args: argparse.Namespace) -> Settings:
    """Settings from the environment with CLI flags layered on top."""
    from xraytrace.config.settings import load_settings

    overrides: dict[str, Any] = {}
    if args.store is not None:
        overrides["store_backend"] = args.store
    if args.sqlite_path is not None:
        overrides["sqlite_path"] = args.sqlite_path
    if args.api_url is not None:
        overrides["api_url"] = args.api_url
    return load_settings(**overrides)


async def _cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    """Serve the HTTP API on the configured local store."""
    import uvicorn

    from xraytrace.api.app import create_app
    from xraytrace.config.settings import ConfigurationError
    from xraytrace.store.store_factory import create_store

    if settings.store_backend == "http":
        raise ConfigurationError(
            "serve needs a local store backend (memory or sqlite), not http"
        )

    app = create_app(create_store(settings))
    host = args.host or settings.api_host
    port = args.port or settings.api_port
    logger.info("Serving X-Ray API on http://%s:%d", host, port)
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_config=None))
    await server.serve()
    return 0


async def _cmd_runs_list(args: argparse.Namespace, settings: Settings) -> int:
    async with _open_store(settings) as store:
        runs = await store.list_runs(
            pipeline_id=args.pipeline, status=args.status,
            limit=args.limit, offset=args.offset,
        )
    _print_json([r.model_dump(mode="json") for r in runs])
    return 0


async def _cmd_runs_show(args: argparse.Namespace, settings: Settings) -> int:
    async with _open_store(settings) as store:
        run = await store.get_run(args.run_id)
    if run is None:
        logger.error("Run not found: %s", args.run_id)
        return 1
    _print_json(run.model_dump(mode="json"))
    return 0


async def _cmd_steps_show(args: argparse.Namespace, settings: Settings) -> int:
    async with _open_store(settings) as store:
        step = await store.get_step(args.step_id)
    if step is None:
        logger.error("Step not found: %s", args.step_id)
        return 1
    _print_json(step.model_dump(mode="json"))
    return 0


async def _cmd_query_high_elimination(args: argparse.Namespace, settings: Settings) -> int:
    async with _open_store(settings) as store:
        steps = await store.query_high_elimination(
            threshold=args.threshold, step_type=args.step_type,
        )
    _print_json([s.model_dump(mode="json") for s in steps])
    return 0


async def _cmd_query_by_type(args: argparse.Namespace, settings: Settings) -> int:
    async with _open_store(settings) as store:
        steps = await store.query_by_type(args.step_type, limit=args.limit, offset=args.offset)
    _print_json([s.model_dump(mode="json") for s in steps])
    return 0


@asynccontextmanager
async def _open_store(settings: Settings) -> AsyncIterator[BaseStore]:
    """Yield the configured store and close it afterwards."""
    from xraytrace.store.store_factory import create_store

    store = create_store(settings)
    try:
        yield store
    finally:
        await store.close()


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from xraytrace.logging.logger import setup_logging

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


if __name__ == "__main__":
    sys.exit(main())
