# src/main.py — v1
"""CLI entry point: ask, feedback, reinforce, cache-purge commands.

Usage:
    ragtiers ask "precio del lote" --zone quintana_roo --development fuego
    ragtiers feedback <query_log_id> <rating> [--comment TEXT]
    ragtiers reinforce [--window-hours N]
    ragtiers cache-purge
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from ragtiers.version import __version__

logger = logging.getLogger(__name__)

_ZONES = ("yucatan", "puebla", "quintana_roo", "cdmx", "jalisco", "nuevo_leon")
_CONTENT_TYPES = (
    "brochure", "policy", "price", "inventory", "floor_plan",
    "amenities", "legal", "faq", "general",
)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="ragtiers",
        description=f"ragtiers v{__version__} — tiered query resolution for real-estate RAG",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- ask ---
    p_ask = subparsers.add_parser("ask", help="Resolve a single query")
    p_ask.add_argument("query", help="Question text")
    p_ask.add_argument("--zone", required=True, choices=_ZONES)
    p_ask.add_argument("--development", required=True, help="Development slug")
    p_ask.add_argument("--type", dest="content_type", choices=_CONTENT_TYPES, default=None)
    p_ask.add_argument(
        "--force", action="store_true",
        help="Skip cache and learned responses and regenerate",
    )
    p_ask.add_argument("--user-id", default="cli", help="User id recorded in the query log")
    p_ask.set_defaults(func=_cmd_ask)

    # --- feedback ---
    p_feedback = subparsers.add_parser("feedback", help="Rate a previous answer")
    p_feedback.add_argument("query_log_id", type=int)
    p_feedback.add_argument("rating", type=int, help="1 (bad) to 5 (excellent)")
    p_feedback.add_argument("--comment", default=None)
    p_feedback.set_defaults(func=_cmd_feedback)

    # --- reinforce ---
    p_reinforce = subparsers.add_parser(
        "reinforce", help="Fold recent feedback into learned responses",
    )
    p_reinforce.add_argument(
        "--window-hours", type=int, default=None,
        help="Trailing feedback window (default: REINFORCEMENT_WINDOW_HOURS)",
    )
    p_reinforce.set_defaults(func=_cmd_reinforce)

    # --- cache-purge ---
    p_purge = subparsers.add_parser("cache-purge", help="Delete expired cache entries")
    p_purge.set_defaults(func=_cmd_cache_purge)

    return parser


def _local_admin(user_id: str = "cli"):
    from ragtiers.api.access import UserIdentity

    return UserIdentity(user_id=user_id, role="admin")


async def _cmd_ask(args: argparse.Namespace) -> int:
    """Resolve one query and print the answer with its sources."""
    from ragtiers.api.facade import build_services, resolve_query

    services = build_services()
    response = await resolve_query(
        _local_admin(args.user_id),
        {
            "query": args.query,
            "zone": args.zone,
            "development": args.development,
            "content_type": args.content_type,
            "force_regenerate": args.force,
        },
        services.dispatcher,
        admin_roles=services.settings.admin_roles_list,
    )
    await services.dispatcher.drain()

    if not response.success:
        print(f"Error ({response.error_class}): {response.error}", file=sys.stderr)
        return 2

    print(response.answer)
    print(f"\n[tier={response.tier} log_id={response.query_log_id} "
          f"from_cache={response.from_cache} {response.response_time_ms}ms]")
    for i, source in enumerate(response.sources, start=1):
        print(f"  [{i}] {source.filename} p.{source.page} "
              f"(chunk {source.chunk}, relevance {source.relevance_score:.2f})")
    return 0


async def _cmd_feedback(args: argparse.Namespace) -> int:
    """Record a rating for a query log row."""
    from ragtiers.api.facade import build_services, submit_feedback

    services = build_services()
    response = await submit_feedback(
        _local_admin(),
        {"query_log_id": args.query_log_id, "rating": args.rating, "comment": args.comment},
        services.repository,
        timeout=services.settings.timeout_store,
    )
    if not response.success:
        print(f"Error ({response.error_class}): {response.error}", file=sys.stderr)
        return 2
    print(f"Feedback {response.feedback_id} saved ({response.chunks_updated} chunks updated)")
    return 0


async def _cmd_reinforce(args: argparse.Namespace) -> int:
    """Run the reinforcement batch and print its counts."""
    from ragtiers.api.facade import build_services, run_reinforcement

    services = build_services()
    report = await run_reinforcement(services.reinforcement, args.window_hours)

    print("\nReinforcement complete:")
    print(f"  Window:     {report.window_hours}h")
    print(f"  Processed:  {report.processed}")
    print(f"  Created:    {report.created}")
    print(f"  Updated:    {report.updated}")
    print(f"  Errors:     {len(report.errors)}")
    for message in report.errors:
        print(f"    - {message}")
    print(f"  Duration:   {report.duration_seconds:.1f}s")
    return 0


async def _cmd_cache_purge(args: argparse.Namespace) -> int:
    """Delete expired cache entries."""
    from ragtiers.api.facade import build_services, purge_cache

    services = build_services()
    removed = await purge_cache(services.cache)
    print(f"Removed {removed} expired cache entries")
    return 0


def _setup_logging(verbose: bool) -> None:
    """Configure logging for CLI usage (text format on stderr)."""
    from ragtiers.logging.logger import setup_logging

    setup_logging(level="DEBUG" if verbose else "INFO", log_format="text")
    # Quiet noisy libraries
    for name in ("httpx", "httpcore", "openai", "chromadb"):
        logging.getLogger(name).setLevel(logging.WARNING)


if __name__ == "__main__":
    sys.exit(main())
