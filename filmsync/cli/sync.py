"""CLI to run one sync cycle against the configured record store."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import replace
from typing import Any

from filmsync.config import AppConfig, load_config
from filmsync.core.logging_utils import setup_json_logging
from filmsync.di.container import SyncContext, build_sync_context
from filmsync.domain.goal import GoalBook
from filmsync.sync.constants import FAMILIES

logger = logging.getLogger(__name__)

__all__ = ["main", "run_sync_cli"]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Pull (and push pending changes for) the local group collections",
        allow_abbrev=False,
    )
    parser.add_argument(
        "--family",
        choices=[*FAMILIES, "all"],
        default="all",
        help="Entity family to refresh (default: all).",
    )
    parser.add_argument(
        "--group",
        help="Switch to the group with this invite code before syncing.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Bypass the pull cooldown.",
    )
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Use the in-memory record store instead of the HTTP API.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the summary as JSON.",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the configured log level for this session.",
    )
    return parser.parse_args(argv)


def _prepare_config(args: argparse.Namespace) -> AppConfig:
    """Load configuration, optionally applying CLI overrides."""
    try:
        cfg = load_config()
    except RuntimeError as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc

    updates: dict[str, Any] = {}
    if args.offline:
        updates["offline_mode"] = True
    if args.log_level:
        updates["log_level"] = args.log_level
    if updates:
        cfg = replace(cfg, runtime=cfg.runtime.model_copy(update=updates))
    return cfg


def _local_count(collection: Any) -> int:
    if isinstance(collection, GoalBook):
        return len(collection.annual) + len(collection.custom)
    return len(collection)


async def _sync_families(ctx: SyncContext, args: argparse.Namespace) -> dict[str, Any]:
    if args.group:
        ctx.switch_group(args.group)
        # A scope change starts a forced refresh of every family.
        await ctx.drain()

    families = list(FAMILIES) if args.family == "all" else [args.family]
    summary: dict[str, Any] = {
        "scope": ctx.current_group_scope(),
        "group_name": ctx.group.display_name,
        "families": {},
    }
    for family in families:
        coordinator = ctx.coordinator(family)
        result = await ctx.refresh(family, force=args.force) or coordinator.last_pull
        summary["families"][family] = {
            "state": coordinator.pull_state.value,
            "local_count": _local_count(coordinator.value),
            "result": result.model_dump(mode="json") if result else None,
        }
    await ctx.drain()
    return summary


async def run_sync_cli(args: argparse.Namespace) -> dict[str, Any]:
    """Execute one sync cycle based on parsed CLI arguments."""
    cfg = _prepare_config(args)
    setup_json_logging(cfg.runtime.log_level, log_file=cfg.runtime.log_file)

    async with build_sync_context(cfg) as ctx:
        summary = await _sync_families(ctx, args)

    if args.json:
        print(json.dumps(summary, indent=2, ensure_ascii=False))
    else:
        print(f"Group: {summary['group_name'] or 'no group'}")
        for family, details in summary["families"].items():
            result = details["result"] or {}
            errors = len(result.get("errors", []))
            print(
                f"  {family:<8} {details['state']:<8} local={details['local_count']} "
                f"synced={result.get('items_synced', 0)} errors={errors}"
            )
    return summary


def _has_failures(summary: dict[str, Any]) -> bool:
    return any(details["state"] == "failed" for details in summary["families"].values())


def main(argv: list[str] | None = None) -> int:
    """Entry point for ``filmsync-sync`` and ``python -m filmsync.cli.sync``."""
    args = parse_args(argv)
    try:
        summary = asyncio.run(run_sync_cli(args))
    except KeyboardInterrupt:  # pragma: no cover - user cancelled
        return 1
    except Exception as exc:
        logger.exception("cli_sync_failed", exc_info=exc)
        return 1
    return 1 if _has_failures(summary) else 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
