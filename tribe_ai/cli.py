"""Command line entry point: ``tribe-ai serve|sync|status``."""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from .config.settings import Settings
from .observability.logging import setup_logging

logger = logging.getLogger(__name__)


async def run_sync(settings: Settings, full: bool, clear: bool, batch_size: Optional[int]) -> int:
    from .server.api import build_components

    components = build_components(settings)
    orchestrator = components.orchestrator
    batch = batch_size or settings.sync.max_batch_size
    try:
        pending = await orchestrator.count_pending()
        logger.info(f"{pending} post(s) pending above the checkpoint")
        if full:
            reports = await orchestrator.run_full_backfill(batch, clear_index=clear)
        else:
            reports = [await orchestrator.run_sync_cycle(batch)]
    finally:
        components.db.close()

    synced = sum(r.synced_count for r in reports)
    skipped = sum(len(r.partial_failures) for r in reports)
    last = reports[-1].new_checkpoint if reports else 0
    print(json.dumps({"cycles": len(reports), "synced": synced, "skipped": skipped, "lastItemId": last}))
    return 0


async def show_status(settings: Settings) -> int:
    from .server.api import build_components

    components = build_components(settings)
    try:
        status = await components.orchestrator.get_status()
        pending = await components.orchestrator.count_pending()
    finally:
        components.db.close()
    print(json.dumps({**status.to_dict(), "pending": pending}))
    return 0


def serve(settings: Settings, host: str, port: int) -> int:
    import uvicorn

    from .server.api import create_app

    uvicorn.run(create_app(settings), host=host, port=port, log_config=None)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tribe-ai", description="Tribe forum sync and chat service")
    sub = parser.add_subparsers(dest="command", required=True)

    serve_p = sub.add_parser("serve", help="Run the HTTP API")
    serve_p.add_argument("--host", default="0.0.0.0")
    serve_p.add_argument("--port", type=int, default=8000)

    sync_p = sub.add_parser("sync", help="Run one sync cycle, or a full backfill")
    sync_p.add_argument("--full", action="store_true", help="Loop cycles until no posts remain")
    sync_p.add_argument("--clear", action="store_true", help="With --full, wipe the index and checkpoint first")
    sync_p.add_argument("--batch-size", type=int, default=None, help="Posts per cycle")

    sub.add_parser("status", help="Print checkpoint and index status")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    setup_logging(
        level=settings.logging.level,
        log_file=settings.logging.log_file,
        use_json=settings.logging.use_json,
    )

    if args.command == "serve":
        return serve(settings, args.host, args.port)
    if args.command == "sync":
        if args.clear and not args.full:
            logger.error("--clear requires --full")
            return 2
        return asyncio.run(run_sync(settings, args.full, args.clear, args.batch_size))
    return asyncio.run(show_status(settings))


if __name__ == "__main__":
    sys.exit(main())
