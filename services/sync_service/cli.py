"""Command line entry point: roam-notion-sync sync <dir> <mappingcachefile> [exporturl]."""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from services.sync_service.orchestrator import create_orchestrator
from shared.config import SyncSettings, get_sync_settings
from shared.exceptions import ConfigError
from shared.models import SyncRunResult

logger = logging.getLogger(__name__)

EXIT_ABORTED = 1
EXIT_CONFIG_ERROR = 2

SYNC_HELP = """
Sync your Roam graph with your Notion databases:
1. Download payload from an external URL to import INTO Roam
2. Import every page of the source Notion database that is not tagged
   'RoamImported' into Roam, linked from today's daily page, then tag it
3. Export all pages from Roam into the target Notion database, updating
   pages that were synced before
4. Push the exported graph to 'exporturl' if provided

'dir' receives the downloaded graph archives. 'mappingcachefile' is a JSON
file caching the Roam uid <-> Notion page id mapping. Do not run two syncs
against the same mapping cache file at the same time.
"""


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="roam-notion-sync",
        description="Keep a Roam graph and Notion databases in sync. "
                    "Every option can also be set through ROAM_API_* environment variables."
    )
    parser.add_argument("-g", "--graph", help="Your graph name")
    parser.add_argument("--graph-file", help="Roam JSON export holding the graph")
    parser.add_argument("-t", "--notion-token", help="Your Notion integration token")
    parser.add_argument("--source-database", help="Notion database to import into Roam")
    parser.add_argument("--target-database", help="Notion database receiving the Roam pages")
    parser.add_argument(
        "--privateapiurl",
        help="Additional endpoint that provides data to sync INTO Roam"
    )
    parser.add_argument(
        "--nodownload",
        action="store_true",
        default=None,
        help="Skip the download of the Roam graph, reuse the latest archive"
    )
    parser.add_argument(
        "--removezip",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Remove the downloaded archive once exported (default: yes)"
    )
    parser.add_argument("--dedup-tag", help="Tag marking imported Notion pages")
    parser.add_argument(
        "--daily-links",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Link pages imported from Notion on today's daily page (default: yes)"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)
    sync = subparsers.add_parser(
        "sync",
        help="Run one sync",
        description=SYNC_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    sync.add_argument("dir", help="Directory where the graph is downloaded")
    sync.add_argument("mappingcachefile", help="Roam uid <-> Notion page id cache")
    sync.add_argument("exporturl", nargs="?", help="URL receiving the exported graph")
    return parser


def settings_from_args(args: argparse.Namespace) -> SyncSettings:
    """Overlay command line values on the ROAM_API_* environment settings."""
    settings = get_sync_settings(validate=False)
    overrides = {
        "graph": args.graph,
        "graph_file": args.graph_file,
        "notion_token": args.notion_token,
        "source_database_id": args.source_database,
        "target_database_id": args.target_database,
        "private_api_url": args.privateapiurl,
        "no_download": args.nodownload,
        "remove_zip": args.removezip,
        "dedup_tag": args.dedup_tag,
        "daily_note_links": args.daily_links,
        "archive_dir": args.dir,
        "mapping_cache_file": args.mappingcachefile,
        "export_url": args.exporturl
    }
    settings = replace(settings, **{k: v for k, v in overrides.items() if v is not None})
    return settings.validate()


async def run_sync(settings: SyncSettings) -> SyncRunResult:
    orchestrator = create_orchestrator(settings)
    try:
        return await orchestrator.execute_sync()
    finally:
        await orchestrator.aclose()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = settings_from_args(args)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    try:
        result = asyncio.run(run_sync(settings))
    except Exception as e:
        logger.exception(f"Sync failed unexpectedly: {e}")
        return EXIT_ABORTED

    if not result.succeeded:
        logger.error(f"Sync aborted ({result.error_kind}): {result.error}")
        return EXIT_ABORTED

    print("success")
    return 0


if __name__ == "__main__":
    sys.exit(main())
