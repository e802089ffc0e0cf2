"""Command-line interface for the game catalog sync service."""

from __future__ import annotations

import argparse
import json
import logging
import os
import shlex
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

from .catalog import CatalogStore, SearchFilters
from .clients import RAWGClient, SteamClient
from .config import CACHE_TTL, default_database_url
from .errors import CatalogSyncError, NotFoundError
from .services import CatalogImporter, DiscoveryService, GameAggregator, export_catalog
from .services.importer import catalog_frame, write_csv
from .utils import TTLCache, load_credentials, resolve_rawg_api_key


def setup_logging(log_file: Path) -> None:
    """Configure logging to both console and file."""
    log_file.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(
        "%(asctime)s.%(msecs)03d - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter)

    # Console output goes to stderr; stdout carries the JSON result.
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    # Silence verbose HTTP debug logs by default
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)

    logging.info(f"Logging to file: {log_file}")


def _project_root() -> Path:
    return Path(__file__).resolve().parent.parent


def _default_log_file(*, command_name: str, logs_dir: Path) -> Path:
    logs_dir.mkdir(parents=True, exist_ok=True)

    now = datetime.now()
    stamp = now.strftime("%Y%m%d-%H%M%S") + f".{now.microsecond // 1000:03d}"
    candidate = logs_dir / f"log-{stamp}-{command_name}.log"
    if not candidate.exists():
        return candidate
    return logs_dir / f"log-{stamp}-{command_name}-{os.getpid()}.log"


def _setup_logging_from_args(args: argparse.Namespace) -> None:
    logs_dir = _project_root() / "data" / "logs"
    setup_logging(args.log_file or _default_log_file(command_name=args.command, logs_dir=logs_dir))
    if args.debug:
        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG)
        for handler in root_logger.handlers:
            handler.setLevel(logging.DEBUG)
        logging.getLogger("urllib3").setLevel(logging.DEBUG)

    argv = " ".join(shlex.quote(a) for a in sys.argv)
    logging.info(f"Invocation: {argv}")


def _store(args: argparse.Namespace) -> CatalogStore:
    url = args.database_url or default_database_url(_project_root())
    if url.startswith("sqlite:///"):
        Path(url[len("sqlite:///") :]).parent.mkdir(parents=True, exist_ok=True)
    return CatalogStore.from_url(url)


def _clients(args: argparse.Namespace) -> tuple[RAWGClient, SteamClient, GameAggregator]:
    credentials = load_credentials(args.credentials)
    rawg = RAWGClient(resolve_rawg_api_key(credentials), TTLCache(CACHE_TTL.search_s))
    steam = SteamClient(TTLCache(CACHE_TTL.pricing_s))
    return rawg, steam, GameAggregator(rawg, steam)


def _emit(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _log_client_stats(rawg: RAWGClient, steam: SteamClient) -> None:
    logging.info(f"RAWG: {rawg.format_cache_stats()}")
    logging.info(f"Steam: {steam.format_cache_stats()}")


def _command_discover(args: argparse.Namespace) -> None:
    store = _store(args)
    rawg, steam, aggregator = _clients(args)
    filters = SearchFilters(genre=args.genre, platform=args.platform, developer=args.developer)
    response = DiscoveryService(store, rawg, aggregator).search_and_sync(args.query, filters)
    _log_client_stats(rawg, steam)
    _emit(response.to_dict())


def _command_aggregate(args: argparse.Namespace) -> None:
    rawg, steam, aggregator = _clients(args)
    try:
        if args.save:
            importer = CatalogImporter(_store(args), rawg, aggregator)
            game = importer.import_game(args.rawg_id, args.steam_app_id)
            payload = catalog_frame([game]).to_dict(orient="records")[0]
        else:
            data = aggregator.aggregate(args.rawg_id, args.steam_app_id)
            payload = {**data.to_catalog_fields(), "pricing_status": data.pricing.status}
    except NotFoundError as e:
        logging.error(str(e))
        raise SystemExit(f"Not found: {e.message}") from e
    _log_client_stats(rawg, steam)
    _emit(payload)


def _report_payload(report) -> dict[str, Any]:
    return {
        "checked": report.checked,
        "added": report.added,
        "skipped": report.skipped,
        "failed": report.failed,
        "games": [g["title"] for g in report.games],
    }


def _write_preview(report, preview: Path | None) -> None:
    if preview is None:
        return
    write_csv(catalog_frame(report.games), preview)
    logging.info(f"Wrote import preview ({len(report.games)} games): {preview}")


def _command_import_popular(args: argparse.Namespace) -> None:
    store = _store(args)
    rawg, steam, aggregator = _clients(args)
    genres = [g.strip() for g in (args.genres or "").split(",") if g.strip()]
    report = CatalogImporter(store, rawg, aggregator).import_popular(
        args.target,
        genres,
        page_size=args.page_size,
        max_pages=args.max_pages,
        commit=args.commit,
    )
    _write_preview(report, args.preview)
    _log_client_stats(rawg, steam)
    _emit(_report_payload(report))


def _command_import_top(args: argparse.Namespace) -> None:
    store = _store(args)
    rawg, steam, aggregator = _clients(args)
    report = CatalogImporter(store, rawg, aggregator).import_top(
        args.start,
        args.end,
        args.target,
        page_size=args.page_size,
        max_pages=args.max_pages,
        commit=args.commit,
    )
    _write_preview(report, args.preview)
    _log_client_stats(rawg, steam)
    _emit(_report_payload(report))


def _command_export(args: argparse.Namespace) -> None:
    count = export_catalog(_store(args), args.out)
    _emit({"exported": count, "path": str(args.out)})


def _command_filters(args: argparse.Namespace) -> None:
    _emit(_store(args).get_filters())


def _add_import_options(p: argparse.ArgumentParser, *, default_target: int) -> None:
    p.add_argument("--target", type=int, default=default_target, help="Games to add per listing")
    p.add_argument("--page-size", type=int, default=40)
    p.add_argument("--max-pages", type=int, default=5)
    p.add_argument(
        "--commit",
        action="store_true",
        help="Write accepted games to the catalog (default: dry run)",
    )
    p.add_argument("--preview", type=Path, help="Write accepted games to this CSV")


def main(argv: list[str] | None = None) -> None:
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv:
        raise SystemExit(
            "Missing command. Use one of: "
            "discover, aggregate, import-popular, import-top, export, filters. "
            "Run `game-catalog-sync --help` for usage."
        )

    parser = argparse.ArgumentParser(description="Search and grow a game catalog from RAWG and Steam")
    sub = parser.add_subparsers(dest="command", required=True)

    p_common = argparse.ArgumentParser(add_help=False)
    p_common.add_argument(
        "--database-url",
        type=str,
        help="SQLAlchemy database URL (default: $GAME_CATALOG_DATABASE_URL or data/catalog.db)",
    )
    p_common.add_argument(
        "--credentials",
        type=Path,
        help="Path to credentials.yaml (default: data/credentials.yaml)",
    )
    p_common.add_argument(
        "--log-file",
        type=Path,
        help="Log file path (default: data/logs/log-<timestamp>-<command>.log)",
    )
    p_common.add_argument("--debug", action="store_true", help="Enable DEBUG logging (default: INFO)")

    p_discover = sub.add_parser(
        "discover", help="Search the catalog, importing new RAWG matches", parents=[p_common]
    )
    p_discover.add_argument("query", type=str)
    p_discover.add_argument("--genre", type=str)
    p_discover.add_argument("--platform", type=str)
    p_discover.add_argument("--developer", type=str)
    p_discover.set_defaults(_fn=_command_discover)

    p_aggregate = sub.add_parser(
        "aggregate", help="Combine RAWG metadata and Steam pricing for one game", parents=[p_common]
    )
    p_aggregate.add_argument("rawg_id", type=int)
    p_aggregate.add_argument("--steam-app-id", type=int, help="Use this Steam App ID for pricing")
    p_aggregate.add_argument("--save", action="store_true", help="Add the game to the catalog")
    p_aggregate.set_defaults(_fn=_command_aggregate)

    p_popular = sub.add_parser(
        "import-popular", help="Seed the catalog with popular PC games", parents=[p_common]
    )
    p_popular.add_argument(
        "--genres",
        type=str,
        default="",
        help="Comma-separated RAWG genre slugs (e.g. action,horror); default: all genres",
    )
    _add_import_options(p_popular, default_target=30)
    p_popular.set_defaults(_fn=_command_import_popular)

    p_top = sub.add_parser(
        "import-top", help="Seed the catalog with top-rated games of a period", parents=[p_common]
    )
    p_top.add_argument("--start", type=str, required=True, help="First release date (YYYY-MM-DD)")
    p_top.add_argument("--end", type=str, required=True, help="Last release date (YYYY-MM-DD)")
    _add_import_options(p_top, default_target=80)
    p_top.set_defaults(_fn=_command_import_top)

    p_export = sub.add_parser("export", help="Export the catalog to CSV", parents=[p_common])
    p_export.add_argument("out", type=Path)
    p_export.set_defaults(_fn=_command_export)

    p_filters = sub.add_parser(
        "filters", help="List the genres and platforms present in the catalog", parents=[p_common]
    )
    p_filters.set_defaults(_fn=_command_filters)

    ns = parser.parse_args(argv)
    _setup_logging_from_args(ns)
    try:
        ns._fn(ns)
    except CatalogSyncError as e:
        logging.error(f"{type(e).__name__}: {e.message}")
        raise SystemExit(1) from e
    return


if __name__ == "__main__":
    main()
