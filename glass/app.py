import argparse
import json
import signal
import threading
from pathlib import Path
from typing import Optional, Sequence

from . import __version__
from .api import ENTITY_TYPE_PROFILE, ENTITY_TYPE_SCENE, CatalystClient
from .api.errors import ContentServerError
from .config import ConfigError, Options, load_options
from .database import Scene, Tile, get_session_factory, init_database, session_scope
from .downloads import download_scene
from .env import load_env
from .indexer import ContentIndexer, EpochInterrupted
from .indexes import SceneIndex
from .logger import StructuredLogger, get_logger
from .storage import count_rows, get_latest_published_at
from .tiles import index_tiles


def _options() -> Options:
    try:
        return load_options()
    except ConfigError as e:
        raise SystemExit(f"Configuration error: {e}")


def _logger(options: Options) -> StructuredLogger:
    return get_logger(level=options.log_level, log_dir=options.log_dir)


def _client(options: Options, logger: StructuredLogger) -> CatalystClient:
    return CatalystClient(options.content_server_url, timeout=options.request_timeout, logger=logger)


def build_indexer(options: Options, logger: StructuredLogger) -> ContentIndexer:
    """Wire the content client, the database and the indexes together."""
    engine = init_database(options.database_url)
    client = _client(options, logger)
    return ContentIndexer(
        client,
        get_session_factory(engine),
        [SceneIndex()],
        options.index_workers,
        options.index_interval,
        history_page_size=options.history_page_size,
        server_name=options.server_name,
        logger=logger,
    )


def cmd_run(args: argparse.Namespace) -> None:
    options = _options()
    logger = _logger(options)
    indexer = build_indexer(options, logger)

    stop_event = threading.Event()

    def _shutdown(signum, frame):
        logger.info("Shutting down gracefully...", signal=signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    logger.info(
        "Indexer started",
        content_server=options.content_server_url,
        workers=options.index_workers,
        interval=options.index_interval,
    )
    indexer.run(stop_event)


def cmd_epoch(args: argparse.Namespace) -> None:
    options = _options()
    logger = _logger(options)
    indexer = build_indexer(options, logger)
    try:
        summary = indexer.run_epoch()
    except (ContentServerError, EpochInterrupted) as e:
        logger.error("Epoch failed", error=str(e))
        raise SystemExit(1)
    finally:
        logger.log_metrics_summary()
    print(f"Dispatched: {summary['dispatched']} ({summary['failed']} failed)")
    print(f"Tiles: {summary['tiles']['tiles']} from {summary['tiles']['scenes']} scenes")


def cmd_tiles(args: argparse.Namespace) -> None:
    options = _options()
    logger = _logger(options)
    engine = init_database(options.database_url)
    summary = index_tiles(get_session_factory(engine), args.since, logger=logger)
    print(f"Tiles: {summary['tiles']} upserted, {summary['failed']} failed, "
          f"{summary['invalid_pointers']} invalid pointers ({summary['scenes']} scenes)")


def cmd_download(args: argparse.Namespace) -> None:
    options = _options()
    logger = _logger(options)
    indexer = build_indexer(options, logger)
    try:
        written = download_scene(
            indexer.client, indexer.session_factory, Path(args.data_dir), args.scene, logger=logger
        )
    except (LookupError, ValueError, ContentServerError) as e:
        raise SystemExit(f"Download failed: {e}")
    for path in written:
        print(path)


def cmd_status(args: argparse.Namespace) -> None:
    options = _options()
    logger = _logger(options)
    indexer = build_indexer(options, logger)

    try:
        status = indexer.client.get_status()
        print(f"Server: {status.name} {status.version} (history size {status.history_size})")
    except ContentServerError as e:
        print(f"Server: unreachable ({e})")

    with session_scope(indexer.session_factory) as session:
        scenes = count_rows(session, Scene)
        tiles = count_rows(session, Tile)
        latest = get_latest_published_at(session)
    print(f"Scenes: {scenes}")
    print(f"Tiles: {tiles}")
    print(f"Latest publication: {latest.isoformat() if latest else 'n/a'}")


def cmd_pointers(args: argparse.Namespace) -> None:
    options = _options()
    client = _client(options, _logger(options))
    try:
        pointers = client.get_pointers(args.type)
    except ContentServerError as e:
        raise SystemExit(f"Request failed: {e}")
    for pointer in pointers:
        print(pointer)
    print(f"Total: {len(pointers)} {args.type} pointers")


def cmd_scene(args: argparse.Namespace) -> None:
    options = _options()
    client = _client(options, _logger(options))
    try:
        if args.id:
            entity = client.get_scene_entity_by_id(args.id)
        else:
            entity = client.get_scene_entity_by_pointer(args.pointer)
    except ContentServerError as e:
        raise SystemExit(f"Request failed: {e}")
    print(f"Scene: {entity.id}")
    print(f"Title: {entity.title or 'n/a'}")
    print(f"Pointers: {', '.join(entity.pointers)}")
    print(f"Files: {len(entity.content)}")


def cmd_audit(args: argparse.Namespace) -> None:
    options = _options()
    client = _client(options, _logger(options))
    try:
        audit = client.get_audit(args.type, args.id)
    except ContentServerError as e:
        raise SystemExit(f"Request failed: {e}")
    print(json.dumps(audit, indent=2, sort_keys=True))


def main(argv: Optional[Sequence[str]] = None):
    # Load .env if present (CONTENT_SERVER_URL, DATABASE_URL, NUM_WORKERS, ...)
    load_env()
    parser = argparse.ArgumentParser(prog="glass", description="Catalyst content indexer")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    run = subparsers.add_parser("run", help="Index the content server every INDEX_INTERVAL seconds")
    run.set_defaults(func=cmd_run)

    epoch = subparsers.add_parser("epoch", help="Run a single indexing epoch and exit")
    epoch.set_defaults(func=cmd_epoch)

    tiles = subparsers.add_parser("tiles", help="Recompute tiles from the indexed scenes")
    tiles.add_argument("--since", type=int, default=0, help="Only scenes published at or after this unix timestamp (default: 0)")
    tiles.set_defaults(func=cmd_tiles)

    dl = subparsers.add_parser("download", help="Download the content files of an indexed scene")
    dl.add_argument("--scene", required=True, help="Scene id")
    dl.add_argument("--data-dir", default="data/scenes", help="Output directory (default: data/scenes)")
    dl.set_defaults(func=cmd_download)

    st = subparsers.add_parser("status", help="Show content server status and index counts")
    st.set_defaults(func=cmd_status)

    ptr = subparsers.add_parser("pointers", help="List the pointers claimed on the content server")
    ptr.add_argument("--type", choices=[ENTITY_TYPE_SCENE, ENTITY_TYPE_PROFILE], default=ENTITY_TYPE_SCENE,
                     help="Entity type (default: scene)")
    ptr.set_defaults(func=cmd_pointers)

    sc = subparsers.add_parser("scene", help="Show a scene as deployed on the content server")
    sc_target = sc.add_mutually_exclusive_group(required=True)
    sc_target.add_argument("--id", help="Scene id")
    sc_target.add_argument("--pointer", help='Parcel pointer, e.g. "10,-5"')
    sc.set_defaults(func=cmd_scene)

    aud = subparsers.add_parser("audit", help="Show the audit info of an entity")
    aud.add_argument("--type", choices=[ENTITY_TYPE_SCENE, ENTITY_TYPE_PROFILE], default=ENTITY_TYPE_SCENE,
                     help="Entity type (default: scene)")
    aud.add_argument("--id", required=True, help="Entity id")
    aud.set_defaults(func=cmd_audit)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
