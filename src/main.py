"""
Main CLI entry point for the live auction server.
"""

import argparse
import logging
import sys
from pathlib import Path

import uvicorn

from . import config
from .auction.api_server import create_app
from .auction.broadcast import EventDispatcher
from .auction.engine import AuctionEngine
from .auction.event_store import (
    AuctionEventStore,
    create_session_filepath,
    find_latest_log,
    replay_logs,
)
from .auction.session import SessionRegistry
from .auction.stores import DocumentStore


def setup_logging(verbose: bool = False):
    """
    Configure logging for the application.

    Args:
        verbose: Enable verbose (DEBUG) logging
    """
    level = logging.DEBUG if verbose else getattr(logging, config.LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=level,
        format=config.LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def parse_arguments(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description='Live Auction Server',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve the auction for a league file
  python -m src.main --data data/auction_data.json

  # Independent auctions per tournament, on all interfaces
  python -m src.main --data league.json --multi-tournament --host 0.0.0.0

  # Export the newest event log to CSV and exit
  python -m src.main --data league.json --export-events auction_log.csv
        """
    )

    parser.add_argument(
        '--data',
        type=str,
        default=config.DATA_FILE,
        help=f'JSON file with tournaments, teams and players (default: {config.DATA_FILE})'
    )

    parser.add_argument(
        '--host',
        type=str,
        default=config.API_HOST,
        help=f'Bind address (default: {config.API_HOST})'
    )

    parser.add_argument(
        '--port',
        type=int,
        default=config.API_PORT,
        help=f'Port (default: {config.API_PORT})'
    )

    parser.add_argument(
        '--events-dir',
        type=str,
        default=config.AUCTION_EVENTS_DIR,
        help=f'Directory for auction event logs (default: {config.AUCTION_EVENTS_DIR})'
    )

    parser.add_argument(
        '--no-event-log',
        action='store_true',
        help='Do not record or replay auction events'
    )

    parser.add_argument(
        '--multi-tournament',
        action='store_true',
        default=config.MULTI_TOURNAMENT_SESSIONS,
        help='Keep an independent auction session per tournament'
    )

    parser.add_argument(
        '--export-events',
        type=str,
        default=None,
        help='Export the newest event log to this CSV file and exit'
    )

    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    return parser.parse_args(argv)


def build_engine(store: DocumentStore, args) -> AuctionEngine:
    """
    Create the engine, resuming sessions from the event logs of earlier runs.

    Args:
        store: Loaded document store
        args: Parsed CLI arguments

    Returns:
        AuctionEngine ready to serve
    """
    logger = logging.getLogger(__name__)

    if args.no_event_log:
        logger.info("Event log disabled")
        return AuctionEngine.from_store(
            store,
            sessions=SessionRegistry(multi_tournament=args.multi_tournament),
            on_commit=store.flush
        )

    events_dir = Path(args.events_dir)
    sessions, start_sequence = replay_logs(events_dir, multi_tournament=args.multi_tournament)
    if start_sequence:
        logger.info(f"Resumed auction state from {events_dir} (last event #{start_sequence})")

    event_store = AuctionEventStore(create_session_filepath(events_dir))
    logger.info(f"Recording auction events to {event_store.filepath}")

    dispatcher = EventDispatcher(event_store=event_store, start_sequence=start_sequence)
    return AuctionEngine.from_store(
        store,
        dispatcher=dispatcher,
        sessions=sessions,
        on_commit=store.flush
    )


def export_events(args) -> int:
    """Export the newest event log to CSV. Returns the process exit code."""
    logger = logging.getLogger(__name__)

    latest = find_latest_log(Path(args.events_dir))
    if latest is None:
        logger.error(f"No event logs found in {args.events_dir}")
        return 1

    AuctionEventStore(latest).export_to_csv(Path(args.export_events))
    return 0


def main(argv=None):
    """Main execution function."""
    args = parse_arguments(argv)

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    if args.export_events:
        sys.exit(export_events(args))

    try:
        store = DocumentStore.load(Path(args.data))
    except FileNotFoundError as e:
        logger.error(str(e))
        sys.exit(1)

    engine = build_engine(store, args)
    app = create_app(engine)

    logger.info("=" * 60)
    logger.info("Live Auction Server")
    logger.info(f"Data file: {args.data}")
    logger.info(f"Session mode: {'per tournament' if args.multi_tournament else 'single auction'}")
    logger.info(f"Listening on http://{args.host}:{args.port}")
    logger.info("=" * 60)

    try:
        uvicorn.run(app, host=args.host, port=args.port, log_level='debug' if args.verbose else 'info')
    except KeyboardInterrupt:
        logger.info("\nAuction server interrupted by user")
    finally:
        store.flush()


if __name__ == '__main__':
    main()
