"""
Append-only event storage for auction history.

Uses JSONL (JSON Lines) format where each line is a complete JSON object
representing a single committed auction event. This format enables:
- Streaming writes without loading entire file
- Human-readable auction log
- Session recovery after a restart
"""

import csv
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from .events import AuctionEvent
from .session import AuctionSession, SessionRegistry

logger = logging.getLogger(__name__)


class AuctionEventStore:
    """Append-only event log for auction history."""

    def __init__(self, filepath: Path):
        """
        Initialize event store.

        Args:
            filepath: Path to JSONL file for event storage
        """
        self.filepath = Path(filepath)
        self.filepath.parent.mkdir(parents=True, exist_ok=True)

    def append_event(self, event: AuctionEvent) -> None:
        """
        Append a single event to the log.

        Args:
            event: AuctionEvent to append
        """
        with open(self.filepath, 'a', encoding='utf-8') as f:
            f.write(event.to_json() + '\n')
        logger.debug(f"Appended event #{event.sequence}: {event.name} ({event.room})")

    def load_all_events(self) -> List[AuctionEvent]:
        """
        Load complete event history from file.

        Returns:
            List of AuctionEvents in commit order. Empty if the file doesn't exist.
        """
        if not self.filepath.exists():
            logger.debug(f"Event store file does not exist: {self.filepath}")
            return []

        events = []
        with open(self.filepath, 'r', encoding='utf-8') as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue

                try:
                    events.append(AuctionEvent.from_json(line))
                except (json.JSONDecodeError, KeyError, ValueError) as e:
                    logger.error(
                        f"Failed to parse event at line {line_num}: {e}\n"
                        f"Line content: {line}"
                    )
                    # Continue processing remaining events

        logger.info(f"Loaded {len(events)} events from {self.filepath}")
        return events

    def replay_sessions(
        self,
        multi_tournament: bool = False,
        registry: Optional[SessionRegistry] = None
    ) -> SessionRegistry:
        """
        Rebuild auction sessions from the logged session snapshots.

        Args:
            multi_tournament: Registry mode to rebuild into
            registry: Registry to continue from (e.g. one rebuilt from older logs)

        Returns:
            SessionRegistry holding the last known state of each session
        """
        if registry is None:
            registry = SessionRegistry(multi_tournament=multi_tournament)
        events = self.load_all_events()

        for event in events:
            if event.session is not None:
                registry.restore(AuctionSession.from_dict(event.session), event.tournament_id)

        active = [s for s in registry.all().values() if s.on_block]
        logger.info(f"Replayed {len(events)} events - {len(active)} player(s) on the block")
        return registry

    def get_last_event(self) -> Optional[AuctionEvent]:
        """
        Get the most recent event without parsing the whole log.

        Returns:
            Last AuctionEvent or None if empty
        """
        if not self.filepath.exists():
            return None

        with open(self.filepath, 'r', encoding='utf-8') as f:
            lines = f.readlines()

        for line in reversed(lines):
            line = line.strip()
            if line:
                try:
                    return AuctionEvent.from_json(line)
                except (json.JSONDecodeError, KeyError, ValueError) as e:
                    logger.error(f"Failed to parse last event: {e}")
                    continue

        return None

    def export_to_csv(self, output_path: Path) -> None:
        """
        Export event log to CSV for post-auction review.

        Args:
            output_path: Path for CSV output file
        """
        events = self.load_all_events()
        if not events:
            logger.warning("No events to export")
            return

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w', newline='', encoding='utf-8') as f:
            writer = csv.writer(f)
            writer.writerow([
                'sequence', 'name', 'tournament_id', 'player_id',
                'team_id', 'amount', 'timestamp'
            ])

            for event in events:
                payload = event.payload
                player = payload.get('player') or {}
                team = payload.get('team') or {}
                writer.writerow([
                    event.sequence,
                    event.name,
                    event.tournament_id,
                    player.get('id') or payload.get('playerId', ''),
                    team.get('id') or payload.get('teamId', ''),
                    payload.get('bidAmount', player.get('soldPrice', '')),
                    event.timestamp.isoformat(),
                ])

        logger.info(f"Exported {len(events)} events to {output_path}")


def create_session_filepath(base_dir: Path, session_id: Optional[str] = None) -> Path:
    """
    Generate a filepath for an auction event log.

    Args:
        base_dir: Base directory for event logs
        session_id: Optional identifier (uses timestamp if None)

    Returns:
        Path for event store file
    """
    if session_id is None:
        session_id = datetime.now().strftime('%Y%m%d_%H%M%S_%f')

    return Path(base_dir) / f"auction_{session_id}.jsonl"


def find_logs(base_dir: Path) -> List[Path]:
    """Auction event logs in ``base_dir``, oldest first (names embed the timestamp)."""
    base_dir = Path(base_dir)
    if not base_dir.exists():
        return []
    return sorted(base_dir.glob('auction_*.jsonl'))


def find_latest_log(base_dir: Path) -> Optional[Path]:
    """Newest auction event log in ``base_dir``."""
    logs = find_logs(base_dir)
    return logs[-1] if logs else None


def replay_logs(base_dir: Path, multi_tournament: bool = False) -> Tuple[SessionRegistry, int]:
    """
    Rebuild sessions from every event log in ``base_dir``.

    Each server run writes its own log, so a tournament that saw no events
    in the latest run is only found in an older one. Logs are replayed
    oldest first; later snapshots win.

    Args:
        base_dir: Directory holding the event logs
        multi_tournament: Registry mode to rebuild into

    Returns:
        (registry, last sequence number seen)
    """
    registry = SessionRegistry(multi_tournament=multi_tournament)
    last_sequence = 0

    for path in find_logs(base_dir):
        event_store = AuctionEventStore(path)
        event_store.replay_sessions(registry=registry)
        last_event = event_store.get_last_event()
        if last_event is not None:
            last_sequence = max(last_sequence, last_event.sequence)

    return registry, last_sequence
