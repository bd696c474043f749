"""
Auction events.

Every committed state transition produces one or more events. Events are
delivered to the tournament's broadcast room and appended to the event log.
Each event also records the session state right after the transition so the
log can rebuild sessions after a restart.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .. import config

AUCTION_STARTED = 'auction:started'
PLAYER_SELECTED = 'player:selected'
BID_PLACED = 'bid:placed'
PLAYER_SOLD = 'player:sold'
TEAM_UPDATED = 'team:updated'
PLAYER_UNSOLD = 'player:unsold'
AUCTION_CANCELLED = 'auction:cancelled'

# Sent only to a client joining a room, never logged
AUCTION_STATE = 'auction:state'


def room_key(tournament_id: str) -> str:
    """Broadcast room for a tournament's auction, e.g. ``auction:<id>``."""
    return f"{config.ROOM_KEY_PREFIX}:{tournament_id}"


@dataclass
class AuctionEvent:
    """A single committed auction event."""

    name: str                       # Event name, e.g. 'bid:placed'
    tournament_id: str
    payload: dict
    session: Optional[dict] = None  # AuctionSession.to_dict() after the transition
    sequence: int = 0               # Assigned by the dispatcher, increasing per process
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def room(self) -> str:
        return room_key(self.tournament_id)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'sequence': self.sequence,
            'name': self.name,
            'tournament_id': self.tournament_id,
            'payload': self.payload,
            'session': self.session,
            'timestamp': self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'AuctionEvent':
        """Create AuctionEvent from dictionary (JSON deserialization)."""
        return cls(
            name=data['name'],
            tournament_id=data['tournament_id'],
            payload=data.get('payload') or {},
            session=data.get('session'),
            sequence=data.get('sequence', 0),
            timestamp=datetime.fromisoformat(data['timestamp']),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def from_json(cls, json_str: str) -> 'AuctionEvent':
        return cls.from_dict(json.loads(json_str))
