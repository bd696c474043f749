"""
Auction session records.

A session tracks which player is on the block and at what price. Sessions
live in memory only; SessionRegistry owns them and is itself owned by the
AuctionEngine, which serialises every change.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class AuctionSession:
    """Current auction state. Idle when is_active is False."""

    current_player_id: Optional[str] = None
    current_bid_price: Optional[float] = None
    tournament_id: Optional[str] = None
    is_active: bool = False

    @property
    def on_block(self) -> bool:
        return self.is_active and self.current_player_id is not None

    def matches(self, tournament_id: str) -> bool:
        """Whether a player of ``tournament_id`` is currently on the block."""
        return self.on_block and self.tournament_id == tournament_id

    def put_on_block(self, tournament_id: str, player_id: str, base_price: float) -> None:
        self.current_player_id = player_id
        self.current_bid_price = base_price
        self.tournament_id = tournament_id
        self.is_active = True

    def close(self, keep_tournament: bool = True) -> None:
        """Return to idle; the tournament id survives unless ``keep_tournament`` is False."""
        self.current_player_id = None
        self.current_bid_price = None
        self.is_active = False
        if not keep_tournament:
            self.tournament_id = None

    def to_dict(self) -> dict:
        return {
            'currentPlayerId': self.current_player_id,
            'currentBidPrice': self.current_bid_price,
            'tournamentId': self.tournament_id,
            'isActive': self.is_active,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'AuctionSession':
        return cls(
            current_player_id=data.get('currentPlayerId'),
            current_bid_price=data.get('currentBidPrice'),
            tournament_id=data.get('tournamentId'),
            is_active=data.get('isActive', False),
        )


class SessionRegistry:
    """
    Holds auction sessions.

    In single-session mode (the default) there is exactly one session per
    process: opening a session for another tournament replaces it. In
    multi-tournament mode each tournament keeps its own session.
    """

    def __init__(self, multi_tournament: bool = False):
        self.multi_tournament = multi_tournament
        self._sessions: Dict[Optional[str], AuctionSession] = {}
        self._global = AuctionSession()

    def get(self, tournament_id: str) -> AuctionSession:
        """
        Session for reads and transitions on ``tournament_id``.

        In single-session mode this is the process-wide session, whichever
        tournament it currently belongs to.
        """
        if not self.multi_tournament:
            return self._global
        if tournament_id not in self._sessions:
            self._sessions[tournament_id] = AuctionSession()
        return self._sessions[tournament_id]

    def open(self, tournament_id: str) -> AuctionSession:
        """
        Session about to receive a new player for ``tournament_id``.

        Logs when this discards another tournament's running auction.
        """
        session = self.get(tournament_id)
        if session.on_block and session.tournament_id != tournament_id:
            logger.warning(
                f"Replacing running auction of tournament {session.tournament_id} "
                f"(player {session.current_player_id}) with tournament {tournament_id}"
            )
        return session

    def view(self, tournament_id: str) -> AuctionSession:
        """
        Read-only view of the state for ``tournament_id``.

        Returns an empty session when the process-wide session belongs to a
        different tournament.
        """
        session = self.get(tournament_id)
        if session.tournament_id not in (None, tournament_id):
            return AuctionSession()
        return session

    def all(self) -> Dict[Optional[str], AuctionSession]:
        if not self.multi_tournament:
            return {self._global.tournament_id: self._global}
        return dict(self._sessions)

    def restore(self, session: AuctionSession, tournament_id: str) -> None:
        """Install a session rebuilt from the event log for ``tournament_id``."""
        if not self.multi_tournament:
            self._global = session
        else:
            self._sessions[tournament_id] = session
