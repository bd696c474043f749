"""
Auction session state machine.

The AuctionEngine owns the session registry and is the only component that
changes it. Each transition runs under one process-local lock:

1. Validate identifiers, then the state precondition (rejections change nothing)
2. Persist player/team changes through the stores and the RosterLedger
3. Update the session
4. Build the events describing the transition and hand them to the
   EventDispatcher, still under the lock, so rooms see commit order
"""

import logging
import math
import random
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import pandas as pd

from .bid_policy import increment_for
from .categories import enrich_player, player_base_price
from .errors import BusinessRuleViolation, NotFoundError, StateConflictError, ValidationError
from .events import (
    AUCTION_CANCELLED,
    AUCTION_STARTED,
    BID_PLACED,
    PLAYER_SELECTED,
    PLAYER_SOLD,
    PLAYER_UNSOLD,
    TEAM_UPDATED,
    AuctionEvent,
)
from .broadcast import EventDispatcher
from .ledger import UNSET, RosterLedger
from .models import Player, Team, Tournament, is_valid_id
from .quota import QuotaChecker
from .session import AuctionSession, SessionRegistry

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    """Outcome of a committed transition."""

    message: str
    data: dict = field(default_factory=dict)
    events: List[AuctionEvent] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {'success': True, 'message': self.message, 'data': self.data}


class AuctionEngine:
    """
    Serialised coordinator for live auctions.

    Transitions: start, shuffle, select_player, place_bid, sell, mark_unsold,
    cancel. Reads: get_current_auction, get_max_bids, get_unsold_players,
    team_summary.
    """

    def __init__(
        self,
        players,
        teams,
        tournaments,
        dispatcher: Optional[EventDispatcher] = None,
        sessions: Optional[SessionRegistry] = None,
        rng: Optional[random.Random] = None,
        on_commit: Optional[Callable[[], None]] = None
    ):
        """
        Initialize engine.

        Args:
            players: Player repository
            teams: Team repository
            tournaments: Tournament repository
            dispatcher: Event delivery (a dispatcher without a log if None)
            sessions: Session registry (single-session mode if None)
            rng: Random source for shuffle
            on_commit: Called after every committed change (e.g. store.flush)
        """
        self.players = players
        self.teams = teams
        self.tournaments = tournaments
        self.dispatcher = dispatcher or EventDispatcher()
        self.sessions = sessions or SessionRegistry()
        self.rng = rng or random.Random()
        self.on_commit = on_commit

        self.ledger = RosterLedger(players, teams, tournaments)
        self.quota = QuotaChecker(players)
        self._lock = threading.RLock()

    @classmethod
    def from_store(cls, store, **kwargs) -> 'AuctionEngine':
        """Build an engine over a DocumentStore."""
        return cls(store.players, store.teams, store.tournaments, **kwargs)

    # ===== Transitions =====

    def start(self, tournament_id: str) -> TransitionResult:
        """
        Put the oldest never-auctioned unsold player on the block.

        Raises:
            ValidationError: Malformed tournament id
            NotFoundError: Tournament missing or no player left to auction
            StateConflictError: A player of this tournament is already on the block
        """
        self._require_id(tournament_id, 'tournament')

        with self._lock:
            tournament = self._load_tournament(tournament_id)

            if self.sessions.get(tournament_id).matches(tournament_id):
                raise StateConflictError(
                    'Auction already in progress for this tournament',
                    details={'currentPlayerId': self.sessions.get(tournament_id).current_player_id}
                )

            player = self.players.find_first_unsold(tournament_id, include_auctioned=False)
            if player is None:
                raise NotFoundError('No unsold players found')

            return self._put_on_block(tournament, player, 'Auction started', announce=True)

    def shuffle(self, tournament_id: str) -> TransitionResult:
        """
        Put a uniformly random never-auctioned unsold player on the block.

        Replaces whatever player is currently on the block.
        """
        self._require_id(tournament_id, 'tournament')

        with self._lock:
            tournament = self._load_tournament(tournament_id)

            candidates = self.players.find_all_unsold(tournament_id, include_auctioned=False)
            if not candidates:
                raise NotFoundError('No unsold players found')

            player = self.rng.choice(candidates)
            return self._put_on_block(tournament, player, 'Player shuffled')

    def select_player(self, tournament_id: str, player_id: str) -> TransitionResult:
        """
        Operator override: put a specific unsold player on the block.

        Previously auctioned (marked unsold) players can be brought back this way.

        Raises:
            ValidationError: Malformed ids, or player of another tournament
            NotFoundError: Tournament or player missing
            StateConflictError: Player already sold
        """
        self._require_id(tournament_id, 'tournament')
        self._require_id(player_id, 'player')

        with self._lock:
            tournament = self._load_tournament(tournament_id)

            player = self.players.find_by_id(player_id)
            if player is None:
                raise NotFoundError('Player not found')
            if player.tournament_id != tournament_id:
                raise ValidationError('Player does not belong to this tournament')
            if player.is_sold:
                raise StateConflictError('Player is already sold')

            return self._put_on_block(tournament, player, 'Player selected')

    def place_bid(self, tournament_id: str, team_id: str, bid_amount) -> TransitionResult:
        """
        Raise the price of the player on the block.

        Args:
            tournament_id: Tournament being auctioned
            team_id: Bidding team
            bid_amount: New price, at least current price + increment

        Raises:
            ValidationError: Malformed ids or non-positive amount
            StateConflictError: No player of this tournament on the block
            NotFoundError: Player, team or tournament missing
            BusinessRuleViolation: Below minimum bid or quota infeasible
        """
        self._require_id(tournament_id, 'tournament')
        self._require_id(team_id, 'team')
        if not self._is_number(bid_amount) or bid_amount <= 0:
            raise ValidationError('Bid amount must be a positive number')

        with self._lock:
            session = self._active_session(tournament_id)
            player = self._current_player(session)
            tournament = self._load_tournament(tournament_id)
            team = self._load_team(team_id, tournament_id)

            current_price = session.current_bid_price or 0
            increment = increment_for(current_price, tournament)
            minimum_bid = current_price + increment
            if bid_amount < minimum_bid:
                logger.warning(
                    f"Rejected bid {bid_amount} by {team.name or team.id} on "
                    f"{player.name or player.id}: minimum {minimum_bid}"
                )
                raise BusinessRuleViolation(
                    f"Minimum bid is {minimum_bid} (current {current_price} + increment {increment})",
                    details={
                        'minimumBid': minimum_bid,
                        'currentBidPrice': current_price,
                        'increment': increment,
                    }
                )

            report = self.quota.check_feasible(team, player, bid_amount, tournament, action='bid')
            if not report.feasible:
                logger.warning(
                    f"Rejected bid {bid_amount} by {team.name or team.id}: "
                    f"{'; '.join(report.messages)}"
                )
                raise BusinessRuleViolation(' '.join(report.messages), details=report.to_dict())

            session.current_bid_price = bid_amount

            events = [self._event(BID_PLACED, tournament_id, session, {
                'teamId': team.id,
                'teamName': team.name,
                'bidAmount': bid_amount,
                'currentBidPrice': session.current_bid_price,
            })]
            self.dispatcher.dispatch(events)
            self._after_commit()

            logger.info(f"Bid {bid_amount} by {team.name or team.id} on {player.name or player.id}")
            return TransitionResult(
                message='Bid placed successfully',
                data={
                    'bidAmount': bid_amount,
                    'currentBidPrice': session.current_bid_price,
                    'team': self._team_info(team),
                },
                events=events,
            )

    def sell(self, tournament_id: str, team_id: str) -> TransitionResult:
        """
        Sell the player on the block to ``team_id`` at the current price.

        Quota and budget problems never block the sale; they come back as
        ``warnings`` in the result data.

        Raises:
            ValidationError: Malformed ids, or team of another tournament
            StateConflictError: No player on the block, or player already sold
            NotFoundError: Player, team or tournament missing
        """
        self._require_id(tournament_id, 'tournament')
        self._require_id(team_id, 'team')

        with self._lock:
            session = self._active_session(tournament_id)
            player = self._current_player(session)
            tournament = self._load_tournament(tournament_id)
            team = self._load_team(team_id, tournament_id)

            price = session.current_bid_price or 0
            report = self.quota.check_feasible(team, player, price, tournament, action='sale')
            excess = price - team.remaining_amount

            player.sold_price = price
            player.sold_to = team.id
            player.was_auctioned = True
            self.players.save(player)
            team = self.ledger.add_player(team, player.id)

            session.close(keep_tournament=True)

            warnings = {
                'budgetExceeded': None,
                'categoryRequirements': report.messages,
            }
            if excess > 0:
                warnings['budgetExceeded'] = {
                    'excess': excess,
                    'message': f"Team exceeded budget limit by {excess}.",
                }
            for message in report.messages:
                logger.warning(f"Sale of {player.name or player.id}: {message}")
            if excess > 0:
                logger.warning(f"{team.name or team.id} is {excess} over budget after the sale")

            player_data = enrich_player(player, tournament)
            team_data = self._team_info(team)
            events = [
                self._event(PLAYER_SOLD, tournament_id, session, {
                    'player': player_data,
                    'team': team_data,
                }),
                self._event(TEAM_UPDATED, tournament_id, session, {
                    'teamId': team.id,
                    'remainingAmount': team.remaining_amount,
                    'playerCount': team.player_count,
                }),
            ]
            self.dispatcher.dispatch(events)
            self._after_commit()

            logger.info(f"Sold {player.name or player.id} to {team.name or team.id} for {price}")
            return TransitionResult(
                message='Player sold successfully',
                data={'player': player_data, 'team': team_data, 'warnings': warnings},
                events=events,
            )

    def mark_unsold(self, tournament_id: str) -> TransitionResult:
        """
        Close the block without a sale. The player stays marked as auctioned.

        Raises:
            StateConflictError: No player on the block, or player already sold
        """
        self._require_id(tournament_id, 'tournament')

        with self._lock:
            session = self._active_session(tournament_id)
            player = self._current_player(session)
            tournament = self.tournaments.find_by_id(tournament_id)

            if not player.was_auctioned:
                player.was_auctioned = True
                self.players.save(player)

            session.close(keep_tournament=True)

            player_data = enrich_player(player, tournament)
            events = [self._event(PLAYER_UNSOLD, tournament_id, session, {'player': player_data})]
            self.dispatcher.dispatch(events)
            self._after_commit()

            logger.info(f"Marked {player.name or player.id} as unsold")
            return TransitionResult(
                message='Player marked as unsold',
                data={'player': player_data},
                events=events,
            )

    def cancel(self, tournament_id: str) -> TransitionResult:
        """
        Undo the auctioning attempt: the player becomes eligible for start/shuffle again.

        Raises:
            StateConflictError: No player on the block, or player already sold
        """
        self._require_id(tournament_id, 'tournament')

        with self._lock:
            session = self._active_session(tournament_id)
            player = self._current_player(session)

            player.was_auctioned = False
            self.players.save(player)

            session.close(keep_tournament=False)

            events = [self._event(AUCTION_CANCELLED, tournament_id, session, {
                'tournamentId': tournament_id,
                'playerId': player.id,
            })]
            self.dispatcher.dispatch(events)
            self._after_commit()

            logger.info(f"Cancelled auction of {player.name or player.id}")
            return TransitionResult(
                message='Auction cancelled',
                data={'playerId': player.id},
                events=events,
            )

    # ===== Corrections =====

    def update_sold_details(self, player_id: str, sold_price=UNSET, sold_to=UNSET) -> dict:
        """Operator correction of a sale (see RosterLedger.update_sold_details)."""
        with self._lock:
            player = self.ledger.update_sold_details(player_id, sold_price=sold_price, sold_to=sold_to)
            self._after_commit()
            return enrich_player(player, self.tournaments.find_by_id(player.tournament_id))

    def change_player_tournament(
        self,
        player_id: str,
        tournament_id: str,
        category_id: Optional[str] = None
    ) -> dict:
        """Move an unsold player to another tournament."""
        with self._lock:
            player = self.ledger.change_player_tournament(player_id, tournament_id, category_id)
            self._after_commit()
            return enrich_player(player, self.tournaments.find_by_id(tournament_id))

    # ===== Reads =====

    def get_current_auction(self, tournament_id: str) -> dict:
        """
        Current auction state for a tournament.

        Returns:
            Dict with currentPlayerId, currentBidPrice, tournamentId, isActive
            and the enriched currentPlayer (None when idle)
        """
        self._require_id(tournament_id, 'tournament')

        with self._lock:
            session = self.sessions.view(tournament_id)
            state = session.to_dict()
            state['currentPlayer'] = None

            if session.current_player_id:
                player = self.players.find_by_id(session.current_player_id)
                if player is not None:
                    tournament = self.tournaments.find_by_id(player.tournament_id)
                    state['currentPlayer'] = enrich_player(player, tournament)

            return state

    def get_max_bids(self, tournament_id: str) -> List[Dict]:
        """
        Largest affordable bid of each team of the tournament (may be negative).

        Returns:
            List of {teamId, maxBid}
        """
        self._require_id(tournament_id, 'tournament')

        with self._lock:
            tournament = self._load_tournament(tournament_id)
            return [
                {'teamId': team.id, 'maxBid': self.quota.max_affordable_bid(team, tournament)}
                for team in self.teams.find_by_tournament(tournament_id)
            ]

    def get_unsold_players(self, tournament_id: str) -> List[dict]:
        """Unsold players of the tournament, newest first."""
        self._require_id(tournament_id, 'tournament')

        with self._lock:
            tournament = self.tournaments.find_by_id(tournament_id)
            unsold = self.players.find_all_unsold(tournament_id)
            unsold.sort(key=lambda p: p.created_at, reverse=True)
            return [enrich_player(p, tournament) for p in unsold]

    def team_summary(self, tournament_id: str) -> pd.DataFrame:
        """Spending summary per team (see RosterLedger.team_summary)."""
        self._require_id(tournament_id, 'tournament')

        with self._lock:
            self._load_tournament(tournament_id)
            return self.ledger.team_summary(tournament_id)

    # ===== Helpers =====

    def _put_on_block(
        self,
        tournament: Tournament,
        player: Player,
        message: str,
        announce: bool = False
    ) -> TransitionResult:
        if not player.was_auctioned:
            player.was_auctioned = True
            self.players.save(player)

        base_price = player_base_price(player, tournament)
        session = self.sessions.open(tournament.id)
        session.put_on_block(tournament.id, player.id, base_price)

        player_data = enrich_player(player, tournament)
        events = []
        if announce:
            events.append(self._event(AUCTION_STARTED, tournament.id, session, {
                'tournamentId': tournament.id,
                'isActive': True,
            }))
        events.append(self._event(PLAYER_SELECTED, tournament.id, session, {
            'player': player_data,
            'currentBidPrice': base_price,
        }))
        self.dispatcher.dispatch(events)
        self._after_commit()

        logger.info(f"{message}: {player.name or player.id} on the block at {base_price}")
        return TransitionResult(
            message=message,
            data={
                'currentPlayer': player_data,
                'currentBidPrice': base_price,
                'isActive': True,
            },
            events=events,
        )

    def _after_commit(self) -> None:
        if self.on_commit is not None:
            self.on_commit()

    def _active_session(self, tournament_id: str) -> AuctionSession:
        session = self.sessions.get(tournament_id)
        if not session.matches(tournament_id):
            raise StateConflictError('Auction is not active')
        return session

    def _current_player(self, session: AuctionSession) -> Player:
        player = self.players.find_by_id(session.current_player_id)
        if player is None:
            raise NotFoundError('Current player not found')
        if player.is_sold:
            raise StateConflictError('Player is already sold')
        return player

    def _load_tournament(self, tournament_id: str) -> Tournament:
        tournament = self.tournaments.find_by_id(tournament_id)
        if tournament is None:
            raise NotFoundError('Tournament not found')
        return tournament

    def _load_team(self, team_id: str, tournament_id: str) -> Team:
        team = self.teams.find_by_id(team_id)
        if team is None:
            raise NotFoundError('Team not found')
        if team.tournament_id != tournament_id:
            raise ValidationError('Team does not belong to this tournament')
        return team

    @staticmethod
    def _event(name: str, tournament_id: str, session: AuctionSession, payload: dict) -> AuctionEvent:
        return AuctionEvent(
            name=name,
            tournament_id=tournament_id,
            payload=payload,
            session=session.to_dict(),
        )

    @staticmethod
    def _team_info(team: Team) -> dict:
        return {
            'id': team.id,
            'name': team.name,
            'remainingAmount': team.remaining_amount,
            'playerCount': team.player_count,
        }

    @staticmethod
    def _require_id(value, label: str) -> None:
        if not is_valid_id(value):
            raise ValidationError(f"Invalid or missing {label} ID")

    @staticmethod
    def _is_number(value) -> bool:
        return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)
