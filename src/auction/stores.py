"""
Document store access for tournaments, teams and players.

The auction core only relies on the small repository contract below, so any
document database adapter exposing the same methods can be injected:

- players: find_by_id, find_by_ids, find_by_tournament, find_first_unsold,
  find_all_unsold, save
- teams: find_by_id, find_by_tournament, save
- tournaments: find_by_id, save

DocumentStore is the in-process implementation. It hands out copies, so a
caller only sees its own changes after save(), like a real database.
"""

import json
import logging
from copy import deepcopy
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from .ledger import RosterLedger
from .models import Player, Team, Tournament

logger = logging.getLogger(__name__)


class PlayerRepository:
    """Player documents."""

    def __init__(self):
        self._docs: Dict[str, Player] = {}

    def find_by_id(self, player_id: str) -> Optional[Player]:
        doc = self._docs.get(player_id)
        return deepcopy(doc) if doc else None

    def find_by_ids(self, player_ids: List[str]) -> List[Player]:
        return [deepcopy(self._docs[pid]) for pid in player_ids if pid in self._docs]

    def find_by_tournament(self, tournament_id: str) -> List[Player]:
        players = [p for p in self._docs.values() if p.tournament_id == tournament_id]
        players.sort(key=lambda p: p.created_at)
        return [deepcopy(p) for p in players]

    def find_all_unsold(
        self,
        tournament_id: str,
        include_auctioned: bool = True,
        exclude_id: Optional[str] = None
    ) -> List[Player]:
        """
        Players of the tournament without a completed sale.

        Args:
            tournament_id: Owning tournament
            include_auctioned: False skips players already put on the block
            exclude_id: Optional player id to leave out

        Returns:
            Unsold players ordered by creation time ascending
        """
        return [
            p for p in self.find_by_tournament(tournament_id)
            if not p.is_sold
            and (include_auctioned or not p.was_auctioned)
            and p.id != exclude_id
        ]

    def find_first_unsold(self, tournament_id: str, include_auctioned: bool = True) -> Optional[Player]:
        """Oldest unsold player of the tournament (by creation time)."""
        unsold = self.find_all_unsold(tournament_id, include_auctioned=include_auctioned)
        return unsold[0] if unsold else None

    def save(self, player: Player) -> Player:
        self._docs[player.id] = deepcopy(player)
        return player

    def all(self) -> List[Player]:
        return [deepcopy(p) for p in self._docs.values()]


class TeamRepository:
    """Team documents."""

    def __init__(self):
        self._docs: Dict[str, Team] = {}

    def find_by_id(self, team_id: str) -> Optional[Team]:
        doc = self._docs.get(team_id)
        return deepcopy(doc) if doc else None

    def find_by_tournament(self, tournament_id: str) -> List[Team]:
        return [deepcopy(t) for t in self._docs.values() if t.tournament_id == tournament_id]

    def save(self, team: Team) -> Team:
        self._docs[team.id] = deepcopy(team)
        return team

    def all(self) -> List[Team]:
        return [deepcopy(t) for t in self._docs.values()]


class TournamentRepository:
    """Tournament documents. Configuration is validated on save."""

    def __init__(self):
        self._docs: Dict[str, Tournament] = {}

    def find_by_id(self, tournament_id: str) -> Optional[Tournament]:
        doc = self._docs.get(tournament_id)
        return deepcopy(doc) if doc else None

    def save(self, tournament: Tournament) -> Tournament:
        tournament.validate()
        self._docs[tournament.id] = deepcopy(tournament)
        return tournament

    def all(self) -> List[Tournament]:
        return [deepcopy(t) for t in self._docs.values()]


class DocumentStore:
    """In-process document store backed by an optional JSON file."""

    def __init__(self, filepath: Optional[Path] = None):
        """
        Initialize an empty store.

        Args:
            filepath: JSON file used by load() and flush() (optional)
        """
        self.filepath = Path(filepath) if filepath else None
        self.players = PlayerRepository()
        self.teams = TeamRepository()
        self.tournaments = TournamentRepository()

    @classmethod
    def from_dict(cls, data: dict, filepath: Optional[Path] = None) -> 'DocumentStore':
        """
        Build a store from a ``{tournaments, teams, players}`` dict.

        Raises:
            ValidationError: If a tournament configuration is invalid
        """
        store = cls(filepath)
        for tdata in data.get('tournaments', []):
            store.tournaments.save(Tournament.from_dict(tdata))
        for tdata in data.get('teams', []):
            store.teams.save(Team.from_dict(tdata))
        for pdata in data.get('players', []):
            store.players.save(Player.from_dict(pdata))

        # Stored remainingAmount is derived data; rebuild it from the rosters
        ledger = RosterLedger(store.players, store.teams)
        for team in store.teams.all():
            stored = team.remaining_amount
            team = ledger.recompute_remaining(team)
            if stored != team.remaining_amount:
                logger.warning(
                    f"Team {team.name or team.id}: stored remaining {stored} "
                    f"corrected to {team.remaining_amount}"
                )

        logger.info(
            f"Loaded {len(store.tournaments.all())} tournaments, "
            f"{len(store.teams.all())} teams, {len(store.players.all())} players"
        )
        return store

    @classmethod
    def load(cls, filepath: Path) -> 'DocumentStore':
        """
        Load a store from a JSON file.

        Raises:
            FileNotFoundError: If the file doesn't exist
        """
        filepath = Path(filepath)
        if not filepath.exists():
            raise FileNotFoundError(f"Data file not found: {filepath}")

        with open(filepath, 'r', encoding='utf-8') as f:
            data = json.load(f)

        logger.info(f"Reading auction data from {filepath}")
        return cls.from_dict(data, filepath=filepath)

    def to_dict(self) -> dict:
        return {
            'tournaments': [t.to_dict() for t in self.tournaments.all()],
            'teams': [t.to_dict() for t in self.teams.all()],
            'players': [p.to_dict() for p in self.players.all()],
        }

    def flush(self, filepath: Optional[Path] = None) -> Optional[Path]:
        """
        Write all documents to JSON.

        Atomic write: temp file first, then rename.

        Args:
            filepath: Target file (defaults to the file the store was loaded from)

        Returns:
            Path written, or None when the store has no backing file
        """
        target = Path(filepath) if filepath else self.filepath
        if target is None:
            return None

        target.parent.mkdir(parents=True, exist_ok=True)
        data = self.to_dict()
        data['savedAt'] = datetime.now().isoformat()

        temp_path = target.with_suffix('.tmp')
        with open(temp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)
        temp_path.replace(target)

        logger.info(f"Saved auction data -> {target}")
        return target
