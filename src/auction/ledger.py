"""
Roster and budget ledger.

The RosterLedger is the only writer of Team.remaining_amount:
- Recomputes remaining budget from the sold prices of the roster
- Adds/removes players from rosters (recomputing each time)
- Reconciles operator corrections to a player's sale details
- Summarises team spending for reports
"""

import logging
from typing import List, Optional

import pandas as pd

from .categories import resolve_category
from .errors import NotFoundError, StateConflictError, ValidationError
from .models import Player, Team, is_valid_id

logger = logging.getLogger(__name__)

# Marks an argument the caller did not pass (None means "clear")
UNSET = object()


class RosterLedger:
    """Keeps team rosters and remaining budgets consistent with player sales."""

    def __init__(self, players, teams, tournaments=None):
        """
        Initialize ledger over the document repositories.

        Args:
            players: Player repository
            teams: Team repository
            tournaments: Tournament repository (needed for tournament changes)
        """
        self.players = players
        self.teams = teams
        self.tournaments = tournaments

    def owned_players(self, team: Team) -> List[Player]:
        """Roster players with a recorded sale price, queried fresh."""
        return [p for p in self.players.find_by_ids(team.player_ids) if p.sold_price is not None]

    def recompute_remaining(self, team: Team) -> Team:
        """
        Set remaining_amount = budget - sum of sold prices of the roster and persist.

        Args:
            team: Team whose roster was just mutated

        Returns:
            The saved team
        """
        total_spent = sum(p.sold_price for p in self.owned_players(team))
        team.remaining_amount = team.budget - total_spent
        self.teams.save(team)

        logger.debug(
            f"Recomputed {team.name or team.id}: spent {total_spent}, "
            f"remaining {team.remaining_amount}"
        )
        return team

    def add_player(self, team: Team, player_id: str) -> Team:
        """Append a player to the roster (once) and recompute."""
        if player_id not in team.player_ids:
            team.player_ids.append(player_id)
        return self.recompute_remaining(team)

    def remove_player(self, team: Team, player_id: str) -> Team:
        """Drop a player from the roster and recompute."""
        team.player_ids = [pid for pid in team.player_ids if pid != player_id]
        return self.recompute_remaining(team)

    def update_sold_details(self, player_id: str, sold_price=UNSET, sold_to=UNSET) -> Player:
        """
        Apply an operator correction to a player's sale and sync rosters.

        Passing None clears a field; omitting it leaves it untouched. A sale
        left half-set is completed back to unsold (both fields cleared).

        Args:
            player_id: Player to correct
            sold_price: New sale price, None to clear
            sold_to: New owning team id, None to clear

        Returns:
            Updated player

        Raises:
            ValidationError: Malformed ids/prices, or team from another tournament
            NotFoundError: Player or team doesn't exist
        """
        if not is_valid_id(player_id):
            raise ValidationError('Invalid player ID')

        player = self.players.find_by_id(player_id)
        if player is None:
            raise NotFoundError('Player not found')

        previous_team_id = player.sold_to

        if sold_price is not UNSET:
            if sold_price is not None:
                if not isinstance(sold_price, (int, float)) or isinstance(sold_price, bool) or sold_price < 0:
                    raise ValidationError('Sold price must be a non-negative number')
            player.sold_price = sold_price

        target_team = None
        if sold_to is not UNSET:
            if sold_to is not None:
                if not is_valid_id(sold_to):
                    raise ValidationError('Invalid team ID')
                target_team = self.teams.find_by_id(sold_to)
                if target_team is None:
                    raise NotFoundError('Team not found')
                if target_team.tournament_id != player.tournament_id:
                    raise ValidationError('Team does not belong to the player\'s tournament')
            player.sold_to = sold_to

        if (player.sold_price is None) != (player.sold_to is None):
            logger.warning(
                f"Player {player.id} left with a partial sale "
                f"(price={player.sold_price}, team={player.sold_to}); clearing both"
            )
            player.sold_price = None
            player.sold_to = None

        if player.is_sold:
            player.was_auctioned = True

        self.players.save(player)

        if player.is_sold:
            if previous_team_id and previous_team_id != player.sold_to:
                self._detach(previous_team_id, player.id)
            if target_team is None:
                target_team = self.teams.find_by_id(player.sold_to)
            if target_team is not None:
                self.add_player(target_team, player.id)
        elif previous_team_id:
            self._detach(previous_team_id, player.id)

        logger.info(
            f"Updated sale of {player.name or player.id}: "
            f"price={player.sold_price}, team={player.sold_to}"
        )
        return player

    def change_player_tournament(
        self,
        player_id: str,
        tournament_id: str,
        category_id: Optional[str] = None
    ) -> Player:
        """
        Move an unsold player to another tournament.

        Args:
            player_id: Player to move
            tournament_id: Target tournament
            category_id: Category in the target tournament (defaults to current)

        Returns:
            Updated player

        Raises:
            ValidationError: Malformed ids or category not valid for the target
            NotFoundError: Player or tournament doesn't exist
            StateConflictError: Player is already sold
        """
        if not is_valid_id(player_id) or not is_valid_id(tournament_id):
            raise ValidationError('Invalid player or tournament ID')

        player = self.players.find_by_id(player_id)
        if player is None:
            raise NotFoundError('Player not found')

        if player.tournament_id != tournament_id and player.is_sold:
            raise StateConflictError('Cannot change tournament for a sold player')

        tournament = self.tournaments.find_by_id(tournament_id)
        if tournament is None:
            raise NotFoundError('Tournament not found')

        target_category_id = category_id if category_id is not None else player.category_id
        if tournament.categories:
            try:
                resolve_category(tournament, target_category_id)
            except NotFoundError:
                raise ValidationError('Category is not valid for this tournament')

        player.tournament_id = tournament_id
        player.category_id = target_category_id
        self.players.save(player)

        logger.info(f"Moved player {player.id} to tournament {tournament_id}")
        return player

    def team_summary(self, tournament_id: str) -> pd.DataFrame:
        """
        Get spending summary for all teams of a tournament.

        Returns:
            DataFrame with team_id, team_name, players, spent, budget,
            remaining_amount sorted by team_name
        """
        summary_data = []
        for team in self.teams.find_by_tournament(tournament_id):
            spent = sum(p.sold_price for p in self.owned_players(team))
            summary_data.append({
                'team_id': team.id,
                'team_name': team.name,
                'players': team.player_count,
                'spent': spent,
                'budget': team.budget,
                'remaining_amount': team.remaining_amount,
            })

        columns = ['team_id', 'team_name', 'players', 'spent', 'budget', 'remaining_amount']
        df = pd.DataFrame(summary_data, columns=columns)
        if len(df) > 0:
            df = df.sort_values('team_name').reset_index(drop=True)
        return df

    def _detach(self, team_id: str, player_id: str) -> None:
        team = self.teams.find_by_id(team_id)
        if team is not None:
            self.remove_player(team, player_id)
