"""
Quota feasibility checks.

Each tournament category carries a minimum number of players every team must
buy. Before a team commits to a purchase we check the team could still meet
every quota afterwards:

1. Slots: players still needed across categories must fit in the roster
   room left after the purchase (tournament.max_players).
2. Budget: the remaining amount after the purchase must cover the cheapest
   way of filling every outstanding quota.

Bids that fail are rejected; sales only report the violations as warnings.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .categories import category_id_of, effective_categories, player_base_price
from .models import Category, Player, Team, Tournament

logger = logging.getLogger(__name__)

SLOT_INSUFFICIENT = 'slot_insufficient'
BUDGET_INSUFFICIENT = 'budget_insufficient'


@dataclass
class CategoryShortfall:
    """Players still needed in one category after a purchase."""

    category_id: str
    name: str
    needed: int
    cheapest_price: float = 0
    required_budget: float = 0

    def to_dict(self) -> dict:
        return {
            'categoryId': self.category_id,
            'name': self.name,
            'needed': self.needed,
            'cheapestPrice': self.cheapest_price,
            'requiredBudget': self.required_budget,
        }


@dataclass
class QuotaViolation:
    """One failed feasibility rule with its numeric shortfall."""

    type: str                 # SLOT_INSUFFICIENT or BUDGET_INSUFFICIENT
    message: str
    shortfall: float          # Missing slots, or missing budget
    categories: List[CategoryShortfall] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'type': self.type,
            'message': self.message,
            'shortfall': self.shortfall,
            'categories': [c.to_dict() for c in self.categories],
        }


@dataclass
class FeasibilityReport:
    """Outcome of a hypothetical purchase check."""

    total_still_needed: int
    slots_after: int
    required_budget: float
    remaining_after: float
    reasons: List[QuotaViolation] = field(default_factory=list)

    @property
    def feasible(self) -> bool:
        return not self.reasons

    @property
    def messages(self) -> List[str]:
        return [r.message for r in self.reasons]

    def to_dict(self) -> dict:
        return {
            'feasible': self.feasible,
            'totalStillNeeded': self.total_still_needed,
            'slotsAfter': self.slots_after,
            'requiredBudget': self.required_budget,
            'remainingAfter': self.remaining_after,
            'reasons': [r.to_dict() for r in self.reasons],
        }


class QuotaChecker:
    """Evaluates category quota feasibility against fresh roster data."""

    def __init__(self, players):
        """
        Args:
            players: Player repository (rosters are re-read on every check)
        """
        self.players = players

    def owned_players(self, team: Team) -> List[Player]:
        """Roster players with a completed sale."""
        return [p for p in self.players.find_by_ids(team.player_ids) if p.is_sold]

    def count_by_category(self, owned: List[Player], tournament: Tournament) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for player in owned:
            cat_id = category_id_of(player, tournament)
            if cat_id is not None:
                counts[cat_id] = counts.get(cat_id, 0) + 1
        return counts

    def cheapest_prices(
        self,
        tournament: Tournament,
        exclude_id: Optional[str] = None
    ) -> Dict[str, float]:
        """
        Cheapest base price among unsold players, per category.

        Zero/unknown prices are ignored. Categories with no unsold player
        fall back to their configured base price (see _cheapest_for).

        Args:
            tournament: Tournament whose pool is inspected
            exclude_id: Player to leave out (the one being bid on)

        Returns:
            Dict of category_id -> minimum positive base price
        """
        cheapest: Dict[str, float] = {}
        for player in self.players.find_all_unsold(tournament.id, exclude_id=exclude_id):
            cat_id = category_id_of(player, tournament)
            price = player_base_price(player, tournament)
            if cat_id is None or price <= 0:
                continue
            if cat_id not in cheapest or price < cheapest[cat_id]:
                cheapest[cat_id] = price
        return cheapest

    def shortfalls(
        self,
        counts: Dict[str, int],
        tournament: Tournament,
        cheapest: Dict[str, float],
        hypothetical_category_id: Optional[str] = None
    ) -> List[CategoryShortfall]:
        """
        Players still needed per category, with the cheapest way to fill them.

        Args:
            counts: Owned players per category id
            tournament: Tournament carrying the quotas
            cheapest: Output of cheapest_prices()
            hypothetical_category_id: Category of the player being bought
                (counted once, for that category only)

        Returns:
            Shortfalls for categories still below quota
        """
        results = []
        for category in effective_categories(tournament):
            count = counts.get(category.id, 0)
            if hypothetical_category_id is not None and category.id == hypothetical_category_id:
                count += 1

            needed = max(0, (category.min_players or 0) - count)
            if needed == 0:
                continue

            price = self._cheapest_for(category, cheapest)
            results.append(CategoryShortfall(
                category_id=category.id,
                name=category.name,
                needed=needed,
                cheapest_price=price,
                required_budget=needed * price,
            ))
        return results

    def check_feasible(
        self,
        team: Team,
        player: Player,
        price: float,
        tournament: Tournament,
        action: str = 'bid'
    ) -> FeasibilityReport:
        """
        Check the team can still meet every quota after buying ``player`` at ``price``.

        Args:
            team: Buying team
            player: Player being bought
            price: Purchase price
            tournament: Tournament with quotas and max_players
            action: Word used in messages ('bid' or 'sale')

        Returns:
            FeasibilityReport; feasible only when both slot and budget checks pass
        """
        owned = self.owned_players(team)
        counts = self.count_by_category(owned, tournament)
        cheapest = self.cheapest_prices(tournament, exclude_id=player.id)

        shortfalls = self.shortfalls(
            counts,
            tournament,
            cheapest,
            hypothetical_category_id=category_id_of(player, tournament)
        )

        total_still_needed = sum(s.needed for s in shortfalls)
        slots_after = tournament.max_players - (len(owned) + 1)
        required_budget = sum(s.required_budget for s in shortfalls)
        remaining_after = team.remaining_amount - price

        report = FeasibilityReport(
            total_still_needed=total_still_needed,
            slots_after=slots_after,
            required_budget=required_budget,
            remaining_after=remaining_after,
        )

        if total_still_needed > slots_after:
            category_list = ', '.join(f"{s.needed} {s.name}" for s in shortfalls)
            report.reasons.append(QuotaViolation(
                type=SLOT_INSUFFICIENT,
                message=(
                    f"Team cannot meet category requirements. After this {action}, "
                    f"team will have {slots_after} slot(s) remaining but needs "
                    f"{total_still_needed} more player(s) ({category_list}). "
                    f"Maximum team size is {tournament.max_players}."
                ),
                shortfall=total_still_needed - slots_after,
                categories=shortfalls,
            ))

        if remaining_after < required_budget:
            category_list = ', '.join(
                f"{s.needed} {s.name} at {s.cheapest_price}" for s in shortfalls
            )
            needs = f"{required_budget} for {category_list}" if shortfalls else f"{required_budget}"
            report.reasons.append(QuotaViolation(
                type=BUDGET_INSUFFICIENT,
                message=(
                    f"Team cannot afford minimum required players. After this {action}, "
                    f"team will have {remaining_after} remaining but needs {needs}."
                ),
                shortfall=required_budget - remaining_after,
                categories=shortfalls,
            ))

        if not report.feasible:
            logger.debug(
                f"Quota check failed for team {team.id} on player {player.id} at {price}: "
                f"{[r.type for r in report.reasons]}"
            )

        return report

    def required_budget(self, team: Team, tournament: Tournament) -> float:
        """Budget the team must keep to fill its outstanding quotas (no purchase assumed)."""
        counts = self.count_by_category(self.owned_players(team), tournament)
        cheapest = self.cheapest_prices(tournament)
        return sum(s.required_budget for s in self.shortfalls(counts, tournament, cheapest))

    def max_affordable_bid(self, team: Team, tournament: Tournament) -> float:
        """
        Largest amount the team can spend while keeping enough for its quotas.

        Returns:
            remaining_amount - required budget (may be negative)
        """
        return team.remaining_amount - self.required_budget(team, tournament)

    @staticmethod
    def _cheapest_for(category: Category, cheapest: Dict[str, float]) -> float:
        return cheapest.get(category.id, category.base_price or 0)
