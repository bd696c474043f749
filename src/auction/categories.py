"""
Category resolution.

Players store only a category reference. Name, base price and quota come
from the owning tournament. Tournaments without a category list behave as
a single implicit category (quota = tournament.min_players).
"""

from typing import List, Optional

from .. import config
from .errors import NotFoundError
from .models import Category, Player, Tournament


def effective_categories(tournament: Tournament) -> List[Category]:
    """
    Categories that carry quotas for ``tournament``.

    Returns:
        The configured categories, or a single implicit category when none
        are configured
    """
    if tournament.categories:
        return tournament.categories

    return [Category(
        id=config.IMPLICIT_CATEGORY_ID,
        name=config.IMPLICIT_CATEGORY_NAME,
        base_price=tournament.default_base_price,
        min_players=tournament.min_players,
    )]


def resolve_category(tournament: Tournament, category_id: Optional[str]) -> Category:
    """
    Look up a category by id within the tournament.

    Args:
        tournament: Owning tournament
        category_id: Category reference stored on the player

    Returns:
        Matching Category (the implicit category for category-less tournaments)

    Raises:
        NotFoundError: If the tournament has categories and none matches
    """
    if not tournament.categories:
        return effective_categories(tournament)[0]

    for category in tournament.categories:
        if category.id == category_id:
            return category

    raise NotFoundError(f"Category {category_id} not found in tournament {tournament.id}")


def category_id_of(player: Player, tournament: Tournament) -> Optional[str]:
    """Category id the player counts towards for quota purposes."""
    if not tournament.categories:
        return config.IMPLICIT_CATEGORY_ID
    return player.category_id


def player_base_price(player: Player, tournament: Tournament) -> float:
    """
    Effective base price of a player.

    A legacy per-player base price wins for category-less tournaments.
    Unresolvable categories yield 0.
    """
    if not tournament.categories and player.base_price is not None:
        return player.base_price

    try:
        return resolve_category(tournament, player.category_id).base_price or 0
    except NotFoundError:
        return 0


def enrich_player(player: Player, tournament: Optional[Tournament]) -> dict:
    """
    Player document with category name and base price for display.

    Args:
        player: Player to serialize
        tournament: Owning tournament (None = no enrichment)

    Returns:
        Player dict with ``category`` and ``basePrice`` filled when resolvable
    """
    data = player.to_dict()
    if tournament is None:
        return data

    try:
        category = resolve_category(tournament, player.category_id)
    except NotFoundError:
        return data

    data['categoryId'] = category.id if tournament.categories else player.category_id
    data['category'] = category.name
    data['basePrice'] = player_base_price(player, tournament)
    return data
