"""
Core data structures for tournaments, teams and players.

These dataclasses mirror the documents held by the external store. Players
only reference their category by id; name and base price are resolved
through the owning tournament (see categories.py).
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

_ID_PATTERN = re.compile(r'^[A-Za-z0-9_\-]{1,64}$')


def is_valid_id(value) -> bool:
    """Check an identifier is a non-empty token of word characters or dashes."""
    return isinstance(value, str) and bool(_ID_PATTERN.match(value))


def _parse_datetime(value) -> datetime:
    """
    Parse a stored timestamp into a naive local datetime.

    Offset-aware values (e.g. Mongo exports ending in ``Z``) are converted to
    local time so they sort against naive ones. Missing values mean now.
    """
    if not value:
        return datetime.now()
    if not isinstance(value, datetime):
        if value.endswith('Z'):
            value = value[:-1] + '+00:00'
        value = datetime.fromisoformat(value)
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value


@dataclass
class Category:
    """Player category within a tournament (quota + base price)."""

    id: str
    name: str
    base_price: float = 0
    min_players: int = 0          # Quota: minimum players each team must buy

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'basePrice': self.base_price,
            'minPlayers': self.min_players,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Category':
        return cls(
            id=str(data['id']),
            name=data['name'],
            base_price=data.get('basePrice', 0) or 0,
            min_players=data.get('minPlayers', 0) or 0,
        )


@dataclass
class BidIncrementRule:
    """Price range with the minimum raise for the next bid."""

    min_price: float
    max_price: Optional[float]    # None = unbounded (last tier only)
    increment: float

    def matches(self, price: float) -> bool:
        """Whether ``price`` falls inside this tier."""
        if price < self.min_price:
            return False
        return self.max_price is None or price <= self.max_price

    def to_dict(self) -> dict:
        return {
            'minPrice': self.min_price,
            'maxPrice': self.max_price,
            'increment': self.increment,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'BidIncrementRule':
        return cls(
            min_price=data['minPrice'],
            max_price=data.get('maxPrice'),
            increment=data['increment'],
        )


@dataclass
class Tournament:
    """Tournament configuration relevant to the auction."""

    id: str
    name: str = ''
    min_players: int = 1
    max_players: int = 1
    categories: List[Category] = field(default_factory=list)
    bid_increments: List[BidIncrementRule] = field(default_factory=list)
    default_base_price: float = 0  # Only used when no categories are configured

    def validate(self) -> None:
        """
        Validate tournament configuration.

        Raises:
            ValidationError: If roster bounds, categories or increment tiers
                are inconsistent
        """
        from .bid_policy import validate_increment_rules
        from .errors import ValidationError

        if self.min_players > self.max_players:
            raise ValidationError(
                f"Minimum players ({self.min_players}) cannot be greater than "
                f"maximum players ({self.max_players})"
            )

        seen_names = set()
        for category in self.categories:
            key = category.name.strip().lower()
            if key in seen_names:
                raise ValidationError(
                    f"Duplicate category name '{category.name}' in tournament {self.id}"
                )
            seen_names.add(key)

            if category.base_price < 0:
                raise ValidationError(f"Category '{category.name}' has a negative base price")
            if category.min_players < 0:
                raise ValidationError(f"Category '{category.name}' has a negative quota")

        validate_increment_rules(self.bid_increments)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'minPlayers': self.min_players,
            'maxPlayers': self.max_players,
            'categories': [c.to_dict() for c in self.categories],
            'bidIncrements': [r.to_dict() for r in self.bid_increments],
            'defaultBasePrice': self.default_base_price,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Tournament':
        return cls(
            id=str(data['id']),
            name=data.get('name', ''),
            min_players=data.get('minPlayers', 1),
            max_players=data.get('maxPlayers', 1),
            categories=[Category.from_dict(c) for c in data.get('categories', [])],
            bid_increments=[BidIncrementRule.from_dict(r) for r in data.get('bidIncrements', [])],
            default_base_price=data.get('defaultBasePrice', 0) or 0,
        )


@dataclass
class Player:
    """A player in a tournament's auction pool."""

    id: str
    tournament_id: str
    name: str = ''
    category_id: Optional[str] = None
    sold_price: Optional[float] = None
    sold_to: Optional[str] = None          # Team id
    was_auctioned: bool = False
    base_price: Optional[float] = None     # Legacy flat schema only
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def is_sold(self) -> bool:
        return self.sold_price is not None and self.sold_to is not None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'tournamentId': self.tournament_id,
            'name': self.name,
            'categoryId': self.category_id,
            'soldPrice': self.sold_price,
            'soldTo': self.sold_to,
            'wasAuctioned': self.was_auctioned,
            'basePrice': self.base_price,
            'isSold': self.is_sold,
            'createdAt': self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Player':
        return cls(
            id=str(data['id']),
            tournament_id=str(data['tournamentId']),
            name=data.get('name', ''),
            category_id=data.get('categoryId'),
            sold_price=data.get('soldPrice'),
            sold_to=data.get('soldTo'),
            was_auctioned=data.get('wasAuctioned', False),
            base_price=data.get('basePrice'),
            created_at=_parse_datetime(data.get('createdAt')),
        )


@dataclass
class Team:
    """
    A bidding team.

    ``remaining_amount`` is derived (budget minus sold prices of the roster)
    and is only written by RosterLedger.
    """

    id: str
    tournament_id: str
    name: str = ''
    budget: float = 0
    remaining_amount: Optional[float] = None
    player_ids: List[str] = field(default_factory=list)   # Roster, in purchase order

    def __post_init__(self):
        if self.remaining_amount is None:
            self.remaining_amount = self.budget

    @property
    def player_count(self) -> int:
        return len(self.player_ids)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'tournamentId': self.tournament_id,
            'name': self.name,
            'budget': self.budget,
            'remainingAmount': self.remaining_amount,
            'players': list(self.player_ids),
            'playerCount': self.player_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Team':
        return cls(
            id=str(data['id']),
            tournament_id=str(data['tournamentId']),
            name=data.get('name', ''),
            budget=data.get('budget', 0),
            remaining_amount=data.get('remainingAmount'),
            player_ids=[str(p) for p in data.get('players', [])],
        )
