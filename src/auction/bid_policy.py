"""
Bid increment policy.

A tournament configures tiered increments (price range -> minimum raise).
When no tier is configured, or none matches the current price, the fixed
fallback tiers from config.DEFAULT_BID_INCREMENTS apply.
"""

import logging
from typing import List, Optional

from .. import config
from .errors import ValidationError
from .models import BidIncrementRule, Tournament

logger = logging.getLogger(__name__)


def default_increment(current_price: float) -> float:
    """
    Fallback increment used when a tournament has no matching tier.

    Args:
        current_price: Current bid price

    Returns:
        Increment from config.DEFAULT_BID_INCREMENTS, or
        config.DEFAULT_BID_INCREMENT when the price is below every tier
    """
    for min_price, max_price, increment in config.DEFAULT_BID_INCREMENTS:
        if current_price >= min_price and (max_price is None or current_price <= max_price):
            return increment
    return config.DEFAULT_BID_INCREMENT


def increment_for(current_price: float, tournament: Optional[Tournament] = None) -> float:
    """
    Minimum raise allowed on top of ``current_price``.

    Tiers are scanned in ascending min_price order; the first tier with
    ``min_price <= current_price <= max_price`` (or unbounded max) wins.

    Args:
        current_price: Current bid price
        tournament: Tournament whose tiers apply (None = fallback only)

    Returns:
        Positive increment
    """
    if tournament is not None and tournament.bid_increments:
        for rule in sorted(tournament.bid_increments, key=lambda r: r.min_price):
            if rule.matches(current_price):
                return rule.increment

        logger.debug(
            f"No increment tier matches price {current_price} in tournament "
            f"{tournament.id}, using fallback tiers"
        )

    return default_increment(current_price)


def validate_increment_rules(rules: List[BidIncrementRule]) -> None:
    """
    Check increment tiers are sorted, non-overlapping and well formed.

    Args:
        rules: Tiers as configured on the tournament

    Raises:
        ValidationError: On negative bounds, non-positive increments,
            overlapping or unsorted ranges, or an unbounded tier that is not last
    """
    for i, rule in enumerate(rules):
        if rule.increment <= 0:
            raise ValidationError(f"Bid increment tier {i + 1} must have a positive increment")
        if rule.min_price < 0:
            raise ValidationError(f"Bid increment tier {i + 1} has a negative minimum price")
        if rule.max_price is not None and rule.max_price < rule.min_price:
            raise ValidationError(
                f"Bid increment tier {i + 1}: maximum price {rule.max_price} "
                f"is below minimum price {rule.min_price}"
            )
        if rule.max_price is None and i != len(rules) - 1:
            raise ValidationError("Only the last bid increment tier may be unbounded")

        if i > 0:
            previous = rules[i - 1]
            if rule.min_price <= previous.min_price:
                raise ValidationError("Bid increment tiers must be sorted by minimum price")
            if previous.max_price is not None and rule.min_price <= previous.max_price:
                raise ValidationError(
                    f"Bid increment tiers {i} and {i + 1} overlap "
                    f"({previous.min_price}-{previous.max_price} / "
                    f"{rule.min_price}-{rule.max_price})"
                )
