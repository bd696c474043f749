"""
Live auction subsystem.

This package runs the auction of a tournament's player pool: one player on
the block at a time, teams bidding under increment and category quota
rules, sales settled against team budgets, and every committed change
broadcast to the tournament's room.
"""

from .models import Category, BidIncrementRule, Tournament, Player, Team
from .errors import (
    AuctionError,
    ValidationError,
    NotFoundError,
    StateConflictError,
    BusinessRuleViolation,
)
from .stores import DocumentStore
from .ledger import RosterLedger
from .quota import QuotaChecker, FeasibilityReport
from .session import AuctionSession, SessionRegistry
from .events import AuctionEvent
from .event_store import AuctionEventStore
from .broadcast import RoomBroadcaster, EventDispatcher
from .engine import AuctionEngine, TransitionResult

__all__ = [
    'Category',
    'BidIncrementRule',
    'Tournament',
    'Player',
    'Team',
    'AuctionError',
    'ValidationError',
    'NotFoundError',
    'StateConflictError',
    'BusinessRuleViolation',
    'DocumentStore',
    'RosterLedger',
    'QuotaChecker',
    'FeasibilityReport',
    'AuctionSession',
    'SessionRegistry',
    'AuctionEvent',
    'AuctionEventStore',
    'RoomBroadcaster',
    'EventDispatcher',
    'AuctionEngine',
    'TransitionResult',
]
