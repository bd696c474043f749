"""
Shared fixtures: a small league with two tournaments.

t1 uses categories (Icon: base 1000, quota 1; Local: base 200, no quota),
max 15 players per team and the default increment tiers.
t2 has no categories (implicit quota = 2 players, default base price 50).
"""

import random
from datetime import datetime

import pytest

from src.auction.broadcast import EventDispatcher, RoomBroadcaster
from src.auction.engine import AuctionEngine
from src.auction.events import room_key
from src.auction.session import SessionRegistry
from src.auction.stores import DocumentStore


def league_data() -> dict:
    return {
        'tournaments': [
            {
                'id': 't1',
                'name': 'Premier Cup',
                'minPlayers': 1,
                'maxPlayers': 15,
                'categories': [
                    {'id': 'icon', 'name': 'Icon', 'basePrice': 1000, 'minPlayers': 1},
                    {'id': 'local', 'name': 'Local', 'basePrice': 200, 'minPlayers': 0},
                ],
            },
            {
                'id': 't2',
                'name': 'Village League',
                'minPlayers': 2,
                'maxPlayers': 5,
                'defaultBasePrice': 50,
            },
        ],
        'teams': [
            {'id': 'team-a', 'tournamentId': 't1', 'name': 'Alpha', 'budget': 5000},
            {'id': 'team-b', 'tournamentId': 't1', 'name': 'Bravo', 'budget': 5000},
            {'id': 'team-c', 'tournamentId': 't2', 'name': 'Comets', 'budget': 1000},
        ],
        'players': [
            {'id': 'p1', 'tournamentId': 't1', 'name': 'Ace', 'categoryId': 'icon',
             'createdAt': datetime(2024, 1, 1).isoformat()},
            {'id': 'p2', 'tournamentId': 't1', 'name': 'Bolt', 'categoryId': 'local',
             'createdAt': datetime(2024, 1, 2).isoformat()},
            {'id': 'p3', 'tournamentId': 't1', 'name': 'Cobra', 'categoryId': 'local',
             'createdAt': datetime(2024, 1, 3).isoformat()},
            {'id': 'p4', 'tournamentId': 't1', 'name': 'Duke', 'categoryId': 'icon',
             'createdAt': datetime(2024, 1, 4).isoformat()},
            {'id': 'p5', 'tournamentId': 't2', 'name': 'Echo', 'basePrice': 75,
             'createdAt': datetime(2024, 1, 5).isoformat()},
            {'id': 'p6', 'tournamentId': 't2', 'name': 'Fox',
             'createdAt': datetime(2024, 1, 6).isoformat()},
        ],
    }


@pytest.fixture
def league():
    return league_data()


@pytest.fixture
def store(league):
    return DocumentStore.from_dict(league)


@pytest.fixture
def broadcaster():
    return RoomBroadcaster()


@pytest.fixture
def engine(store, broadcaster):
    return AuctionEngine.from_store(
        store,
        dispatcher=EventDispatcher(broadcaster=broadcaster),
        rng=random.Random(7),
    )


@pytest.fixture
def multi_engine(store, broadcaster):
    return AuctionEngine.from_store(
        store,
        dispatcher=EventDispatcher(broadcaster=broadcaster),
        sessions=SessionRegistry(multi_tournament=True),
    )


@pytest.fixture
def received(broadcaster):
    """Events delivered to the t1 room, as (name, payload) tuples."""
    events = []
    broadcaster.subscribe(room_key('t1'), lambda name, payload: events.append((name, payload)))
    return events
