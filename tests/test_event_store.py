"""Tests for the auction event log and session replay."""

import csv

import pytest

from src.auction.broadcast import EventDispatcher
from src.auction.engine import AuctionEngine
from src.auction.event_store import (
    AuctionEventStore,
    create_session_filepath,
    find_latest_log,
    find_logs,
    replay_logs,
)
from src.auction.errors import BusinessRuleViolation
from src.auction.events import AuctionEvent
from src.auction.session import SessionRegistry


def logged_engine(store, path):
    event_store = AuctionEventStore(path)
    return AuctionEngine.from_store(store, dispatcher=EventDispatcher(event_store=event_store)), event_store


def test_committed_events_are_logged_in_order(tmp_path, store):
    engine, event_store = logged_engine(store, tmp_path / 'auction_1.jsonl')

    engine.start('t1')
    engine.place_bid('t1', 'team-a', 1100)

    events = event_store.load_all_events()
    assert [e.name for e in events] == ['auction:started', 'player:selected', 'bid:placed']
    assert [e.sequence for e in events] == [1, 2, 3]
    assert event_store.get_last_event().payload['bidAmount'] == 1100


def test_rejected_transition_is_not_logged(tmp_path, store):
    engine, event_store = logged_engine(store, tmp_path / 'auction_1.jsonl')
    engine.start('t1')

    with pytest.raises(BusinessRuleViolation):
        engine.place_bid('t1', 'team-a', 1001)

    assert len(event_store.load_all_events()) == 2


def test_replay_restores_player_on_block(tmp_path, store):
    engine, event_store = logged_engine(store, tmp_path / 'auction_1.jsonl')
    engine.start('t1')
    engine.place_bid('t1', 'team-a', 1100)

    sessions = event_store.replay_sessions()
    restarted = AuctionEngine.from_store(store, sessions=sessions)

    state = restarted.get_current_auction('t1')
    assert state['currentPlayerId'] == 'p1'
    assert state['currentBidPrice'] == 1100
    restarted.place_bid('t1', 'team-b', 1300)


def test_replay_after_cancel_is_idle(tmp_path, store):
    engine, event_store = logged_engine(store, tmp_path / 'auction_1.jsonl')
    engine.start('t1')
    engine.cancel('t1')

    session = event_store.replay_sessions().get('t1')

    assert not session.on_block
    assert session.tournament_id is None


def test_replay_keeps_sessions_per_tournament(tmp_path, store):
    event_store = AuctionEventStore(tmp_path / 'auction_1.jsonl')
    engine = AuctionEngine.from_store(
        store,
        dispatcher=EventDispatcher(event_store=event_store),
        sessions=SessionRegistry(multi_tournament=True),
    )
    engine.start('t1')
    engine.start('t2')
    engine.cancel('t2')

    sessions = event_store.replay_sessions(multi_tournament=True)

    assert sessions.get('t1').current_player_id == 'p1'
    assert not sessions.get('t2').on_block


def test_malformed_lines_are_skipped(tmp_path):
    path = tmp_path / 'auction_1.jsonl'
    event_store = AuctionEventStore(path)
    event_store.append_event(AuctionEvent(name='player:unsold', tournament_id='t1', payload={}))
    with open(path, 'a', encoding='utf-8') as f:
        f.write('{not json\n')

    assert len(event_store.load_all_events()) == 1


def test_missing_file_is_empty(tmp_path):
    event_store = AuctionEventStore(tmp_path / 'none.jsonl')

    assert event_store.load_all_events() == []
    assert event_store.get_last_event() is None


def test_export_to_csv(tmp_path, store):
    engine, event_store = logged_engine(store, tmp_path / 'auction_1.jsonl')
    engine.start('t1')
    engine.place_bid('t1', 'team-a', 1100)
    engine.sell('t1', 'team-a')

    output = tmp_path / 'export' / 'events.csv'
    event_store.export_to_csv(output)

    with open(output, newline='', encoding='utf-8') as f:
        rows = list(csv.DictReader(f))
    assert [r['name'] for r in rows] == [
        'auction:started', 'player:selected', 'bid:placed', 'player:sold', 'team:updated'
    ]
    assert rows[2]['team_id'] == 'team-a'
    assert rows[2]['amount'] == '1100'
    assert rows[3]['player_id'] == 'p1'


def test_find_latest_log(tmp_path):
    assert find_latest_log(tmp_path / 'missing') is None

    older = create_session_filepath(tmp_path, '20240101_090000')
    newer = create_session_filepath(tmp_path, '20240102_090000')
    older.write_text('')
    newer.write_text('')

    assert find_latest_log(tmp_path) == newer
    assert newer.name == 'auction_20240102_090000.jsonl'


def test_find_logs_oldest_first(tmp_path):
    assert find_logs(tmp_path / 'missing') == []

    newer = create_session_filepath(tmp_path, '20240102_090000')
    older = create_session_filepath(tmp_path, '20240101_090000')
    newer.write_text('')
    older.write_text('')

    assert find_logs(tmp_path) == [older, newer]


def test_replay_logs_merges_runs(tmp_path, store):
    first = AuctionEventStore(create_session_filepath(tmp_path, '20240101_090000'))
    engine = AuctionEngine.from_store(
        store,
        dispatcher=EventDispatcher(event_store=first),
        sessions=SessionRegistry(multi_tournament=True),
    )
    engine.start('t1')
    engine.start('t2')

    sessions, last_sequence = replay_logs(tmp_path, multi_tournament=True)
    second = AuctionEventStore(create_session_filepath(tmp_path, '20240101_100000'))
    engine = AuctionEngine.from_store(
        store,
        dispatcher=EventDispatcher(event_store=second, start_sequence=last_sequence),
        sessions=sessions,
    )
    engine.cancel('t2')

    sessions, last_sequence = replay_logs(tmp_path, multi_tournament=True)

    assert sessions.get('t1').current_player_id == 'p1'
    assert not sessions.get('t2').on_block
    assert last_sequence == 5
