"""Tests for server wiring and crash recovery across restarts."""

from src.main import build_engine, parse_arguments


def run_args(tmp_path, *extra):
    return parse_arguments(['--events-dir', str(tmp_path / 'events'), *extra])


def test_sessions_survive_several_restarts(tmp_path, store):
    args = run_args(tmp_path, '--multi-tournament')

    first = build_engine(store, args)
    first.start('t1')
    first.start('t2')

    # Only t2 sees activity in the second run
    second = build_engine(store, args)
    assert second.get_current_auction('t1')['currentPlayerId'] == 'p1'
    second.place_bid('t2', 'team-c', 200)

    third = build_engine(store, args)
    assert third.get_current_auction('t1')['currentPlayerId'] == 'p1'
    assert third.get_current_auction('t2')['currentBidPrice'] == 200
    third.place_bid('t1', 'team-a', 1100)


def test_sequence_continues_after_restart(tmp_path, store):
    args = run_args(tmp_path)

    first = build_engine(store, args)
    first.start('t1')

    second = build_engine(store, args)
    result = second.place_bid('t1', 'team-a', 1100)

    assert [e.sequence for e in result.events] == [3]


def test_no_event_log_starts_idle(tmp_path, store):
    build_engine(store, run_args(tmp_path)).start('t1')

    engine = build_engine(store, run_args(tmp_path, '--no-event-log'))

    assert engine.get_current_auction('t1')['isActive'] is False
