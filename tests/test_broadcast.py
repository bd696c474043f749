"""Tests for room fan-out and event dispatch."""

from src.auction.broadcast import EventDispatcher, RoomBroadcaster
from src.auction.events import AuctionEvent, room_key


class BrokenEventStore:
    """Event log whose disk is gone."""

    def append_event(self, event):
        raise OSError('disk full')


def test_room_key():
    assert room_key('t1') == 'auction:t1'


def test_emit_reaches_only_room_subscribers():
    broadcaster = RoomBroadcaster()
    t1_events, t2_events = [], []
    broadcaster.subscribe('auction:t1', lambda name, payload: t1_events.append(name))
    broadcaster.subscribe('auction:t2', lambda name, payload: t2_events.append(name))

    delivered = broadcaster.emit('auction:t1', 'bid:placed', {'bidAmount': 1100})

    assert delivered == 1
    assert t1_events == ['bid:placed']
    assert t2_events == []


def test_failing_subscriber_is_dropped_without_affecting_others():
    broadcaster = RoomBroadcaster()
    received = []

    def broken(name, payload):
        raise ConnectionError('socket closed')

    broadcaster.subscribe('auction:t1', broken)
    broadcaster.subscribe('auction:t1', lambda name, payload: received.append(name))

    assert broadcaster.emit('auction:t1', 'player:sold', {}) == 1
    assert received == ['player:sold']
    assert broadcaster.subscriber_count('auction:t1') == 1


def test_unsubscribe():
    broadcaster = RoomBroadcaster()
    sub_id = broadcaster.subscribe('auction:t1', lambda name, payload: None)

    broadcaster.unsubscribe('auction:t1', sub_id)

    assert broadcaster.subscriber_count('auction:t1') == 0
    assert broadcaster.emit('auction:t1', 'player:unsold', {}) == 0


def test_dispatcher_numbers_events_in_commit_order():
    broadcaster = RoomBroadcaster()
    received = []
    broadcaster.subscribe('auction:t1', lambda name, payload: received.append(name))
    dispatcher = EventDispatcher(broadcaster=broadcaster, start_sequence=41)
    events = [
        AuctionEvent(name='player:sold', tournament_id='t1', payload={}),
        AuctionEvent(name='team:updated', tournament_id='t1', payload={}),
    ]

    dispatcher.dispatch(events)

    assert [e.sequence for e in events] == [42, 43]
    assert received == ['player:sold', 'team:updated']


def test_log_failure_does_not_block_delivery():
    broadcaster = RoomBroadcaster()
    received = []
    broadcaster.subscribe('auction:t1', lambda name, payload: received.append(name))
    dispatcher = EventDispatcher(broadcaster=broadcaster, event_store=BrokenEventStore())

    dispatcher.dispatch([AuctionEvent(name='bid:placed', tournament_id='t1', payload={})])

    assert received == ['bid:placed']


def test_broken_subscriber_does_not_fail_transition(engine, broadcaster):
    def broken(name, payload):
        raise RuntimeError('event loop closed')

    broadcaster.subscribe(room_key('t1'), broken)

    result = engine.start('t1')

    assert result.data['currentPlayer']['id'] == 'p1'
    assert engine.get_current_auction('t1')['isActive'] is True
