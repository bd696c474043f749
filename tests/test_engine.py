"""Tests for the auction session state machine."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from src.auction.engine import AuctionEngine
from src.auction.errors import (
    BusinessRuleViolation,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from src.auction.stores import DocumentStore


# ===== start / shuffle / select =====

def test_start_puts_oldest_player_on_block(engine, received):
    result = engine.start('t1')

    assert result.data['currentPlayer']['id'] == 'p1'
    assert result.data['currentBidPrice'] == 1000
    assert [name for name, _ in received] == ['auction:started', 'player:selected']
    assert received[0][1] == {'tournamentId': 't1', 'isActive': True}
    assert received[1][1]['player']['category'] == 'Icon'
    assert received[1][1]['currentBidPrice'] == 1000
    assert engine.players.find_by_id('p1').was_auctioned is True


def test_current_auction_matches_start(engine, received):
    result = engine.start('t1')
    state = engine.get_current_auction('t1')

    assert state['currentPlayerId'] == result.data['currentPlayer']['id']
    assert state['currentBidPrice'] == result.data['currentBidPrice']
    assert state['currentPlayer']['basePrice'] == received[1][1]['player']['basePrice'] == 1000
    assert state['tournamentId'] == 't1'
    assert state['isActive'] is True


def test_start_rejected_while_player_on_block(engine):
    engine.start('t1')

    with pytest.raises(StateConflictError):
        engine.start('t1')


def test_start_unknown_tournament(engine):
    with pytest.raises(NotFoundError):
        engine.start('nope')


def test_start_rejects_malformed_id(engine, received):
    with pytest.raises(ValidationError):
        engine.start('bad id!')
    assert received == []


def test_start_with_every_player_sold(engine, store):
    for player in store.players.find_by_tournament('t1'):
        engine.update_sold_details(player.id, sold_price=200, sold_to='team-a')

    with pytest.raises(NotFoundError):
        engine.start('t1')


def test_cancel_makes_player_eligible_again(engine):
    engine.start('t1')
    engine.cancel('t1')

    assert engine.players.find_by_id('p1').was_auctioned is False
    assert engine.start('t1').data['currentPlayer']['id'] == 'p1'


def test_mark_unsold_skips_player_on_next_start(engine):
    engine.start('t1')
    engine.mark_unsold('t1')

    assert engine.players.find_by_id('p1').was_auctioned is True
    assert engine.start('t1').data['currentPlayer']['id'] == 'p2'


def test_mark_unsold_skips_player_on_shuffle(engine):
    engine.start('t1')
    engine.mark_unsold('t1')

    for _ in range(20):
        picked = engine.shuffle('t1').data['currentPlayer']['id']
        assert picked != 'p1'
        engine.cancel('t1')


def test_marked_unsold_player_can_be_selected_manually(engine):
    engine.start('t1')
    engine.mark_unsold('t1')

    result = engine.select_player('t1', 'p1')

    assert result.data['currentPlayer']['id'] == 'p1'
    assert engine.get_current_auction('t1')['currentPlayerId'] == 'p1'


def test_shuffle_emits_only_player_selected(engine, received):
    engine.shuffle('t1')

    assert [name for name, _ in received] == ['player:selected']


def test_select_player_from_other_tournament(engine):
    with pytest.raises(ValidationError):
        engine.select_player('t1', 'p5')


def test_select_sold_player(engine):
    engine.update_sold_details('p3', sold_price=300, sold_to='team-a')

    with pytest.raises(StateConflictError):
        engine.select_player('t1', 'p3')


def test_legacy_base_price_for_category_less_tournament(engine):
    result = engine.select_player('t2', 'p5')
    assert result.data['currentBidPrice'] == 75

    result = engine.select_player('t2', 'p6')
    assert result.data['currentBidPrice'] == 50


# ===== bids =====

def test_bid_at_minimum_succeeds(engine, received):
    engine.start('t1')

    result = engine.place_bid('t1', 'team-a', 1100)

    assert result.data['currentBidPrice'] == 1100
    assert engine.get_current_auction('t1')['currentBidPrice'] == 1100
    assert received[-1] == ('bid:placed', {
        'teamId': 'team-a',
        'teamName': 'Alpha',
        'bidAmount': 1100,
        'currentBidPrice': 1100,
    })


def test_bid_below_minimum_rejected(engine, received):
    engine.start('t1')

    with pytest.raises(BusinessRuleViolation) as exc_info:
        engine.place_bid('t1', 'team-a', 1050)

    assert exc_info.value.details['minimumBid'] == 1100
    assert exc_info.value.details['increment'] == 100
    assert engine.get_current_auction('t1')['currentBidPrice'] == 1000
    assert [name for name, _ in received] == ['auction:started', 'player:selected']


def test_bids_chain_on_same_player(engine):
    engine.start('t1')
    engine.place_bid('t1', 'team-a', 1100)
    # 1100 falls in the 1001-5000 tier
    with pytest.raises(BusinessRuleViolation):
        engine.place_bid('t1', 'team-b', 1200)
    engine.place_bid('t1', 'team-b', 1300)
    engine.place_bid('t1', 'team-a', 1500)

    state = engine.get_current_auction('t1')
    assert state['currentPlayerId'] == 'p1'
    assert state['currentBidPrice'] == 1500


def test_bid_while_idle(engine):
    with pytest.raises(StateConflictError):
        engine.place_bid('t1', 'team-a', 500)


@pytest.mark.parametrize('amount', [0, -5, 'abc', None, True, float('nan')])
def test_bid_amount_must_be_positive_number(engine, amount):
    engine.start('t1')

    with pytest.raises(ValidationError):
        engine.place_bid('t1', 'team-a', amount)


def test_bid_by_team_of_other_tournament(engine):
    engine.start('t1')

    with pytest.raises(ValidationError):
        engine.place_bid('t1', 'team-c', 1100)


def test_bid_by_unknown_team(engine):
    engine.start('t1')

    with pytest.raises(NotFoundError):
        engine.place_bid('t1', 'team-z', 1100)


def test_bid_rejected_when_quota_unaffordable(engine):
    engine.select_player('t1', 'p2')

    # Alpha must keep 1000 for an Icon
    with pytest.raises(BusinessRuleViolation) as exc_info:
        engine.place_bid('t1', 'team-a', 4500)

    assert exc_info.value.details['feasible'] is False
    assert exc_info.value.details['reasons'][0]['type'] == 'budget_insufficient'
    assert exc_info.value.details['reasons'][0]['shortfall'] == 500


# ===== sell =====

def test_sell_updates_player_team_and_session(engine, received):
    engine.start('t1')
    engine.place_bid('t1', 'team-a', 1100)

    result = engine.sell('t1', 'team-a')

    player = engine.players.find_by_id('p1')
    team = engine.teams.find_by_id('team-a')
    assert (player.sold_price, player.sold_to) == (1100, 'team-a')
    assert team.player_ids == ['p1']
    assert team.remaining_amount == 3900
    assert result.data['warnings'] == {'budgetExceeded': None, 'categoryRequirements': []}

    assert [name for name, _ in received][-2:] == ['player:sold', 'team:updated']
    assert received[-2][1]['team'] == {
        'id': 'team-a', 'name': 'Alpha', 'remainingAmount': 3900, 'playerCount': 1
    }
    assert received[-1][1] == {'teamId': 'team-a', 'remainingAmount': 3900, 'playerCount': 1}

    state = engine.get_current_auction('t1')
    assert state['isActive'] is False
    assert state['currentPlayerId'] is None
    assert state['currentBidPrice'] is None
    assert state['tournamentId'] == 't1'


def test_sell_over_budget_completes_with_warning(engine):
    # Alpha spends 1000 on a Local player first
    engine.select_player('t1', 'p2')
    engine.place_bid('t1', 'team-a', 1000)
    engine.sell('t1', 'team-a')
    assert engine.teams.find_by_id('team-a').remaining_amount == 4000

    # Bravo drives the Icon to 4500, then it is sold to Alpha
    engine.select_player('t1', 'p1')
    engine.place_bid('t1', 'team-b', 4500)
    result = engine.sell('t1', 'team-a')

    team = engine.teams.find_by_id('team-a')
    assert team.remaining_amount == -500
    assert result.data['warnings']['budgetExceeded']['excess'] == 500
    assert result.data['warnings']['categoryRequirements']


def test_remaining_amount_matches_roster_after_each_sale(engine, store):
    for player_id, team_id, bid in [('p2', 'team-a', 300), ('p1', 'team-b', 1100), ('p3', 'team-a', 400)]:
        engine.select_player('t1', player_id)
        engine.place_bid('t1', team_id, bid)
        engine.sell('t1', team_id)

    for team in store.teams.find_by_tournament('t1'):
        spent = sum(p.sold_price for p in store.players.find_by_ids(team.player_ids))
        assert team.remaining_amount == team.budget - spent


def test_duplicate_sell_rejected(engine):
    engine.start('t1')
    engine.sell('t1', 'team-a')

    with pytest.raises(StateConflictError):
        engine.sell('t1', 'team-a')
    assert engine.teams.find_by_id('team-a').player_ids == ['p1']


def test_sell_while_idle(engine, received):
    with pytest.raises(StateConflictError):
        engine.sell('t1', 'team-a')
    assert received == []


# ===== mark unsold / cancel =====

def test_mark_unsold_keeps_tournament(engine, received):
    engine.start('t1')
    result = engine.mark_unsold('t1')

    assert result.data['player']['id'] == 'p1'
    assert received[-1][0] == 'player:unsold'
    assert received[-1][1]['player']['id'] == 'p1'
    state = engine.get_current_auction('t1')
    assert state['isActive'] is False
    assert state['tournamentId'] == 't1'


def test_cancel_clears_tournament(engine, received):
    engine.start('t1')
    engine.cancel('t1')

    assert received[-1] == ('auction:cancelled', {'tournamentId': 't1', 'playerId': 'p1'})
    state = engine.get_current_auction('t1')
    assert state['tournamentId'] is None
    assert state['currentPlayer'] is None


@pytest.mark.parametrize('operation', ['mark_unsold', 'cancel'])
def test_close_requires_active_auction(engine, operation):
    with pytest.raises(StateConflictError):
        getattr(engine, operation)('t1')


# ===== session modes =====

def test_single_session_is_replaced_by_other_tournament(engine):
    engine.start('t1')
    engine.start('t2')

    state = engine.get_current_auction('t1')
    assert state['isActive'] is False
    assert state['currentPlayer'] is None
    assert engine.get_current_auction('t2')['currentPlayerId'] == 'p5'

    with pytest.raises(StateConflictError):
        engine.place_bid('t1', 'team-a', 1100)


def test_multi_tournament_sessions_are_independent(multi_engine):
    multi_engine.start('t1')
    multi_engine.start('t2')

    assert multi_engine.get_current_auction('t1')['currentPlayerId'] == 'p1'
    assert multi_engine.get_current_auction('t2')['currentPlayerId'] == 'p5'

    multi_engine.place_bid('t1', 'team-a', 1100)
    assert multi_engine.get_current_auction('t2')['currentBidPrice'] == 75


# ===== reads =====

def test_max_bids(engine):
    assert engine.get_max_bids('t1') == [
        {'teamId': 'team-a', 'maxBid': 4000},
        {'teamId': 'team-b', 'maxBid': 4000},
    ]


def test_max_bids_use_recomputed_remaining(league):
    league['teams'][0]['remainingAmount'] = 99999
    engine = AuctionEngine.from_store(DocumentStore.from_dict(league))

    assert engine.get_max_bids('t1')[0] == {'teamId': 'team-a', 'maxBid': 4000}


def test_max_bids_after_icon_purchase(engine):
    engine.start('t1')
    engine.sell('t1', 'team-a')

    max_bids = {row['teamId']: row['maxBid'] for row in engine.get_max_bids('t1')}
    assert max_bids['team-a'] == 4000
    assert max_bids['team-b'] == 4000


def test_unsold_players_newest_first(engine):
    engine.update_sold_details('p3', sold_price=300, sold_to='team-a')

    unsold = engine.get_unsold_players('t1')

    assert [p['id'] for p in unsold] == ['p4', 'p2', 'p1']
    assert unsold[0]['category'] == 'Icon'
    assert unsold[1]['basePrice'] == 200


def test_team_summary(engine):
    engine.start('t1')
    engine.sell('t1', 'team-b')

    summary = engine.team_summary('t1')

    assert list(summary['team_name']) == ['Alpha', 'Bravo']
    bravo = summary[summary['team_id'] == 'team-b'].iloc[0]
    assert bravo['spent'] == 1000
    assert bravo['remaining_amount'] == 4000


def test_on_commit_called_after_transitions(store):
    commits = []
    engine = AuctionEngine.from_store(store, on_commit=lambda: commits.append(1))

    engine.start('t1')
    engine.place_bid('t1', 'team-a', 1100)
    with pytest.raises(BusinessRuleViolation):
        engine.place_bid('t1', 'team-a', 1100)

    assert len(commits) == 2


# ===== concurrency =====

def test_concurrent_bids_at_same_price_accept_one(engine, received):
    engine.start('t1')
    levels = [1100, 1300, 1500, 1700]
    workers = 8

    for amount in levels:
        barrier = threading.Barrier(workers)

        def bid(i):
            barrier.wait()
            try:
                engine.place_bid('t1', 'team-a' if i % 2 else 'team-b', amount)
            except BusinessRuleViolation:
                return False
            return True

        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(bid, range(workers)))

        assert outcomes.count(True) == 1

    placed = [payload['bidAmount'] for name, payload in received if name == 'bid:placed']
    assert placed == levels
    assert engine.get_current_auction('t1')['currentBidPrice'] == 1700
