import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

from server.models import BidConfig, BidState, BidStatus
from server.scheduler import BidScheduler, ConfigApplied, Fire, Settle, transition
from server.store import ConfigStore

ENDING_AT = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
FIRE_AT = datetime(2024, 1, 1, 11, 50, 0, tzinfo=timezone.utc)


def _config(auto_bid=True, offset=10, max_bid="2500", auto_extend=True) -> BidConfig:
    return BidConfig(auto_bid=auto_bid, max_bid=Decimal(max_bid), snipe_offset=offset, enable_auto_extend=auto_extend)


@pytest.fixture
def scheduler(executor):
    return BidScheduler(ConfigStore(), executor=executor)


def _arm(scheduler, auction, config):
    scheduler.configs.put(auction.id, config)
    return scheduler.apply_config(auction, config)


class TestTransition:
    """Tests for the pure transition function."""

    def test_config_disabled_goes_idle(self):
        scheduled = BidStatus(state=BidState.SCHEDULED, next_bid_at=FIRE_AT)
        status = transition(scheduled, ConfigApplied(auto_bid=False))
        assert status.state == BidState.IDLE
        assert status.next_bid_at is None

    def test_config_enabled_schedules_and_keeps_last_run(self):
        complete = BidStatus(state=BidState.COMPLETE, last_run=FIRE_AT)
        status = transition(complete, ConfigApplied(auto_bid=True, next_bid_at=ENDING_AT))
        assert status.state == BidState.SCHEDULED
        assert status.next_bid_at == ENDING_AT
        assert status.last_run == FIRE_AT

    def test_missing_status_starts_idle(self):
        assert transition(None, Fire(FIRE_AT)).state == BidState.IDLE

    def test_fire_before_due_is_ignored(self):
        scheduled = BidStatus(state=BidState.SCHEDULED, next_bid_at=FIRE_AT)
        assert transition(scheduled, Fire(FIRE_AT - timedelta(seconds=1))) == scheduled

    def test_fire_then_settle(self):
        scheduled = BidStatus(state=BidState.SCHEDULED, next_bid_at=FIRE_AT)
        executing = transition(scheduled, Fire(FIRE_AT))
        assert executing.state == BidState.EXECUTING
        assert executing.next_bid_at is None

        complete = transition(executing, Settle(FIRE_AT))
        assert complete.state == BidState.COMPLETE
        assert complete.last_run == FIRE_AT

    @pytest.mark.parametrize("state", [BidState.IDLE, BidState.COMPLETE])
    def test_fire_does_not_apply_outside_scheduled(self, state):
        status = BidStatus(state=state, last_run=FIRE_AT if state == BidState.COMPLETE else None)
        assert transition(status, Fire(FIRE_AT + timedelta(days=1))) == status

    def test_settle_only_applies_to_executing(self):
        scheduled = BidStatus(state=BidState.SCHEDULED, next_bid_at=FIRE_AT)
        assert transition(scheduled, Settle(FIRE_AT)) == scheduled

    def test_unknown_event_rejected(self):
        with pytest.raises(TypeError):
            transition(None, "tick")


def test_arming_sets_next_bid_at(scheduler, make_auction):
    auction = make_auction(ending_at=ENDING_AT)
    status = _arm(scheduler, auction, _config(offset=10))
    assert status.state == BidState.SCHEDULED
    assert status.next_bid_at == FIRE_AT


def test_fires_exactly_at_snipe_time(scheduler, make_auction, executor):
    auction = make_auction(ending_at=ENDING_AT)
    _arm(scheduler, auction, _config(offset=10))

    assert scheduler.tick(FIRE_AT - timedelta(seconds=1), [auction]) == []
    assert scheduler.status(auction.id).state == BidState.SCHEDULED
    executor.place_bid.assert_not_called()

    fired = scheduler.tick(FIRE_AT, [auction])
    assert [r.auction_id for r in fired] == [auction.id]
    status = scheduler.status(auction.id)
    assert status.state == BidState.COMPLETE
    assert status.last_run == FIRE_AT
    assert status.next_bid_at is None


def test_late_tick_fires_once(scheduler, make_auction, executor):
    auction = make_auction(ending_at=ENDING_AT)
    _arm(scheduler, auction, _config(offset=10))

    late = FIRE_AT + timedelta(hours=1)
    fired = scheduler.tick(late, [auction])

    assert len(fired) == 1
    assert scheduler.status(auction.id).last_run == late
    executor.place_bid.assert_called_once()


def test_complete_is_idempotent(scheduler, make_auction, executor):
    auction = make_auction(ending_at=ENDING_AT)
    _arm(scheduler, auction, _config(offset=10))
    scheduler.tick(FIRE_AT, [auction])
    completed = scheduler.status(auction.id)

    for minutes in (1, 5, 60, 600):
        assert scheduler.tick(FIRE_AT + timedelta(minutes=minutes), [auction]) == []

    assert scheduler.status(auction.id) == completed
    assert executor.place_bid.call_count == 1


def test_disable_before_tick_prevents_fire(scheduler, make_auction, executor):
    auction = make_auction(ending_at=ENDING_AT)
    _arm(scheduler, auction, _config(offset=10))

    status = _arm(scheduler, auction, _config(auto_bid=False, offset=10))
    assert status.state == BidState.IDLE
    assert status.next_bid_at is None

    assert scheduler.tick(FIRE_AT + timedelta(minutes=5), [auction]) == []
    assert scheduler.status(auction.id).state == BidState.IDLE
    executor.place_bid.assert_not_called()


def test_rearming_complete_allows_second_fire(scheduler, make_auction, executor):
    auction = make_auction(ending_at=ENDING_AT)
    _arm(scheduler, auction, _config(offset=10))
    scheduler.tick(FIRE_AT, [auction])

    status = _arm(scheduler, auction, _config(offset=5))
    assert status.state == BidState.SCHEDULED
    assert status.next_bid_at == ENDING_AT - timedelta(minutes=5)
    assert status.last_run == FIRE_AT

    second = ENDING_AT - timedelta(minutes=5)
    assert len(scheduler.tick(second, [auction])) == 1
    assert scheduler.status(auction.id).last_run == second
    assert executor.place_bid.call_count == 2


def test_missing_status_is_treated_as_scheduled(scheduler, make_auction):
    auction = make_auction(ending_at=ENDING_AT)
    scheduler.configs.put(auction.id, _config(offset=10))

    assert scheduler.tick(FIRE_AT - timedelta(minutes=1), [auction]) == []
    assert scheduler.status(auction.id).next_bid_at == FIRE_AT

    assert len(scheduler.tick(FIRE_AT, [auction])) == 1


def test_unconfigured_auction_is_never_fired(scheduler, make_auction, executor):
    auction = make_auction(ending_at=ENDING_AT)
    assert scheduler.tick(ENDING_AT, [auction]) == []
    executor.place_bid.assert_not_called()


def test_execution_boundary_receives_config(scheduler, make_auction, executor):
    auction = make_auction(ending_at=ENDING_AT)
    _arm(scheduler, auction, _config(offset=10, max_bid="3100", auto_extend=False))

    [record] = scheduler.tick(FIRE_AT, [auction])

    executor.place_bid.assert_called_once_with(auction.id, Decimal("3100"), False)
    assert record.amount == Decimal("3100")
    assert record.allow_dynamic_buffer is False


def test_executor_failure_still_completes(make_auction):
    failing = MagicMock()
    failing.place_bid.side_effect = RuntimeError("auction house unreachable")
    scheduler = BidScheduler(ConfigStore(), executor=failing)
    auction = make_auction(ending_at=ENDING_AT)
    _arm(scheduler, auction, _config(offset=10))

    fired = scheduler.tick(FIRE_AT, [auction])

    assert len(fired) == 1
    assert scheduler.status(auction.id).state == BidState.COMPLETE


def test_out_of_order_tick_is_ignored(scheduler, make_auction, executor):
    early = make_auction(id="early", ending_at=ENDING_AT)
    later = make_auction(id="later", ending_at=ENDING_AT + timedelta(hours=2))
    _arm(scheduler, early, _config(offset=10))
    _arm(scheduler, later, _config(offset=10))

    scheduler.tick(FIRE_AT, [early, later])
    assert scheduler.last_tick_at == FIRE_AT

    # A regressing tick never fires anything, even if it would be due
    assert scheduler.tick(FIRE_AT - timedelta(minutes=30), [early, later]) == []
    assert scheduler.last_tick_at == FIRE_AT
    assert scheduler.status("early").state == BidState.COMPLETE
    assert scheduler.status("later").state == BidState.SCHEDULED


def test_auctions_are_independent(scheduler, make_auction):
    first = make_auction(id="first", ending_at=ENDING_AT)
    second = make_auction(id="second", ending_at=ENDING_AT + timedelta(hours=1))
    _arm(scheduler, first, _config(offset=10))
    _arm(scheduler, second, _config(offset=10))

    fired = scheduler.tick(FIRE_AT, [first, second])

    assert [r.auction_id for r in fired] == ["first"]
    assert scheduler.status("second").state == BidState.SCHEDULED


def test_fast_forward_leaves_tick_clock_alone(scheduler, make_auction, executor):
    auction = make_auction(ending_at=ENDING_AT)
    _arm(scheduler, auction, _config(offset=10))
    scheduler.tick(FIRE_AT - timedelta(minutes=40), [auction])

    # Fast-forward past the close fires the snipe without moving the clock
    assert len(scheduler.tick(ENDING_AT + timedelta(minutes=40), [auction], advance_clock=False)) == 1
    assert scheduler.last_tick_at == FIRE_AT - timedelta(minutes=40)

    # Re-armed after the fast-forward, the real tick at the due time still fires
    _arm(scheduler, auction, _config(offset=10))
    assert scheduler.tick(FIRE_AT - timedelta(seconds=1), [auction]) == []
    assert len(scheduler.tick(FIRE_AT, [auction])) == 1
    assert scheduler.status(auction.id).last_run == FIRE_AT
    assert executor.place_bid.call_count == 2


def test_fast_forward_earlier_than_last_tick_is_ignored(scheduler, make_auction, executor):
    auction = make_auction(ending_at=ENDING_AT)
    _arm(scheduler, auction, _config(offset=10))
    scheduler.tick(FIRE_AT - timedelta(minutes=5), [auction])

    assert scheduler.tick(FIRE_AT - timedelta(minutes=10), [auction], advance_clock=False) == []
    executor.place_bid.assert_not_called()


def test_all_fire_decisions_are_made_before_executor_calls(make_auction):
    statuses_seen = []
    scheduler = None

    def place_bid(auction_id, amount, allow_dynamic_buffer):
        statuses_seen.append({key: scheduler.status(key).state for key in ("first", "second")})
        return True

    executor = MagicMock()
    executor.place_bid.side_effect = place_bid
    scheduler = BidScheduler(ConfigStore(), executor=executor)
    first = make_auction(id="first", ending_at=ENDING_AT)
    second = make_auction(id="second", ending_at=ENDING_AT)
    _arm(scheduler, first, _config(offset=10))
    _arm(scheduler, second, _config(offset=10))

    scheduler.tick(FIRE_AT, [first, second])

    assert statuses_seen[0] == {"first": BidState.COMPLETE, "second": BidState.COMPLETE}
