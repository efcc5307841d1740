"""
Bid scheduling state machine.

Each auction moves through Idle -> Scheduled -> Executing -> Complete. The
scheduler never runs timers of its own: an external driver calls tick(now)
and every Scheduled auction whose fire time has passed is executed exactly
once, however late or irregular the tick.
"""
import threading
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Union

from .executor import BidExecutor, LoggingBidExecutor
from .models import BidConfig, BidState, BidStatus, DomainAuction, FireRecord
from .store import ConfigStore, StatusStore
from .timeutil import ensure_utc, snipe_time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfigApplied:
    auto_bid: bool
    next_bid_at: Optional[datetime] = None


@dataclass(frozen=True)
class Fire:
    now: datetime


@dataclass(frozen=True)
class Settle:
    now: datetime


Event = Union[ConfigApplied, Fire, Settle]


def transition(status: Optional[BidStatus], event: Event) -> BidStatus:
    """Pure transition function. Events that do not apply leave the status unchanged."""
    current = status or BidStatus()

    if isinstance(event, ConfigApplied):
        if not event.auto_bid:
            return BidStatus(state=BidState.IDLE, last_run=current.last_run)
        return BidStatus(state=BidState.SCHEDULED, next_bid_at=event.next_bid_at, last_run=current.last_run)

    if isinstance(event, Fire):
        if current.state == BidState.SCHEDULED and current.next_bid_at <= ensure_utc(event.now):
            return BidStatus(state=BidState.EXECUTING, last_run=current.last_run)
        return current

    if isinstance(event, Settle):
        if current.state == BidState.EXECUTING:
            return BidStatus(state=BidState.COMPLETE, last_run=ensure_utc(event.now))
        return current

    raise TypeError(f"Unknown scheduler event: {event!r}")


def arm_event(auction: DomainAuction, config: BidConfig) -> ConfigApplied:
    if not config.auto_bid:
        return ConfigApplied(auto_bid=False)
    return ConfigApplied(auto_bid=True, next_bid_at=snipe_time(auction.ending_at, config.snipe_offset))


class BidScheduler:
    """Tick-driven executor over the per-auction status store."""

    def __init__(self, configs: ConfigStore, executor: Optional[BidExecutor] = None):
        self.configs = configs
        # Shares the config store's key locks so config + status change together
        self.statuses = StatusStore(configs.locks)
        self.executor = executor or LoggingBidExecutor()
        self.last_tick_at: Optional[datetime] = None
        self._tick_lock = threading.Lock()

    def apply_config(self, auction: DomainAuction, config: BidConfig) -> BidStatus:
        """Arm or disarm an auction after its configuration changed."""
        event = arm_event(auction, config)
        status = self.statuses.update(auction.id, lambda current: transition(current, event))
        logger.debug(f"Auction {auction.id} -> {status.state.value} (next bid {status.next_bid_at})")
        return status

    def status(self, auction_id: str) -> Optional[BidStatus]:
        return self.statuses.get(auction_id)

    def forget(self, auction_id: str):
        self.statuses.pop(auction_id)

    def tick(self, now: datetime, auctions: Iterable[DomainAuction], advance_clock: bool = True) -> List[FireRecord]:
        """Fire every due auction. Ticks earlier than the last applied tick are ignored.

        With advance_clock=False the tick evaluates at `now` without moving the
        regression guard, so a fast-forward does not hold back later real ticks.
        """
        now = ensure_utc(now)
        with self._tick_lock:
            if self.last_tick_at is not None and now < self.last_tick_at:
                logger.warning(f"Ignoring out-of-order tick at {now.isoformat()} (last tick {self.last_tick_at.isoformat()})")
                return []
            if advance_clock:
                self.last_tick_at = now

            fired = []
            for auction in auctions:
                record = self._evaluate(auction, now)
                if record is not None:
                    fired.append(record)

        # Executor calls happen outside every scheduler lock
        for record in fired:
            self._dispatch(record)
        return fired

    def _evaluate(self, auction: DomainAuction, now: datetime) -> Optional[FireRecord]:
        """Decide the fire and move the status to Complete. Never calls the executor."""
        with self.statuses.locks.hold(auction.id):
            config = self.configs.get(auction.id)
            if config is None or not config.auto_bid:
                return None

            status = self.statuses.get(auction.id)
            if status is None:
                # No status yet: treat as freshly scheduled
                status = transition(None, arm_event(auction, config))
                self.statuses.put(auction.id, status)

            executing = transition(status, Fire(now))
            if executing.state != BidState.EXECUTING:
                return None
            self.statuses.put(auction.id, executing)
            self.statuses.put(auction.id, transition(executing, Settle(now)))
            logger.info(f"Fired snipe for auction {auction.id} ({auction.domain}) at {now.isoformat()}")

            return FireRecord(
                auction_id=auction.id,
                fired_at=now,
                amount=config.max_bid,
                allow_dynamic_buffer=config.enable_auto_extend,
            )

    def _dispatch(self, record: FireRecord):
        try:
            self.executor.place_bid(record.auction_id, record.amount, record.allow_dynamic_buffer)
        except Exception as e:
            # Delivery failures never roll back the fire decision
            logger.error(f"Bid executor failed for auction {record.auction_id}: {e}", exc_info=True)
