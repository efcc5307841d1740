import threading
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Union
from pydantic import ValidationError

from .errors import AuctionNotFoundError, ConfigValidationError
from .executor import BidExecutor
from .models import AuctionAnalysis, AuctionView, BidConfig, BidStatus, DomainAuction, FireRecord
from .scheduler import BidScheduler
from .scoring import analyze
from .store import ConfigStore, KeyLocks
from .timeutil import Remaining, ensure_utc, remaining, snipe_time, utc_now

logger = logging.getLogger(__name__)

DYNAMIC_BUFFER_MINUTES = 2


def safety_buffer_label(config: BidConfig) -> str:
    return f"Dynamic ±{DYNAMIC_BUFFER_MINUTES}m" if config.enable_auto_extend else "Fixed"


def default_config(analysis: AuctionAnalysis) -> BidConfig:
    """Configuration an auction starts with when it first appears in the feed."""
    return BidConfig(
        auto_bid=True,
        max_bid=analysis.recommended_max_bid,
        snipe_offset=analysis.snipe_offset_minutes,
        enable_auto_extend=True,
    )


class AuctionBoard:
    """
    Tracks the current feed, its analyses, per-auction configuration and bid status.

    Thread-safe: API handlers and the worker's tick loop share one board.
    """

    def __init__(self, executor: Optional[BidExecutor] = None):
        self._locks = KeyLocks()
        self.configs = ConfigStore(self._locks)
        self.scheduler = BidScheduler(self.configs, executor=executor)
        self._auctions: Dict[str, DomainAuction] = {}
        self._analyses: Dict[str, AuctionAnalysis] = {}
        self._lock = threading.Lock()  # Protects the auction/analysis dicts

    # ---- feed ----

    def sync_feed(self, auctions: Iterable[DomainAuction], now: Optional[datetime] = None) -> List[str]:
        """
        Reconcile the board with a full feed refresh.

        New auctions get analysis-derived default configs and are armed;
        known auctions get a fresh analysis but keep their config; auctions
        missing from the refresh are dropped with their config and status.

        Returns the ids added by this refresh.
        """
        now = ensure_utc(now) if now is not None else utc_now()
        incoming = {auction.id: auction for auction in auctions}
        added = []

        for auction_id in set(self.auction_ids()) - set(incoming):
            try:
                self.remove(auction_id)
            except AuctionNotFoundError:
                # Removed concurrently, e.g. by an API delete
                continue

        for auction_id, auction in incoming.items():
            with self._locks.hold(auction_id):
                previous = self.get_auction_or_none(auction_id)
                if previous is not None:
                    auction = self._accept_refresh(previous, auction)
                analysis = analyze(auction, now)
                with self._lock:
                    self._auctions[auction_id] = auction
                    self._analyses[auction_id] = analysis

                if previous is None:
                    config = default_config(analysis)
                    self.configs.put(auction_id, config)
                    self.scheduler.apply_config(auction, config)
                    added.append(auction_id)
                    logger.info(f"Tracking {auction.domain} ({auction_id}): score {analysis.score}, risk {analysis.risk.value}")

        return added

    def _accept_refresh(self, previous: DomainAuction, incoming: DomainAuction) -> DomainAuction:
        if incoming.current_bid < previous.current_bid:
            logger.warning(
                f"Feed reported lower bid for auction {previous.id} "
                f"({incoming.current_bid} < {previous.current_bid}), keeping previous snapshot"
            )
            return previous
        if incoming.ending_at != previous.ending_at:
            logger.warning(f"Ending time of auction {previous.id} moved from {previous.ending_at} to {incoming.ending_at}")
        return incoming

    def remove(self, auction_id: str):
        """Drop an auction that left the feed."""
        with self._locks.hold(auction_id):
            with self._lock:
                if auction_id not in self._auctions:
                    raise AuctionNotFoundError(auction_id)
                self._auctions.pop(auction_id)
                self._analyses.pop(auction_id, None)
            self.configs.pop(auction_id)
            self.scheduler.forget(auction_id)
        logger.info(f"Stopped tracking auction {auction_id}")

    # ---- configuration ----

    def set_config(self, auction_id: str, config: Union[BidConfig, Mapping]) -> BidStatus:
        """Replace an auction's configuration and re-arm or disarm it."""
        if not isinstance(config, BidConfig):
            try:
                config = BidConfig.model_validate(config)
            except ValidationError as e:
                raise ConfigValidationError(str(e)) from e

        with self._locks.hold(auction_id):
            auction = self.get_auction(auction_id)
            self.configs.put(auction_id, config)
            status = self.scheduler.apply_config(auction, config)
        logger.info(
            f"Config for auction {auction_id}: auto_bid={config.auto_bid} max_bid={config.max_bid} "
            f"offset={config.snipe_offset}m -> {status.state.value}"
        )
        return status

    # ---- ticks ----

    def tick(self, now: Optional[datetime] = None, advance_clock: bool = True) -> List[FireRecord]:
        now = ensure_utc(now) if now is not None else utc_now()
        return self.scheduler.tick(now, self.auctions(), advance_clock=advance_clock)

    # ---- queries ----

    def auction_ids(self) -> List[str]:
        with self._lock:
            return list(self._auctions)

    def auctions(self) -> List[DomainAuction]:
        with self._lock:
            return list(self._auctions.values())

    def get_auction_or_none(self, auction_id: str) -> Optional[DomainAuction]:
        with self._lock:
            return self._auctions.get(auction_id)

    def get_auction(self, auction_id: str) -> DomainAuction:
        auction = self.get_auction_or_none(auction_id)
        if auction is None:
            raise AuctionNotFoundError(auction_id)
        return auction

    def get_analysis(self, auction_id: str) -> AuctionAnalysis:
        with self._lock:
            analysis = self._analyses.get(auction_id)
        if analysis is None:
            raise AuctionNotFoundError(auction_id)
        return analysis

    def get_config(self, auction_id: str) -> BidConfig:
        return self.configs.require(auction_id)

    def get_status(self, auction_id: str) -> BidStatus:
        self.get_auction(auction_id)
        return self.scheduler.status(auction_id) or BidStatus()

    def remaining(self, auction_id: str, now: Optional[datetime] = None) -> Remaining:
        auction = self.get_auction(auction_id)
        return remaining(auction.ending_at, now if now is not None else utc_now())

    def view(self, auction_id: str, now: Optional[datetime] = None) -> AuctionView:
        with self._locks.hold(auction_id):
            auction = self.get_auction(auction_id)
            analysis = self.get_analysis(auction_id)
            config = self.get_config(auction_id)
            status = self.get_status(auction_id)
        left = remaining(auction.ending_at, now if now is not None else utc_now())
        return AuctionView(
            auction=auction,
            analysis=analysis,
            config=config,
            status=status,
            ends_in=left.label,
            is_expired=left.is_expired,
            bid_at=snipe_time(auction.ending_at, config.snipe_offset) if config.auto_bid else None,
            safety_buffer=safety_buffer_label(config),
        )

    def views(self, now: Optional[datetime] = None) -> List[AuctionView]:
        """All auctions ordered by ending time."""
        views = []
        for auction in sorted(self.auctions(), key=lambda a: a.ending_at):
            try:
                views.append(self.view(auction.id, now))
            except AuctionNotFoundError:
                # Removed by a concurrent feed refresh
                continue
        return views

    def priority_pick(self) -> Optional[DomainAuction]:
        """Highest composite score; ties go to the auction seen first."""
        best = None
        best_score = -1
        with self._lock:
            for auction_id, auction in self._auctions.items():
                score = self._analyses[auction_id].score
                if score > best_score:
                    best, best_score = auction, score
        return best
