import time
import logging
from datetime import datetime
from typing import List, Optional

from database import SessionLocal
from .board import AuctionBoard
from .feed import read_feed
from .models import FireRecord
from .timeutil import ensure_utc, utc_now
from . import settings

logger = logging.getLogger(__name__)


class Worker:
    """Tick driver: mirrors the feed table into the board, then evaluates snipes."""

    def __init__(self, board: AuctionBoard, session_factory=SessionLocal, interval: Optional[float] = None):
        self.board = board
        self.session_factory = session_factory
        self.interval = interval if interval is not None else settings.TICK_INTERVAL_SECONDS
        self.running = False

    def _refresh_feed(self, now: datetime):
        """Load the latest snapshots and reconcile the board with them."""
        db = self.session_factory()
        try:
            auctions = read_feed(db)
        except Exception as e:
            logger.error(f"Error reading auction feed: {e}", exc_info=True)
            db.rollback()
            return
        finally:
            db.close()

        added = self.board.sync_feed(auctions, now)
        if added:
            logger.info(f"Feed refresh added {len(added)} auctions")

    def run_once(self, now: Optional[datetime] = None) -> List[FireRecord]:
        """One iteration: refresh feed, then tick at `now` (defaults to the wall clock)."""
        now = ensure_utc(now) if now is not None else utc_now()
        self._refresh_feed(now)
        return self.board.tick(now)

    def run_loop(self):
        """Main worker loop."""
        self.running = True
        logger.info(f"Worker loop started (tick every {self.interval}s)")

        while self.running:
            try:
                fired = self.run_once()
                if fired:
                    logger.info(f"Tick fired {len(fired)} snipe bids")
                time.sleep(self.interval)

            except KeyboardInterrupt:
                logger.info("Worker loop interrupted")
                self.running = False
                break
            except Exception as e:
                logger.error(f"Error in worker loop: {e}", exc_info=True)
                time.sleep(1)

    def stop(self):
        """Stop the worker loop."""
        self.running = False
