import time
import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional
import requests

from . import settings

logger = logging.getLogger(__name__)

# Retry delays for timed-out webhook calls: 100ms, 250ms, 500ms
RETRY_DELAYS = [0.1, 0.25, 0.5]


class BidExecutor(ABC):
    """
    Boundary the scheduler calls once per fire decision.

    The scheduler does not consume the result: a status of Complete means
    "fire decision made", not "bid confirmed by the auction house".
    """

    @abstractmethod
    def place_bid(self, auction_id: str, amount: Decimal, allow_dynamic_buffer: bool) -> bool: ...


class LoggingBidExecutor(BidExecutor):
    """Records the bid in the log only. Default when no webhook is configured."""

    def place_bid(self, auction_id: str, amount: Decimal, allow_dynamic_buffer: bool) -> bool:
        logger.info(
            f"Snipe bid for auction {auction_id}: max ${amount} "
            f"({'dynamic' if allow_dynamic_buffer else 'fixed'} buffer)"
        )
        return True


class WebhookBidExecutor(BidExecutor):
    """Forwards fire decisions to an external bidding service over HTTP."""

    def __init__(self, url: str, timeout: float = 5.0, max_attempts: int = 4):
        self.url = url
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.session = requests.Session()

    def place_bid(self, auction_id: str, amount: Decimal, allow_dynamic_buffer: bool) -> bool:
        payload = {
            "auction_id": auction_id,
            "amount": str(amount),
            "allow_dynamic_buffer": allow_dynamic_buffer,
        }

        for attempt in range(self.max_attempts):
            try:
                response = self.session.post(self.url, json=payload, timeout=self.timeout)
                response.raise_for_status()
                logger.info(f"Bid for auction {auction_id} delivered to {self.url}")
                return True

            except requests.exceptions.Timeout:
                logger.warning(f"Bid delivery attempt {attempt + 1}/{self.max_attempts} timed out for auction {auction_id}")
                if attempt < self.max_attempts - 1:
                    time.sleep(RETRY_DELAYS[attempt] if attempt < len(RETRY_DELAYS) else RETRY_DELAYS[-1])
                continue

            except requests.exceptions.RequestException as e:
                logger.error(f"Bid delivery failed for auction {auction_id}: {e}")
                return False

        logger.error(f"Bid delivery for auction {auction_id} gave up after {self.max_attempts} attempts")
        return False


def build_executor(webhook_url: Optional[str] = None) -> BidExecutor:
    """Webhook executor when a URL is configured, logging executor otherwise."""
    url = webhook_url if webhook_url is not None else settings.BID_WEBHOOK_URL
    if url:
        return WebhookBidExecutor(url, timeout=settings.BID_WEBHOOK_TIMEOUT)
    return LoggingBidExecutor()
