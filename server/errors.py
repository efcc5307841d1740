class SniperError(Exception):
    """Base class for errors surfaced to API and CLI callers."""


class AuctionNotFoundError(SniperError, KeyError):
    """Raised when an operation references an auction id the board does not know."""

    def __init__(self, auction_id: str):
        super().__init__(auction_id)
        self.auction_id = auction_id

    def __str__(self) -> str:
        return f"Auction {self.auction_id} not found"


class ConfigValidationError(SniperError, ValueError):
    """Raised when a bid configuration is out of range. Prior configuration is left untouched."""
