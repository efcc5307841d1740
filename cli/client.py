import requests
from typing import Optional, List, Dict, Any
from datetime import datetime
from decimal import Decimal
import pytz
from .config import SERVER_URL, get_token, get_timezone


class SniperClient:
    """Client for communicating with the domain sniper server."""

    def __init__(self):
        self.server_url = SERVER_URL
        self.token: Optional[str] = get_token()
        self.timezone = pytz.timezone(get_timezone())

    def _get_headers(self) -> Dict[str, str]:
        """Get headers with authentication."""
        if not self.token:
            raise ValueError("Not authenticated. Run 'domain-sniper auth' first.")
        return {"Authorization": f"Bearer {self.token}"}

    @staticmethod
    def _check(response: requests.Response):
        """Raise HTTPError carrying the server's `detail` message when present."""
        if response.ok:
            return
        try:
            error_msg = response.json().get("detail", response.text)
        except ValueError:
            response.raise_for_status()
        raise requests.exceptions.HTTPError(f"{response.status_code} {response.reason}: {error_msg}", response=response)

    def authenticate(self, username: str, password: str) -> str:
        """Authenticate and return token."""
        response = requests.post(
            f"{self.server_url}/auth",
            json={"username": username, "password": password}
        )
        response.raise_for_status()
        data = response.json()
        self.token = data["token"]
        return self.token

    def list_auctions(self) -> List[Dict[str, Any]]:
        response = requests.get(f"{self.server_url}/auctions", headers=self._get_headers())
        self._check(response)
        return response.json()

    def get_auction(self, auction_id: str) -> Dict[str, Any]:
        response = requests.get(f"{self.server_url}/auctions/{auction_id}", headers=self._get_headers())
        self._check(response)
        return response.json()

    def get_priority(self) -> Optional[Dict[str, Any]]:
        response = requests.get(f"{self.server_url}/auctions/priority", headers=self._get_headers())
        if response.status_code == 404:
            return None
        self._check(response)
        return response.json()

    def set_config(
        self,
        auction_id: str,
        auto_bid: bool,
        max_bid: Decimal,
        snipe_offset: int,
        enable_auto_extend: bool,
    ) -> Dict[str, Any]:
        """Replace an auction's bid configuration (always the full record)."""
        response = requests.put(
            f"{self.server_url}/auctions/{auction_id}/config",
            json={
                "auto_bid": auto_bid,
                "max_bid": str(max_bid),
                "snipe_offset": snipe_offset,
                "enable_auto_extend": enable_auto_extend,
            },
            headers=self._get_headers()
        )
        self._check(response)
        return response.json()

    def remove_auction(self, auction_id: str):
        response = requests.delete(f"{self.server_url}/auctions/{auction_id}", headers=self._get_headers())
        self._check(response)
        return response.json()

    def push_feed(self, auctions: List[Dict[str, Any]]) -> Dict[str, Any]:
        response = requests.post(f"{self.server_url}/feed", json=auctions, headers=self._get_headers())
        self._check(response)
        return response.json()

    def tick(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        payload = {"now": now.isoformat()} if now else None
        response = requests.post(f"{self.server_url}/tick", json=payload, headers=self._get_headers())
        self._check(response)
        return response.json()

    def simulate(self, hours: float = 1.0) -> Dict[str, Any]:
        response = requests.post(
            f"{self.server_url}/simulate",
            params={"hours": hours},
            headers=self._get_headers()
        )
        self._check(response)
        return response.json()

    def to_local_time(self, utc_time_str: Optional[str], with_seconds: bool = False) -> str:
        """Convert an ISO UTC time string to a local timezone string."""
        if not utc_time_str:
            return "-"
        dt_utc = datetime.fromisoformat(utc_time_str.replace("Z", "+00:00"))
        if dt_utc.tzinfo is None:
            dt_utc = pytz.UTC.localize(dt_utc)

        dt_local = dt_utc.astimezone(self.timezone)
        return dt_local.strftime("%Y-%m-%d %H:%M:%S" if with_seconds else "%Y-%m-%d %H:%M")
