import os
import json
from pathlib import Path
from typing import Optional
import datetime

CONFIG_DIR = Path(os.getenv("DOMAIN_SNIPER_HOME", Path.home() / ".domain-sniper"))
CONFIG_FILE = CONFIG_DIR / "config.json"
TOKEN_FILE = CONFIG_DIR / "token.txt"
SERVER_URL = os.getenv("SNIPER_SERVER_URL", "http://localhost:8000")


def ensure_config_dir():
    """Ensure config directory exists."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)


def get_token() -> Optional[str]:
    """Get stored API token."""
    ensure_config_dir()
    if TOKEN_FILE.exists():
        return TOKEN_FILE.read_text().strip()
    return None


def save_token(token: str):
    """Save API token."""
    ensure_config_dir()
    TOKEN_FILE.write_text(token)


def get_timezone() -> str:
    """Get user timezone from config, or use system local timezone."""
    ensure_config_dir()
    if CONFIG_FILE.exists():
        config = json.loads(CONFIG_FILE.read_text())
        configured_tz = config.get("timezone")
        if configured_tz:
            return configured_tz

    # /etc/localtime is a symlink into a zoneinfo tree, e.g.
    # /usr/share/zoneinfo/Europe/London -> Europe/London
    localtime_path = Path("/etc/localtime")
    if localtime_path.exists():
        parts = localtime_path.resolve().parts
        if "zoneinfo" in parts:
            tz_name = "/".join(parts[parts.index("zoneinfo") + 1:])
            if tz_name:
                return tz_name

    try:
        from zoneinfo import ZoneInfo
        local_tz = datetime.datetime.now().astimezone().tzinfo
        if isinstance(local_tz, ZoneInfo):
            return local_tz.key
    except (ImportError, AttributeError):
        pass

    return "UTC"
