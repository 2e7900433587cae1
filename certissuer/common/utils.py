# certissuer/common/utils.py
import hashlib
from datetime import datetime, timezone
from typing import List, Optional


def split_csv(value: Optional[str]) -> List[str]:
    """Split a comma-separated option value, dropping empty entries."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def now_utc() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def sha256_hex(data: bytes) -> str:
    """Return lowercase hex digest of SHA-256 for `data`."""
    return hashlib.sha256(data).hexdigest()


def colon_hex(data: bytes) -> str:
    """Render bytes as upper-case hex pairs joined by colons (AB:CD:...)."""
    return ":".join(f"{b:02X}" for b in data)
