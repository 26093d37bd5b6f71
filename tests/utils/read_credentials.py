"""
Utility: read credentials from credentials.txt (KEY=VALUE lines)

Place credentials.txt in tests/utils/ or set environment variables.
"""

from pathlib import Path
from typing import Optional, Union, Dict
import os

KEYS = ("CLIENT_ID", "CLIENT_SECRET", "REFRESH_TOKEN", "BASE_URL")


def read_credentials(path: Optional[Union[str, Path]] = None) -> Dict[str, str]:
    """Return dict of credentials from the given file. Falls back to HIDRIVE_* env vars if not present."""
    creds = {}
    if path is None:
        path = Path(__file__).parent / "credentials.txt"
    p = Path(path)
    if p.exists():
        for ln in p.read_text().splitlines():
            ln = ln.strip()
            if not ln or ln.startswith("#"):
                continue
            if "=" in ln:
                k, v = ln.split("=", 1)
                creds[k.strip()] = v.strip()
    # Only accept non-empty values to avoid silently using empty strings
    for k in KEYS:
        if k not in creds:
            val = os.getenv(f"HIDRIVE_{k}")
            if val:
                creds[k] = val
    return creds


def have_credentials(creds: Dict[str, str]) -> bool:
    return all(creds.get(k) for k in ("CLIENT_ID", "CLIENT_SECRET", "REFRESH_TOKEN"))


async def create_client(creds: Dict[str, str]):
    from hidrive_api import ClientCredentials, HiDrive

    kwargs = {"base_url": creds["BASE_URL"]} if creds.get("BASE_URL") else {}
    return await HiDrive.create(
        ClientCredentials(creds["CLIENT_ID"], creds["CLIENT_SECRET"]),
        creds["REFRESH_TOKEN"],
        **kwargs,
    )
