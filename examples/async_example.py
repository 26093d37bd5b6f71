#!/usr/bin/env python3
"""
Example: Using the hidrive_api client

Lists the home directory, downloads one file and shows how to pass optional
parameters. Client credentials are read from HIDRIVE_CLIENT_ID and
HIDRIVE_CLIENT_SECRET.

Usage:
    python async_example.py --refresh-token TOKEN [--download PATH]
"""

import asyncio
import argparse
import logging
from pathlib import Path

from hidrive_api import ClientCredentials, HiDrive, HiDriveApiException, Identifier, Params


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
log = logging.getLogger(__name__)


def save_token(token):
    """Refresh tokens may be rotated; keep the latest one."""
    log.info(f"   New access token, expires at {token.expires_at:.0f}")


async def browse(hd: HiDrive):
    log.info("=== Account ===")
    me = await hd.user().me()
    log.info(f"   Account: {me.get('account')} (home: {me.get('home')})")

    log.info("\n=== Home directory ===")
    files = hd.files()
    home = await files.get_home_dir(Params().add_str("members", "all").add_str("fields", "path,members.name,members.size"))
    for member in home.get("members", []):
        log.info(f"   {member.get('name')}  {member.get('size', '-')} bytes")


async def download(hd: HiDrive, path: str):
    log.info(f"\n=== Downloading {path} ===")
    target = Path(path).name

    def progress(n: int):
        log.info(f"   {n} bytes")

    with open(target, "wb") as out:
        n = await hd.files().get(Identifier.by_path(path), out, progress=progress)
    log.info(f"   Saved {n} bytes to {target}")


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="HiDrive API example")
    parser.add_argument('--refresh-token', required=True, help='OAuth2 refresh token')
    parser.add_argument('--download', help='Absolute HiDrive path of a file to download')
    args = parser.parse_args()

    try:
        credentials = ClientCredentials.from_env()
        async with await HiDrive.create(credentials, args.refresh_token, on_refresh=save_token) as hd:
            await browse(hd)
            if args.download:
                await download(hd, args.download)
        log.info("\n✓ Example completed successfully")
    except (HiDriveApiException, ValueError) as e:
        log.error(f"Error: {e}", exc_info=True)
        return 1

    return 0


if __name__ == '__main__':
    exit_code = asyncio.run(main())
    exit(exit_code)
