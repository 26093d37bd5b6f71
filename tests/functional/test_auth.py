"""
Test: authenticate (HiDrive.create) and fetch the current user
Usage:
  python tests/functional/test_auth.py
"""

import asyncio
import sys
from pathlib import Path

# Add repo root to path for package imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from tests.utils.read_credentials import create_client, have_credentials, read_credentials


async def main():
    creds = read_credentials()
    if not have_credentials(creds):
        print(
            "Missing credentials. Copy tests/utils/credentials.txt.example -> "
            "tests/utils/credentials.txt and fill in CLIENT_ID, CLIENT_SECRET, REFRESH_TOKEN"
        )
        return

    from hidrive_api.helpers import mask_token

    client = await create_client(creds)
    try:
        print("Authenticated. access_token:", mask_token(client.auth.access_token or ""))
        me = await client.user().me()
        print("Account:", me.get("account"), "home:", me.get("home"))
    finally:
        await client.close()


if __name__ == "__main__":
    asyncio.run(main())
