#!/usr/bin/env python3
"""Send a test message into a conversation through the API, signed like the identity gateway."""

import asyncio
import os
import sys

import httpx

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.auth import sign_user_id
from core.config import settings


async def send_message(sender_uid: str, match_id: int, text: str) -> None:
    """
    Post a message as ``sender_uid`` and print the assigned seq.

    Requires IDENTITY_SECRET to match the running API.
    """
    api_url = f"http://localhost:{settings.api_port}/conversations/{match_id}/messages"
    headers = {"X-User-Id": sender_uid, "X-User-Signature": sign_user_id(sender_uid)}

    async with httpx.AsyncClient() as client:
        try:
            response = await client.post(api_url, json={"content": text}, headers=headers, timeout=10.0)
            response.raise_for_status()

            result = response.json()
            print("Message sent")
            print(f"   match_id={result.get('match_id')} seq={result.get('seq')}")

        except httpx.HTTPStatusError as e:
            print(f"HTTP error: {e.response.status_code}")
            print(f"   Response: {e.response.text}")
        except httpx.HTTPError as e:
            print(f"Error: {e}")


def main() -> None:
    """Main entry point."""
    if len(sys.argv) < 4:
        print("Usage: python send_test_message.py <sender_uid> <match_id> <message>")
        print('Example: python send_test_message.py alice 1 "hi"')
        sys.exit(1)

    sender_uid = sys.argv[1]
    match_id = int(sys.argv[2])
    message_text = " ".join(sys.argv[3:])

    asyncio.run(send_message(sender_uid, match_id, message_text))


if __name__ == "__main__":
    from dotenv import load_dotenv

    load_dotenv()

    main()
