#!/usr/bin/env python3
"""
Audit the reciprocity law: a match exists iff both directed likes exist.
"""

import asyncio
import os
import sys

from sqlalchemy import and_, select
from sqlalchemy.orm import aliased

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from apps.workers.match_worker import MatchWorker
from core.db import AsyncSessionLocal
from models.like import Like
from models.match import Match


async def find_unbacked_matches() -> list[Match]:
    """Matches missing at least one of their two likes."""
    forward = aliased(Like)
    backward = aliased(Like)
    async with AsyncSessionLocal() as db:
        result = await db.execute(
            select(Match)
            .outerjoin(forward, and_(forward.from_uid == Match.uid_low, forward.to_uid == Match.uid_high))
            .outerjoin(backward, and_(backward.from_uid == Match.uid_high, backward.to_uid == Match.uid_low))
            .where((forward.from_uid.is_(None)) | (backward.from_uid.is_(None)))
        )
        return list(result.scalars().all())


async def check(repair: bool) -> int:
    worker = MatchWorker()
    orphaned = await worker.find_orphaned_pairs()
    unbacked = await find_unbacked_matches()

    if orphaned:
        print(f"Reciprocal likes without a match ({len(orphaned)}):")
        for uid_low, uid_high in orphaned:
            print(f"   - {uid_low} <-> {uid_high}")
    else:
        print("All reciprocal like pairs have a match")

    if unbacked:
        print(f"Matches without both likes ({len(unbacked)}):")
        for match in unbacked:
            print(f"   - id={match.id} pair={match.pair_key}")
    else:
        print("Every match is backed by both likes")

    if repair and orphaned:
        created = await worker.run_once()
        print(f"Created {created} missing matches")

    return 1 if (orphaned and not repair) or unbacked else 0


async def main() -> int:
    if len(sys.argv) > 1 and sys.argv[1] not in ("--repair",):
        print("Usage:")
        print(f"  {sys.argv[0]}            - report reciprocity violations")
        print(f"  {sys.argv[0]} --repair   - also create missing matches")
        return 2
    return await check(repair="--repair" in sys.argv[1:])


if __name__ == "__main__":
    # Load environment variables
    from dotenv import load_dotenv

    load_dotenv()

    sys.exit(asyncio.run(main()))
