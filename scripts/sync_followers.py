"""
Rebuild follower subcollections and followerCount from the follows/ edges.

Usage:
    python -m scripts.sync_followers            # every organization
    python -m scripts.sync_followers <orgId>    # one organization
"""

import asyncio
import sys

from app.exceptions import ChimeoError
from app.services.follow_service import follow_service


async def sync(org_id=None):
    print("Starting follower synchronization...")

    if org_id:
        try:
            result = await follow_service.sync_followers(org_id)
        except ChimeoError as e:
            print(f"Sync failed for {org_id}: {e.detail}")
            return 1
        print(
            f"{org_id}: {result['added']} added, {result['removed']} removed, "
            f"followerCount = {result['followerCount']}"
        )
        return 0

    summary = await follow_service.sync_all_followers()
    print(f"Processed {summary['processed']} organizations, {summary['succeeded']} synced.")
    if summary["failed"]:
        print("Failed:")
        for failed_id in summary["failed"]:
            print(f"  - {failed_id}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(sync(sys.argv[1] if len(sys.argv) > 1 else None)))
