#!/usr/bin/env python3
"""
Republish workflow events that were committed but never handed off.

Publishing after commit is fire-and-forget; when the publisher is down the
events stay in the outbox with ``published_at`` unset. This relay drains them.

Usage:
    python scripts/relay_events.py
    python scripts/relay_events.py --batch-size 500 --loop --interval 30

Environment Variables:
    DATABASE_URL: Database holding the outbox
    EVENT_PUBLISHER: 'log' or 'redis'
    EVENT_CHANNEL: Redis channel when publishing to redis
"""

import argparse
import asyncio
import sys

import dotenv

dotenv.load_dotenv()

from app.core.redis_client import close_redis_connection  # noqa: E402
from app.database import AsyncSessionLocal, engine  # noqa: E402
from app.middleware.logging import configure_logging  # noqa: E402
from app.services.event_service import relay_unpublished  # noqa: E402


async def relay(batch_size: int, loop: bool, interval: float) -> int:
    total = 0
    try:
        while True:
            async with AsyncSessionLocal() as session:
                published = await relay_unpublished(session, batch_size=batch_size)
            total += published
            if not loop:
                return total
            if published < batch_size:
                await asyncio.sleep(interval)
    finally:
        await engine.dispose()
        await close_redis_connection()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Republish unpublished workflow events")
    parser.add_argument("--batch-size", type=int, default=100, help="Events per pass (default: 100)")
    parser.add_argument("--loop", action="store_true", help="Keep draining until interrupted")
    parser.add_argument(
        "--interval",
        type=float,
        default=30.0,
        help="Seconds to wait once the outbox is drained (default: 30)",
    )
    args = parser.parse_args()

    configure_logging()

    try:
        published = asyncio.run(relay(args.batch_size, args.loop, args.interval))
    except KeyboardInterrupt:
        return
    except Exception as e:
        print(f"Error: relay failed: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"✅ Published {published} event(s)")


if __name__ == "__main__":
    main()
