"""
Two Contexts Example

Demonstrates two cache contexts in one process:
- Sharing a broadcast hub so writes in one reach the other
- Subscribing to a key
- Syncing with a backend (any server speaking POST /sync, /set, /remove, /clear)

Run with a backend listening on SYNCED_CACHE_BACKEND_URL, or without one to see
sync failures reported on the error channel.
"""

import asyncio
import logging

from synced_cache import BroadcastHub, SyncedCacheConfig, create_synced_cache, setup_logging

logger = logging.getLogger(__name__)


async def main() -> None:
    setup_logging("INFO", fmt="text")
    config = SyncedCacheConfig(sync_interval_ms=5000, max_retries=1, retry_delay_ms=1000, request_timeout=2.0)
    hub = BroadcastHub()

    async with (
        create_synced_cache(config, hub=hub, context_id="header") as header,
        create_synced_cache(config, hub=hub, context_id="checkout") as checkout,
    ):
        header.on_error(lambda e: logger.warning(f"header: {e.kind.value}: {e.message}"))
        checkout.subscribe("cart", lambda value: print(f"checkout sees cart = {value}"))

        header.set("cart", {"items": 2}, ttl=600)
        await header.flush()
        await checkout.flush()

        header.remove("cart")
        await header.flush()
        await checkout.flush()

        print(f"header stats: {header.get_stats()}")


if __name__ == "__main__":
    asyncio.run(main())
