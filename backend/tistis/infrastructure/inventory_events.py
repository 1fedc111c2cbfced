"""Inventory Event Broadcaster: in-process fan-out of inventory changes to SSE subscribers.

Invariants:
    - Subscribers only receive events of their own tenant
    - publish() never blocks: a full subscriber queue drops the oldest event
    - Unsubscribing is idempotent and always happens when the SSE stream closes

Design Decisions:
    - asyncio.Queue per subscriber, module-level singleton: single-process deployment;
      horizontal scale-out would swap this for Postgres LISTEN/NOTIFY
"""

import asyncio
import logging
from collections import defaultdict
from uuid import UUID

logger = logging.getLogger(__name__)

QUEUE_SIZE = 100


class InventoryEventBroadcaster:
    def __init__(self, queue_size: int = QUEUE_SIZE):
        self.queue_size = queue_size
        self._subscribers: dict[UUID, set[asyncio.Queue]] = defaultdict(set)

    def subscribe(self, tenant_id: UUID) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[tenant_id].add(queue)
        return queue

    def unsubscribe(self, tenant_id: UUID, queue: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(tenant_id)
        if not subscribers:
            return
        subscribers.discard(queue)
        if not subscribers:
            self._subscribers.pop(tenant_id, None)

    def subscriber_count(self, tenant_id: UUID) -> int:
        return len(self._subscribers.get(tenant_id, ()))

    def publish(self, tenant_id: UUID, event: dict) -> None:
        for queue in list(self._subscribers.get(tenant_id, ())):
            if queue.full():
                queue.get_nowait()
                logger.warning("Inventory subscriber lagging, dropped oldest event")
            queue.put_nowait(event)


inventory_events = InventoryEventBroadcaster()
