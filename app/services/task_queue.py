"""Background job queue on Redis lists.

The API enqueues side-effect jobs (outgoing email) and returns; the worker
process (app.worker) pops and runs them.  LPUSH on enqueue plus BRPOP on
dequeue gives FIFO order.

Delivery is at-most-once: a job popped by a worker that then crashes is
lost.  Email is a best-effort notification, so that is acceptable here.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from app.core.metrics import QUEUE_DEPTH
from app.db.redis import redis_pool

EMAIL_QUEUE = "email"


@dataclass(frozen=True, slots=True)
class Job:
    """A unit of background work.

    id:      unique identifier for tracking and logging
    queue:   queue name; each queue has its own handler in app.worker
    payload: JSON-serializable data the handler needs
    """

    id: str
    queue: str
    payload: dict


@runtime_checkable
class TaskQueue(Protocol):
    async def enqueue(self, queue: str, payload: dict) -> Job: ...
    async def dequeue(self, queue: str, timeout: int = 0) -> Job | None: ...
    async def queue_length(self, queue: str) -> int: ...


class InMemoryTaskQueue:
    """Process-local queue for dev and tests."""

    def __init__(self) -> None:
        self._queues: dict[str, list[Job]] = {}

    def clear(self) -> None:
        self._queues.clear()

    async def enqueue(self, queue: str, payload: dict) -> Job:
        job = Job(id=str(uuid.uuid4()), queue=queue, payload=payload)
        self._queues.setdefault(queue, []).append(job)
        QUEUE_DEPTH.labels(queue_name=queue).set(len(self._queues[queue]))
        return job

    async def dequeue(self, queue: str, timeout: int = 0) -> Job | None:
        jobs = self._queues.get(queue, [])
        if not jobs:
            return None
        job = jobs.pop(0)
        QUEUE_DEPTH.labels(queue_name=queue).set(len(jobs))
        return job

    async def queue_length(self, queue: str) -> int:
        return len(self._queues.get(queue, []))


class RedisTaskQueue:
    """Redis-backed queue using LPUSH/BRPOP."""

    _PREFIX = "tasks:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def enqueue(self, queue: str, payload: dict) -> Job:
        job = Job(id=str(uuid.uuid4()), queue=queue, payload=payload)
        body = json.dumps({"id": job.id, "queue": job.queue, "payload": job.payload})
        depth = await self._redis.lpush(f"{self._PREFIX}{queue}", body)
        QUEUE_DEPTH.labels(queue_name=queue).set(depth)
        return job

    async def dequeue(self, queue: str, timeout: int = 5) -> Job | None:
        # Blocks up to `timeout` seconds; None means nothing arrived.
        result = await self._redis.brpop(f"{self._PREFIX}{queue}", timeout=timeout)
        if result is None:
            return None
        _, body = result
        return Job(**json.loads(body))

    async def queue_length(self, queue: str) -> int:
        return await self._redis.llen(f"{self._PREFIX}{queue}")


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    task_queue: TaskQueue = RedisTaskQueue(redis_pool)
else:
    task_queue = InMemoryTaskQueue()
