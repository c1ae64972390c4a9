"""Background worker process.

RUN:  python -m app.worker

Same image as the API, different command:
  api:    uvicorn app.main:app --host 0.0.0.0 --port 8000
  worker: python -m app.worker

The loop polls every registered queue, pops one job at a time and hands
it to the queue's handler.  A failing job is logged and dropped; the
loop keeps going.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from collections.abc import Callable, Coroutine
from email.message import EmailMessage
from typing import Any

from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.services.task_queue import EMAIL_QUEUE, task_queue

JobHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("worker")


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------

HANDLERS: dict[str, JobHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def build_message(payload: dict) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = SETTINGS.smtp_from
    msg["To"] = payload["to"]
    msg["Subject"] = payload["subject"]
    msg.set_content(payload["body"])
    return msg


def _send(msg: EmailMessage) -> None:
    with smtplib.SMTP(SETTINGS.smtp_host, SETTINGS.smtp_port, timeout=10) as server:
        server.send_message(msg)


@register_handler(EMAIL_QUEUE)
async def handle_email(payload: dict) -> None:
    msg = build_message(payload)
    # smtplib blocks; keep it off the event loop
    await asyncio.to_thread(_send, msg)
    logger.info("Email sent to=%s subject=%r", payload["to"], payload["subject"])


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------


async def process_one(queue_name: str, timeout: int = 1) -> bool:
    """Pop and run one job from queue_name; returns False when it was empty."""
    job = await task_queue.dequeue(queue_name, timeout=timeout)
    if job is None:
        return False

    try:
        await HANDLERS[queue_name](job.payload)
        logger.info("Job %s on [%s] completed", job.id, queue_name)
    except Exception:
        logger.exception("Job %s on [%s] failed", job.id, queue_name)
    return True


async def run_worker() -> None:
    queues = list(HANDLERS)
    logger.info("Worker started, listening on queues: %s", queues)
    while True:
        busy = [await process_one(queue_name) for queue_name in queues]
        if not any(busy):
            # In-memory dequeue returns at once; don't spin on empty queues
            await asyncio.sleep(1)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
