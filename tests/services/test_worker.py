from __future__ import annotations

import asyncio
import logging

from app import worker
from app.core.config import SETTINGS
from app.services.task_queue import EMAIL_QUEUE, task_queue

PAYLOAD = {"to": "kim@example.com", "subject": "Welcome", "body": "Hello Kim"}


def test_build_message_headers_and_body() -> None:
    msg = worker.build_message(PAYLOAD)

    assert msg["From"] == SETTINGS.smtp_from
    assert msg["To"] == "kim@example.com"
    assert msg["Subject"] == "Welcome"
    assert msg.get_content().strip() == "Hello Kim"


def test_email_queue_has_a_handler() -> None:
    assert worker.HANDLERS[EMAIL_QUEUE] is worker.handle_email


def test_process_one_sends_queued_email(monkeypatch) -> None:
    sent = []
    monkeypatch.setattr(worker, "_send", sent.append)
    asyncio.run(task_queue.enqueue(EMAIL_QUEUE, PAYLOAD))

    assert asyncio.run(worker.process_one(EMAIL_QUEUE)) is True

    assert [m["To"] for m in sent] == ["kim@example.com"]
    assert asyncio.run(task_queue.queue_length(EMAIL_QUEUE)) == 0


def test_process_one_on_empty_queue() -> None:
    assert asyncio.run(worker.process_one(EMAIL_QUEUE)) is False


def test_failing_job_is_logged_and_dropped(monkeypatch, caplog) -> None:
    def refuse(_msg):
        raise ConnectionRefusedError("smtp down")

    monkeypatch.setattr(worker, "_send", refuse)
    asyncio.run(task_queue.enqueue(EMAIL_QUEUE, PAYLOAD))

    with caplog.at_level(logging.ERROR, logger="worker"):
        assert asyncio.run(worker.process_one(EMAIL_QUEUE)) is True

    assert "failed" in caplog.text
    assert asyncio.run(task_queue.queue_length(EMAIL_QUEUE)) == 0
