"""Unit tests for the in-process job queue."""

from __future__ import annotations

import asyncio

import pytest

from src.models.ingestion import JobState
from src.providers.queue import InMemoryJobQueue


class TestDelivery:
    @pytest.mark.asyncio()
    async def test_enqueue_records_queued_status(self, memory_queue, job_factory) -> None:
        job = job_factory()
        await memory_queue.enqueue(job)

        status = await memory_queue.get_status("abc-1")
        assert status.state == JobState.QUEUED
        assert status.job_id == job.job_id
        assert memory_queue.pending_count() == 1

    @pytest.mark.asyncio()
    async def test_fifo_order(self, memory_queue, job_factory) -> None:
        for collection_id in ("a", "b", "c"):
            await memory_queue.enqueue(job_factory(collection_id=collection_id))

        received = [(await memory_queue.reserve(0.1)).collection_id for _ in range(3)]
        assert received == ["a", "b", "c"]

    @pytest.mark.asyncio()
    async def test_reserve_times_out_when_empty(self, memory_queue) -> None:
        assert await memory_queue.reserve(0.01) is None

    @pytest.mark.asyncio()
    async def test_reserve_wakes_on_enqueue(self, memory_queue, job_factory) -> None:
        waiter = asyncio.create_task(memory_queue.reserve(1.0))
        await asyncio.sleep(0)
        await memory_queue.enqueue(job_factory())
        assert (await waiter).collection_id == "abc-1"

    @pytest.mark.asyncio()
    async def test_unknown_status_is_none(self, memory_queue) -> None:
        assert await memory_queue.get_status("never-seen") is None


class TestRetries:
    @pytest.mark.asyncio()
    async def test_fail_requeues_until_budget_exhausted(self, memory_queue, job_factory) -> None:
        await memory_queue.enqueue(job_factory())

        outcomes = []
        for _ in range(3):
            job = await memory_queue.reserve(0.1)
            outcomes.append(await memory_queue.fail(job, "boom"))

        assert outcomes == [True, True, False]
        assert await memory_queue.reserve(0.01) is None
        (dead,) = await memory_queue.dead_letters()
        assert dead.attempts == 3
        status = await memory_queue.get_status("abc-1")
        assert status.state == JobState.FAILED
        assert status.dead_lettered is True
        assert status.error == "boom"

    @pytest.mark.asyncio()
    async def test_backoff_delays_redelivery(self, job_factory) -> None:
        queue = InMemoryJobQueue(max_attempts=3, retry_backoff=0.05)
        await queue.enqueue(job_factory())
        job = await queue.reserve(0.1)
        await queue.fail(job, "transient")

        assert await queue.reserve(0.0) is None
        await asyncio.sleep(0.06)
        retry = await queue.reserve(0.1)
        assert retry.attempts == 1

    @pytest.mark.asyncio()
    async def test_single_attempt_budget_dead_letters_immediately(self, job_factory) -> None:
        queue = InMemoryJobQueue(max_attempts=1, retry_backoff=0.0)
        await queue.enqueue(job_factory())
        assert await queue.fail(await queue.reserve(0.1), "bad") is False


class TestRecovery:
    @pytest.mark.asyncio()
    async def test_unacked_jobs_are_recovered(self, memory_queue, job_factory) -> None:
        await memory_queue.enqueue(job_factory())
        job = await memory_queue.reserve(0.1)

        assert await memory_queue.recover_in_flight() == 1
        again = await memory_queue.reserve(0.1)
        assert again.job_id == job.job_id

    @pytest.mark.asyncio()
    async def test_acked_jobs_are_not_recovered(self, memory_queue, job_factory) -> None:
        await memory_queue.enqueue(job_factory())
        await memory_queue.ack(await memory_queue.reserve(0.1))
        assert await memory_queue.recover_in_flight() == 0
