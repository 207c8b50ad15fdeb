"""
Tests for the Debouncer and the logging helpers
"""

import asyncio
import logging

import pytest

from trustpay_transfer.debounce import Debouncer
from trustpay_transfer.logging_config import LOG_FILES, mask_account, setup_logging


class TestDebouncer:
    @pytest.mark.asyncio
    async def test_only_the_last_job_runs(self):
        debouncer = Debouncer(0.01)
        ran = []

        async def job(tag, token):
            ran.append((tag, debouncer.is_current(token)))

        for tag in "abc":
            debouncer.schedule(lambda token, tag=tag: job(tag, token))
        await debouncer.flush()

        assert ran == [("c", True)]

    @pytest.mark.asyncio
    async def test_cancel_drops_pending_job(self):
        debouncer = Debouncer(0.01)
        ran = []

        async def job(token):
            ran.append(token)

        debouncer.schedule(job)
        debouncer.cancel()
        await asyncio.sleep(0.03)
        await debouncer.flush()

        assert ran == []
        assert not debouncer.pending

    @pytest.mark.asyncio
    async def test_rearming_cancels_a_started_job(self):
        debouncer = Debouncer(0)
        finished = []

        async def slow(token):
            await asyncio.sleep(0.1)
            finished.append(token)

        first = debouncer.schedule(slow)
        await asyncio.sleep(0.02)
        second = debouncer.schedule(slow)
        await debouncer.flush()

        assert second > first
        assert not debouncer.is_current(first)
        assert finished == [second]


@pytest.mark.parametrize(
    "number,masked",
    [("987654321", "****4321"), ("1234", "1234"), ("", ""), (None, "")],
)
def test_mask_account(number, masked):
    assert mask_account(number) == masked


def test_setup_logging_creates_one_file_per_concern(tmp_path):
    setup_logging(tmp_path)
    logger = logging.getLogger("trustpay.transfer")
    logger.info("routing resolved")
    for handler in logger.handlers:
        handler.flush()

    assert sorted(p.name for p in tmp_path.iterdir()) == sorted(LOG_FILES.values())
    assert "routing resolved" in (tmp_path / "transfer.log").read_text(encoding="utf-8")
    setup_logging()


def test_setup_logging_twice_does_not_stack_handlers(tmp_path):
    setup_logging(tmp_path)
    setup_logging(tmp_path)

    for name in LOG_FILES:
        assert len(logging.getLogger(name).handlers) == 2
    setup_logging()
